# [TESTER] v1

from __future__ import annotations

import pytest

pytest.importorskip("py_ecc.bls", reason="py_ecc not installed (install py-ecc to run signing tests)")
from py_ecc.bls import G2Basic  # type: ignore  # noqa: E402

from lststake.core.errors import MissingSignature  # noqa: E402
from lststake.core.staking import Operation, OperationParams  # noqa: E402
from lststake.integration import EngineConfig, StakingEngine, encode_instruction  # noqa: E402
from lststake.integration.signing import (  # noqa: E402
    instruction_message_hash,
    pubkey_hex_from_secret,
    sign_instruction,
    verify_instruction_signature,
)

CHAIN = "lststake-test"


def _keypair(seed: int):
    sk = G2Basic.KeyGen(bytes([seed]) * 32)
    return sk, pubkey_hex_from_secret(sk)


def _init_cfg_bytes() -> bytes:
    return encode_instruction(
        OperationParams(Operation.INIT_GLOBAL_CONFIG, protocol_fee_rate=100, min_stake_amount=1, max_pools=3)
    )


def test_message_hash_binds_chain_id() -> None:
    raw = _init_cfg_bytes()
    assert instruction_message_hash(raw, chain_id="a") != instruction_message_hash(raw, chain_id="b")
    assert len(instruction_message_hash(raw, chain_id="a")) == 32


def test_sign_verify_roundtrip() -> None:
    sk, pk = _keypair(1)
    raw = _init_cfg_bytes()
    sig = sign_instruction(sk, raw, chain_id=CHAIN)
    assert verify_instruction_signature(signer_pubkey_hex=pk, signature_hex=sig, instruction_bytes=raw, chain_id=CHAIN) == (
        True,
        None,
    )
    ok, err = verify_instruction_signature(
        signer_pubkey_hex=pk, signature_hex=sig, instruction_bytes=raw + b"\x00", chain_id=CHAIN
    )
    assert not ok and err


def test_malformed_signature_verifies_false() -> None:
    _, pk = _keypair(1)
    ok, err = verify_instruction_signature(
        signer_pubkey_hex=pk, signature_hex="0x1234", instruction_bytes=b"\x00", chain_id=CHAIN
    )
    assert not ok
    assert "malformed" in err


def test_sign_rejects_bad_secret() -> None:
    with pytest.raises(ValueError):
        sign_instruction(0, b"\x00", chain_id=CHAIN)


def test_engine_requires_signature() -> None:
    _, pk = _keypair(1)
    eng = StakingEngine(EngineConfig(chain_id=CHAIN), clock=lambda: 0)
    res = eng.execute(_init_cfg_bytes(), pk)
    assert not res.ok
    assert res.error_code == MissingSignature.code == 104


def test_engine_accepts_valid_signature() -> None:
    sk, pk = _keypair(1)
    eng = StakingEngine(EngineConfig(chain_id=CHAIN), clock=lambda: 0)
    raw = _init_cfg_bytes()
    res = eng.execute(raw, pk, signature=sign_instruction(sk, raw, chain_id=CHAIN))
    assert res.ok, res.error
    assert eng.global_config(res.outputs["address"]).authority == pk


def test_engine_rejects_other_chain_signature() -> None:
    sk, pk = _keypair(1)
    eng = StakingEngine(EngineConfig(chain_id=CHAIN), clock=lambda: 0)
    raw = _init_cfg_bytes()
    res = eng.execute(raw, pk, signature=sign_instruction(sk, raw, chain_id="other-chain"))
    assert res.error_code == MissingSignature.code


def test_engine_rejects_signature_from_other_key() -> None:
    sk_other, _ = _keypair(2)
    _, pk = _keypair(1)
    eng = StakingEngine(EngineConfig(chain_id=CHAIN), clock=lambda: 0)
    raw = _init_cfg_bytes()
    res = eng.execute(raw, pk, signature=sign_instruction(sk_other, raw, chain_id=CHAIN))
    assert not res.ok
    assert eng.global_config(eng.global_config_address(pk)) is None
