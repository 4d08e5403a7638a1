# [TESTER] v1

from __future__ import annotations

import pytest

from lststake.core.errors import AddressMismatch, InvalidArgument
from lststake.state.addresses import (
    DEFAULT_PROGRAM_ID,
    MAX_SEED_LEN,
    MAX_SEEDS,
    derive_address,
    global_config_seeds,
    lst_asset_seeds,
    staking_pool_seeds,
    stake_vault_seeds,
    user_ledger_seeds,
    verify_address,
)

AUTH = "0x" + "b2" * 48
USER = "0x" + "a1" * 48
CFG = "0x" + "55" * 32
ASSET = "0x" + "11" * 32


def test_derivation_is_deterministic() -> None:
    a1, n1 = derive_address(global_config_seeds(AUTH))
    a2, n2 = derive_address(global_config_seeds(AUTH))
    assert (a1, n1) == (a2, n2)
    assert a1.startswith("0x") and len(a1) == 66
    assert a1 == a1.lower()
    assert 0 <= n1 <= 255


def test_program_id_changes_address() -> None:
    other = "0x" + "01" * 32
    assert derive_address(global_config_seeds(AUTH))[0] != derive_address(global_config_seeds(AUTH), other)[0]
    assert derive_address(global_config_seeds(AUTH), DEFAULT_PROGRAM_ID) == derive_address(global_config_seeds(AUTH))


def test_pool_ids_give_distinct_addresses() -> None:
    addrs = {derive_address(staking_pool_seeds(AUTH, i))[0] for i in range(20)}
    assert len(addrs) == 20
    # pool and derivative-asset seeds share inputs but not labels
    assert derive_address(staking_pool_seeds(AUTH, 1))[0] != derive_address(lst_asset_seeds(AUTH, 1))[0]


def test_seed_lengths_are_framed() -> None:
    # ("ab", "c") and ("a", "bc") must not collide
    assert derive_address([b"ab", b"c"])[0] != derive_address([b"a", b"bc"])[0]


def test_verify_returns_nonce() -> None:
    seeds = user_ledger_seeds(USER, CFG)
    addr, nonce = derive_address(seeds)
    assert verify_address(addr, seeds) == nonce
    assert verify_address(addr.upper().replace("0X", "0x"), seeds) == nonce


def test_verify_mismatch() -> None:
    addr, _ = derive_address(stake_vault_seeds(ASSET, CFG))
    with pytest.raises(AddressMismatch):
        verify_address(addr, stake_vault_seeds(ASSET, "0x" + "56" * 32))
    with pytest.raises(AddressMismatch):
        verify_address(None, stake_vault_seeds(ASSET, CFG))  # type: ignore[arg-type]


def test_seed_limits() -> None:
    with pytest.raises(InvalidArgument):
        derive_address([b"x"] * (MAX_SEEDS + 1))
    with pytest.raises(InvalidArgument):
        derive_address([b"x" * (MAX_SEED_LEN + 1)])
    with pytest.raises(TypeError):
        derive_address([123])  # type: ignore[list-item]
