# [TESTER] v1

from __future__ import annotations

import pytest

from lststake.core.errors import InvalidAccountData, UnknownDiscriminant
from lststake.core.oracle import OracleRecord
from lststake.state.enums import PenaltyType, PoolStatus, SlashType
from lststake.state.global_config import GlobalConfig
from lststake.state.layout import (
    GLOBAL_CONFIG_SIZE,
    ORACLE_SIZE,
    POOL_SIZE,
    TAG_ORACLE,
    TAG_POOL,
    USER_LEDGER_SIZE,
    decode_global_config,
    decode_oracle,
    decode_pool,
    decode_user_ledger,
    encode_global_config,
    encode_oracle,
    encode_pool,
    encode_user_ledger,
    record_tag,
)
from lststake.state.ledger import UserLedger
from lststake.state.pool import PoolAccumulator
from lststake.state.positions import ClaimEvent, PenaltyEvent, StakePosition

USER = "0x" + "a1" * 48
AUTH = "0x" + "b2" * 48


def _addr(n: int) -> str:
    return "0x" + f"{n:02x}" * 32


def _pool(**kwargs) -> PoolAccumulator:
    fields = dict(
        pool_id=3,
        address=_addr(1),
        authority=AUTH,
        stake_asset=_addr(2),
        reward_asset=_addr(3),
        stake_vault=_addr(4),
        reward_vault=_addr(5),
        lst_asset=_addr(6),
        creation_timestamp=100,
        last_update_timestamp=-5,
        status=PoolStatus.PAUSED,
        total_staked=10**12,
        total_reward_distributed=77,
        total_penalties=3,
        reward_rate_per_second=1_000,
        accumulated_reward_per_share=2**100 + 17,
        lst_supply=10**12,
        lock_enabled=True,
        lock_duration=86_400,
        reward_multiplier=150,
        early_withdraw_penalty=500,
        slashing_enabled=True,
        slash_type=SlashType.CENSORSHIP,
        slash_percentage=250,
        min_evidence=2,
        slash_cooldown=3_600,
        max_stake_limit=10**15,
        min_stake_amount=10,
        price_feed=_addr(7),
        emergency_pause_flag=True,
        bump=254,
    )
    fields.update(kwargs)
    return PoolAccumulator(**fields)


def _ledger() -> UserLedger:
    ledger = UserLedger.new(USER, _addr(9), now=11, bump=200)
    ledger, _ = ledger.open_position(
        StakePosition(
            pool_id=3,
            pool=_addr(1),
            lst_account=USER,
            staked_amount=500,
            lst_tokens=500,
            last_reward_update=12,
            pending_rewards=4,
            stake_timestamp=12,
            lock_enabled=True,
            lock_expiry=1_000,
            auto_compound_enabled=True,
            compound_frequency_hours=24,
            min_compound_amount=5,
            last_compound_timestamp=13,
            compound_count=2,
        ),
        now=12,
    )
    ledger = ledger.push_claim(ClaimEvent(amount=8, timestamp=14))
    return ledger.push_penalty(
        PenaltyEvent(
            penalty_type=PenaltyType.SLASH,
            penalty_id=1,
            amount=6,
            timestamp=15,
            grace_period_end=20,
            pool_id=3,
            user=USER,
            validator=_addr(8),
            original_stake_amount=500,
            recovery_period=60,
        )
    )


def test_record_sizes_are_fixed() -> None:
    cfg = GlobalConfig(address=_addr(1), authority=AUTH, treasury=_addr(2))
    assert len(encode_global_config(cfg)) == GLOBAL_CONFIG_SIZE
    assert len(encode_pool(_pool())) == POOL_SIZE
    assert len(encode_user_ledger(UserLedger.new(USER, _addr(9), now=0))) == USER_LEDGER_SIZE
    assert len(encode_user_ledger(_ledger())) == USER_LEDGER_SIZE
    oracle = OracleRecord(price_feed=_addr(1), oracle_authority=AUTH, update_frequency_seconds=60)
    assert len(encode_oracle(oracle)) == ORACLE_SIZE


def test_global_config_roundtrip_with_pool_keys() -> None:
    cfg = GlobalConfig(
        address=_addr(1),
        authority=AUTH,
        treasury=_addr(2),
        protocol_fee_rate=500,
        max_pools=20,
        min_stake_amount=1_000,
        emergency_pause=True,
        total_pools_created=4,
        active_pools=2,
        active_pool_keys=(_addr(3), _addr(4)),
        bump=9,
    )
    assert decode_global_config(encode_global_config(cfg)) == cfg


def test_pool_roundtrip_populated() -> None:
    pool = _pool()
    assert decode_pool(encode_pool(pool)) == pool


def test_pool_roundtrip_empty_price_feed() -> None:
    pool = _pool(price_feed="")
    assert decode_pool(encode_pool(pool)).price_feed == ""


def test_user_ledger_roundtrip_populated() -> None:
    ledger = _ledger()
    assert decode_user_ledger(encode_user_ledger(ledger)) == ledger


def test_oracle_roundtrip() -> None:
    rec = OracleRecord(
        price_feed=_addr(1),
        oracle_authority=AUTH,
        update_frequency_seconds=60,
        last_update_timestamp=99,
        current_price=12_345,
        bump=3,
    )
    assert decode_oracle(encode_oracle(rec)) == rec


def test_wrong_tag_rejected() -> None:
    data = encode_pool(_pool())
    with pytest.raises(InvalidAccountData):
        decode_user_ledger(data)
    with pytest.raises(InvalidAccountData):
        decode_pool(bytes([TAG_ORACLE]) + data[1:])
    assert record_tag(data) == TAG_POOL


@pytest.mark.parametrize("cut", [1, 10, POOL_SIZE - 1])
def test_truncated_pool_rejected(cut: int) -> None:
    data = encode_pool(_pool())
    with pytest.raises(InvalidAccountData):
        decode_pool(data[:cut])


def test_trailing_bytes_rejected() -> None:
    data = encode_user_ledger(_ledger())
    with pytest.raises(InvalidAccountData):
        decode_user_ledger(data + b"\x00")


def test_empty_record() -> None:
    with pytest.raises(InvalidAccountData):
        record_tag(b"")
    with pytest.raises(InvalidAccountData):
        decode_oracle(b"")


def test_unknown_status_discriminant() -> None:
    data = bytearray(encode_pool(_pool()))
    assert data[265] == PoolStatus.PAUSED.wire
    data[265] = 9
    with pytest.raises(UnknownDiscriminant):
        decode_pool(bytes(data))


def test_corrupt_field_is_account_data_error() -> None:
    # zeroed oracle body: update frequency must be positive
    with pytest.raises(InvalidAccountData):
        decode_oracle(bytes([TAG_ORACLE]) + bytes(ORACLE_SIZE - 1))


def test_encoding_is_deterministic() -> None:
    assert encode_user_ledger(_ledger()) == encode_user_ledger(_ledger())
    assert encode_pool(_pool()) != encode_pool(_pool(total_staked=1))
