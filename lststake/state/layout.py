"""
Fixed-size, fixed-offset binary records.

Each record starts with a one-byte kind tag followed by little-endian fields
at fixed offsets; there are no length prefixes. Positions and both histories
are embedded arrays inside the user-ledger record.

Key fields are 48 bytes (user keys) or 32 bytes (assets, derived addresses);
an empty string is stored as all-zero bytes and decodes back to "".
"""

from __future__ import annotations

import struct
from typing import Callable, List, TypeVar

from ..core.errors import InvalidAccountData
from ..core.oracle import OracleRecord
from .canonical import ADDRESS_NBYTES, PUBKEY_NBYTES, bytes_to_hex, hex_to_bytes
from .enums import PenaltyType, PoolStatus, SlashType
from .global_config import MAX_ACTIVE_POOLS, GlobalConfig
from .ledger import UserLedger
from .pool import PoolAccumulator
from .positions import (
    MAX_HISTORY,
    MAX_POSITIONS,
    BoundedHistory,
    ClaimEvent,
    PenaltyEvent,
    PositionSet,
    StakePosition,
)

TAG_GLOBAL_CONFIG = 1
TAG_POOL = 2
TAG_USER_LEDGER = 3
TAG_ORACLE = 4

_GLOBAL = struct.Struct("<B32s48s32sHIQ?IIBB")
_POOL = struct.Struct("<BQ32s48s32s32s32s32s32sqqBQQQQ16sQ?qHQ?BHBqQQ32s?B")
_POSITION = struct.Struct("<Q32s48sQQqQq?q?IQqI?")
_CLAIM = struct.Struct("<Qq")
_PENALTY = struct.Struct("<BQQqq?qQ48s32sQq")
_LEDGER = struct.Struct("<B48s32s48sQQQQQQQB?qqqB")
_ORACLE = struct.Struct("<B32s48sqqQB")

GLOBAL_CONFIG_SIZE = _GLOBAL.size + MAX_ACTIVE_POOLS * ADDRESS_NBYTES
POOL_SIZE = _POOL.size
USER_LEDGER_SIZE = (
    _LEDGER.size
    + MAX_POSITIONS * _POSITION.size
    + MAX_HISTORY * _CLAIM.size
    + MAX_HISTORY * _PENALTY.size
)
ORACLE_SIZE = _ORACLE.size

T = TypeVar("T")


def _key(value: str, nbytes: int) -> bytes:
    if value == "":
        return bytes(nbytes)
    return hex_to_bytes(value, name="key", expected_nbytes=nbytes)


def _unkey(raw: bytes) -> str:
    if not any(raw):
        return ""
    return bytes_to_hex(raw)


def _u128(value: int) -> bytes:
    return value.to_bytes(16, "little")


def _check(data: bytes, size: int, tag: int, kind: str) -> None:
    if not isinstance(data, (bytes, bytearray)):
        raise InvalidAccountData(f"{kind} record must be bytes")
    if len(data) != size:
        raise InvalidAccountData(f"{kind} record must be {size} bytes, got {len(data)}")
    if data[0] != tag:
        raise InvalidAccountData(f"not a {kind} record (tag {data[0]})")


def _build(factory: Callable[..., T], kind: str, **kwargs) -> T:
    try:
        return factory(**kwargs)
    except ValueError as exc:
        raise InvalidAccountData(f"corrupt {kind} record: {exc}") from exc


def record_tag(data: bytes) -> int:
    if not data:
        raise InvalidAccountData("empty record")
    return data[0]


# -- GlobalConfig --------------------------------------------------------------

def encode_global_config(cfg: GlobalConfig) -> bytes:
    head = _GLOBAL.pack(
        TAG_GLOBAL_CONFIG,
        _key(cfg.address, ADDRESS_NBYTES),
        _key(cfg.authority, PUBKEY_NBYTES),
        _key(cfg.treasury, ADDRESS_NBYTES),
        cfg.protocol_fee_rate,
        cfg.max_pools,
        cfg.min_stake_amount,
        cfg.emergency_pause,
        cfg.total_pools_created,
        cfg.active_pools,
        len(cfg.active_pool_keys),
        cfg.bump,
    )
    keys = list(cfg.active_pool_keys) + [""] * (MAX_ACTIVE_POOLS - len(cfg.active_pool_keys))
    return head + b"".join(_key(k, ADDRESS_NBYTES) for k in keys)


def decode_global_config(data: bytes) -> GlobalConfig:
    _check(data, GLOBAL_CONFIG_SIZE, TAG_GLOBAL_CONFIG, "global config")
    (
        _tag, address, authority, treasury, fee, max_pools, min_stake, paused,
        created, active, n_keys, bump,
    ) = _GLOBAL.unpack_from(data, 0)
    if n_keys > MAX_ACTIVE_POOLS:
        raise InvalidAccountData(f"active pool key count out of range: {n_keys}")
    keys = tuple(
        _unkey(data[_GLOBAL.size + i * ADDRESS_NBYTES:_GLOBAL.size + (i + 1) * ADDRESS_NBYTES])
        for i in range(n_keys)
    )
    return _build(
        GlobalConfig,
        "global config",
        address=_unkey(address),
        authority=_unkey(authority),
        treasury=_unkey(treasury),
        protocol_fee_rate=fee,
        max_pools=max_pools,
        min_stake_amount=min_stake,
        emergency_pause=paused,
        total_pools_created=created,
        active_pools=active,
        active_pool_keys=keys,
        bump=bump,
    )


# -- PoolAccumulator -------------------------------------------------------------

def encode_pool(pool: PoolAccumulator) -> bytes:
    return _POOL.pack(
        TAG_POOL,
        pool.pool_id,
        _key(pool.address, ADDRESS_NBYTES),
        _key(pool.authority, PUBKEY_NBYTES),
        _key(pool.stake_asset, ADDRESS_NBYTES),
        _key(pool.reward_asset, ADDRESS_NBYTES),
        _key(pool.stake_vault, ADDRESS_NBYTES),
        _key(pool.reward_vault, ADDRESS_NBYTES),
        _key(pool.lst_asset, ADDRESS_NBYTES),
        pool.creation_timestamp,
        pool.last_update_timestamp,
        pool.status.wire,
        pool.total_staked,
        pool.total_reward_distributed,
        pool.total_penalties,
        pool.reward_rate_per_second,
        _u128(pool.accumulated_reward_per_share),
        pool.lst_supply,
        pool.lock_enabled,
        pool.lock_duration,
        pool.reward_multiplier,
        pool.early_withdraw_penalty,
        pool.slashing_enabled,
        pool.slash_type.wire,
        pool.slash_percentage,
        pool.min_evidence,
        pool.slash_cooldown,
        pool.max_stake_limit,
        pool.min_stake_amount,
        _key(pool.price_feed, ADDRESS_NBYTES),
        pool.emergency_pause_flag,
        pool.bump,
    )


def decode_pool(data: bytes) -> PoolAccumulator:
    _check(data, POOL_SIZE, TAG_POOL, "pool")
    (
        _tag, pool_id, address, authority, stake_asset, reward_asset, stake_vault,
        reward_vault, lst_asset, created, last_update, status, total_staked,
        distributed, penalties, rate, acc, lst_supply, lock_enabled, lock_duration,
        multiplier, penalty_bps, slashing, slash_type, slash_pct, min_evidence,
        cooldown, max_limit, min_stake, price_feed, emergency, bump,
    ) = _POOL.unpack(data)
    return _build(
        PoolAccumulator,
        "pool",
        pool_id=pool_id,
        address=_unkey(address),
        authority=_unkey(authority),
        stake_asset=_unkey(stake_asset),
        reward_asset=_unkey(reward_asset),
        stake_vault=_unkey(stake_vault),
        reward_vault=_unkey(reward_vault),
        lst_asset=_unkey(lst_asset),
        creation_timestamp=created,
        last_update_timestamp=last_update,
        status=PoolStatus.from_wire(status),
        total_staked=total_staked,
        total_reward_distributed=distributed,
        total_penalties=penalties,
        reward_rate_per_second=rate,
        accumulated_reward_per_share=int.from_bytes(acc, "little"),
        lst_supply=lst_supply,
        lock_enabled=lock_enabled,
        lock_duration=lock_duration,
        reward_multiplier=multiplier,
        early_withdraw_penalty=penalty_bps,
        slashing_enabled=slashing,
        slash_type=SlashType.from_wire(slash_type),
        slash_percentage=slash_pct,
        min_evidence=min_evidence,
        slash_cooldown=cooldown,
        max_stake_limit=max_limit,
        min_stake_amount=min_stake,
        price_feed=_unkey(price_feed),
        emergency_pause_flag=emergency,
        bump=bump,
    )


# -- UserLedger ------------------------------------------------------------------

def _encode_position(p: StakePosition) -> bytes:
    return _POSITION.pack(
        p.pool_id,
        _key(p.pool, ADDRESS_NBYTES),
        _key(p.lst_account, PUBKEY_NBYTES),
        p.staked_amount,
        p.lst_tokens,
        p.last_reward_update,
        p.pending_rewards,
        p.stake_timestamp,
        p.lock_enabled,
        p.lock_expiry,
        p.auto_compound_enabled,
        p.compound_frequency_hours,
        p.min_compound_amount,
        p.last_compound_timestamp,
        p.compound_count,
        p.is_active,
    )


def _decode_position(data: bytes, offset: int) -> StakePosition:
    (
        pool_id, pool, lst_account, staked, lst, last_reward, pending, stake_ts,
        lock_enabled, lock_expiry, auto, freq, min_compound, last_compound, count, active,
    ) = _POSITION.unpack_from(data, offset)
    return _build(
        StakePosition,
        "position",
        pool_id=pool_id,
        pool=_unkey(pool),
        lst_account=_unkey(lst_account),
        staked_amount=staked,
        lst_tokens=lst,
        last_reward_update=last_reward,
        pending_rewards=pending,
        stake_timestamp=stake_ts,
        lock_enabled=lock_enabled,
        lock_expiry=lock_expiry,
        auto_compound_enabled=auto,
        compound_frequency_hours=freq,
        min_compound_amount=min_compound,
        last_compound_timestamp=last_compound,
        compound_count=count,
        is_active=active,
    )


def _encode_penalty(e: PenaltyEvent) -> bytes:
    return _PENALTY.pack(
        e.penalty_type.wire,
        e.penalty_id,
        e.amount,
        e.timestamp,
        e.grace_period_end,
        e.is_resolved,
        e.resolution_timestamp,
        e.pool_id,
        _key(e.user, PUBKEY_NBYTES),
        _key(e.validator, ADDRESS_NBYTES),
        e.original_stake_amount,
        e.recovery_period,
    )


def _decode_penalty(data: bytes, offset: int) -> PenaltyEvent:
    (
        ptype, pid, amount, ts, grace_end, resolved, resolved_ts, pool_id, user,
        validator, original, recovery,
    ) = _PENALTY.unpack_from(data, offset)
    return PenaltyEvent(
        penalty_type=PenaltyType.from_wire(ptype),
        penalty_id=pid,
        amount=amount,
        timestamp=ts,
        grace_period_end=grace_end,
        is_resolved=resolved,
        resolution_timestamp=resolved_ts,
        pool_id=pool_id,
        user=_unkey(user),
        validator=_unkey(validator),
        original_stake_amount=original,
        recovery_period=recovery,
    )


def encode_user_ledger(ledger: UserLedger) -> bytes:
    parts: List[bytes] = [
        _LEDGER.pack(
            TAG_USER_LEDGER,
            _key(ledger.owner, PUBKEY_NBYTES),
            _key(ledger.global_config, ADDRESS_NBYTES),
            _key(ledger.source_account, PUBKEY_NBYTES),
            ledger.total_lst_balance,
            ledger.total_staked_amount,
            ledger.total_earned,
            ledger.total_claimed,
            ledger.pending_rewards,
            ledger.total_penalties,
            ledger.active_penalties,
            ledger.active_positions,
            ledger.is_paused,
            ledger.creation_timestamp,
            ledger.last_update_timestamp,
            ledger.last_claim_timestamp,
            ledger.bump,
        )
    ]
    parts.extend(_encode_position(p) for p in ledger.positions.slots)
    parts.extend(_CLAIM.pack(c.amount, c.timestamp) for c in ledger.claim_history)
    parts.extend(_encode_penalty(e) for e in ledger.penalty_history)
    return b"".join(parts)


def decode_user_ledger(data: bytes) -> UserLedger:
    _check(data, USER_LEDGER_SIZE, TAG_USER_LEDGER, "user ledger")
    (
        _tag, owner, global_config, source, total_lst, total_staked, earned, claimed,
        pending, penalties, active_penalties, active_positions, paused, created,
        last_update, last_claim, bump,
    ) = _LEDGER.unpack_from(data, 0)

    offset = _LEDGER.size
    slots = []
    for _ in range(MAX_POSITIONS):
        slots.append(_decode_position(data, offset))
        offset += _POSITION.size
    claims = []
    for _ in range(MAX_HISTORY):
        amount, ts = _CLAIM.unpack_from(data, offset)
        claims.append(ClaimEvent(amount=amount, timestamp=ts))
        offset += _CLAIM.size
    penalties_hist = []
    for _ in range(MAX_HISTORY):
        penalties_hist.append(_decode_penalty(data, offset))
        offset += _PENALTY.size

    return _build(
        UserLedger,
        "user ledger",
        owner=_unkey(owner),
        global_config=_unkey(global_config),
        source_account=_unkey(source),
        total_lst_balance=total_lst,
        total_staked_amount=total_staked,
        total_earned=earned,
        total_claimed=claimed,
        pending_rewards=pending,
        total_penalties=penalties,
        active_penalties=active_penalties,
        active_positions=active_positions,
        is_paused=paused,
        positions=PositionSet(tuple(slots)),
        claim_history=BoundedHistory(tuple(claims)),
        penalty_history=BoundedHistory(tuple(penalties_hist)),
        creation_timestamp=created,
        last_update_timestamp=last_update,
        last_claim_timestamp=last_claim,
        bump=bump,
    )


# -- OracleRecord ----------------------------------------------------------------

def encode_oracle(record: OracleRecord) -> bytes:
    return _ORACLE.pack(
        TAG_ORACLE,
        _key(record.price_feed, ADDRESS_NBYTES),
        _key(record.oracle_authority, PUBKEY_NBYTES),
        record.update_frequency_seconds,
        record.last_update_timestamp,
        record.current_price,
        record.bump,
    )


def decode_oracle(data: bytes) -> OracleRecord:
    _check(data, ORACLE_SIZE, TAG_ORACLE, "oracle")
    _tag, feed, authority, freq, last_update, price, bump = _ORACLE.unpack(data)
    return _build(
        OracleRecord,
        "oracle",
        price_feed=_unkey(feed),
        oracle_authority=_unkey(authority),
        update_frequency_seconds=freq,
        last_update_timestamp=last_update,
        current_price=price,
        bump=bump,
    )
