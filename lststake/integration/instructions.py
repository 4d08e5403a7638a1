"""
Instruction wire codec.

An instruction is a single discriminator byte followed by a fixed-offset
little-endian payload. Payloads are exact-length: short or trailing bytes are
rejected with ``InvalidInstructionData``. ``UpdatePoolConfig`` is the only
variable-width payload; its value width is fixed by the field tag.

    disc  operation                 payload
    0     InitGlobalConfig          fee:u16 min_stake:u64 max_pools:u32
    1     UpdateAuthority           new_authority:[48]
    2     UpdateProtocolFee         fee:u16
    3     CreateStakingPool         64-byte pool parameters
    4     UpdatePoolConfig          field:u8 pool_id:u64 value:<per field>
    5     InitOracle                frequency:i64 price:u64
    6     UpdateOraclePrice         price:u64
    7     GetOraclePrice            -
    8     PausePool                 pool_id:u64
    9     ResumePool                pool_id:u64
    10    InitUserLedger            -
    11    Stake                     pool_id:u64 amount:u64
    12    IncreaseStake             pool_id:u64 amount:u64
    13    Unstake                   pool_id:u64 lst_amount:u64
    14    ClaimRewards              pool_id:u64
    15    ClaimAllRewards           -
    16    ExecuteAutoCompound       pool_id:u64
    17    DisableAutoCompound       pool_id:u64
    18    EmergencyWithdraw         pool_id:u64
    19    FundRewardVault           amount:u64
    20    EnableAutoCompound        pool_id:u64 hours:u32 min_amount:u64
    21    SetGlobalEmergencyPause   flag:u8
"""

from __future__ import annotations

import struct
from dataclasses import replace
from typing import Dict, Tuple

from ..core.errors import InvalidInstructionData
from ..core.staking.types import Operation, OperationParams
from ..state.canonical import ADDRESS_NBYTES, PUBKEY_NBYTES, bytes_to_hex, hex_to_bytes
from ..state.enums import PoolConfigField, PoolStatus, SlashType
from ..state.pool import PoolParams

DISCRIMINATORS: Dict[Operation, int] = {
    Operation.INIT_GLOBAL_CONFIG: 0,
    Operation.UPDATE_AUTHORITY: 1,
    Operation.UPDATE_PROTOCOL_FEE: 2,
    Operation.CREATE_STAKING_POOL: 3,
    Operation.UPDATE_POOL_CONFIG: 4,
    Operation.INIT_ORACLE: 5,
    Operation.UPDATE_ORACLE_PRICE: 6,
    Operation.GET_ORACLE_PRICE: 7,
    Operation.PAUSE_POOL: 8,
    Operation.RESUME_POOL: 9,
    Operation.INIT_USER_LEDGER: 10,
    Operation.STAKE: 11,
    Operation.INCREASE_STAKE: 12,
    Operation.UNSTAKE: 13,
    Operation.CLAIM_REWARDS: 14,
    Operation.CLAIM_ALL_REWARDS: 15,
    Operation.EXECUTE_AUTO_COMPOUND: 16,
    Operation.DISABLE_AUTO_COMPOUND: 17,
    Operation.EMERGENCY_WITHDRAW: 18,
    Operation.FUND_REWARD_VAULT: 19,
    Operation.ENABLE_AUTO_COMPOUND: 20,
    Operation.SET_GLOBAL_EMERGENCY_PAUSE: 21,
}
OPERATIONS: Dict[int, Operation] = {d: op for op, d in DISCRIMINATORS.items()}

# Plain payloads: struct + the OperationParams fields it fills, in order.
_PLAIN: Dict[Operation, Tuple[struct.Struct, Tuple[str, ...]]] = {
    Operation.INIT_GLOBAL_CONFIG: (struct.Struct("<HQI"), ("protocol_fee_rate", "min_stake_amount", "max_pools")),
    Operation.UPDATE_PROTOCOL_FEE: (struct.Struct("<H"), ("protocol_fee_rate",)),
    Operation.INIT_ORACLE: (struct.Struct("<qQ"), ("update_frequency_seconds", "price")),
    Operation.UPDATE_ORACLE_PRICE: (struct.Struct("<Q"), ("price",)),
    Operation.GET_ORACLE_PRICE: (struct.Struct("<"), ()),
    Operation.PAUSE_POOL: (struct.Struct("<Q"), ("pool_id",)),
    Operation.RESUME_POOL: (struct.Struct("<Q"), ("pool_id",)),
    Operation.INIT_USER_LEDGER: (struct.Struct("<"), ()),
    Operation.STAKE: (struct.Struct("<QQ"), ("pool_id", "amount")),
    Operation.INCREASE_STAKE: (struct.Struct("<QQ"), ("pool_id", "amount")),
    Operation.UNSTAKE: (struct.Struct("<QQ"), ("pool_id", "amount")),
    Operation.CLAIM_REWARDS: (struct.Struct("<Q"), ("pool_id",)),
    Operation.CLAIM_ALL_REWARDS: (struct.Struct("<"), ()),
    Operation.EXECUTE_AUTO_COMPOUND: (struct.Struct("<Q"), ("pool_id",)),
    Operation.DISABLE_AUTO_COMPOUND: (struct.Struct("<Q"), ("pool_id",)),
    Operation.EMERGENCY_WITHDRAW: (struct.Struct("<Q"), ("pool_id",)),
    Operation.FUND_REWARD_VAULT: (struct.Struct("<Q"), ("amount",)),
    Operation.ENABLE_AUTO_COMPOUND: (struct.Struct("<QIQ"), ("pool_id", "frequency_hours", "min_compound_amount")),
}

_CREATE_POOL = struct.Struct("<QQBqHQBBHBqQQ")
CREATE_POOL_PAYLOAD_SIZE = _CREATE_POOL.size  # 64

_CONFIG_HEAD = struct.Struct("<BQ")
_CONFIG_VALUE: Dict[PoolConfigField, struct.Struct] = {
    PoolConfigField.REWARD_RATE: struct.Struct("<Q"),
    PoolConfigField.LOCK_DURATION: struct.Struct("<q"),
    PoolConfigField.REWARD_MULTIPLIER: struct.Struct("<H"),
    PoolConfigField.EARLY_WITHDRAW_PENALTY: struct.Struct("<Q"),
    PoolConfigField.SLASH_PERCENTAGE: struct.Struct("<H"),
    PoolConfigField.MIN_EVIDENCE: struct.Struct("<B"),
    PoolConfigField.SLASH_COOLDOWN: struct.Struct("<q"),
    PoolConfigField.MAX_STAKE_LIMIT: struct.Struct("<Q"),
    PoolConfigField.MIN_STAKE_AMOUNT: struct.Struct("<Q"),
    PoolConfigField.LOCK_ENABLED: struct.Struct("<B"),
    PoolConfigField.SLASHING_ENABLED: struct.Struct("<B"),
    PoolConfigField.SLASH_TYPE: struct.Struct("<B"),
    PoolConfigField.PRICE_FEED: struct.Struct(f"<{ADDRESS_NBYTES}s"),
    PoolConfigField.STATUS: struct.Struct("<B"),
    PoolConfigField.EMERGENCY_PAUSE: struct.Struct("<B"),
}


def _unpack_exact(layout: struct.Struct, payload: bytes, name: str) -> tuple:
    if len(payload) != layout.size:
        raise InvalidInstructionData(f"{name} payload must be {layout.size} bytes, got {len(payload)}")
    return layout.unpack(payload)


def _pack(layout: struct.Struct, *values) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise InvalidInstructionData(f"value out of wire range: {exc}") from exc


def _decode_bool(raw: int, name: str) -> bool:
    if raw not in (0, 1):
        raise InvalidInstructionData(f"{name} must be 0 or 1, got {raw}")
    return bool(raw)


# -- decode ----------------------------------------------------------------------

def _decode_create_pool(payload: bytes) -> dict:
    (
        pool_id, rate, lock_enabled, lock_duration, multiplier, penalty,
        slashing, slash_type, slash_pct, min_evidence, cooldown, max_limit, min_stake,
    ) = _unpack_exact(_CREATE_POOL, payload, "CreateStakingPool")
    params = PoolParams(
        pool_id=pool_id,
        reward_rate_per_second=rate,
        lock_enabled=_decode_bool(lock_enabled, "lock_enabled"),
        lock_duration=lock_duration,
        reward_multiplier=multiplier,
        early_withdraw_penalty=penalty,
        slashing_enabled=_decode_bool(slashing, "slashing_enabled"),
        slash_type=SlashType.from_wire(slash_type),
        slash_percentage=slash_pct,
        min_evidence=min_evidence,
        slash_cooldown=cooldown,
        max_stake_limit=max_limit,
        min_stake_amount=min_stake,
    )
    return {"pool_id": pool_id, "pool_params": params}


def _decode_config(payload: bytes) -> dict:
    if len(payload) < _CONFIG_HEAD.size:
        raise InvalidInstructionData("UpdatePoolConfig payload too short")
    tag, pool_id = _CONFIG_HEAD.unpack_from(payload, 0)
    field = PoolConfigField.from_wire(tag)
    (raw,) = _unpack_exact(_CONFIG_VALUE[field], payload[_CONFIG_HEAD.size:], f"UpdatePoolConfig[{field.value}]")
    value: object
    if field is PoolConfigField.PRICE_FEED:
        value = bytes_to_hex(raw)
    elif field is PoolConfigField.SLASH_TYPE:
        value = SlashType.from_wire(raw)
    elif field is PoolConfigField.STATUS:
        value = PoolStatus.from_wire(raw)
    else:
        value = raw
    return {"pool_id": pool_id, "config_field": field, "config_value": value}


def decode_instruction(data: bytes) -> OperationParams:
    """Decode raw instruction bytes. ``signer``/``user`` are left for the caller to bind.

    Raises:
        InvalidInstructionData: Empty input, unknown discriminator, or payload of the wrong size.
        UnknownDiscriminant: An enum ordinal inside the payload has no variant.
    """
    if not isinstance(data, (bytes, bytearray)) or len(data) == 0:
        raise InvalidInstructionData("instruction must be non-empty bytes")
    disc, payload = data[0], bytes(data[1:])
    op = OPERATIONS.get(disc)
    if op is None:
        raise InvalidInstructionData(f"unknown instruction discriminator: {disc}")

    fields: dict
    if op in _PLAIN:
        layout, names = _PLAIN[op]
        fields = dict(zip(names, _unpack_exact(layout, payload, op.value)))
    elif op is Operation.UPDATE_AUTHORITY:
        (raw,) = _unpack_exact(struct.Struct(f"<{PUBKEY_NBYTES}s"), payload, op.value)
        fields = {"new_authority": bytes_to_hex(raw)}
    elif op is Operation.CREATE_STAKING_POOL:
        fields = _decode_create_pool(payload)
    elif op is Operation.UPDATE_POOL_CONFIG:
        fields = _decode_config(payload)
    elif op is Operation.SET_GLOBAL_EMERGENCY_PAUSE:
        (raw,) = _unpack_exact(struct.Struct("<B"), payload, op.value)
        fields = {"flag": _decode_bool(raw, "flag")}
    else:  # pragma: no cover - table is exhaustive
        raise InvalidInstructionData(f"no codec for {op.value}")
    return OperationParams(operation=op, **fields)


# -- encode ----------------------------------------------------------------------

def _encode_payload(params: OperationParams) -> bytes:
    op = params.operation
    if op in _PLAIN:
        layout, names = _PLAIN[op]
        return _pack(layout, *(getattr(params, n) for n in names))
    if op is Operation.UPDATE_AUTHORITY:
        return hex_to_bytes(params.new_authority, name="new_authority", expected_nbytes=PUBKEY_NBYTES)
    if op is Operation.CREATE_STAKING_POOL:
        p = params.pool_params
        if p is None:
            raise InvalidInstructionData("CreateStakingPool requires pool_params")
        return _pack(
            _CREATE_POOL,
            p.pool_id,
            p.reward_rate_per_second,
            int(p.lock_enabled),
            p.lock_duration,
            p.reward_multiplier,
            p.early_withdraw_penalty,
            int(p.slashing_enabled),
            p.slash_type.wire,
            p.slash_percentage,
            p.min_evidence,
            p.slash_cooldown,
            p.max_stake_limit,
            p.min_stake_amount,
        )
    if op is Operation.UPDATE_POOL_CONFIG:
        field, value = params.config_field, params.config_value
        if field is None or value is None:
            raise InvalidInstructionData("UpdatePoolConfig requires config_field and config_value")
        if isinstance(value, (PoolStatus, SlashType)):
            raw: object = value.wire
        elif field is PoolConfigField.PRICE_FEED:
            raw = hex_to_bytes(str(value), name="price_feed", expected_nbytes=ADDRESS_NBYTES)
        else:
            raw = int(value)
        return _pack(_CONFIG_HEAD, field.wire, params.pool_id) + _pack(_CONFIG_VALUE[field], raw)
    if op is Operation.SET_GLOBAL_EMERGENCY_PAUSE:
        return _pack(struct.Struct("<B"), int(bool(params.flag)))
    raise InvalidInstructionData(f"no codec for {op.value}")  # pragma: no cover


def encode_instruction(params: OperationParams) -> bytes:
    return bytes([DISCRIMINATORS[params.operation]]) + _encode_payload(params)


def bind_signer(params: OperationParams, signer: str, user: str = "") -> OperationParams:
    return replace(params, signer=signer, user=user)
