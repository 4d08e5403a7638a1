"""Pool status transitions and configuration writes.

Status machine::

    pause:   ACTIVE -> PAUSED   (PAUSED is a no-op, anything else rejects)
    resume:  PAUSED -> ACTIVE   (ACTIVE is a no-op, anything else rejects)

``update_pool_config`` may write ``STATUS`` directly (including DEPRECATED),
bypassing the pause/resume rules. Setting ``EMERGENCY_PAUSE`` forces status
EMERGENCY; while the flag is set only ``STATUS`` and ``EMERGENCY_PAUSE`` are
writable.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, Type, Union

from ..state.canonical import ADDRESS_NBYTES, hex_to_bytes
from ..state.enums import EMERGENCY_WRITABLE_FIELDS, PoolConfigField, PoolStatus, SlashType
from ..state.pool import PoolAccumulator
from .errors import ConfigFrozen, InvalidArgument, InvalidStatusTransition
from .fixed_point import BPS_DENOM, I64, U16, U64, U8, SaturatingInt

ConfigValue = Union[int, bool, str, PoolStatus, SlashType]


def pause_pool(pool: PoolAccumulator) -> PoolAccumulator:
    if pool.status is PoolStatus.PAUSED:
        return pool
    if pool.status is not PoolStatus.ACTIVE:
        raise InvalidStatusTransition(f"cannot pause pool in status {pool.status.value}")
    return replace(pool, status=PoolStatus.PAUSED)


def resume_pool(pool: PoolAccumulator) -> PoolAccumulator:
    if pool.status is PoolStatus.ACTIVE:
        return pool
    if pool.status is not PoolStatus.PAUSED:
        raise InvalidStatusTransition(f"cannot resume pool in status {pool.status.value}")
    return replace(pool, status=PoolStatus.ACTIVE)


# -- value coercion --------------------------------------------------------------

def _int_in(value: ConfigValue, width: Type[SaturatingInt], name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an int")
    if value < width.MIN or value > width.MAX:
        raise InvalidArgument(f"{name} out of {width.__name__} range: {value}")
    return value


def _flag(value: ConfigValue, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise InvalidArgument(f"{name} must be 0 or 1")


def _positive(value: ConfigValue, width: Type[SaturatingInt], name: str) -> int:
    v = _int_in(value, width, name)
    if v <= 0:
        raise InvalidArgument(f"{name} must be positive")
    return v


# -- per-field writers -----------------------------------------------------------

def _set_reward_rate(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, reward_rate_per_second=_positive(value, U64, "reward_rate_per_second"))


def _set_lock_duration(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, lock_duration=_positive(value, I64, "lock_duration"))


def _set_multiplier(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, reward_multiplier=_positive(value, U16, "reward_multiplier"))


def _set_penalty(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, early_withdraw_penalty=_int_in(value, U64, "early_withdraw_penalty"))


def _set_slash_percentage(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    pct = _int_in(value, U16, "slash_percentage")
    if pct > BPS_DENOM:
        raise InvalidArgument(f"slash_percentage must be <= {BPS_DENOM}")
    return replace(pool, slash_percentage=pct)


def _set_min_evidence(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, min_evidence=_positive(value, U8, "min_evidence"))


def _set_cooldown(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, slash_cooldown=_positive(value, I64, "slash_cooldown"))


def _set_max_limit(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    limit = _int_in(value, U64, "max_stake_limit")
    if limit != 0:
        if limit < pool.total_staked:
            raise InvalidArgument("max_stake_limit below current total_staked")
        if limit < pool.min_stake_amount:
            raise InvalidArgument("max_stake_limit below min_stake_amount")
    return replace(pool, max_stake_limit=limit)


def _set_min_stake(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    minimum = _positive(value, U64, "min_stake_amount")
    if pool.max_stake_limit != 0 and minimum > pool.max_stake_limit:
        raise InvalidArgument("min_stake_amount above max_stake_limit")
    return replace(pool, min_stake_amount=minimum)


def _set_lock_enabled(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, lock_enabled=_flag(value, "lock_enabled"))


def _set_slashing_enabled(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    return replace(pool, slashing_enabled=_flag(value, "slashing_enabled"))


def _set_slash_type(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    if isinstance(value, SlashType):
        return replace(pool, slash_type=value)
    return replace(pool, slash_type=SlashType.from_wire(value))  # type: ignore[arg-type]


def _set_price_feed(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    if not isinstance(value, str):
        raise InvalidArgument("price_feed must be an address string")
    try:
        hex_to_bytes(value, name="price_feed", expected_nbytes=ADDRESS_NBYTES)
    except ValueError as exc:
        raise InvalidArgument(str(exc)) from exc
    return replace(pool, price_feed=value.lower())


def _set_status(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    if isinstance(value, PoolStatus):
        return replace(pool, status=value)
    return replace(pool, status=PoolStatus.from_wire(value))  # type: ignore[arg-type]


def _set_emergency_pause(pool: PoolAccumulator, value: ConfigValue) -> PoolAccumulator:
    flag = _flag(value, "emergency_pause")
    if flag:
        return replace(pool, emergency_pause_flag=True, status=PoolStatus.EMERGENCY)
    return replace(pool, emergency_pause_flag=False)


_WRITERS: Dict[PoolConfigField, Callable[[PoolAccumulator, ConfigValue], PoolAccumulator]] = {
    PoolConfigField.REWARD_RATE: _set_reward_rate,
    PoolConfigField.LOCK_DURATION: _set_lock_duration,
    PoolConfigField.REWARD_MULTIPLIER: _set_multiplier,
    PoolConfigField.EARLY_WITHDRAW_PENALTY: _set_penalty,
    PoolConfigField.SLASH_PERCENTAGE: _set_slash_percentage,
    PoolConfigField.MIN_EVIDENCE: _set_min_evidence,
    PoolConfigField.SLASH_COOLDOWN: _set_cooldown,
    PoolConfigField.MAX_STAKE_LIMIT: _set_max_limit,
    PoolConfigField.MIN_STAKE_AMOUNT: _set_min_stake,
    PoolConfigField.LOCK_ENABLED: _set_lock_enabled,
    PoolConfigField.SLASHING_ENABLED: _set_slashing_enabled,
    PoolConfigField.SLASH_TYPE: _set_slash_type,
    PoolConfigField.PRICE_FEED: _set_price_feed,
    PoolConfigField.STATUS: _set_status,
    PoolConfigField.EMERGENCY_PAUSE: _set_emergency_pause,
}


def update_pool_config(pool: PoolAccumulator, field: PoolConfigField, value: ConfigValue) -> PoolAccumulator:
    """Write one configuration field after validating it.

    Raises:
        ConfigFrozen: The pool is emergency-paused and ``field`` is not status or the flag itself.
        InvalidArgument: ``value`` is out of range for ``field``.
        UnknownDiscriminant: An enum ordinal has no variant.
    """
    if pool.emergency_pause_flag and field not in EMERGENCY_WRITABLE_FIELDS:
        raise ConfigFrozen(f"{field.value} is frozen while the pool is emergency-paused")
    return _WRITERS[field](pool, value)
