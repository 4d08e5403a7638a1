"""Precondition checks shared by the staking handlers.

Each guard raises the ``StakingError`` subclass naming the failed condition
and returns the narrowed value where there is one. Guards read the PRE-state
only.
"""

from __future__ import annotations

from typing import Optional, TypeVar

from ...state.enums import PoolStatus
from ...state.global_config import GlobalConfig
from ...state.ledger import UserLedger
from ...state.pool import PoolAccumulator
from ..errors import (
    GlobalEmergencyPaused,
    InsufficientFunds,
    InsufficientVaultBalance,
    InvalidArgument,
    PoolCapacityExceeded,
    PoolEmergencyPaused,
    PoolNotActive,
    UninitializedAccount,
    Unauthorized,
    UserPaused,
)
from ..fixed_point import U64
from .types import Env

T = TypeVar("T")


def require_account(record: Optional[T], name: str) -> T:
    if record is None:
        raise UninitializedAccount(f"{name} account is not initialized")
    return record


def require_owner(ledger: UserLedger, key: str) -> None:
    if ledger.owner != key:
        raise Unauthorized("signer does not own this ledger")


def require_authority(cfg: GlobalConfig, signer: str) -> None:
    if cfg.authority != signer:
        raise Unauthorized("signer is not the program authority")


def require_pool_authority(pool: PoolAccumulator, signer: str) -> None:
    if pool.authority != signer:
        raise Unauthorized("signer is not the pool authority")


def require_pool_id(pool: PoolAccumulator, pool_id: int) -> None:
    if pool.pool_id != pool_id:
        raise InvalidArgument(f"pool record is pool {pool.pool_id}, operation names {pool_id}")


def require_user_not_paused(ledger: UserLedger) -> None:
    if ledger.is_paused:
        raise UserPaused("user ledger is paused")


def require_global_not_paused(cfg: GlobalConfig) -> None:
    if cfg.emergency_pause:
        raise GlobalEmergencyPaused("global emergency pause is active")


def require_pool_not_emergency(pool: PoolAccumulator) -> None:
    if pool.is_emergency_paused:
        raise PoolEmergencyPaused(f"pool {pool.pool_id} is emergency-paused")


def require_accepting_stake(pool: PoolAccumulator, cfg: GlobalConfig) -> None:
    """Status, pool emergency flag, then the global flag."""
    if pool.status is not PoolStatus.ACTIVE:
        if pool.status is PoolStatus.EMERGENCY:
            raise PoolEmergencyPaused(f"pool {pool.pool_id} is emergency-paused")
        raise PoolNotActive(f"pool {pool.pool_id} is {pool.status.value}")
    require_pool_not_emergency(pool)
    require_global_not_paused(cfg)


def require_stake_amount(amount: int, pool: PoolAccumulator, cfg: GlobalConfig) -> None:
    if amount == 0:
        raise InvalidArgument("amount must be positive")
    if amount < pool.min_stake_amount:
        raise InvalidArgument(f"amount below pool minimum {pool.min_stake_amount}")
    if amount < cfg.min_stake_amount:
        raise InvalidArgument(f"amount below global minimum {cfg.min_stake_amount}")


def require_within_limit(pool: PoolAccumulator, amount: int) -> None:
    if pool.max_stake_limit == 0:
        return
    if U64(pool.total_staked).sat_add(amount).value > pool.max_stake_limit:
        raise PoolCapacityExceeded(f"stake would exceed pool limit {pool.max_stake_limit}")


def require_balance(env: Env, owner: str, asset: str, amount: int) -> None:
    held = env.balance(owner, asset)
    if held < amount:
        raise InsufficientFunds(f"{owner} holds {held} < {amount}")


def require_vault_balance(env: Env, vault: str, asset: str, amount: int) -> None:
    held = env.balance(vault, asset)
    if held < amount:
        raise InsufficientVaultBalance(f"vault holds {held} < {amount}")
