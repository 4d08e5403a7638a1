"""
Staking pool record and its creation parameters.

Units/conventions:
- `*_rate` / `*_penalty` / `slash_percentage` are basis points (1/10_000),
  except `reward_rate_per_second` which is reward units per second.
- `accumulated_reward_per_share` is 1e12-scaled fixed point (128-bit).
- `reward_multiplier` is a percentage; 100 is neutral.
- `max_stake_limit == 0` means unlimited.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.errors import InvalidArgument
from ..core.fixed_point import BPS_DENOM, I64, U16, U64, U8, U128, require_width
from .enums import PoolStatus, SlashType


@dataclass(frozen=True)
class PoolParams:
    """Creation payload for a staking pool."""

    pool_id: int
    reward_rate_per_second: int
    lock_enabled: bool = False
    lock_duration: int = 0
    reward_multiplier: int = 100
    early_withdraw_penalty: int = 0
    slashing_enabled: bool = False
    slash_type: SlashType = SlashType.DOWN_TIME
    slash_percentage: int = 0
    min_evidence: int = 1
    slash_cooldown: int = 0
    max_stake_limit: int = 0
    min_stake_amount: int = 1

    def validate(self) -> None:
        """Raise ``InvalidArgument`` unless the parameters describe a usable pool."""
        for name, width in (
            ("pool_id", U64),
            ("reward_rate_per_second", U64),
            ("lock_duration", I64),
            ("reward_multiplier", U16),
            ("early_withdraw_penalty", U64),
            ("slash_percentage", U16),
            ("min_evidence", U8),
            ("slash_cooldown", I64),
            ("max_stake_limit", U64),
            ("min_stake_amount", U64),
        ):
            try:
                require_width(getattr(self, name), width, name=name)
            except ValueError as exc:
                raise InvalidArgument(str(exc)) from exc
        if self.reward_multiplier == 0:
            raise InvalidArgument("reward_multiplier must be positive")
        if self.slash_percentage > BPS_DENOM:
            raise InvalidArgument(f"slash_percentage must be <= {BPS_DENOM}")
        if self.min_stake_amount == 0:
            raise InvalidArgument("min_stake_amount must be positive")
        if self.max_stake_limit != 0 and self.max_stake_limit < self.min_stake_amount:
            raise InvalidArgument("max_stake_limit must be >= min_stake_amount")
        if self.lock_enabled and self.lock_duration <= 0:
            raise InvalidArgument("lock_duration must be positive when lock is enabled")


@dataclass(frozen=True)
class PoolAccumulator:
    """One pool's accrual state and configuration."""

    pool_id: int
    address: str
    authority: str  # creator; gates configuration writes
    stake_asset: str
    reward_asset: str
    stake_vault: str
    reward_vault: str
    lst_asset: str
    creation_timestamp: int = 0
    last_update_timestamp: int = 0
    status: PoolStatus = PoolStatus.ACTIVE

    # Accrual
    total_staked: int = 0
    total_reward_distributed: int = 0
    total_penalties: int = 0
    reward_rate_per_second: int = 0
    accumulated_reward_per_share: int = 0
    lst_supply: int = 0

    # Lock
    lock_enabled: bool = False
    lock_duration: int = 0
    reward_multiplier: int = 100
    early_withdraw_penalty: int = 0

    # Slashing
    slashing_enabled: bool = False
    slash_type: SlashType = SlashType.DOWN_TIME
    slash_percentage: int = 0
    min_evidence: int = 1
    slash_cooldown: int = 0

    # Bounds
    max_stake_limit: int = 0
    min_stake_amount: int = 1

    price_feed: str = ""
    emergency_pause_flag: bool = False
    bump: int = 0

    def __post_init__(self) -> None:
        for name in (
            "pool_id",
            "total_staked",
            "total_reward_distributed",
            "total_penalties",
            "reward_rate_per_second",
            "lst_supply",
            "early_withdraw_penalty",
            "max_stake_limit",
            "min_stake_amount",
        ):
            require_width(getattr(self, name), U64, name=name)
        for name in ("creation_timestamp", "last_update_timestamp", "lock_duration", "slash_cooldown"):
            require_width(getattr(self, name), I64, name=name)
        require_width(self.accumulated_reward_per_share, U128, name="accumulated_reward_per_share")
        require_width(self.reward_multiplier, U16, name="reward_multiplier")
        require_width(self.slash_percentage, U16, name="slash_percentage")
        require_width(self.min_evidence, U8, name="min_evidence")
        require_width(self.bump, U8, name="bump")
        if not isinstance(self.status, PoolStatus):
            raise ValueError(f"status must be a PoolStatus, got {self.status!r}")
        if not isinstance(self.slash_type, SlashType):
            raise ValueError(f"slash_type must be a SlashType, got {self.slash_type!r}")

    @property
    def is_emergency_paused(self) -> bool:
        return self.emergency_pause_flag or self.status is PoolStatus.EMERGENCY

    @classmethod
    def create(
        cls,
        params: PoolParams,
        *,
        address: str,
        authority: str,
        stake_asset: str,
        reward_asset: str,
        stake_vault: str,
        reward_vault: str,
        lst_asset: str,
        now: int,
        bump: int = 0,
    ) -> "PoolAccumulator":
        params.validate()
        return cls(
            pool_id=params.pool_id,
            address=address,
            authority=authority,
            stake_asset=stake_asset,
            reward_asset=reward_asset,
            stake_vault=stake_vault,
            reward_vault=reward_vault,
            lst_asset=lst_asset,
            creation_timestamp=now,
            last_update_timestamp=now,
            reward_rate_per_second=params.reward_rate_per_second,
            lock_enabled=params.lock_enabled,
            lock_duration=params.lock_duration,
            reward_multiplier=params.reward_multiplier,
            early_withdraw_penalty=params.early_withdraw_penalty,
            slashing_enabled=params.slashing_enabled,
            slash_type=params.slash_type,
            slash_percentage=params.slash_percentage,
            min_evidence=params.min_evidence,
            slash_cooldown=params.slash_cooldown,
            max_stake_limit=params.max_stake_limit,
            min_stake_amount=params.min_stake_amount,
            bump=bump,
        )
