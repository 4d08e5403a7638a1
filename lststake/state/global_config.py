"""
Program-wide configuration record: authority, treasury, protocol fee and pool
registry counters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..core.errors import InvalidArgument
from ..core.fixed_point import BPS_DENOM, U16, U32, U64, U8, require_width

MAX_ACTIVE_POOLS = 10


@dataclass(frozen=True)
class GlobalConfigParams:
    protocol_fee_rate: int
    min_stake_amount: int
    max_pools: int

    def validate(self) -> None:
        for name, width in (("protocol_fee_rate", U16), ("min_stake_amount", U64), ("max_pools", U32)):
            try:
                require_width(getattr(self, name), width, name=name)
            except ValueError as exc:
                raise InvalidArgument(str(exc)) from exc
        if self.protocol_fee_rate > BPS_DENOM:
            raise InvalidArgument(f"protocol_fee_rate must be <= {BPS_DENOM}")
        if self.min_stake_amount == 0:
            raise InvalidArgument("min_stake_amount must be positive")
        if self.max_pools == 0:
            raise InvalidArgument("max_pools must be positive")


@dataclass(frozen=True)
class GlobalConfig:
    address: str
    authority: str
    treasury: str
    protocol_fee_rate: int = 0  # bps
    max_pools: int = 1
    min_stake_amount: int = 1
    emergency_pause: bool = False
    total_pools_created: int = 0
    active_pools: int = 0
    active_pool_keys: Tuple[str, ...] = ()
    bump: int = 0

    def __post_init__(self) -> None:
        require_width(self.protocol_fee_rate, U16, name="protocol_fee_rate")
        require_width(self.max_pools, U32, name="max_pools")
        require_width(self.min_stake_amount, U64, name="min_stake_amount")
        require_width(self.total_pools_created, U32, name="total_pools_created")
        require_width(self.active_pools, U32, name="active_pools")
        require_width(self.bump, U8, name="bump")
        if len(self.active_pool_keys) > MAX_ACTIVE_POOLS:
            raise ValueError(f"at most {MAX_ACTIVE_POOLS} active pool keys")

    @property
    def pool_capacity_left(self) -> int:
        by_limit = self.max_pools - self.active_pools
        by_keys = MAX_ACTIVE_POOLS - len(self.active_pool_keys)
        return max(0, min(by_limit, by_keys))
