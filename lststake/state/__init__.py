"""
Records for the liquid-staking engine
"""

from .balances import TokenLedger
from .enums import PenaltyType, PoolConfigField, PoolStatus, SlashType
from .global_config import GlobalConfig, GlobalConfigParams
from .ledger import UserLedger
from .pool import PoolAccumulator, PoolParams
from .positions import BoundedHistory, ClaimEvent, PenaltyEvent, PositionSet, StakePosition

__all__ = [
    "TokenLedger",
    "PenaltyType",
    "PoolConfigField",
    "PoolStatus",
    "SlashType",
    "GlobalConfig",
    "GlobalConfigParams",
    "UserLedger",
    "PoolAccumulator",
    "PoolParams",
    "BoundedHistory",
    "ClaimEvent",
    "PenaltyEvent",
    "PositionSet",
    "StakePosition",
]
