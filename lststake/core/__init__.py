"""
Core staking algorithms
"""

from .errors import StakingError, StakingInvariantError
from .fixed_point import BPS_DENOM, I64, REWARD_SCALE, U8, U16, U32, U64, U128
from .reward_math import (
    RewardModel,
    apply_reward_multiplier,
    early_withdraw_penalty,
    emergency_penalty,
    emergency_penalty_rate,
    position_rewards,
    protocol_fee,
    rate_projection_rewards,
    reward_per_share_delta,
    share_based_rewards,
    split_protocol_fee,
)

__all__ = [
    "StakingError",
    "StakingInvariantError",
    "BPS_DENOM",
    "REWARD_SCALE",
    "I64",
    "U8",
    "U16",
    "U32",
    "U64",
    "U128",
    "RewardModel",
    "apply_reward_multiplier",
    "early_withdraw_penalty",
    "emergency_penalty",
    "emergency_penalty_rate",
    "position_rewards",
    "protocol_fee",
    "rate_projection_rewards",
    "reward_per_share_delta",
    "share_based_rewards",
    "split_protocol_fee",
]
