"""Pure reward, fee and penalty arithmetic.

Every function is stateless and integer-only. Intermediates are computed in
the 128-bit domain and narrowed (clamped) to 64 bits at the boundary, so a
sufficiently large overflow is masked rather than rejected.

Two accrual models coexist and are selected per operation:

- ``RATE_PROJECTION``: ``staked * rate * elapsed / 1e12`` (claim, unstake and
  increase-stake settlement),
- ``SHARE_BASED``: ``staked * acc_per_share / 1e12 + rate_projection``
  (auto-compound).

They disagree for the same position and accumulator; callers pick explicitly.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import TYPE_CHECKING

from .fixed_point import (
    BPS_DENOM,
    MULTIPLIER_NEUTRAL,
    REWARD_SCALE,
    U64,
    U128,
    elapsed_seconds,
)

if TYPE_CHECKING:
    from ..state.pool import PoolAccumulator
    from ..state.positions import StakePosition

EMERGENCY_MULTIPLIER_PCT: int = 150
MAX_EMERGENCY_PENALTY_BPS: int = 5_000


@unique
class RewardModel(Enum):
    RATE_PROJECTION = "rate_projection"
    SHARE_BASED = "share_based"


# -- Pool accrual ------------------------------------------------------------

def reward_per_share_delta(rate_per_second: int, elapsed: int, total_staked: int) -> int:
    """``rate * elapsed * 1e12 / total_staked``; 0 when nothing is staked or no time passed."""
    if total_staked == 0 or elapsed <= 0:
        return 0
    rewards_earned = U128(rate_per_second).sat_mul(elapsed)
    return rewards_earned.sat_mul(REWARD_SCALE).sat_div(total_staked).value


# -- Position accrual ----------------------------------------------------------

def rate_projection_rewards(staked_amount: int, rate_per_second: int, elapsed: int) -> int:
    if staked_amount == 0 or elapsed <= 0:
        return 0
    return (
        U128(staked_amount)
        .sat_mul(rate_per_second)
        .sat_mul(elapsed)
        .sat_div(REWARD_SCALE)
        .narrow(U64)
        .value
    )


def share_based_rewards(
    staked_amount: int,
    accumulated_reward_per_share: int,
    rate_per_second: int,
    elapsed: int,
) -> int:
    if staked_amount == 0 or elapsed <= 0:
        return 0
    user_share = U128(staked_amount).sat_mul(accumulated_reward_per_share).sat_div(REWARD_SCALE).narrow(U64)
    time_rewards = rate_projection_rewards(staked_amount, rate_per_second, elapsed)
    return user_share.sat_add(time_rewards).value


def apply_reward_multiplier(rewards: int, multiplier: int) -> int:
    """Scale by ``multiplier / 100``; multipliers at or below neutral pass through."""
    if multiplier <= MULTIPLIER_NEUTRAL:
        return rewards
    return U128(rewards).sat_mul(multiplier).sat_div(MULTIPLIER_NEUTRAL).narrow(U64).value


def is_lock_restricted(position: "StakePosition", now: int) -> bool:
    return position.lock_enabled and now < position.lock_expiry


def position_rewards(
    position: "StakePosition",
    pool: "PoolAccumulator",
    now: int,
    model: RewardModel = RewardModel.RATE_PROJECTION,
) -> int:
    """Rewards accrued by ``position`` since its ``last_reward_update``.

    Does not include the position's already-credited ``pending_rewards``.
    """
    if not position.is_active or position.staked_amount == 0:
        return 0
    elapsed = elapsed_seconds(now, position.last_reward_update)
    if elapsed == 0:
        return 0

    if model is RewardModel.SHARE_BASED:
        base = share_based_rewards(
            position.staked_amount,
            pool.accumulated_reward_per_share,
            pool.reward_rate_per_second,
            elapsed,
        )
    else:
        base = rate_projection_rewards(position.staked_amount, pool.reward_rate_per_second, elapsed)

    if is_lock_restricted(position, now):
        return apply_reward_multiplier(base, pool.reward_multiplier)
    return base


# -- Fees and penalties -------------------------------------------------------

def _bps_of(amount: int, rate_bps: int) -> int:
    return U128(amount).sat_mul(rate_bps).sat_div(BPS_DENOM).narrow(U64).value


def protocol_fee(amount: int, fee_rate_bps: int) -> int:
    return _bps_of(amount, fee_rate_bps)


def split_protocol_fee(amount: int, fee_rate_bps: int) -> tuple[int, int]:
    """Return ``(user_amount, fee)``; ``user_amount + fee == amount`` whenever ``fee_rate_bps <= 10000``."""
    fee = protocol_fee(amount, fee_rate_bps)
    return U64(amount).sat_sub(fee).value, fee


def early_withdraw_penalty(amount: int, penalty_rate_bps: int) -> int:
    return _bps_of(amount, penalty_rate_bps)


def emergency_penalty_rate(base_rate_bps: int) -> int:
    """1.5x the early-withdraw rate, capped at 50%."""
    elevated = U64(base_rate_bps).sat_mul(EMERGENCY_MULTIPLIER_PCT).sat_div(100)
    return elevated.min(MAX_EMERGENCY_PENALTY_BPS).value


def emergency_penalty(amount: int, base_rate_bps: int) -> int:
    return _bps_of(amount, emergency_penalty_rate(base_rate_bps))
