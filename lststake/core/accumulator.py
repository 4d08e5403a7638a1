"""Pool-level reward accrual.

Every handler that changes ``total_staked`` calls ``refresh_pool`` first, so the
accumulator always reflects the stake that was present while time elapsed.
"""

from __future__ import annotations

from dataclasses import replace

from ..state.pool import PoolAccumulator
from .fixed_point import U64, U128, elapsed_seconds
from .reward_math import reward_per_share_delta


def refresh_pool(pool: PoolAccumulator, now: int) -> PoolAccumulator:
    """Accrue rewards for the time since ``last_update_timestamp``.

    - Same or earlier ``now``: unchanged.
    - Nothing staked: timestamp advances, accumulator unchanged.
    """
    elapsed = elapsed_seconds(now, pool.last_update_timestamp)
    if elapsed == 0:
        return pool
    if pool.total_staked == 0:
        return replace(pool, last_update_timestamp=now)
    delta = reward_per_share_delta(pool.reward_rate_per_second, elapsed, pool.total_staked)
    return replace(
        pool,
        accumulated_reward_per_share=U128(pool.accumulated_reward_per_share).sat_add(delta).value,
        last_update_timestamp=now,
    )


def record_stake(pool: PoolAccumulator, amount: int, lst_minted: int) -> PoolAccumulator:
    return replace(
        pool,
        total_staked=U64(pool.total_staked).sat_add(amount).value,
        lst_supply=U64(pool.lst_supply).sat_add(lst_minted).value,
    )


def record_unstake(pool: PoolAccumulator, amount: int, lst_burned: int) -> PoolAccumulator:
    return replace(
        pool,
        total_staked=U64(pool.total_staked).sat_sub(amount).value,
        lst_supply=U64(pool.lst_supply).sat_sub(lst_burned).value,
    )


def record_reward_distribution(pool: PoolAccumulator, amount: int) -> PoolAccumulator:
    return replace(pool, total_reward_distributed=U64(pool.total_reward_distributed).sat_add(amount).value)


def record_penalty(pool: PoolAccumulator, amount: int) -> PoolAccumulator:
    return replace(pool, total_penalties=U64(pool.total_penalties).sat_add(amount).value)
