"""Tests for lststake/core/accumulator.py: pool refresh and totals bookkeeping."""

from dataclasses import replace

from lststake.core.accumulator import (
    record_penalty,
    record_reward_distribution,
    record_stake,
    record_unstake,
    refresh_pool,
)
from lststake.core.fixed_point import U64
from lststake.state.pool import PoolAccumulator

ADDR = "0x" + "33" * 32
KEY = "0x" + "a1" * 48


def _pool(**kwargs) -> PoolAccumulator:
    defaults = dict(
        pool_id=1,
        address=ADDR,
        authority=KEY,
        stake_asset=ADDR,
        reward_asset=ADDR,
        stake_vault=ADDR,
        reward_vault=ADDR,
        lst_asset=ADDR,
        reward_rate_per_second=1_000_000,
    )
    defaults.update(kwargs)
    return PoolAccumulator(**defaults)


class TestRefresh:
    def test_worked_example(self):
        pool = _pool(total_staked=1_000_000, lst_supply=1_000_000)
        out = refresh_pool(pool, 1000)
        assert out.accumulated_reward_per_share == 10**15
        assert out.last_update_timestamp == 1000

    def test_same_timestamp_is_noop(self):
        pool = _pool(total_staked=10, last_update_timestamp=50)
        assert refresh_pool(pool, 50) is pool

    def test_clock_regression_is_noop(self):
        pool = _pool(total_staked=10, last_update_timestamp=50, accumulated_reward_per_share=7)
        assert refresh_pool(pool, 10) is pool

    def test_empty_pool_advances_timestamp_only(self):
        out = refresh_pool(_pool(last_update_timestamp=5), 1000)
        assert out.accumulated_reward_per_share == 0
        assert out.last_update_timestamp == 1000

    def test_accumulates_across_refreshes(self):
        pool = _pool(total_staked=1_000_000)
        once = refresh_pool(pool, 1000)
        twice = refresh_pool(refresh_pool(pool, 400), 1000)
        assert twice.accumulated_reward_per_share == once.accumulated_reward_per_share

    def test_accumulator_saturates(self):
        pool = _pool(total_staked=1, accumulated_reward_per_share=(1 << 128) - 2)
        assert refresh_pool(pool, 10).accumulated_reward_per_share == (1 << 128) - 1


class TestTotals:
    def test_stake_and_unstake(self):
        pool = record_stake(_pool(), 500, 500)
        assert (pool.total_staked, pool.lst_supply) == (500, 500)
        pool = record_unstake(pool, 200, 200)
        assert (pool.total_staked, pool.lst_supply) == (300, 300)

    def test_unstake_saturates_at_zero(self):
        pool = record_unstake(_pool(total_staked=5, lst_supply=5), 9, 9)
        assert (pool.total_staked, pool.lst_supply) == (0, 0)

    def test_distribution_and_penalties(self):
        pool = record_reward_distribution(_pool(), 40)
        pool = record_penalty(pool, 7)
        assert pool.total_reward_distributed == 40
        assert pool.total_penalties == 7

    def test_distribution_saturates(self):
        pool = record_reward_distribution(replace(_pool(), total_reward_distributed=U64.MAX), 1)
        assert pool.total_reward_distributed == U64.MAX
