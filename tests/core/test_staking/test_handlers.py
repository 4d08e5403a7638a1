"""Tests for lststake/core/staking/handlers.py through the engine ``step``.

Scenarios run against records built by the administrative operations
themselves; token effects are applied to a local ``TokenLedger`` after each
accepted step.
"""

from dataclasses import replace

import pytest

from lststake.core.accumulator import refresh_pool
from lststake.core.errors import (
    AutoCompoundDisabled,
    BelowMinimumCompound,
    GlobalEmergencyPaused,
    InsufficientFunds,
    InsufficientVaultBalance,
    IntervalNotElapsed,
    NoEmergencyCondition,
    NothingToClaim,
    PoolCapacityExceeded,
    PoolEmergencyPaused,
    PoolNotActive,
    PositionAlreadyExists,
    PositionCapacityExceeded,
    PositionNotFound,
    Unauthorized,
    UnsupportedCrossAssetCompound,
    UserPaused,
)
from lststake.core.staking import Accounts, EffectKind, Env, Operation, OperationParams, step, step_or_raise
from lststake.state.balances import TokenLedger
from lststake.state.enums import PenaltyType, PoolConfigField, PoolStatus
from lststake.state.pool import PoolParams
from lststake.state.positions import MAX_POSITIONS, PenaltyEvent, PositionSet, StakePosition

AUTH = "0x" + "b2" * 48
USER = "0x" + "a1" * 48
KEEPER = "0x" + "c3" * 48
STAKE_ASSET = "0x" + "11" * 32
REWARD_ASSET = "0x" + "22" * 32


def _apply(tokens: TokenLedger, effects) -> None:
    for e in effects:
        if e.kind is EffectKind.TRANSFER:
            tokens.transfer(e.asset, e.source, e.destination, e.amount)
        elif e.kind is EffectKind.MINT:
            tokens.mint(e.asset, e.destination, e.amount)
        else:
            tokens.burn(e.asset, e.source, e.amount)


def _setup(*, fee: int = 500, same_asset: bool = False, **pool_kwargs):
    """Global config (AUTH), pool 1 and USER's ledger; USER and the reward vault funded."""
    tokens = TokenLedger()
    env = Env(now=0, balances=tokens)
    r = step_or_raise(
        Accounts(),
        OperationParams(
            Operation.INIT_GLOBAL_CONFIG, signer=AUTH, protocol_fee_rate=fee, min_stake_amount=1, max_pools=10
        ),
        env,
    )
    cfg = r.accounts.global_config
    pool_kwargs.setdefault("reward_rate_per_second", 1_000_000)
    r = step_or_raise(
        Accounts(global_config=cfg),
        OperationParams(
            Operation.CREATE_STAKING_POOL,
            signer=AUTH,
            pool_id=1,
            pool_params=PoolParams(pool_id=1, **pool_kwargs),
            stake_asset=STAKE_ASSET,
            reward_asset=STAKE_ASSET if same_asset else REWARD_ASSET,
        ),
        env,
    )
    cfg, pool = r.accounts.global_config, r.accounts.pool
    r = step_or_raise(Accounts(global_config=cfg), OperationParams(Operation.INIT_USER_LEDGER, signer=USER), env)
    tokens.mint(STAKE_ASSET, USER, 10**12)
    tokens.mint(pool.reward_asset, pool.reward_vault, 10**12)
    return Accounts(global_config=cfg, pool=pool, ledger=r.accounts.ledger), tokens


def _run(accounts: Accounts, tokens: TokenLedger, now: int, op: Operation, **kwargs):
    kwargs.setdefault("signer", USER)
    result = step_or_raise(accounts, OperationParams(op, **kwargs), Env(now=now, balances=tokens))
    _apply(tokens, result.effects)
    return result.accounts, result.outputs


def _stake(accounts, tokens, now=0, amount=1_000_000, pool_id=1):
    return _run(accounts, tokens, now, Operation.STAKE, pool_id=pool_id, amount=amount)


class TestStake:
    def test_opens_position_one_to_one(self):
        accounts, tokens = _setup()
        accounts, out = _stake(accounts, tokens)
        pool, ledger = accounts.pool, accounts.ledger
        assert out == {"slot": 0, "lst_minted": 1_000_000}
        assert pool.total_staked == pool.lst_supply == 1_000_000
        assert ledger.active_positions == 1
        assert ledger.total_staked_amount == ledger.total_lst_balance == 1_000_000
        pos = ledger.positions[0]
        assert pos.is_active and pos.lst_tokens == 1_000_000 and pos.last_compound_timestamp == 0
        assert tokens.get(pool.stake_vault, STAKE_ASSET) == 1_000_000
        assert tokens.get(USER, pool.lst_asset) == 1_000_000

    def test_worked_example_accumulator(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        assert refresh_pool(accounts.pool, 1000).accumulated_reward_per_share == 10**15

    def test_lock_expiry_set_from_pool(self):
        accounts, tokens = _setup(lock_enabled=True, lock_duration=500)
        accounts, _ = _stake(accounts, tokens, now=100)
        pos = accounts.ledger.positions[0]
        assert pos.lock_enabled and pos.lock_expiry == 600

    def test_duplicate_position_rejected(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        with pytest.raises(PositionAlreadyExists):
            _stake(accounts, tokens, now=5)

    def test_max_stake_limit(self):
        accounts, tokens = _setup(max_stake_limit=1000)
        with pytest.raises(PoolCapacityExceeded):
            _stake(accounts, tokens, amount=1001)

    def test_insufficient_user_balance(self):
        accounts, tokens = _setup()
        with pytest.raises(InsufficientFunds):
            _stake(accounts, tokens, amount=10**12 + 1)

    def test_wrong_owner(self):
        accounts, tokens = _setup()
        with pytest.raises(Unauthorized):
            _run(accounts, tokens, 0, Operation.STAKE, signer=KEEPER, pool_id=1, amount=10)

    def test_paused_user(self):
        accounts, tokens = _setup()
        accounts = replace(accounts, ledger=replace(accounts.ledger, is_paused=True))
        with pytest.raises(UserPaused):
            _stake(accounts, tokens)

    def test_paused_pool(self):
        accounts, tokens = _setup()
        accounts = replace(accounts, pool=replace(accounts.pool, status=PoolStatus.PAUSED))
        with pytest.raises(PoolNotActive):
            _stake(accounts, tokens)

    def test_emergency_pool(self):
        accounts, tokens = _setup()
        accounts = replace(accounts, pool=replace(accounts.pool, status=PoolStatus.EMERGENCY))
        with pytest.raises(PoolEmergencyPaused):
            _stake(accounts, tokens)

    def test_global_pause(self):
        accounts, tokens = _setup()
        accounts = replace(accounts, global_config=replace(accounts.global_config, emergency_pause=True))
        with pytest.raises(GlobalEmergencyPaused):
            _stake(accounts, tokens)

    def test_rejected_step_has_no_effects(self):
        accounts, tokens = _setup()
        result = step(accounts, OperationParams(Operation.STAKE, signer=USER, pool_id=1, amount=0), Env(0, tokens))
        assert not result.accepted
        assert result.effects == ()
        assert result.accounts is None


class TestPositionCapacity:
    def _full_ledger(self, accounts):
        slots = tuple(
            StakePosition(pool_id=100 + i, lst_account=USER, last_reward_update=0, is_active=True)
            for i in range(MAX_POSITIONS)
        )
        return replace(accounts.ledger, positions=PositionSet(slots), active_positions=MAX_POSITIONS)

    def test_eleventh_position_rejected(self):
        accounts, tokens = _setup()
        accounts = replace(accounts, ledger=self._full_ledger(accounts))
        with pytest.raises(PositionCapacityExceeded):
            _stake(accounts, tokens)

    def test_freed_slot_is_reused(self):
        accounts, tokens = _setup()
        ledger = self._full_ledger(accounts).close_position(3, now=0)
        accounts = replace(accounts, ledger=ledger)
        accounts, out = _stake(accounts, tokens)
        assert out["slot"] == 3
        assert accounts.ledger.active_positions == MAX_POSITIONS
        assert accounts.ledger.positions[3].pool_id == 1


class TestIncreaseStake:
    def test_settles_before_adding(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts, out = _run(accounts, tokens, 1000, Operation.INCREASE_STAKE, pool_id=1, amount=500_000)
        pos = accounts.ledger.positions[0]
        assert out["pending_rewards"] == 1000
        assert pos.staked_amount == pos.lst_tokens == 1_500_000
        assert pos.last_reward_update == 1000
        assert accounts.pool.total_staked == 1_500_000
        assert accounts.ledger.total_staked_amount == 1_500_000

    def test_requires_position(self):
        accounts, tokens = _setup()
        with pytest.raises(PositionNotFound):
            _run(accounts, tokens, 0, Operation.INCREASE_STAKE, pool_id=1, amount=10)


class TestUnstake:
    def test_partial_unstake(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts, out = _run(accounts, tokens, 10, Operation.UNSTAKE, pool_id=1, amount=400_000)
        assert out["returned"] == 400_000 and not out["position_closed"]
        assert accounts.ledger.positions[0].lst_tokens == 600_000
        assert tokens.get(USER, accounts.pool.lst_asset) == 600_000
        assert accounts.pool.lst_supply == 600_000

    def test_full_unstake_closes_and_sweeps_pending(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts, out = _run(accounts, tokens, 1000, Operation.UNSTAKE, pool_id=1, amount=1_000_000)
        ledger = accounts.ledger
        assert out["position_closed"]
        assert ledger.active_positions == 0
        assert not ledger.positions[0].is_active
        assert ledger.pending_rewards == 1000
        assert ledger.total_staked_amount == 0
        assert tokens.get(USER, STAKE_ASSET) == 10**12

    def test_locked_penalty_reported_but_not_deducted(self):
        accounts, tokens = _setup(lock_enabled=True, lock_duration=1000, early_withdraw_penalty=1000)
        accounts, _ = _stake(accounts, tokens, amount=10_000)
        accounts, out = _run(accounts, tokens, 10, Operation.UNSTAKE, pool_id=1, amount=10_000)
        assert out["unapplied_penalty"] == 1000
        assert out["returned"] == 10_000
        assert tokens.get(USER, STAKE_ASSET) == 10**12

    def test_no_penalty_after_lock_expiry(self):
        accounts, tokens = _setup(lock_enabled=True, lock_duration=1000, early_withdraw_penalty=1000)
        accounts, _ = _stake(accounts, tokens, amount=10_000)
        _, out = _run(accounts, tokens, 1000, Operation.UNSTAKE, pool_id=1, amount=10_000)
        assert out["unapplied_penalty"] == 0

    def test_more_than_position(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens, amount=100)
        with pytest.raises(InsufficientFunds):
            _run(accounts, tokens, 1, Operation.UNSTAKE, pool_id=1, amount=101)

    def test_allowed_while_paused(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens, amount=100)
        accounts = replace(accounts, global_config=replace(accounts.global_config, emergency_pause=True))
        _, out = _run(accounts, tokens, 1, Operation.UNSTAKE, pool_id=1, amount=100)
        assert out["position_closed"]


class TestClaim:
    def test_worked_example(self):
        accounts, tokens = _setup(fee=500)
        accounts, _ = _stake(accounts, tokens)
        accounts, out = _run(accounts, tokens, 1000, Operation.CLAIM_REWARDS, pool_id=1)
        cfg, pool, ledger = accounts.global_config, accounts.pool, accounts.ledger
        assert out == {"total_claimable": 1000, "user_rewards": 950, "protocol_fee": 50}
        assert tokens.get(USER, REWARD_ASSET) == 950
        assert tokens.get(cfg.treasury, REWARD_ASSET) == 50
        assert ledger.total_earned == 1000 and ledger.total_claimed == 950
        assert ledger.claim_history.latest.amount == 950
        assert ledger.last_claim_timestamp == 1000
        assert pool.total_reward_distributed == 1000

    def test_second_claim_at_same_time_has_nothing(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts, _ = _run(accounts, tokens, 1000, Operation.CLAIM_REWARDS, pool_id=1)
        with pytest.raises(NothingToClaim):
            _run(accounts, tokens, 1000, Operation.CLAIM_REWARDS, pool_id=1)

    def test_zero_fee_emits_single_transfer(self):
        accounts, tokens = _setup(fee=0)
        accounts, _ = _stake(accounts, tokens)
        result = step_or_raise(
            accounts, OperationParams(Operation.CLAIM_REWARDS, signer=USER, pool_id=1), Env(1000, tokens)
        )
        assert len(result.effects) == 1

    def test_full_fee_pays_only_treasury(self):
        accounts, tokens = _setup(fee=10_000)
        accounts, _ = _stake(accounts, tokens)
        result = step_or_raise(
            accounts, OperationParams(Operation.CLAIM_REWARDS, signer=USER, pool_id=1), Env(1000, tokens)
        )
        (effect,) = result.effects
        assert effect.destination == accounts.global_config.treasury
        assert effect.amount == 1000
        assert result.outputs["user_rewards"] == 0

    def test_empty_reward_vault(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        tokens.burn(REWARD_ASSET, accounts.pool.reward_vault, 10**12)
        with pytest.raises(InsufficientVaultBalance):
            _run(accounts, tokens, 1000, Operation.CLAIM_REWARDS, pool_id=1)

    def test_blocked_by_global_pause(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts = replace(accounts, global_config=replace(accounts.global_config, emergency_pause=True))
        with pytest.raises(GlobalEmergencyPaused):
            _run(accounts, tokens, 1000, Operation.CLAIM_REWARDS, pool_id=1)


class TestClaimAll:
    def test_collects_swept_pending(self):
        accounts, tokens = _setup(fee=500)
        accounts, _ = _stake(accounts, tokens)
        accounts, _ = _run(accounts, tokens, 1000, Operation.UNSTAKE, pool_id=1, amount=1_000_000)
        accounts, out = _run(accounts, tokens, 1000, Operation.CLAIM_ALL_REWARDS)
        assert out["total_claimable"] == 1000
        assert out["user_rewards"] == 950
        assert accounts.ledger.pending_rewards == 0
        assert tokens.get(USER, REWARD_ASSET) == 950

    def test_does_not_accrue(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        with pytest.raises(NothingToClaim):
            _run(accounts, tokens, 1000, Operation.CLAIM_ALL_REWARDS)

    def test_collects_credited_position_pending(self):
        accounts, tokens = _setup(fee=0)
        accounts, _ = _stake(accounts, tokens)
        accounts, _ = _run(accounts, tokens, 1000, Operation.INCREASE_STAKE, pool_id=1, amount=10)
        accounts, out = _run(accounts, tokens, 1000, Operation.CLAIM_ALL_REWARDS)
        assert out["total_claimable"] == 1000
        assert accounts.ledger.positions[0].pending_rewards == 0


class TestAutoCompound:
    def _enabled(self, *, min_amount=0, **setup_kwargs):
        setup_kwargs.setdefault("same_asset", True)
        accounts, tokens = _setup(**setup_kwargs)
        accounts, _ = _stake(accounts, tokens)
        accounts, _ = _run(
            accounts, tokens, 0, Operation.ENABLE_AUTO_COMPOUND,
            pool_id=1, frequency_hours=1, min_compound_amount=min_amount,
        )
        return accounts, tokens

    def test_share_based_compound(self):
        accounts, tokens = self._enabled()
        vault_before = tokens.get(accounts.pool.stake_vault, STAKE_ASSET)
        accounts, out = _run(accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)
        # acc = 1e6*3600*1e12/1e6 = 3.6e15; share 3.6e9 plus the 3600 projection
        assert out["total_rewards"] == 3_600_003_600
        assert out["protocol_fee"] == 180_000_180
        assert out["compound_amount"] == 3_420_003_420
        assert out["compound_count"] == 1
        pos = accounts.ledger.positions[0]
        assert pos.staked_amount == pos.lst_tokens == 1_000_000 + 3_420_003_420
        assert pos.last_compound_timestamp == 3600
        assert accounts.pool.total_staked == accounts.pool.lst_supply == pos.staked_amount
        assert tokens.get(USER, accounts.pool.lst_asset) == pos.lst_tokens
        assert tokens.get(accounts.pool.stake_vault, STAKE_ASSET) == vault_before + 3_420_003_420
        assert tokens.get(accounts.global_config.treasury, STAKE_ASSET) == 180_000_180

    def test_keeper_may_execute_for_owner(self):
        accounts, tokens = self._enabled()
        accounts, _ = _run(
            accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, signer=KEEPER, user=USER, pool_id=1
        )
        assert tokens.get(KEEPER, accounts.pool.lst_asset) == 0
        assert accounts.ledger.positions[0].compound_count == 1

    def test_interval_not_elapsed(self):
        accounts, tokens = self._enabled()
        with pytest.raises(IntervalNotElapsed):
            _run(accounts, tokens, 3599, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)

    def test_below_minimum(self):
        accounts, tokens = self._enabled(min_amount=10**15)
        with pytest.raises(BelowMinimumCompound):
            _run(accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)

    def test_disabled(self):
        accounts, tokens = self._enabled()
        accounts, _ = _run(accounts, tokens, 10, Operation.DISABLE_AUTO_COMPOUND, pool_id=1)
        with pytest.raises(AutoCompoundDisabled):
            _run(accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)

    def test_cross_asset_rejected(self):
        accounts, tokens = self._enabled(same_asset=False)
        with pytest.raises(UnsupportedCrossAssetCompound):
            _run(accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)

    def test_emergency_pool_blocks_compound(self):
        accounts, tokens = self._enabled()
        accounts = replace(accounts, pool=replace(accounts.pool, emergency_pause_flag=True))
        with pytest.raises(PoolEmergencyPaused):
            _run(accounts, tokens, 3600, Operation.EXECUTE_AUTO_COMPOUND, pool_id=1)


class TestEmergencyWithdraw:
    def test_worked_example_capped_penalty(self):
        accounts, tokens = _setup(early_withdraw_penalty=4000)
        accounts, _ = _stake(accounts, tokens, amount=500)
        accounts, _ = _run(accounts, tokens, 0, Operation.SET_GLOBAL_EMERGENCY_PAUSE, signer=AUTH, flag=True)
        before = accounts.ledger.active_positions
        accounts, out = _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)
        cfg, pool, ledger = accounts.global_config, accounts.pool, accounts.ledger
        assert out["penalty"] == 250 and out["payout"] == 250 and out["burned"] == 500
        assert ledger.active_positions == before - 1
        assert not ledger.positions[0].is_active
        assert ledger.total_penalties == 250
        assert pool.total_penalties == 250
        assert pool.total_staked == pool.lst_supply == 0
        assert tokens.get(cfg.treasury, STAKE_ASSET) == 250
        assert tokens.get(USER, STAKE_ASSET) == 10**12 - 250
        assert tokens.supply(pool.lst_asset) == 0

    def test_requires_emergency_condition(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens, amount=500)
        with pytest.raises(NoEmergencyCondition):
            _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)

    def test_pool_emergency_flag_is_an_emergency(self):
        accounts, tokens = _setup(early_withdraw_penalty=2000)
        accounts, _ = _stake(accounts, tokens, amount=500)
        accounts, _ = _run(
            accounts, tokens, 5, Operation.UPDATE_POOL_CONFIG,
            signer=AUTH, pool_id=1, config_field=PoolConfigField.EMERGENCY_PAUSE, config_value=1,
        )
        assert accounts.pool.status is PoolStatus.EMERGENCY
        accounts, out = _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)
        assert out["penalty"] == 150 and out["payout"] == 350
        assert tokens.get(accounts.global_config.treasury, STAKE_ASSET) == 150
        assert tokens.get(USER, STAKE_ASSET) == 10**12 - 150
        assert accounts.pool.total_staked == 0

    def test_plain_pause_is_not_an_emergency(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens, amount=500)
        accounts, _ = _run(accounts, tokens, 5, Operation.PAUSE_POOL, signer=AUTH, pool_id=1)
        assert accounts.pool.status is PoolStatus.PAUSED
        with pytest.raises(NoEmergencyCondition):
            _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)

    def test_deprecated_pool_is_an_emergency(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens, amount=500)
        accounts = replace(accounts, pool=replace(accounts.pool, status=PoolStatus.DEPRECATED))
        _, out = _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)
        assert out["penalty"] == 0 and out["payout"] == 500

    def test_open_slash_is_an_emergency(self):
        accounts, tokens = _setup(slashing_enabled=True)
        accounts, _ = _stake(accounts, tokens, amount=500)
        slash = PenaltyEvent(penalty_type=PenaltyType.SLASH, penalty_id=1, amount=10, timestamp=5, pool_id=1)
        accounts = replace(accounts, ledger=accounts.ledger.push_penalty(slash))
        _, out = _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)
        assert out["payout"] == 500

    def test_resolved_slash_is_not_an_emergency(self):
        accounts, tokens = _setup(slashing_enabled=True)
        accounts, _ = _stake(accounts, tokens, amount=500)
        slash = PenaltyEvent(penalty_type=PenaltyType.SLASH, penalty_id=1, pool_id=1, is_resolved=True)
        accounts = replace(accounts, ledger=accounts.ledger.push_penalty(slash))
        with pytest.raises(NoEmergencyCondition):
            _run(accounts, tokens, 10, Operation.EMERGENCY_WITHDRAW, pool_id=1)


class TestRewardRateChange:
    def test_elapsed_time_accrues_at_old_rate(self):
        accounts, tokens = _setup()
        accounts, _ = _stake(accounts, tokens)
        accounts, _ = _run(
            accounts, tokens, 1000, Operation.UPDATE_POOL_CONFIG,
            signer=AUTH, pool_id=1, config_field=PoolConfigField.REWARD_RATE, config_value=2_000_000,
        )
        pool = accounts.pool
        assert pool.reward_rate_per_second == 2_000_000
        assert pool.accumulated_reward_per_share == 10**15
        assert pool.last_update_timestamp == 1000
        assert refresh_pool(pool, 2000).accumulated_reward_per_share == 3 * 10**15
