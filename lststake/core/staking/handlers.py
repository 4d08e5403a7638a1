"""User-facing staking handlers.

One pure function per operation: ``(accounts, params, env) -> Outcome``.
Handlers raise a ``StakingError`` subclass on the first failed precondition
and otherwise return the new records plus the token effects to apply.

Reward models per operation:
- claim, unstake and increase-stake settlement use rate projection,
- auto-compound uses the share-based model.

The two models disagree for the same position; both are kept as-is.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ...state.addresses import derive_address, user_ledger_seeds
from ...state.enums import PoolStatus
from ...state.ledger import UserLedger
from ...state.positions import ClaimEvent, StakePosition
from ..accumulator import (
    record_penalty,
    record_reward_distribution,
    record_stake,
    record_unstake,
    refresh_pool,
)
from ..errors import (
    AccountAlreadyInitialized,
    AutoCompoundDisabled,
    BelowMinimumCompound,
    InsufficientFunds,
    IntervalNotElapsed,
    InvalidArgument,
    NoEmergencyCondition,
    NothingToClaim,
    NothingToWithdraw,
    UnsupportedCrossAssetCompound,
)
from ..fixed_point import SECONDS_PER_HOUR, I64, U64, elapsed_seconds
from ..reward_math import (
    RewardModel,
    early_withdraw_penalty,
    emergency_penalty,
    is_lock_restricted,
    position_rewards,
    split_protocol_fee,
)
from .guards import (
    require_accepting_stake,
    require_account,
    require_balance,
    require_global_not_paused,
    require_owner,
    require_pool_id,
    require_pool_not_emergency,
    require_stake_amount,
    require_user_not_paused,
    require_vault_balance,
    require_within_limit,
)
from .types import Accounts, Env, Outcome, OperationParams, burn, mint, transfer

logger = logging.getLogger(__name__)


def _settle(position: StakePosition, pool, now: int, model: RewardModel) -> StakePosition:
    """Credit accrued rewards into ``pending_rewards`` and restart the accrual clock."""
    accrued = position_rewards(position, pool, now, model)
    return replace(
        position,
        pending_rewards=U64(position.pending_rewards).sat_add(accrued).value,
        last_reward_update=now,
    )


# -- ledger setup ------------------------------------------------------------------

def handle_init_user_ledger(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    if accounts.ledger is not None:
        raise AccountAlreadyInitialized("user ledger already exists")
    _, bump = derive_address(user_ledger_seeds(params.signer, cfg.address), env.program_id)
    ledger = UserLedger.new(params.signer, cfg.address, now=env.now, bump=bump)
    return Outcome(accounts=replace(accounts, ledger=ledger))


# -- stake / increase / unstake --------------------------------------------------------

def handle_stake(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, amount, now = params.signer, params.amount, env.now

    require_owner(ledger, signer)
    require_pool_id(pool, params.pool_id)
    require_user_not_paused(ledger)
    require_accepting_stake(pool, cfg)
    require_stake_amount(amount, pool, cfg)
    require_within_limit(pool, amount)
    require_balance(env, signer, pool.stake_asset, amount)

    pool = refresh_pool(pool, now)
    lst_tokens = amount  # 1:1
    position = StakePosition(
        pool_id=pool.pool_id,
        pool=pool.address,
        lst_account=signer,
        staked_amount=amount,
        lst_tokens=lst_tokens,
        last_reward_update=now,
        stake_timestamp=now,
        lock_enabled=pool.lock_enabled,
        lock_expiry=I64(now).sat_add(pool.lock_duration).value if pool.lock_enabled else 0,
        last_compound_timestamp=now,
        is_active=True,
    )
    ledger, index = ledger.open_position(position, now=now)
    pool = record_stake(pool, amount, lst_tokens)

    effects = (
        transfer(pool.stake_asset, signer, pool.stake_vault, amount),
        mint(pool.lst_asset, signer, lst_tokens),
    )
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=effects,
        outputs={"slot": index, "lst_minted": lst_tokens},
    )


def handle_increase_stake(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, amount, now = params.signer, params.amount, env.now

    require_owner(ledger, signer)
    require_pool_id(pool, params.pool_id)
    require_user_not_paused(ledger)
    require_accepting_stake(pool, cfg)
    require_stake_amount(amount, pool, cfg)
    index, position = ledger.find_position(params.pool_id)
    require_within_limit(pool, amount)
    require_balance(env, signer, pool.stake_asset, amount)

    pool = refresh_pool(pool, now)
    position = _settle(position, pool, now, RewardModel.RATE_PROJECTION)
    position = replace(
        position,
        staked_amount=U64(position.staked_amount).sat_add(amount).value,
        lst_tokens=U64(position.lst_tokens).sat_add(amount).value,
    )
    ledger = replace(
        ledger.with_position(index, position, now=now),
        total_staked_amount=U64(ledger.total_staked_amount).sat_add(amount).value,
        total_lst_balance=U64(ledger.total_lst_balance).sat_add(amount).value,
    )
    pool = record_stake(pool, amount, amount)

    effects = (
        transfer(pool.stake_asset, signer, pool.stake_vault, amount),
        mint(pool.lst_asset, signer, amount),
    )
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=effects,
        outputs={"slot": index, "lst_minted": amount, "pending_rewards": position.pending_rewards},
    )


def handle_unstake(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    """Burn ``amount`` derivative tokens and return the same principal.

    A locked position's early-withdraw penalty is computed and reported in
    ``outputs["unapplied_penalty"]`` but NOT deducted from the payout.
    """
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, lst_amount, now = params.signer, params.amount, env.now

    require_owner(ledger, signer)
    require_pool_id(pool, params.pool_id)
    if lst_amount == 0:
        raise InvalidArgument("amount must be positive")
    index, position = ledger.find_position(params.pool_id)
    if position.lst_tokens < lst_amount:
        raise InsufficientFunds(f"position holds {position.lst_tokens} < {lst_amount} derivative tokens")
    require_balance(env, signer, pool.lst_asset, lst_amount)
    unstake_amount = lst_amount  # 1:1
    require_vault_balance(env, pool.stake_vault, pool.stake_asset, unstake_amount)

    pool = refresh_pool(pool, now)
    penalty = 0
    if is_lock_restricted(position, now):
        penalty = early_withdraw_penalty(unstake_amount, pool.early_withdraw_penalty)
    position = _settle(position, pool, now, RewardModel.RATE_PROJECTION)
    position = replace(
        position,
        staked_amount=U64(position.staked_amount).sat_sub(unstake_amount).value,
        lst_tokens=U64(position.lst_tokens).sat_sub(lst_amount).value,
    )
    ledger = replace(
        ledger.with_position(index, position, now=now),
        total_staked_amount=U64(ledger.total_staked_amount).sat_sub(unstake_amount).value,
        total_lst_balance=U64(ledger.total_lst_balance).sat_sub(lst_amount).value,
    )
    closed = position.lst_tokens == 0
    if closed:
        ledger = ledger.close_position(index, now=now)
    pool = record_unstake(pool, unstake_amount, lst_amount)

    effects = (
        burn(pool.lst_asset, signer, lst_amount),
        transfer(pool.stake_asset, pool.stake_vault, signer, unstake_amount),
    )
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=effects,
        outputs={
            "slot": index,
            "returned": unstake_amount,
            "unapplied_penalty": penalty,
            "position_closed": closed,
        },
    )


# -- claims ---------------------------------------------------------------------------

def handle_claim_rewards(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, now = params.signer, env.now

    require_owner(ledger, signer)
    require_pool_id(pool, params.pool_id)
    require_user_not_paused(ledger)
    require_global_not_paused(cfg)
    index, position = ledger.find_position(params.pool_id)

    pool = refresh_pool(pool, now)
    accrued = position_rewards(position, pool, now, RewardModel.RATE_PROJECTION)
    total_claimable = U64(position.pending_rewards).sat_add(accrued).value
    if total_claimable == 0:
        raise NothingToClaim("no rewards to claim")
    user_rewards, fee = split_protocol_fee(total_claimable, cfg.protocol_fee_rate)
    require_vault_balance(env, pool.reward_vault, pool.reward_asset, total_claimable)

    position = replace(position, pending_rewards=0, last_reward_update=now)
    ledger = replace(
        ledger.with_position(index, position, now=now),
        total_earned=U64(ledger.total_earned).sat_add(total_claimable).value,
        total_claimed=U64(ledger.total_claimed).sat_add(user_rewards).value,
        last_claim_timestamp=now,
    ).push_claim(ClaimEvent(amount=user_rewards, timestamp=now))
    pool = record_reward_distribution(pool, total_claimable)

    effects = []
    if user_rewards > 0:
        effects.append(transfer(pool.reward_asset, pool.reward_vault, signer, user_rewards))
    if fee > 0:
        effects.append(transfer(pool.reward_asset, pool.reward_vault, cfg.treasury, fee))
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=tuple(effects),
        outputs={"total_claimable": total_claimable, "user_rewards": user_rewards, "protocol_fee": fee},
    )


def handle_claim_all_rewards(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    """Pay out every stored pending balance from the supplied pool's reward vault.

    Only already-credited rewards are collected; nothing is accrued here.
    """
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, now = params.signer, env.now

    require_owner(ledger, signer)
    require_user_not_paused(ledger)
    require_global_not_paused(cfg)

    total = U64(ledger.pending_rewards)
    positions = ledger.positions
    for index, position in positions.active():
        if position.staked_amount == 0 or position.pending_rewards == 0:
            continue
        total = total.sat_add(position.pending_rewards)
        positions = positions.replace_at(index, replace(position, pending_rewards=0))
    total_claimable = total.value
    if total_claimable == 0:
        raise NothingToClaim("no pending rewards")
    user_rewards, fee = split_protocol_fee(total_claimable, cfg.protocol_fee_rate)
    require_vault_balance(env, pool.reward_vault, pool.reward_asset, total_claimable)

    ledger = replace(
        ledger,
        positions=positions,
        pending_rewards=0,
        total_earned=U64(ledger.total_earned).sat_add(total_claimable).value,
        total_claimed=U64(ledger.total_claimed).sat_add(user_rewards).value,
        last_claim_timestamp=now,
        last_update_timestamp=now,
    ).push_claim(ClaimEvent(amount=user_rewards, timestamp=now))
    pool = record_reward_distribution(pool, total_claimable)

    effects = []
    if user_rewards > 0:
        effects.append(transfer(pool.reward_asset, pool.reward_vault, signer, user_rewards))
    if fee > 0:
        effects.append(transfer(pool.reward_asset, pool.reward_vault, cfg.treasury, fee))
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=tuple(effects),
        outputs={"total_claimable": total_claimable, "user_rewards": user_rewards, "protocol_fee": fee},
    )


# -- auto-compound ----------------------------------------------------------------------

def handle_execute_auto_compound(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    """Reinvest a position's rewards as principal; any signer may execute."""
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    owner, now = params.target_user, env.now

    require_owner(ledger, owner)
    require_pool_id(pool, params.pool_id)
    require_user_not_paused(ledger)
    require_global_not_paused(cfg)
    require_pool_not_emergency(pool)
    index, position = ledger.find_position(params.pool_id)
    if not position.auto_compound_enabled:
        raise AutoCompoundDisabled("auto-compound is disabled for this position")
    interval = position.compound_frequency_hours * SECONDS_PER_HOUR
    if elapsed_seconds(now, position.last_compound_timestamp) < interval:
        raise IntervalNotElapsed(f"compound interval of {interval}s has not elapsed")

    pool = refresh_pool(pool, now)
    accrued = position_rewards(position, pool, now, RewardModel.SHARE_BASED)
    total_rewards = U64(position.pending_rewards).sat_add(accrued).value
    if total_rewards < position.min_compound_amount:
        raise BelowMinimumCompound(f"{total_rewards} below minimum {position.min_compound_amount}")
    if total_rewards == 0:
        raise NothingToClaim("no rewards to compound")
    require_vault_balance(env, pool.reward_vault, pool.reward_asset, total_rewards)
    compound_amount, fee = split_protocol_fee(total_rewards, cfg.protocol_fee_rate)
    if pool.reward_asset != pool.stake_asset:
        raise UnsupportedCrossAssetCompound("reward asset differs from stake asset")

    position = replace(
        position,
        staked_amount=U64(position.staked_amount).sat_add(compound_amount).value,
        lst_tokens=U64(position.lst_tokens).sat_add(compound_amount).value,
        pending_rewards=0,
        last_reward_update=now,
        last_compound_timestamp=now,
        compound_count=position.compound_count + 1,
    )
    ledger = replace(
        ledger.with_position(index, position, now=now),
        total_staked_amount=U64(ledger.total_staked_amount).sat_add(compound_amount).value,
        total_lst_balance=U64(ledger.total_lst_balance).sat_add(compound_amount).value,
        total_earned=U64(ledger.total_earned).sat_add(total_rewards).value,
    )
    pool = record_reward_distribution(record_stake(pool, compound_amount, compound_amount), total_rewards)

    effects = []
    if fee > 0:
        effects.append(transfer(pool.reward_asset, pool.reward_vault, cfg.treasury, fee))
    effects.append(transfer(pool.reward_asset, pool.reward_vault, pool.stake_vault, compound_amount))
    effects.append(mint(pool.lst_asset, owner, compound_amount))
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=tuple(effects),
        outputs={
            "total_rewards": total_rewards,
            "compound_amount": compound_amount,
            "protocol_fee": fee,
            "compound_count": position.compound_count,
        },
    )


def handle_enable_auto_compound(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    ledger = require_account(accounts.ledger, "user_ledger")
    require_owner(ledger, params.signer)
    if params.frequency_hours <= 0:
        raise InvalidArgument("frequency_hours must be positive")
    index, position = ledger.find_position(params.pool_id)
    position = replace(
        position,
        auto_compound_enabled=True,
        compound_frequency_hours=params.frequency_hours,
        min_compound_amount=params.min_compound_amount,
    )
    return Outcome(accounts=replace(accounts, ledger=ledger.with_position(index, position, now=env.now)))


def handle_disable_auto_compound(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    ledger = require_account(accounts.ledger, "user_ledger")
    require_owner(ledger, params.signer)
    index, position = ledger.find_position(params.pool_id)
    position = replace(position, auto_compound_enabled=False)
    return Outcome(accounts=replace(accounts, ledger=ledger.with_position(index, position, now=env.now)))


# -- emergency exit -----------------------------------------------------------------------

def emergency_condition(accounts: Accounts) -> bool:
    """Global pause, pool emergency flag, pool deprecated, or an open slash against the pool."""
    cfg, pool, ledger = accounts.global_config, accounts.pool, accounts.ledger
    if cfg is not None and cfg.emergency_pause:
        return True
    if pool is None:
        return False
    if pool.is_emergency_paused or pool.status is PoolStatus.DEPRECATED:
        return True
    return pool.slashing_enabled and ledger is not None and ledger.has_open_slash(pool.pool_id)


def handle_emergency_withdraw(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    ledger = require_account(accounts.ledger, "user_ledger")
    signer, now = params.signer, env.now

    require_owner(ledger, signer)
    require_pool_id(pool, params.pool_id)
    if not emergency_condition(accounts):
        raise NoEmergencyCondition("no emergency condition holds")
    index, position = ledger.find_position(params.pool_id)
    if position.lst_tokens == 0:
        raise NothingToWithdraw("position holds no derivative tokens")
    require_balance(env, signer, pool.lst_asset, position.lst_tokens)
    require_vault_balance(env, pool.stake_vault, pool.stake_asset, position.staked_amount)

    pool = refresh_pool(pool, now)
    penalty = emergency_penalty(position.staked_amount, pool.early_withdraw_penalty)
    payout = U64(position.staked_amount).sat_sub(penalty).value

    ledger = replace(
        ledger.close_position(index, now=now),
        total_penalties=U64(ledger.total_penalties).sat_add(penalty).value,
    )
    pool = record_penalty(record_unstake(pool, position.staked_amount, position.lst_tokens), penalty)
    logger.debug("emergency withdraw pool=%s staked=%s penalty=%s", pool.pool_id, position.staked_amount, penalty)

    effects = [burn(pool.lst_asset, signer, position.lst_tokens)]
    if penalty > 0:
        effects.append(transfer(pool.stake_asset, pool.stake_vault, cfg.treasury, penalty))
    if payout > 0:
        effects.append(transfer(pool.stake_asset, pool.stake_vault, signer, payout))
    return Outcome(
        accounts=replace(accounts, pool=pool, ledger=ledger),
        effects=tuple(effects),
        outputs={"slot": index, "penalty": penalty, "payout": payout, "burned": position.lst_tokens},
    )
