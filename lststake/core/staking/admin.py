"""Administrative, pool-configuration and oracle handlers."""

from __future__ import annotations

from dataclasses import replace

from ...state.addresses import (
    derive_address,
    global_config_seeds,
    lst_asset_seeds,
    oracle_seeds,
    reward_vault_seeds,
    stake_vault_seeds,
    staking_pool_seeds,
    treasury_seeds,
)
from ...state.canonical import is_pubkey_hex
from ...state.enums import PoolConfigField
from ...state.global_config import GlobalConfig, GlobalConfigParams
from ...state.pool import PoolAccumulator
from ..accumulator import refresh_pool
from ..errors import AccountAlreadyInitialized, InvalidArgument, TooManyPools
from ..fixed_point import BPS_DENOM, U32
from ..lifecycle import pause_pool, resume_pool, update_pool_config
from ..oracle import init_oracle, is_fresh, update_price
from .guards import (
    require_account,
    require_authority,
    require_balance,
    require_global_not_paused,
    require_pool_authority,
    require_pool_id,
)
from .types import Accounts, Env, Outcome, OperationParams, transfer


# -- global configuration -------------------------------------------------------------

def handle_init_global_config(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    if accounts.global_config is not None:
        raise AccountAlreadyInitialized("global config already exists")
    GlobalConfigParams(
        protocol_fee_rate=params.protocol_fee_rate,
        min_stake_amount=params.min_stake_amount,
        max_pools=params.max_pools,
    ).validate()
    address, bump = derive_address(global_config_seeds(params.signer), env.program_id)
    treasury, _ = derive_address(treasury_seeds(params.signer), env.program_id)
    cfg = GlobalConfig(
        address=address,
        authority=params.signer,
        treasury=treasury,
        protocol_fee_rate=params.protocol_fee_rate,
        max_pools=params.max_pools,
        min_stake_amount=params.min_stake_amount,
        bump=bump,
    )
    return Outcome(accounts=replace(accounts, global_config=cfg), outputs={"address": address, "treasury": treasury})


def handle_update_authority(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    """Hand the program authority to another key. Derived addresses keep their original seeds."""
    cfg = require_account(accounts.global_config, "global_config")
    require_authority(cfg, params.signer)
    if not is_pubkey_hex(params.new_authority):
        raise InvalidArgument("new_authority must be a 48-byte key")
    return Outcome(accounts=replace(accounts, global_config=replace(cfg, authority=params.new_authority)))


def handle_update_protocol_fee(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    require_authority(cfg, params.signer)
    if not 0 <= params.protocol_fee_rate <= BPS_DENOM:
        raise InvalidArgument(f"protocol_fee_rate must be in [0, {BPS_DENOM}]")
    return Outcome(accounts=replace(accounts, global_config=replace(cfg, protocol_fee_rate=params.protocol_fee_rate)))


def handle_set_global_emergency_pause(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    require_authority(cfg, params.signer)
    return Outcome(accounts=replace(accounts, global_config=replace(cfg, emergency_pause=bool(params.flag))))


# -- pools ------------------------------------------------------------------------------

def handle_create_staking_pool(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    if accounts.pool is not None:
        raise AccountAlreadyInitialized("pool already exists")
    pool_params = params.pool_params
    if pool_params is None:
        raise InvalidArgument("pool parameters are required")
    if not params.stake_asset or not params.reward_asset:
        raise InvalidArgument("stake and reward assets are required")
    require_global_not_paused(cfg)
    pool_params.validate()
    if cfg.pool_capacity_left == 0:
        raise TooManyPools(f"pool limit reached ({cfg.active_pools}/{cfg.max_pools})")

    creator, program = params.signer, env.program_id
    address, bump = derive_address(staking_pool_seeds(creator, pool_params.pool_id), program)
    pool = PoolAccumulator.create(
        pool_params,
        address=address,
        authority=creator,
        stake_asset=params.stake_asset,
        reward_asset=params.reward_asset,
        stake_vault=derive_address(stake_vault_seeds(params.stake_asset, cfg.address), program)[0],
        reward_vault=derive_address(reward_vault_seeds(params.reward_asset, cfg.address), program)[0],
        lst_asset=derive_address(lst_asset_seeds(creator, pool_params.pool_id), program)[0],
        now=env.now,
        bump=bump,
    )
    cfg = replace(
        cfg,
        total_pools_created=U32(cfg.total_pools_created).sat_add(1).value,
        active_pools=U32(cfg.active_pools).sat_add(1).value,
        active_pool_keys=cfg.active_pool_keys + (address,),
    )
    return Outcome(accounts=replace(accounts, global_config=cfg, pool=pool), outputs={"address": address})


def handle_update_pool_config(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    pool = require_account(accounts.pool, "pool")
    require_pool_authority(pool, params.signer)
    require_pool_id(pool, params.pool_id)
    if params.config_field is None or params.config_value is None:
        raise InvalidArgument("config field and value are required")
    if params.config_field is PoolConfigField.REWARD_RATE:
        # elapsed time accrues at the outgoing rate
        pool = refresh_pool(pool, env.now)
    pool = update_pool_config(pool, params.config_field, params.config_value)
    return Outcome(accounts=replace(accounts, pool=pool))


def handle_pause_pool(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    pool = require_account(accounts.pool, "pool")
    require_pool_authority(pool, params.signer)
    require_pool_id(pool, params.pool_id)
    return Outcome(accounts=replace(accounts, pool=pause_pool(pool)))


def handle_resume_pool(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    pool = require_account(accounts.pool, "pool")
    require_pool_authority(pool, params.signer)
    require_pool_id(pool, params.pool_id)
    return Outcome(accounts=replace(accounts, pool=resume_pool(pool)))


def handle_fund_reward_vault(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    cfg = require_account(accounts.global_config, "global_config")
    pool = require_account(accounts.pool, "pool")
    require_authority(cfg, params.signer)
    if params.amount == 0:
        raise InvalidArgument("amount must be positive")
    require_balance(env, params.signer, pool.reward_asset, params.amount)
    return Outcome(
        accounts=accounts,
        effects=(transfer(pool.reward_asset, params.signer, pool.reward_vault, params.amount),),
        outputs={"funded": params.amount},
    )


# -- oracle -------------------------------------------------------------------------------

def handle_init_oracle(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    if accounts.oracle is not None:
        raise AccountAlreadyInitialized("oracle already exists")
    address, bump = derive_address(oracle_seeds(params.signer), env.program_id)
    record = init_oracle(
        price_feed=address,
        oracle_authority=params.signer,
        update_frequency_seconds=params.update_frequency_seconds,
        price=params.price,
        now=env.now,
        bump=bump,
    )
    return Outcome(accounts=replace(accounts, oracle=record), outputs={"address": address})


def handle_update_oracle_price(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    record = require_account(accounts.oracle, "oracle")
    record = update_price(record, signer=params.signer, price=params.price, now=env.now)
    return Outcome(accounts=replace(accounts, oracle=record))


def handle_get_oracle_price(accounts: Accounts, params: OperationParams, env: Env) -> Outcome:
    record = require_account(accounts.oracle, "oracle")
    return Outcome(
        accounts=accounts,
        outputs={
            "price": record.current_price,
            "last_update_timestamp": record.last_update_timestamp,
            "fresh": is_fresh(record, env.now),
        },
    )
