"""Dispatch-table engine for the staking operations.

``step(accounts, params, env)`` is the single entry point. It:

1. Validates parameter domains (integer widths of the wire payload).
2. Dispatches to the operation's handler.
3. Checks all invariants on the post-state.
4. Returns a ``StepResult`` (accepted or rejected with reason and error code).

A rejected step carries no records and no effects: nothing it computed may be
committed.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import InvalidArgument, StakingError, StakingInvariantError
from ..fixed_point import I64, U16, U32, U64
from .admin import (
    handle_create_staking_pool,
    handle_fund_reward_vault,
    handle_get_oracle_price,
    handle_init_global_config,
    handle_init_oracle,
    handle_pause_pool,
    handle_resume_pool,
    handle_set_global_emergency_pause,
    handle_update_authority,
    handle_update_oracle_price,
    handle_update_pool_config,
    handle_update_protocol_fee,
)
from .handlers import (
    handle_claim_all_rewards,
    handle_claim_rewards,
    handle_disable_auto_compound,
    handle_emergency_withdraw,
    handle_enable_auto_compound,
    handle_execute_auto_compound,
    handle_increase_stake,
    handle_init_user_ledger,
    handle_stake,
    handle_unstake,
)
from .invariants import check_all
from .types import Accounts, Env, Operation, OperationParams, Outcome, StepResult

logger = logging.getLogger(__name__)

HandlerFn = Callable[[Accounts, OperationParams, Env], Outcome]

_DISPATCH: dict[Operation, HandlerFn] = {
    Operation.INIT_GLOBAL_CONFIG: handle_init_global_config,
    Operation.UPDATE_AUTHORITY: handle_update_authority,
    Operation.UPDATE_PROTOCOL_FEE: handle_update_protocol_fee,
    Operation.SET_GLOBAL_EMERGENCY_PAUSE: handle_set_global_emergency_pause,
    Operation.CREATE_STAKING_POOL: handle_create_staking_pool,
    Operation.UPDATE_POOL_CONFIG: handle_update_pool_config,
    Operation.PAUSE_POOL: handle_pause_pool,
    Operation.RESUME_POOL: handle_resume_pool,
    Operation.FUND_REWARD_VAULT: handle_fund_reward_vault,
    Operation.INIT_ORACLE: handle_init_oracle,
    Operation.UPDATE_ORACLE_PRICE: handle_update_oracle_price,
    Operation.GET_ORACLE_PRICE: handle_get_oracle_price,
    Operation.INIT_USER_LEDGER: handle_init_user_ledger,
    Operation.STAKE: handle_stake,
    Operation.INCREASE_STAKE: handle_increase_stake,
    Operation.UNSTAKE: handle_unstake,
    Operation.CLAIM_REWARDS: handle_claim_rewards,
    Operation.CLAIM_ALL_REWARDS: handle_claim_all_rewards,
    Operation.EXECUTE_AUTO_COMPOUND: handle_execute_auto_compound,
    Operation.ENABLE_AUTO_COMPOUND: handle_enable_auto_compound,
    Operation.DISABLE_AUTO_COMPOUND: handle_disable_auto_compound,
    Operation.EMERGENCY_WITHDRAW: handle_emergency_withdraw,
}

# -- Parameter domain bounds (wire widths) --------------------------------------

_U64 = (0, U64.MAX)

# Per-operation bounds: list of (field_name, min_val, max_val).
_PARAM_BOUNDS: dict[Operation, list[tuple[str, int, int]]] = {
    Operation.INIT_GLOBAL_CONFIG: [
        ("protocol_fee_rate", 0, U16.MAX),
        ("min_stake_amount", *_U64),
        ("max_pools", 0, U32.MAX),
    ],
    Operation.UPDATE_PROTOCOL_FEE: [("protocol_fee_rate", 0, U16.MAX)],
    Operation.UPDATE_POOL_CONFIG: [("pool_id", *_U64)],
    Operation.PAUSE_POOL: [("pool_id", *_U64)],
    Operation.RESUME_POOL: [("pool_id", *_U64)],
    Operation.FUND_REWARD_VAULT: [("amount", *_U64)],
    Operation.INIT_ORACLE: [
        ("update_frequency_seconds", I64.MIN, I64.MAX),
        ("price", *_U64),
    ],
    Operation.UPDATE_ORACLE_PRICE: [("price", *_U64)],
    Operation.STAKE: [("pool_id", *_U64), ("amount", *_U64)],
    Operation.INCREASE_STAKE: [("pool_id", *_U64), ("amount", *_U64)],
    Operation.UNSTAKE: [("pool_id", *_U64), ("amount", *_U64)],
    Operation.CLAIM_REWARDS: [("pool_id", *_U64)],
    Operation.EXECUTE_AUTO_COMPOUND: [("pool_id", *_U64)],
    Operation.ENABLE_AUTO_COMPOUND: [
        ("pool_id", *_U64),
        ("frequency_hours", 0, U32.MAX),
        ("min_compound_amount", *_U64),
    ],
    Operation.DISABLE_AUTO_COMPOUND: [("pool_id", *_U64)],
    Operation.EMERGENCY_WITHDRAW: [("pool_id", *_U64)],
}


def _validate_params(params: OperationParams) -> str | None:
    """Check parameter domain bounds. Returns rejection reason or None."""
    for field, lo, hi in _PARAM_BOUNDS.get(params.operation, ()):
        val = getattr(params, field)
        if not isinstance(val, int) or isinstance(val, bool) or val < lo or val > hi:
            return f"param_domain:{field}"
    return None


def _reject(error: StakingError, rejection: str | None = None) -> StepResult:
    return StepResult(
        accepted=False,
        rejection=rejection or f"{type(error).__name__}:{error.message}",
        error_code=error.code,
        error=error,
    )


def step(accounts: Accounts, params: OperationParams, env: Env) -> StepResult:
    """Execute one operation against the given records.

    Returns ``StepResult`` with ``accepted=True`` on success,
    or ``accepted=False`` with a ``rejection`` reason and ``error_code``.
    """
    handler = _DISPATCH.get(params.operation)
    if handler is None:
        return _reject(InvalidArgument(f"unknown operation: {params.operation}"), f"unknown_operation:{params.operation}")

    domain_err = _validate_params(params)
    if domain_err is not None:
        return _reject(InvalidArgument(domain_err), domain_err)

    try:
        outcome = handler(accounts, params, env)
    except StakingError as exc:
        logger.debug("rejected %s: %s", params.operation.value, exc)
        return _reject(exc)

    violations = check_all(outcome.accounts)
    if violations:
        return StepResult(
            accepted=False,
            rejection=f"invariant:{','.join(violations)}",
        )

    return StepResult(
        accepted=True,
        accounts=outcome.accounts,
        effects=outcome.effects,
        outputs=dict(outcome.outputs),
    )


def step_or_raise(accounts: Accounts, params: OperationParams, env: Env) -> StepResult:
    """Like ``step()`` but raises on rejection instead of returning a result.

    Raises:
        StakingError: The handler's own error (or ``InvalidArgument`` for a
            parameter outside its wire domain).
        StakingInvariantError: Post-state violates one or more invariants.
    """
    result = step(accounts, params, env)
    if result.accepted:
        return result

    if result.error is not None:
        raise result.error
    reason = result.rejection or ""
    if reason.startswith("invariant:"):
        raise StakingInvariantError(reason.removeprefix("invariant:").split(","))
    raise InvalidArgument(reason)
