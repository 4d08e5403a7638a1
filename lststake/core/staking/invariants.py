"""Invariant checkers for the staking engine.

Each function returns True when the invariant holds for the records present
in ``Accounts`` (absent records pass), and ``check_all()`` returns the list of
violated invariant IDs (empty = all pass).

Note: these are per-step invariants over the records one operation touches;
the cross-user identity ``pool.total_staked == sum of every ledger's active
stake in the pool`` needs all ledgers and is checked by the tests.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable

from ...state.global_config import MAX_ACTIVE_POOLS
from ...state.positions import MAX_HISTORY, MAX_POSITIONS
from ..fixed_point import BPS_DENOM
from .types import Accounts


def inv_ledger_active_count(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    return a.ledger.active_positions == a.ledger.positions.active_count


def inv_ledger_total_staked(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    return a.ledger.total_staked_amount == sum(p.staked_amount for _, p in a.ledger.positions.active())


def inv_ledger_total_lst(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    return a.ledger.total_lst_balance == sum(p.lst_tokens for _, p in a.ledger.positions.active())


def inv_inactive_slots_zeroed(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    return all(
        p.staked_amount == 0 and p.lst_tokens == 0 and p.pending_rewards == 0
        for p in a.ledger.positions.slots
        if not p.is_active
    )


def inv_one_active_position_per_pool(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    counts = Counter(p.pool_id for _, p in a.ledger.positions.active())
    return all(n == 1 for n in counts.values())


def inv_fixed_capacities(a: Accounts) -> bool:
    if a.ledger is None:
        return True
    return (
        len(a.ledger.positions.slots) == MAX_POSITIONS
        and len(a.ledger.claim_history) == MAX_HISTORY
        and len(a.ledger.penalty_history) == MAX_HISTORY
    )


def inv_pool_lst_backed(a: Accounts) -> bool:
    if a.pool is None:
        return True
    return a.pool.lst_supply == a.pool.total_staked


def inv_fee_rate_bounded(a: Accounts) -> bool:
    if a.global_config is None:
        return True
    return a.global_config.protocol_fee_rate <= BPS_DENOM


def inv_active_pool_keys_bounded(a: Accounts) -> bool:
    if a.global_config is None:
        return True
    cfg = a.global_config
    return len(cfg.active_pool_keys) <= MAX_ACTIVE_POOLS and cfg.active_pools <= cfg.total_pools_created


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[Accounts], bool]] = {
    "inv_ledger_active_count": inv_ledger_active_count,
    "inv_ledger_total_staked": inv_ledger_total_staked,
    "inv_ledger_total_lst": inv_ledger_total_lst,
    "inv_inactive_slots_zeroed": inv_inactive_slots_zeroed,
    "inv_one_active_position_per_pool": inv_one_active_position_per_pool,
    "inv_fixed_capacities": inv_fixed_capacities,
    "inv_pool_lst_backed": inv_pool_lst_backed,
    "inv_fee_rate_bounded": inv_fee_rate_bounded,
    "inv_active_pool_keys_bounded": inv_active_pool_keys_bounded,
}


def check_all(accounts: Accounts) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(accounts)
    ]
