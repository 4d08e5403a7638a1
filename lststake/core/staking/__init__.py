"""`staking`: pure-Python liquid-staking operation engine.

- deterministic, integer-only transitions with saturating arithmetic,
- immutable records (frozen dataclasses),
- fail-closed guards and invariant checks,
- token movements returned as effects for the shell to apply atomically.

Public API:
- `step(accounts, params, env) -> StepResult`
- `step_or_raise(accounts, params, env) -> StepResult` (raises on rejection)
"""

from .engine import step, step_or_raise
from .invariants import check_all
from .types import (
    Accounts,
    EffectKind,
    Env,
    Operation,
    OperationParams,
    Outcome,
    StepResult,
    TokenEffect,
)

__all__ = [
    "step",
    "step_or_raise",
    "check_all",
    "Accounts",
    "EffectKind",
    "Env",
    "Operation",
    "OperationParams",
    "Outcome",
    "StepResult",
    "TokenEffect",
]
