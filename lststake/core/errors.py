"""Exception types for the staking engine.

Every failure carries a stable integer ``code`` so callers can branch on the
condition, and a ``category``:

- ``structural``: malformed payloads, address mismatches, missing signers.
  Detected before any record is read for mutation.
- ``domain``: a precondition of the operation does not hold.

Arithmetic never raises; see ``lststake.core.fixed_point``.
"""

from __future__ import annotations

STRUCTURAL = "structural"
DOMAIN = "domain"


class StakingError(Exception):
    """Base class; subclasses override ``code`` and ``category``."""

    code: int = 0
    category: str = DOMAIN

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


# -- structural ---------------------------------------------------------------

class InvalidInstructionData(StakingError):
    code = 100
    category = STRUCTURAL


class UnknownDiscriminant(StakingError):
    """An enum ordinal read from the wire or a record has no variant."""

    code = 101
    category = STRUCTURAL


class InvalidAccountData(StakingError):
    code = 102
    category = STRUCTURAL


class AddressMismatch(StakingError):
    code = 103
    category = STRUCTURAL


class MissingSignature(StakingError):
    code = 104
    category = STRUCTURAL


class AccountAlreadyInitialized(StakingError):
    code = 105
    category = STRUCTURAL


class UninitializedAccount(StakingError):
    code = 106
    category = STRUCTURAL


# -- domain -------------------------------------------------------------------

class InvalidArgument(StakingError):
    code = 200


class Unauthorized(StakingError):
    code = 201


class InsufficientFunds(StakingError):
    code = 202


class PositionNotFound(StakingError):
    code = 1002


class PositionCapacityExceeded(StakingError):
    code = 1003


class PositionAlreadyExists(StakingError):
    code = 1004


class NoEmergencyCondition(StakingError):
    code = 2001


class NothingToWithdraw(StakingError):
    code = 2002


class NothingToClaim(StakingError):
    code = 3001


class InsufficientVaultBalance(StakingError):
    code = 3002


class UserPaused(StakingError):
    code = 4001


class GlobalEmergencyPaused(StakingError):
    code = 4002


class PoolEmergencyPaused(StakingError):
    code = 4003


class PoolNotActive(StakingError):
    code = 4004


class AutoCompoundDisabled(StakingError):
    code = 5001


class BelowMinimumCompound(StakingError):
    code = 5002


class IntervalNotElapsed(StakingError):
    code = 5004


class UnsupportedCrossAssetCompound(StakingError):
    code = 5005


class InvalidStatusTransition(StakingError):
    code = 6001


class ConfigFrozen(StakingError):
    """Configuration write attempted while the pool is emergency-paused."""

    code = 6002


class PoolCapacityExceeded(StakingError):
    """Stake would push ``total_staked`` past the pool's maximum limit."""

    code = 6003


class TooManyPools(StakingError):
    code = 6004


class StakingInvariantError(Exception):
    """Raised by ``step_or_raise`` when a post-state violates invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
