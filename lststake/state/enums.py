"""
Closed enumerations stored in records and carried on the wire.

Members are declared in wire order: the single-byte ordinal of a member is its
position in the class body. Decoding an ordinal with no member raises
``UnknownDiscriminant``; there is no fallback variant.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Type, TypeVar

from ..core.errors import UnknownDiscriminant

E = TypeVar("E", bound="WireEnum")


class WireEnum(Enum):
    """Base for enums with a stable single-byte wire ordinal."""

    @classmethod
    def from_wire(cls: Type[E], ordinal: int) -> E:
        if not isinstance(ordinal, int) or isinstance(ordinal, bool):
            raise UnknownDiscriminant(f"{cls.__name__} ordinal must be an int")
        members = list(cls)
        if not 0 <= ordinal < len(members):
            raise UnknownDiscriminant(f"unknown {cls.__name__} ordinal: {ordinal}")
        return members[ordinal]

    @property
    def wire(self) -> int:
        return list(type(self)).index(self)


@unique
class PoolStatus(WireEnum):
    """Pool lifecycle status."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DEPRECATED = "DEPRECATED"
    EMERGENCY = "EMERGENCY"


@unique
class SlashType(WireEnum):
    DOWN_TIME = "DOWN_TIME"
    DOUBLE_SIGN = "DOUBLE_SIGN"
    INVALID_ATTESTATION = "INVALID_ATTESTATION"
    CENSORSHIP = "CENSORSHIP"
    CUSTOM = "CUSTOM"


@unique
class PenaltyType(WireEnum):
    SLASH = "SLASH"
    EARLY_WITHDRAW = "EARLY_WITHDRAW"
    EMERGENCY = "EMERGENCY"
    OTHER = "OTHER"


@unique
class PoolConfigField(WireEnum):
    """Pool configuration fields writable through ``UpdatePoolConfig``, by tag."""
    REWARD_RATE = "REWARD_RATE"
    LOCK_DURATION = "LOCK_DURATION"
    REWARD_MULTIPLIER = "REWARD_MULTIPLIER"
    EARLY_WITHDRAW_PENALTY = "EARLY_WITHDRAW_PENALTY"
    SLASH_PERCENTAGE = "SLASH_PERCENTAGE"
    MIN_EVIDENCE = "MIN_EVIDENCE"
    SLASH_COOLDOWN = "SLASH_COOLDOWN"
    MAX_STAKE_LIMIT = "MAX_STAKE_LIMIT"
    MIN_STAKE_AMOUNT = "MIN_STAKE_AMOUNT"
    LOCK_ENABLED = "LOCK_ENABLED"
    SLASHING_ENABLED = "SLASHING_ENABLED"
    SLASH_TYPE = "SLASH_TYPE"
    PRICE_FEED = "PRICE_FEED"
    STATUS = "STATUS"
    EMERGENCY_PAUSE = "EMERGENCY_PAUSE"


# Fields still writable while a pool's emergency-pause flag is set.
EMERGENCY_WRITABLE_FIELDS = frozenset({PoolConfigField.STATUS, PoolConfigField.EMERGENCY_PAUSE})
