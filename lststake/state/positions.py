"""
Per-user stake positions and the bounded histories embedded in a user ledger.

Both containers are fixed-capacity tuples. Slots are never removed:
- ``PositionSet`` reuses inactive slots (first inactive index wins),
- ``BoundedHistory`` drops index 0, shifts the rest down and writes the new
  event at the last index.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Generic, Iterator, Tuple, TypeVar

from ..core.errors import PositionCapacityExceeded, PositionNotFound
from ..core.fixed_point import I64, U32, U64, require_width
from .enums import PenaltyType


MAX_POSITIONS = 10
MAX_HISTORY = 10


@dataclass(frozen=True)
class StakePosition:
    """One slot of a user's position set."""

    pool_id: int = 0
    pool: str = ""  # pool record address
    lst_account: str = ""  # derivative holder key
    staked_amount: int = 0
    lst_tokens: int = 0
    last_reward_update: int = 0
    pending_rewards: int = 0
    stake_timestamp: int = 0
    lock_enabled: bool = False
    lock_expiry: int = 0
    auto_compound_enabled: bool = False
    compound_frequency_hours: int = 0
    min_compound_amount: int = 0
    last_compound_timestamp: int = 0
    compound_count: int = 0
    is_active: bool = False

    def __post_init__(self) -> None:
        for name in ("pool_id", "staked_amount", "lst_tokens", "pending_rewards", "min_compound_amount"):
            require_width(getattr(self, name), U64, name=name)
        for name in ("last_reward_update", "stake_timestamp", "lock_expiry", "last_compound_timestamp"):
            require_width(getattr(self, name), I64, name=name)
        require_width(self.compound_frequency_hours, U32, name="compound_frequency_hours")
        require_width(self.compound_count, U32, name="compound_count")

    def deactivated(self) -> "StakePosition":
        """Economically zeroed copy; pool identity is kept for inspection."""
        return replace(
            self,
            staked_amount=0,
            lst_tokens=0,
            pending_rewards=0,
            auto_compound_enabled=False,
            is_active=False,
        )


EMPTY_POSITION = StakePosition()


@dataclass(frozen=True)
class ClaimEvent:
    amount: int = 0
    timestamp: int = 0


@dataclass(frozen=True)
class PenaltyEvent:
    """Slashing/penalty record. Only the slashing subsystem writes these."""

    penalty_type: PenaltyType = PenaltyType.SLASH
    penalty_id: int = 0
    amount: int = 0
    timestamp: int = 0
    grace_period_end: int = 0
    is_resolved: bool = False
    resolution_timestamp: int = 0
    pool_id: int = 0
    user: str = ""
    validator: str = ""
    original_stake_amount: int = 0
    recovery_period: int = 0

    @property
    def is_recorded(self) -> bool:
        return self != EMPTY_PENALTY

    def is_open_slash_for(self, pool_id: int) -> bool:
        return (
            self.is_recorded
            and self.penalty_type is PenaltyType.SLASH
            and not self.is_resolved
            and self.pool_id == pool_id
        )


EMPTY_CLAIM = ClaimEvent()
EMPTY_PENALTY = PenaltyEvent()

E = TypeVar("E")


@dataclass(frozen=True)
class BoundedHistory(Generic[E]):
    entries: Tuple[E, ...]

    def __post_init__(self) -> None:
        if len(self.entries) != MAX_HISTORY:
            raise ValueError(f"history must hold exactly {MAX_HISTORY} entries, got {len(self.entries)}")

    @classmethod
    def empty(cls, factory: Callable[[], E]) -> "BoundedHistory[E]":
        return cls(tuple(factory() for _ in range(MAX_HISTORY)))

    def push(self, event: E) -> "BoundedHistory[E]":
        return BoundedHistory(self.entries[1:] + (event,))

    @property
    def latest(self) -> E:
        return self.entries[-1]

    def __iter__(self) -> Iterator[E]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def empty_claim_history() -> "BoundedHistory[ClaimEvent]":
    return BoundedHistory.empty(ClaimEvent)


def empty_penalty_history() -> "BoundedHistory[PenaltyEvent]":
    return BoundedHistory.empty(PenaltyEvent)


@dataclass(frozen=True)
class PositionSet:
    """Fixed array of position slots addressed by index."""

    slots: Tuple[StakePosition, ...] = field(default_factory=lambda: (EMPTY_POSITION,) * MAX_POSITIONS)

    def __post_init__(self) -> None:
        if len(self.slots) != MAX_POSITIONS:
            raise ValueError(f"position set must hold exactly {MAX_POSITIONS} slots, got {len(self.slots)}")

    @property
    def free_slot_bitmap(self) -> int:
        """Bit ``i`` is set when slot ``i`` is free for reuse."""
        bits = 0
        for i, pos in enumerate(self.slots):
            if not pos.is_active:
                bits |= 1 << i
        return bits

    @property
    def active_count(self) -> int:
        return sum(1 for pos in self.slots if pos.is_active)

    def active(self) -> Iterator[Tuple[int, StakePosition]]:
        for i, pos in enumerate(self.slots):
            if pos.is_active:
                yield i, pos

    def find_active(self, pool_id: int) -> int:
        for i, pos in enumerate(self.slots):
            if pos.is_active and pos.pool_id == pool_id:
                return i
        raise PositionNotFound(f"no active position for pool {pool_id}")

    def has_active(self, pool_id: int) -> bool:
        return any(pos.is_active and pos.pool_id == pool_id for pos in self.slots)

    def first_free_slot(self) -> int:
        bitmap = self.free_slot_bitmap
        if bitmap == 0:
            raise PositionCapacityExceeded(f"all {MAX_POSITIONS} position slots are active")
        return (bitmap & -bitmap).bit_length() - 1

    def replace_at(self, index: int, position: StakePosition) -> "PositionSet":
        if not 0 <= index < MAX_POSITIONS:
            raise IndexError(f"position index out of range: {index}")
        slots = list(self.slots)
        slots[index] = position
        return PositionSet(tuple(slots))

    def open(self, position: StakePosition) -> Tuple["PositionSet", int]:
        index = self.first_free_slot()
        return self.replace_at(index, replace(position, is_active=True)), index

    def close(self, index: int) -> "PositionSet":
        return self.replace_at(index, self.slots[index].deactivated())

    def __getitem__(self, index: int) -> StakePosition:
        return self.slots[index]
