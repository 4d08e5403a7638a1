"""
User ledger: one per user, holding the position set, aggregate totals and the
claim / penalty histories.

Totals are maintained by the caller at each mutation; ``open_position`` and
``close_position`` keep ``active_positions`` and the staked/derivative totals
in step with the slots they touch.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Tuple

from ..core.errors import PositionAlreadyExists
from ..core.fixed_point import I64, U64, U8, require_width
from .positions import (
    BoundedHistory,
    ClaimEvent,
    PenaltyEvent,
    PositionSet,
    StakePosition,
    empty_claim_history,
    empty_penalty_history,
)


@dataclass(frozen=True)
class UserLedger:
    owner: str
    global_config: str
    source_account: str = ""
    total_lst_balance: int = 0
    total_staked_amount: int = 0
    total_earned: int = 0
    total_claimed: int = 0
    pending_rewards: int = 0
    total_penalties: int = 0
    active_penalties: int = 0
    active_positions: int = 0
    is_paused: bool = False
    positions: PositionSet = field(default_factory=PositionSet)
    claim_history: BoundedHistory[ClaimEvent] = field(default_factory=empty_claim_history)
    penalty_history: BoundedHistory[PenaltyEvent] = field(default_factory=empty_penalty_history)
    creation_timestamp: int = 0
    last_update_timestamp: int = 0
    last_claim_timestamp: int = 0
    bump: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.owner, str) or not self.owner:
            raise ValueError("owner must be a non-empty string")
        for name in (
            "total_lst_balance",
            "total_staked_amount",
            "total_earned",
            "total_claimed",
            "pending_rewards",
            "total_penalties",
            "active_penalties",
        ):
            require_width(getattr(self, name), U64, name=name)
        require_width(self.active_positions, U8, name="active_positions")
        for name in ("creation_timestamp", "last_update_timestamp", "last_claim_timestamp"):
            require_width(getattr(self, name), I64, name=name)
        require_width(self.bump, U8, name="bump")

    @classmethod
    def new(cls, owner: str, global_config: str, *, now: int, bump: int = 0) -> "UserLedger":
        return cls(
            owner=owner,
            global_config=global_config,
            source_account=owner,
            creation_timestamp=now,
            last_update_timestamp=now,
            bump=bump,
        )

    def find_position(self, pool_id: int) -> Tuple[int, StakePosition]:
        index = self.positions.find_active(pool_id)
        return index, self.positions[index]

    def open_position(self, position: StakePosition, *, now: int) -> Tuple["UserLedger", int]:
        """Activate ``position`` in the first free slot.

        Raises:
            PositionAlreadyExists: An active position for the pool is already held.
            PositionCapacityExceeded: All slots are active.
        """
        if self.positions.has_active(position.pool_id):
            raise PositionAlreadyExists(f"active position for pool {position.pool_id} already exists")
        positions, index = self.positions.open(position)
        ledger = replace(
            self,
            positions=positions,
            active_positions=U8(self.active_positions).sat_add(1).value,
            total_staked_amount=U64(self.total_staked_amount).sat_add(position.staked_amount).value,
            total_lst_balance=U64(self.total_lst_balance).sat_add(position.lst_tokens).value,
            last_update_timestamp=now,
        )
        return ledger, index

    def with_position(self, index: int, position: StakePosition, *, now: int) -> "UserLedger":
        return replace(self, positions=self.positions.replace_at(index, position), last_update_timestamp=now)

    def close_position(self, index: int, *, now: int) -> "UserLedger":
        """Deactivate slot ``index``.

        Remaining principal and derivative tokens leave the totals; uncredited
        rewards move to the ledger-level ``pending_rewards``.
        """
        pos = self.positions[index]
        return replace(
            self,
            positions=self.positions.close(index),
            active_positions=U8(self.active_positions).sat_sub(1).value,
            total_staked_amount=U64(self.total_staked_amount).sat_sub(pos.staked_amount).value,
            total_lst_balance=U64(self.total_lst_balance).sat_sub(pos.lst_tokens).value,
            pending_rewards=U64(self.pending_rewards).sat_add(pos.pending_rewards).value,
            last_update_timestamp=now,
        )

    def push_claim(self, event: ClaimEvent) -> "UserLedger":
        return replace(self, claim_history=self.claim_history.push(event))

    def push_penalty(self, event: PenaltyEvent) -> "UserLedger":
        return replace(self, penalty_history=self.penalty_history.push(event))

    def has_open_slash(self, pool_id: int) -> bool:
        return any(ev.is_open_slash_for(pool_id) for ev in self.penalty_history)
