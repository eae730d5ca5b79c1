"""Squad aggregate — membership, formation slots and shared tactical fields.

A Squad owns its member list and slot assignment.  Members are referenced by
unit id only; live Unit objects are looked up through the world each tick.

Slot invariant: ``set(slots.values()) == set(range(len(member_ids)))``.
Every membership change renumbers slots so there are never gaps.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


class SquadState(Enum):
    FORMING = "forming"        # gathering at rally point
    READY = "ready"            # formed, choosing an objective
    MOVING = "moving"          # travelling to target room in formation
    COMBAT = "combat"          # engaged
    RETREATING = "retreating"  # falling back


class RetreatReason(Enum):
    SAFE_MODE = "safe_mode"
    LOW_HEALTH = "low_health"


class Objective(Enum):
    """Why the squad is heading to its target room."""
    CONQUEST = "conquest"
    PROTECT_LOGISTICS = "protect_logistics"
    PATROL = "patrol"
    RETURN_HOME = "return_home"


def new_squad_id() -> str:
    return f"squad-{uuid.uuid4().hex[:8]}"


@dataclass
class Squad:
    """Up to four units acting under one state and one target."""

    squad_id: str
    rally_point: str | None
    created_at: int
    target_room: str | None = None
    launch_room: str | None = None
    member_ids: list[str] = field(default_factory=list)
    slots: dict[str, int] = field(default_factory=dict)
    state: SquadState = SquadState.FORMING
    objective: Objective | None = None
    current_target_id: str | None = None
    retreat_reason: RetreatReason | None = None
    fleeing_from_room: str | None = None
    resume_state: SquadState | None = None
    unresolved: bool = False

    # Per-tick guards
    last_evaluated_tick: int = -1
    last_merge_tick: int = -1
    last_swap_tick: int = -1

    # -- Membership ----------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self.member_ids)

    def add_member(self, unit_id: str) -> int:
        """Append a member and give it the next free slot."""
        if unit_id in self.slots:
            return self.slots[unit_id]
        self.member_ids.append(unit_id)
        slot = len(self.member_ids) - 1
        self.slots[unit_id] = slot
        return slot

    def remove_members(self, unit_ids) -> list[str]:
        """Drop members; survivors keep their relative slot order."""
        drop = set(unit_ids)
        gone = [uid for uid in self.member_ids if uid in drop]
        if not gone:
            return []
        self.member_ids = [uid for uid in self.member_ids if uid not in gone]
        for uid in gone:
            self.slots.pop(uid, None)
        by_slot = sorted(self.member_ids, key=lambda uid: self.slots.get(uid, 0))
        self.slots = {uid: i for i, uid in enumerate(by_slot)}
        return gone

    def renumber_by_join_order(self) -> None:
        self.slots = {uid: i for i, uid in enumerate(self.member_ids)}

    def slot_of(self, unit_id: str) -> int | None:
        return self.slots.get(unit_id)

    def leader_id(self, among=None) -> str | None:
        """Member holding the lowest slot, optionally only among ``among`` ids."""
        held = [uid for uid in self.slots if among is None or uid in among]
        if not held:
            return None
        return min(held, key=self.slots.__getitem__)

    def swap_slots(self, a: str, b: str) -> None:
        self.slots[a], self.slots[b] = self.slots[b], self.slots[a]

    def slots_contiguous(self) -> bool:
        return (set(self.slots) == set(self.member_ids)
                and sorted(self.slots.values()) == list(range(len(self.member_ids))))

    # -- Tactical ------------------------------------------------------------

    def age(self, tick: int) -> int:
        return tick - self.created_at

    def to_dict(self) -> dict:
        return {
            "squad_id": self.squad_id,
            "state": self.state.value,
            "members": list(self.member_ids),
            "slots": dict(self.slots),
            "rally_point": self.rally_point,
            "target_room": self.target_room,
            "objective": self.objective.value if self.objective else None,
            "current_target_id": self.current_target_id,
            "retreat_reason": self.retreat_reason.value if self.retreat_reason else None,
            "created_at": self.created_at,
            "unresolved": self.unresolved,
        }


@dataclass(frozen=True)
class SquadStatus:
    """External reporting snapshot of one squad."""
    squad_id: str
    state: SquadState
    member_count: int
    target_room: str | None
    avg_health: float
    unresolved: bool = False

    def to_dict(self) -> dict:
        return {
            "squad_id": self.squad_id,
            "state": self.state.value,
            "member_count": self.member_count,
            "target_room": self.target_room,
            "avg_health": round(self.avg_health, 3),
            "unresolved": self.unresolved,
        }
