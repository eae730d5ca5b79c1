"""Orders and move intents emitted by squad handlers.

A handler never moves a unit or applies damage itself.  It records what the
unit wants this tick on ``unit.tactical``:

  - zero or more ``Order``s (attack, heal, ...) for the combat layer
  - at most one ``MoveIntent`` for the movement resolver

A later intent for the same unit in the same tick replaces the earlier one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from squadron.units.base import Unit
    from squadron.world.grid import RoomPosition


class OrderType(Enum):
    ATTACK = "attack"
    RANGED_ATTACK = "ranged_attack"
    RANGED_MASS_ATTACK = "ranged_mass_attack"
    HEAL = "heal"
    RANGED_HEAL = "ranged_heal"


@dataclass(frozen=True)
class Order:
    type: OrderType
    target_id: str | None = None

    def to_dict(self) -> dict:
        return {"type": self.type.value, "target_id": self.target_id}


@dataclass(frozen=True)
class MoveIntent:
    """Where a unit wants to go.

    ``goal`` may be far away (even in another room); ``range`` is how close
    is close enough.  ``reuse_path`` is how many ticks a cached path may be
    reused (0 = recompute every tick).  With ``flee`` set the unit wants to
    get *at least* ``range`` away from ``goal``.
    """
    unit_id: str
    goal: RoomPosition
    range: int = 0
    reuse_path: int = 5
    avoid_edges: bool = False
    flee: bool = False
    max_rooms: int | None = None

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "goal": self.goal.to_dict(),
            "range": self.range,
            "reuse_path": self.reuse_path,
            "avoid_edges": self.avoid_edges,
            "flee": self.flee,
        }


def issue(unit: Unit, order_type: OrderType, target_id: str | None = None) -> Order:
    """Append an order to the unit's tactical state and return it."""
    order = Order(order_type, target_id)
    unit.tactical.orders.append(order)
    return order


def move(unit: Unit, goal: RoomPosition, label: str | None = None, **kwargs) -> MoveIntent:
    """Record a move intent (replacing any earlier one this tick)."""
    intent = MoveIntent(unit.unit_id, goal, **kwargs)
    unit.tactical.intent = intent
    if label is not None:
        unit.tactical.label = label
    return intent


def say(unit: Unit, label: str) -> None:
    unit.tactical.label = label
