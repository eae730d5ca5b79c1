"""Squad health monitor — retreat triggers, position swaps, heal targeting.

Retreat and recovery compare the mean member health fraction against the
configured thresholds (0.3 / 0.8 by default).

Position swap (4-member squads only): walking the front slots (0, 1) in
slot order, the first front member below ``front_threshold`` is swapped
with the healthiest back member (slots 2, 3) if that member's fraction
exceeds it by more than ``margin``.  One swap per squad per tick.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from squadron.squads.orders import OrderType, issue
from squadron.units.base import Capability

if TYPE_CHECKING:
    from squadron.squads.orders import Order
    from squadron.squads.squad import Squad
    from squadron.units.base import Unit

FRONT_SLOTS = (0, 1)
BACK_SLOTS = (2, 3)


def average_health_fraction(members: list[Unit]) -> float:
    """Mean of health/max_health; 0.0 for an empty roster."""
    if not members:
        return 0.0
    return sum(m.health_fraction for m in members) / len(members)


def should_retreat(members: list[Unit], threshold: float = 0.3) -> bool:
    return bool(members) and average_health_fraction(members) < threshold


def has_recovered(members: list[Unit], threshold: float = 0.8) -> bool:
    return bool(members) and average_health_fraction(members) > threshold


def plan_position_swap(
    squad: Squad,
    members: list[Unit],
    front_threshold: float = 0.5,
    margin: float = 0.2,
) -> tuple[Unit, Unit] | None:
    """(front, back) pair to swap, or None."""
    if len(members) != 4:
        return None

    by_slot = {squad.slot_of(m.unit_id): m for m in members}
    front = [by_slot[s] for s in FRONT_SLOTS if s in by_slot]
    back = [by_slot[s] for s in BACK_SLOTS if s in by_slot]
    if not front or not back:
        return None

    healthiest_back = max(back, key=lambda m: m.health_fraction)
    for f in front:
        if f.health_fraction >= front_threshold:
            continue
        if healthiest_back.health_fraction > f.health_fraction + margin:
            return f, healthiest_back
    return None


def apply_position_swap(
    squad: Squad,
    members: list[Unit],
    tick: int,
    front_threshold: float = 0.5,
    margin: float = 0.2,
) -> tuple[Unit, Unit] | None:
    """Swap slots for the first qualifying pair, at most once per tick."""
    if squad.last_swap_tick == tick:
        return None
    pair = plan_position_swap(squad, members, front_threshold, margin)
    if pair is None:
        return None
    front, back = pair
    squad.swap_slots(front.unit_id, back.unit_id)
    squad.last_swap_tick = tick
    return pair


def most_damaged(members: list[Unit]) -> Unit | None:
    """Living member with the lowest health fraction among the damaged."""
    damaged = [m for m in members if m.alive and m.damaged]
    if not damaged:
        return None
    return min(damaged, key=lambda m: m.health_fraction)


def heal_squadmates(unit: Unit, members: list[Unit], heal_range: int = 3) -> Order | None:
    """Issue a heal on the most damaged squadmate within reach."""
    if not unit.has(Capability.HEAL):
        return None

    patient = most_damaged(members)
    if patient is None:
        if unit.damaged:
            return issue(unit, OrderType.HEAL, unit.unit_id)
        return None

    r = unit.position.range_to(patient.position)
    if r <= 1:
        return issue(unit, OrderType.HEAL, patient.unit_id)
    if r <= heal_range:
        return issue(unit, OrderType.RANGED_HEAL, patient.unit_id)
    return None
