"""Shared target selection for squad focus fire.

Priority tiers (lower value first):

  HEALER      hostile units able to heal
  ATTACKER    hostile units with melee or ranged attack
  SPAWN       hostile spawns
  TOWER       hostile towers
  EXTENSION   hostile extensions
  UNIT        any other hostile unit
  STRUCTURE   any other attackable hostile structure

Within a tier the candidate nearest the querying unit wins (then the lower
id, so the choice is deterministic).  The chosen id is written to
``squad.current_target_id``; every member asking later in the same tick
gets the cached target back as long as it is still valid.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

from loguru import logger

from squadron.units.base import Structure, StructureType, Unit, object_id

if TYPE_CHECKING:
    from squadron.squads.squad import Squad
    from squadron.world.interfaces import WorldQuery


class TargetPriority(IntEnum):
    HEALER = 0
    ATTACKER = 1
    SPAWN = 2
    TOWER = 3
    EXTENSION = 4
    UNIT = 5
    STRUCTURE = 6


_STRUCTURE_TIERS: dict[StructureType, TargetPriority] = {
    StructureType.SPAWN: TargetPriority.SPAWN,
    StructureType.TOWER: TargetPriority.TOWER,
    StructureType.EXTENSION: TargetPriority.EXTENSION,
}


def classify(obj: Unit | Structure) -> TargetPriority:
    if isinstance(obj, Unit):
        if obj.is_healer:
            return TargetPriority.HEALER
        if obj.is_attacker:
            return TargetPriority.ATTACKER
        return TargetPriority.UNIT
    return _STRUCTURE_TIERS.get(obj.structure_type, TargetPriority.STRUCTURE)


def is_valid_target(obj: Unit | Structure | None) -> bool:
    """Exists and, when it has health, still has some."""
    if obj is None:
        return False
    health = getattr(obj, "health", None)
    return health is None or health > 0


def _candidates(units: list[Unit], structures: list[Structure]) -> list[Unit | Structure]:
    out: list[Unit | Structure] = [u for u in units if is_valid_target(u)]
    out.extend(s for s in structures if s.attackable and is_valid_target(s))
    return out


def pick_target(
    origin_unit: Unit,
    units: list[Unit],
    structures: list[Structure],
) -> Unit | Structure | None:
    """Best target by tier, then range to ``origin_unit``, then id."""
    best = None
    best_key = None
    for c in _candidates(units, structures):
        key = (classify(c), origin_unit.position.range_to(c.position), object_id(c))
        if best_key is None or key < best_key:
            best, best_key = c, key
    return best


class TargetSelector:
    """Resolves and caches the squad's shared focus-fire target."""

    def __init__(self, world: WorldQuery) -> None:
        self._world = world

    def validate(self, squad: Squad) -> Unit | Structure | None:
        """Return the cached target if still valid, clearing it otherwise."""
        if squad.current_target_id is None:
            return None
        target = self._world.get_object(squad.current_target_id)
        if not is_valid_target(target):
            logger.debug(f"Squad {squad.squad_id} target {squad.current_target_id} gone, clearing")
            squad.current_target_id = None
            return None
        return target

    def resolve(self, squad: Squad, unit: Unit) -> Unit | Structure | None:
        """Shared target for ``unit``'s squad, selecting one if needed."""
        target = self.validate(squad)
        if target is not None:
            return target

        room = unit.room
        target = pick_target(
            unit,
            self._world.hostile_units_in(room),
            self._world.hostile_structures_in(room),
        )
        if target is not None:
            squad.current_target_id = object_id(target)
            logger.debug(
                f"Squad {squad.squad_id} focusing {squad.current_target_id} "
                f"({classify(target).name.lower()})"
            )
        return target
