"""Base classes for units and structures seen by the squad engine.

Capability     -- enum of combat-relevant body capabilities
StructureType  -- enum of structure kinds a squad may meet
TacticalState  -- typed per-unit annotation written by the engine
Unit           -- a mobile agent (friendly squad member or hostile)
Structure      -- a static, possibly attackable object

Units and structures are created and destroyed by the world.  The engine
only reads them and writes ``Unit.tactical``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from squadron.world.grid import RoomPosition

if TYPE_CHECKING:
    from squadron.squads.orders import MoveIntent, Order


class Capability(Enum):
    """What a unit's body can do in a fight."""
    ATTACK = "attack"
    RANGED_ATTACK = "ranged_attack"
    HEAL = "heal"
    WORK = "work"


# Any of these makes a hostile unit a threat.  WORK counts because
# work-capable units can dismantle structures.
THREAT_CAPABILITIES = frozenset({
    Capability.ATTACK,
    Capability.RANGED_ATTACK,
    Capability.HEAL,
    Capability.WORK,
})

# Roles whose presence makes a room worth protecting.
LOGISTICS_ROLES = frozenset({"remote_harvester", "remote_carry", "remote_reserver"})


class StructureType(Enum):
    SPAWN = "spawn"
    TOWER = "tower"
    EXTENSION = "extension"
    CONTROLLER = "controller"
    ROAD = "road"
    CONTAINER = "container"
    WALL = "wall"
    RAMPART = "rampart"
    KEEPER_LAIR = "keeper_lair"
    POWER_BANK = "power_bank"
    POWER_SPAWN = "power_spawn"
    PORTAL = "portal"
    INVADER_CORE = "invader_core"
    OTHER = "other"


UNATTACKABLE_STRUCTURES = frozenset({
    StructureType.CONTROLLER,
    StructureType.KEEPER_LAIR,
    StructureType.POWER_BANK,
    StructureType.POWER_SPAWN,
    StructureType.PORTAL,
    StructureType.INVADER_CORE,
})

# Ignored when counting mass-attack candidates
_MASS_ATTACK_IGNORED = frozenset({StructureType.ROAD, StructureType.CONTAINER})


@dataclass
class TacticalState:
    """Transient per-unit tactical annotation owned by the engine."""
    squad_id: str | None = None
    orders: list[Order] = field(default_factory=list)
    intent: MoveIntent | None = None
    label: str | None = None
    last_tick: int = -1

    def reset_for_tick(self, tick: int) -> None:
        self.orders = []
        self.intent = None
        self.label = None
        self.last_tick = tick


@dataclass
class Unit:
    """A mobile agent on the grid."""

    unit_id: str
    position: RoomPosition
    health: int
    max_health: int
    capabilities: frozenset[Capability] = frozenset()
    hostile: bool = False
    role: str = ""
    tactical: TacticalState = field(default_factory=TacticalState)

    @property
    def room(self) -> str:
        return self.position.room

    @property
    def alive(self) -> bool:
        return self.health > 0

    @property
    def health_fraction(self) -> float:
        if self.max_health <= 0:
            return 0.0
        return self.health / self.max_health

    @property
    def damaged(self) -> bool:
        return self.health < self.max_health

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @property
    def is_threat(self) -> bool:
        return bool(self.capabilities & THREAT_CAPABILITIES)

    @property
    def is_healer(self) -> bool:
        return Capability.HEAL in self.capabilities

    @property
    def is_attacker(self) -> bool:
        return (Capability.ATTACK in self.capabilities
                or Capability.RANGED_ATTACK in self.capabilities)

    @property
    def is_logistics(self) -> bool:
        return self.role in LOGISTICS_ROLES

    def __repr__(self) -> str:
        return f"<Unit {self.unit_id} {self.position} {self.health}/{self.max_health}>"


@dataclass
class Structure:
    """A static object; ``health`` is None for indestructible structures."""

    structure_id: str
    structure_type: StructureType
    position: RoomPosition
    health: int | None = None
    max_health: int | None = None

    @property
    def room(self) -> str:
        return self.position.room

    @property
    def attackable(self) -> bool:
        return self.structure_type not in UNATTACKABLE_STRUCTURES

    @property
    def counts_for_mass_attack(self) -> bool:
        return self.structure_type not in _MASS_ATTACK_IGNORED

    def __repr__(self) -> str:
        return f"<Structure {self.structure_id} {self.structure_type.value} {self.position}>"


def object_id(obj: Unit | Structure) -> str:
    """Identifier of a unit or structure."""
    if isinstance(obj, Unit):
        return obj.unit_id
    return obj.structure_id
