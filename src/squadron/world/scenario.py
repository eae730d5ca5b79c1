"""SquadScenario — JSON description of a sandbox world for squad runs.

A scenario lists rooms (terrain, ownership, safe mode), friendly and
hostile units, and hostile structures.  Friendly units with a
``destination`` are handed to the engine as newly available units when the
scenario starts.

Usage:
    scenario = load_squad_scenario("scenarios/two_room_raid.json")
    world = build_world(scenario)
    engine = SquadEngine(world, world, GreedyResolver(world))
    for unit_id, room in scenario.assignments().items():
        engine.assign_unit(unit_id, room)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from squadron.units.base import Capability, Structure, StructureType, Unit
from squadron.world.grid import RoomPosition
from squadron.world.sandbox import SandboxWorld


@dataclass
class RoomSpec:
    """One known room."""

    name: str
    owned: bool = False
    remote: bool = False
    safe_mode: bool = False
    anchor: tuple[int, int] | None = None
    walls: list[tuple[int, int]] = field(default_factory=list)
    wall_rects: list[tuple[int, int, int, int]] = field(default_factory=list)


@dataclass
class UnitSpec:
    unit_id: str
    room: str
    x: int
    y: int
    max_health: int = 100
    health: int | None = None
    capabilities: list[str] = field(default_factory=list)
    hostile: bool = False
    role: str = ""
    destination: str | None = None


@dataclass
class StructureSpec:
    structure_id: str
    structure_type: str
    room: str
    x: int
    y: int
    health: int | None = None
    max_health: int | None = None


@dataclass
class SquadScenario:
    """Complete sandbox scenario definition."""

    scenario_id: str
    name: str
    description: str
    rooms: list[RoomSpec]
    units: list[UnitSpec] = field(default_factory=list)
    structures: list[StructureSpec] = field(default_factory=list)
    ticks: int = 100
    seed: int | None = None
    tags: list[str] = field(default_factory=list)

    def assignments(self) -> dict[str, str | None]:
        """unit_id -> destination room for every friendly unit."""
        return {u.unit_id: u.destination for u in self.units if not u.hostile}

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "name": self.name,
            "description": self.description,
            "ticks": self.ticks,
            "seed": self.seed,
            "tags": self.tags,
            "rooms": [
                {
                    "name": r.name,
                    "owned": r.owned,
                    "remote": r.remote,
                    "safe_mode": r.safe_mode,
                    **({"anchor": list(r.anchor)} if r.anchor else {}),
                    "walls": [list(w) for w in r.walls],
                    "wall_rects": [list(w) for w in r.wall_rects],
                }
                for r in self.rooms
            ],
            "units": [
                {
                    "id": u.unit_id,
                    "room": u.room,
                    "x": u.x,
                    "y": u.y,
                    "max_health": u.max_health,
                    **({"health": u.health} if u.health is not None else {}),
                    "capabilities": list(u.capabilities),
                    "hostile": u.hostile,
                    "role": u.role,
                    **({"destination": u.destination} if u.destination else {}),
                }
                for u in self.units
            ],
            "structures": [
                {
                    "id": s.structure_id,
                    "type": s.structure_type,
                    "room": s.room,
                    "x": s.x,
                    "y": s.y,
                    "health": s.health,
                    "max_health": s.max_health,
                }
                for s in self.structures
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SquadScenario:
        rooms = []
        for r in data["rooms"]:
            anchor = r.get("anchor")
            rooms.append(RoomSpec(
                name=r["name"],
                owned=r.get("owned", False),
                remote=r.get("remote", False),
                safe_mode=r.get("safe_mode", False),
                anchor=(int(anchor[0]), int(anchor[1])) if anchor else None,
                walls=[(int(w[0]), int(w[1])) for w in r.get("walls", [])],
                wall_rects=[tuple(int(v) for v in w) for w in r.get("wall_rects", [])],
            ))

        units = [
            UnitSpec(
                unit_id=u["id"],
                room=u["room"],
                x=int(u["x"]),
                y=int(u["y"]),
                max_health=u.get("max_health", 100),
                health=u.get("health"),
                capabilities=list(u.get("capabilities", [])),
                hostile=u.get("hostile", False),
                role=u.get("role", ""),
                destination=u.get("destination"),
            )
            for u in data.get("units", [])
        ]

        structures = [
            StructureSpec(
                structure_id=s["id"],
                structure_type=s["type"],
                room=s["room"],
                x=int(s["x"]),
                y=int(s["y"]),
                health=s.get("health"),
                max_health=s.get("max_health"),
            )
            for s in data.get("structures", [])
        ]

        return cls(
            scenario_id=data["scenario_id"],
            name=data["name"],
            description=data.get("description", ""),
            rooms=rooms,
            units=units,
            structures=structures,
            ticks=data.get("ticks", 100),
            seed=data.get("seed"),
            tags=data.get("tags", []),
        )


def load_squad_scenario(path: str) -> SquadScenario:
    """Load a SquadScenario from a JSON file.

    Raises:
        FileNotFoundError: If path does not exist.
        json.JSONDecodeError: If file is not valid JSON.
        KeyError/ValueError: If required fields are missing or unknown
            capability/structure names are used.
    """
    with open(path) as f:
        data = json.load(f)
    return SquadScenario.from_dict(data)


def build_world(scenario: SquadScenario) -> SandboxWorld:
    """Populate a fresh SandboxWorld from ``scenario``."""
    world = SandboxWorld()
    for r in scenario.rooms:
        anchor = RoomPosition(r.name, *r.anchor) if r.anchor else None
        world.add_room(
            r.name,
            walls=r.walls,
            owned=r.owned,
            remote=r.remote,
            safe_mode=r.safe_mode,
            anchor=anchor,
        )
        for x0, y0, x1, y1 in r.wall_rects:
            world.add_wall_rect(r.name, x0, y0, x1, y1)

    for u in scenario.units:
        world.add_unit(Unit(
            unit_id=u.unit_id,
            position=RoomPosition(u.room, u.x, u.y),
            health=u.health if u.health is not None else u.max_health,
            max_health=u.max_health,
            capabilities=frozenset(Capability(c) for c in u.capabilities),
            hostile=u.hostile,
            role=u.role,
        ))

    for s in scenario.structures:
        world.add_structure(Structure(
            structure_id=s.structure_id,
            structure_type=StructureType(s.structure_type),
            position=RoomPosition(s.room, s.x, s.y),
            health=s.health,
            max_health=s.max_health,
        ))
    return world
