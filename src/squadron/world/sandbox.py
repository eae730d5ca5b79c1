"""SandboxWorld — in-memory grid world for scenarios, tests and the API.

Implements the three collaborator protocols the squad engine consumes:

  SandboxWorld    WorldQuery + Router over a set of known rooms
  GreedyResolver  MovementResolver taking one step per unit per tick

Terrain is one ``numpy`` bool mask per room, indexed ``[y, x]``, where True
marks a wall.  Rooms that were never added are unknown: routing never
enters them and their terrain counts as open.

The sandbox also owns a tiny combat model (``apply_orders``) so scenario
runs can close the loop: the engine emits orders and intents, the sandbox
applies damage, heals and moves, and the next tick sees the result.
Damage values follow one body part of each kind.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Iterable, Sequence

import numpy as np
from loguru import logger

from squadron.squads.orders import OrderType
from squadron.units.base import Structure, StructureType, Unit
from squadron.world.grid import (
    MAX_COORD,
    ROOM_SIZE,
    ExitDirection,
    RoomPosition,
    direction_between,
    exit_tiles,
    neighbour_room,
    room_linear_distance,
)

if TYPE_CHECKING:
    from squadron.squads.engine import TickReport
    from squadron.squads.orders import MoveIntent, Order

ATTACK_DAMAGE = 30
RANGED_DAMAGE = 10
HEAL_AMOUNT = 12
RANGED_HEAL_AMOUNT = 4

# Mass attack damage falls off with range
_MASS_ATTACK_FALLOFF = {0: 10, 1: 10, 2: 4, 3: 1}

_OPPOSITE = {
    ExitDirection.TOP: ExitDirection.BOTTOM,
    ExitDirection.BOTTOM: ExitDirection.TOP,
    ExitDirection.LEFT: ExitDirection.RIGHT,
    ExitDirection.RIGHT: ExitDirection.LEFT,
}

_WALKABLE_STRUCTURES = frozenset({StructureType.ROAD, StructureType.CONTAINER, StructureType.RAMPART})

_STEPS = [(dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dx, dy) != (0, 0)]


class SandboxWorld:
    """Known rooms, units and structures held in plain dicts."""

    def __init__(self) -> None:
        self._terrain: dict[str, np.ndarray] = {}
        self._owned: set[str] = set()
        self._remote: list[str] = []
        self._safe_mode: set[str] = set()
        self._anchors: dict[str, RoomPosition] = {}
        self._units: dict[str, Unit] = {}
        self._structures: dict[str, Structure] = {}

    # -- Construction --------------------------------------------------------

    def add_room(
        self,
        name: str,
        walls: Iterable[tuple[int, int]] = (),
        owned: bool = False,
        remote: bool = False,
        safe_mode: bool = False,
        anchor: RoomPosition | None = None,
    ) -> np.ndarray:
        mask = np.zeros((ROOM_SIZE, ROOM_SIZE), dtype=bool)
        for x, y in walls:
            mask[y, x] = True
        self._terrain[name] = mask
        if owned:
            self._owned.add(name)
        if remote and name not in self._remote:
            self._remote.append(name)
        if safe_mode:
            self._safe_mode.add(name)
        if anchor is not None:
            self._anchors[name] = anchor
        return mask

    def add_wall_rect(self, room: str, x0: int, y0: int, x1: int, y1: int) -> None:
        """Mark the inclusive rectangle as wall."""
        self._terrain[room][min(y0, y1):max(y0, y1) + 1, min(x0, x1):max(x0, x1) + 1] = True

    def add_unit(self, unit: Unit) -> Unit:
        self._units[unit.unit_id] = unit
        return unit

    def add_structure(self, structure: Structure) -> Structure:
        self._structures[structure.structure_id] = structure
        return structure

    def remove_unit(self, unit_id: str) -> Unit | None:
        return self._units.pop(unit_id, None)

    def set_safe_mode(self, room: str, active: bool = True) -> None:
        if active:
            self._safe_mode.add(room)
        else:
            self._safe_mode.discard(room)

    @property
    def rooms(self) -> list[str]:
        return sorted(self._terrain)

    @property
    def units(self) -> list[Unit]:
        return list(self._units.values())

    @property
    def structures(self) -> list[Structure]:
        return list(self._structures.values())

    def friendly_units(self) -> list[Unit]:
        return [u for u in self._units.values() if not u.hostile and u.alive]

    # -- WorldQuery ----------------------------------------------------------

    def hostile_units_in(self, room: str) -> list[Unit]:
        return [u for u in self._units.values() if u.hostile and u.alive and u.room == room]

    def hostile_structures_in(self, room: str) -> list[Structure]:
        return [
            s for s in self._structures.values()
            if s.room == room and (s.health is None or s.health > 0)
        ]

    def room_has_active_safe_mode(self, room: str) -> bool:
        return room in self._safe_mode

    def terrain_is_passable(self, room: str, x: int, y: int) -> bool:
        if not (0 <= x <= MAX_COORD and 0 <= y <= MAX_COORD):
            return False
        mask = self._terrain.get(room)
        if mask is None:
            return True
        return not bool(mask[y, x])

    def get_unit(self, unit_id: str) -> Unit | None:
        return self._units.get(unit_id)

    def get_object(self, object_id: str) -> Unit | Structure | None:
        return self._units.get(object_id) or self._structures.get(object_id)

    def rally_anchor(self, room: str) -> RoomPosition | None:
        return self._anchors.get(room)

    def endangered_logistics_rooms(self) -> list[str]:
        rooms = {u.room for u in self.friendly_units() if u.is_logistics}
        return sorted(r for r in rooms if any(h.is_threat for h in self.hostile_units_in(r)))

    def remote_resource_rooms(self) -> list[str]:
        return list(self._remote)

    def owned_rooms(self) -> list[str]:
        return sorted(self._owned)

    def logistics_units_exist(self) -> bool:
        return any(u.is_logistics for u in self.friendly_units())

    # -- Router --------------------------------------------------------------

    def best_launch_room_for(self, target_room: str) -> str | None:
        """Nearest owned room to ``target_room`` (name breaks ties)."""
        if not self._owned:
            return None
        return min(self._owned, key=lambda r: (room_linear_distance(r, target_room), r))

    def route_between(self, room_a: str, room_b: str) -> list[ExitDirection] | None:
        """Breadth-first route through known rooms; None when unreachable."""
        if room_a == room_b:
            return []
        if room_a not in self._terrain or room_b not in self._terrain:
            return None
        previous: dict[str, str | None] = {room_a: None}
        frontier = deque([room_a])
        while frontier:
            room = frontier.popleft()
            if room == room_b:
                break
            for direction in ExitDirection:
                nxt = neighbour_room(room, direction)
                if nxt is None or nxt in previous or nxt not in self._terrain:
                    continue
                if not self._exit_open(room, direction):
                    continue
                previous[nxt] = room
                frontier.append(nxt)
        if room_b not in previous:
            return None

        path = [room_b]
        while previous[path[-1]] is not None:
            path.append(previous[path[-1]])
        path.reverse()
        return [direction_between(a, b) for a, b in zip(path, path[1:])]

    def _exit_open(self, room: str, direction: ExitDirection) -> bool:
        return any(self.terrain_is_passable(t.room, t.x, t.y) for t in exit_tiles(room, direction))

    # -- Applying a tick -----------------------------------------------------

    def apply_tick(self, report: TickReport) -> None:
        """Orders resolve against pre-move positions, then units move."""
        self.apply_orders(report.orders)
        self.apply_moves(report.moves)

    def apply_moves(self, moves: dict[str, RoomPosition]) -> None:
        for uid, pos in moves.items():
            unit = self._units.get(uid)
            if unit is not None:
                unit.position = pos

    def apply_orders(self, orders: dict[str, list[Order]]) -> None:
        """Resolve attack and heal orders issued by squad members."""
        for uid, unit_orders in orders.items():
            actor = self._units.get(uid)
            if actor is None or not actor.alive:
                continue
            for order in unit_orders:
                self._apply_order(actor, order)
        for sid in [s for s, st in self._structures.items() if st.health is not None and st.health <= 0]:
            logger.debug(f"Structure {sid} destroyed")
            del self._structures[sid]

    def _apply_order(self, actor: Unit, order: Order) -> None:
        if order.type is OrderType.RANGED_MASS_ATTACK:
            for h in self.hostile_units_in(actor.room):
                dmg = _MASS_ATTACK_FALLOFF.get(int(actor.position.range_to(h.position)), 0)
                h.health = max(0, h.health - dmg)
            for st in self.hostile_structures_in(actor.room):
                if st.health is None or not st.attackable or not st.counts_for_mass_attack:
                    continue
                st.health = max(0, st.health - _MASS_ATTACK_FALLOFF.get(
                    int(actor.position.range_to(st.position)), 0))
            return

        target = self.get_object(order.target_id) if order.target_id else None
        if target is None:
            return
        if order.type is OrderType.ATTACK:
            self._damage(target, ATTACK_DAMAGE)
        elif order.type is OrderType.RANGED_ATTACK:
            self._damage(target, RANGED_DAMAGE)
        elif order.type in (OrderType.HEAL, OrderType.RANGED_HEAL) and isinstance(target, Unit):
            amount = HEAL_AMOUNT if order.type is OrderType.HEAL else RANGED_HEAL_AMOUNT
            target.health = min(target.max_health, target.health + amount)

    @staticmethod
    def _damage(target: Unit | Structure, amount: int) -> None:
        if isinstance(target, Structure):
            if target.health is None or not target.attackable:
                return
        target.health = max(0, target.health - amount)

    def damage_unit(self, unit_id: str, amount: int) -> None:
        unit = self._units[unit_id]
        unit.health = max(0, unit.health - amount)


class GreedyResolver:
    """One-step-per-tick movement resolver over a ``SandboxWorld``.

    Intents are resolved in unit-id order.  Each unit takes the single
    neighbouring step that most reduces its Chebyshev range to the current
    waypoint (or, when fleeing, most increases it), never onto a wall or an
    occupied tile.  A unit standing on the exit tile its route leaves by is
    carried into the neighbouring room.
    """

    def __init__(self, world: SandboxWorld) -> None:
        self._world = world

    def resolve(self, intents: Sequence[MoveIntent]) -> dict[str, RoomPosition]:
        occupied = {u.position for u in self._world.units if u.alive}
        occupied.update(
            s.position for s in self._world.structures
            if s.structure_type not in _WALKABLE_STRUCTURES
        )
        moves: dict[str, RoomPosition] = {}
        for intent in sorted(intents, key=lambda i: i.unit_id):
            unit = self._world.get_unit(intent.unit_id)
            if unit is None or not unit.alive:
                continue
            current = unit.position
            nxt = self._next_tile(current, intent, occupied)
            if nxt != current:
                occupied.discard(current)
                occupied.add(nxt)
            moves[intent.unit_id] = nxt
        return moves

    def _next_tile(self, current: RoomPosition, intent: MoveIntent, occupied: set[RoomPosition]) -> RoomPosition:
        goal = intent.goal
        if intent.flee:
            if current.range_to(goal) >= intent.range:
                return current
            return self._best_step(current, goal, occupied, intent.avoid_edges, flee=True)

        if goal.room == current.room:
            if current == goal and current.is_exit():
                crossing = self._cross(current, _exit_side(current))
                if crossing is not None and crossing not in occupied:
                    return crossing
                return current
            if current.range_to(goal) <= intent.range:
                return current
            return self._best_step(current, goal, occupied, intent.avoid_edges)

        route = self._world.route_between(current.room, goal.room)
        if not route:
            return current
        direction = route[0]
        crossing = self._cross(current, direction)
        if crossing is not None:
            return crossing if crossing not in occupied else current
        exits = [
            t for t in exit_tiles(current.room, direction)
            if self._world.terrain_is_passable(t.room, t.x, t.y)
        ]
        if not exits:
            return current
        waypoint = min(exits, key=lambda t: (current.range_to(t), _sq(current, t)))
        return self._best_step(current, waypoint, occupied, avoid_edges=False)

    @staticmethod
    def _cross(pos: RoomPosition, direction: ExitDirection) -> RoomPosition | None:
        """Tile in the next room when ``pos`` is on the ``direction`` exit."""
        on_side = {
            ExitDirection.TOP: pos.y == 0,
            ExitDirection.BOTTOM: pos.y == MAX_COORD,
            ExitDirection.LEFT: pos.x == 0,
            ExitDirection.RIGHT: pos.x == MAX_COORD,
        }[direction]
        if not on_side:
            return None
        nxt = neighbour_room(pos.room, direction)
        if nxt is None:
            return None
        entry = _OPPOSITE[direction]
        if entry is ExitDirection.TOP:
            return RoomPosition(nxt, pos.x, 0)
        if entry is ExitDirection.BOTTOM:
            return RoomPosition(nxt, pos.x, MAX_COORD)
        if entry is ExitDirection.LEFT:
            return RoomPosition(nxt, 0, pos.y)
        return RoomPosition(nxt, MAX_COORD, pos.y)

    def _best_step(
        self,
        current: RoomPosition,
        goal: RoomPosition,
        occupied: set[RoomPosition],
        avoid_edges: bool,
        flee: bool = False,
    ) -> RoomPosition:
        best = current
        best_key = (current.range_to(goal), _sq(current, goal))
        if flee:
            best_key = (-best_key[0], -best_key[1])
        for dx, dy in _STEPS:
            cand = current.offset(dx, dy)
            if not cand.in_bounds():
                continue
            if not self._world.terrain_is_passable(cand.room, cand.x, cand.y) or cand in occupied:
                continue
            if avoid_edges and cand.on_edge(margin=1) and cand.range_to(goal) > 1:
                continue
            r, sq = cand.range_to(goal), _sq(cand, goal)
            key = (-r, -sq) if flee else (r, sq)
            if key < best_key:
                best, best_key = cand, key
        return best


def _exit_side(pos: RoomPosition) -> ExitDirection:
    if pos.y == 0:
        return ExitDirection.TOP
    if pos.y == MAX_COORD:
        return ExitDirection.BOTTOM
    if pos.x == 0:
        return ExitDirection.LEFT
    return ExitDirection.RIGHT


def _sq(a: RoomPosition, b: RoomPosition) -> int:
    return (a.x - b.x) ** 2 + (a.y - b.y) ** 2
