"""Room grid geometry — positions, ranges, exits and room-name arithmetic.

The world is a lattice of 50x50 tile rooms named in the ``W1N1`` convention:
``W``/``E`` then the horizontal index, ``N``/``S`` then the vertical index.
``W0`` sits directly west of ``E0`` and ``N0`` directly north of ``S0``.
Tiles on row/column 0 and 49 are exit tiles leading into the neighbouring
room.

Ranges inside a room are Chebyshev distances (diagonal steps cost 1).
Positions in different rooms are infinitely far apart for range checks;
room-to-room proximity uses ``room_linear_distance`` instead.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum

ROOM_SIZE = 50
ROOM_CENTER = 25
MAX_COORD = ROOM_SIZE - 1

_ROOM_NAME_RE = re.compile(r"^([WE])(\d+)([NS])(\d+)$")


class ExitDirection(Enum):
    """Which side of a room an exit leads out of."""
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"


_DIRECTION_DELTAS: dict[ExitDirection, tuple[int, int]] = {
    ExitDirection.TOP: (0, -1),
    ExitDirection.RIGHT: (1, 0),
    ExitDirection.BOTTOM: (0, 1),
    ExitDirection.LEFT: (-1, 0),
}


@dataclass(frozen=True)
class RoomPosition:
    """A tile inside a named room."""

    room: str
    x: int
    y: int

    @classmethod
    def center(cls, room: str) -> RoomPosition:
        return cls(room, ROOM_CENTER, ROOM_CENTER)

    def range_to(self, other: RoomPosition) -> float:
        """Chebyshev distance, or ``math.inf`` across rooms."""
        if other.room != self.room:
            return math.inf
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def in_range_to(self, other: RoomPosition, distance: int) -> bool:
        return self.range_to(other) <= distance

    def is_near_to(self, other: RoomPosition) -> bool:
        return self.range_to(other) <= 1

    def on_edge(self, margin: int = 1) -> bool:
        """True within ``margin`` tiles of any room border."""
        return (
            self.x <= margin
            or self.y <= margin
            or self.x >= MAX_COORD - margin
            or self.y >= MAX_COORD - margin
        )

    def is_exit(self) -> bool:
        return self.on_edge(margin=0)

    def offset(self, dx: int, dy: int) -> RoomPosition:
        return RoomPosition(self.room, self.x + dx, self.y + dy)

    def clamped(self, low: int, high: int) -> RoomPosition:
        return RoomPosition(
            self.room,
            min(high, max(low, self.x)),
            min(high, max(low, self.y)),
        )

    def in_bounds(self) -> bool:
        return 0 <= self.x <= MAX_COORD and 0 <= self.y <= MAX_COORD

    def to_dict(self) -> dict:
        return {"room": self.room, "x": self.x, "y": self.y}

    def __str__(self) -> str:
        return f"[{self.room} {self.x},{self.y}]"


def parse_room_name(name: str) -> tuple[int, int] | None:
    """Map a ``W1N1``-style name to world coordinates, or None if malformed."""
    m = _ROOM_NAME_RE.match(name or "")
    if m is None:
        return None
    h_dir, h_num, v_dir, v_num = m.group(1), int(m.group(2)), m.group(3), int(m.group(4))
    wx = -h_num - 1 if h_dir == "W" else h_num
    wy = -v_num - 1 if v_dir == "N" else v_num
    return wx, wy


def format_room_name(wx: int, wy: int) -> str:
    h = f"W{-wx - 1}" if wx < 0 else f"E{wx}"
    v = f"N{-wy - 1}" if wy < 0 else f"S{wy}"
    return h + v


def room_linear_distance(a: str, b: str) -> float:
    """Rooms between ``a`` and ``b`` on the lattice (0 for the same room).

    Names that do not follow the lattice convention are only ever at
    distance 0 from themselves.
    """
    if a == b:
        return 0
    ca = parse_room_name(a)
    cb = parse_room_name(b)
    if ca is None or cb is None:
        return math.inf
    return max(abs(ca[0] - cb[0]), abs(ca[1] - cb[1]))


def rooms_adjacent(a: str, b: str) -> bool:
    """Same room or one room apart (diagonals included)."""
    return room_linear_distance(a, b) <= 1


def neighbour_room(name: str, direction: ExitDirection) -> str | None:
    coords = parse_room_name(name)
    if coords is None:
        return None
    dx, dy = _DIRECTION_DELTAS[direction]
    return format_room_name(coords[0] + dx, coords[1] + dy)


def direction_between(a: str, b: str) -> ExitDirection | None:
    """Exit side of ``a`` that leads into orthogonally adjacent room ``b``."""
    ca = parse_room_name(a)
    cb = parse_room_name(b)
    if ca is None or cb is None:
        return None
    delta = (cb[0] - ca[0], cb[1] - ca[1])
    for direction, d in _DIRECTION_DELTAS.items():
        if d == delta:
            return direction
    return None


def exit_tiles(room: str, direction: ExitDirection) -> list[RoomPosition]:
    """Candidate exit tiles on one side (corners excluded)."""
    span = range(1, MAX_COORD)
    if direction is ExitDirection.TOP:
        return [RoomPosition(room, x, 0) for x in span]
    if direction is ExitDirection.BOTTOM:
        return [RoomPosition(room, x, MAX_COORD) for x in span]
    if direction is ExitDirection.LEFT:
        return [RoomPosition(room, 0, y) for y in span]
    return [RoomPosition(room, MAX_COORD, y) for y in span]


def all_exit_tiles(room: str) -> list[RoomPosition]:
    tiles: list[RoomPosition] = []
    for direction in ExitDirection:
        tiles.extend(exit_tiles(room, direction))
    return tiles


def closest_by_range(origin: RoomPosition, candidates) -> object | None:
    """Candidate with the smallest range to ``origin``.

    Equal ranges are broken by straight-line distance, then by order.
    ``candidates`` may hold RoomPositions or objects exposing ``.position``.
    Candidates in other rooms are never chosen.
    """
    best = None
    best_key = (math.inf, math.inf)
    for c in candidates:
        pos = c if isinstance(c, RoomPosition) else c.position
        r = origin.range_to(pos)
        if r == math.inf:
            continue
        key = (r, (pos.x - origin.x) ** 2 + (pos.y - origin.y) ** 2)
        if key < best_key:
            best_key = key
            best = c
    return best
