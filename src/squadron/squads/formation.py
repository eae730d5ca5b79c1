"""Quad formation — static slot offsets around the squad leader.

    slot 0  slot 1        (0,0) (1,0)
    slot 2  slot 3        (0,1) (1,1)

The leader (slot 0) stands on its own tile.  Each other member's desired
tile is ``leader + QUAD_OFFSETS[slot % 4]``, clamped away from the room
edges.  When that tile is a wall, the nearest passable tile in the 3x3
neighbourhood around it is used instead; when none is passable the member
holds (``None``).

This is a lookup table, not a path search, so it is recomputed every tick.
"""

from __future__ import annotations

from typing import Callable

from squadron.world.grid import MAX_COORD, RoomPosition

QUAD_OFFSETS: tuple[tuple[int, int], ...] = (
    (0, 0),   # leader
    (1, 0),   # right
    (0, 1),   # below
    (1, 1),   # diagonal
)

# passable(room, x, y) -> bool
PassableFn = Callable[[str, int, int], bool]


def formation_offset(slot: int) -> tuple[int, int]:
    return QUAD_OFFSETS[slot % len(QUAD_OFFSETS)]


def desired_position(
    leader_pos: RoomPosition,
    slot: int,
    passable: PassableFn,
    member_pos: RoomPosition | None = None,
    edge_margin: int = 2,
) -> RoomPosition | None:
    """Tile the member in ``slot`` should occupy, or None if blocked in.

    Args:
        leader_pos: current position of the slot-0 member
        slot: the member's slot index
        passable: terrain predicate
        member_pos: the member's own position, used to pick the nearest
            fallback tile; defaults to the computed tile itself
        edge_margin: minimum distance kept from the room border
    """
    dx, dy = formation_offset(slot)
    desired = leader_pos.offset(dx, dy).clamped(edge_margin, MAX_COORD - edge_margin)

    if passable(desired.room, desired.x, desired.y):
        return desired

    origin = member_pos if member_pos is not None and member_pos.room == desired.room else desired
    best: RoomPosition | None = None
    best_range = None
    for ny in (-1, 0, 1):
        for nx in (-1, 0, 1):
            x = desired.x + nx
            y = desired.y + ny
            if not (1 <= x <= MAX_COORD - 1 and 1 <= y <= MAX_COORD - 1):
                continue
            if not passable(desired.room, x, y):
                continue
            candidate = RoomPosition(desired.room, x, y)
            r = origin.range_to(candidate)
            if best_range is None or r < best_range:
                best, best_range = candidate, r
    return best


def formation_positions(
    leader_pos: RoomPosition,
    slots: dict[str, int],
    passable: PassableFn,
    edge_margin: int = 2,
) -> dict[str, RoomPosition | None]:
    """Desired tile for every member id in ``slots``."""
    return {
        uid: desired_position(leader_pos, slot, passable, edge_margin=edge_margin)
        for uid, slot in slots.items()
    }
