"""World geometry and collaborator interfaces."""

from squadron.world.grid import (
    ExitDirection,
    MAX_COORD,
    ROOM_CENTER,
    ROOM_SIZE,
    RoomPosition,
    room_linear_distance,
    rooms_adjacent,
)

__all__ = [
    "ExitDirection",
    "MAX_COORD",
    "ROOM_CENTER",
    "ROOM_SIZE",
    "RoomPosition",
    "room_linear_distance",
    "rooms_adjacent",
]
