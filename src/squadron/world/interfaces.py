"""Collaborator interfaces consumed by the squad engine.

The engine never owns the world.  It asks three collaborators:

  WorldQuery        -- what is where (hostiles, terrain, safe mode, lookups)
  Router            -- which room to launch from, which exits lead onward
  MovementResolver  -- turns per-unit move intents into collision-free moves

Any object with matching methods satisfies these protocols; the sandbox in
``squadron.world.sandbox`` is one in-memory implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from squadron.squads.orders import MoveIntent
    from squadron.units.base import Structure, Unit
    from squadron.world.grid import ExitDirection, RoomPosition


class WorldQuery(Protocol):
    """Read-only view of the world for one tick."""

    def hostile_units_in(self, room: str) -> list[Unit]: ...

    def hostile_structures_in(self, room: str) -> list[Structure]: ...

    def room_has_active_safe_mode(self, room: str) -> bool: ...

    def terrain_is_passable(self, room: str, x: int, y: int) -> bool: ...

    def get_unit(self, unit_id: str) -> Unit | None: ...

    def get_object(self, object_id: str) -> Unit | Structure | None: ...

    def rally_anchor(self, room: str) -> RoomPosition | None:
        """Reference structure (own spawn, else controller) to form up near."""
        ...

    def endangered_logistics_rooms(self) -> list[str]:
        """Rooms holding friendly logistics units with hostiles present."""
        ...

    def remote_resource_rooms(self) -> list[str]: ...

    def owned_rooms(self) -> list[str]: ...

    def logistics_units_exist(self) -> bool: ...


class Router(Protocol):
    """Inter-room routing provided outside the engine."""

    def best_launch_room_for(self, target_room: str) -> str | None: ...

    def route_between(self, room_a: str, room_b: str) -> list[ExitDirection] | None:
        """Exit sides to take, one per room crossed; None when unreachable."""
        ...


class MovementResolver(Protocol):
    """Room-wide reconciliation of move intents.

    Receives at most one intent per unit per tick and returns each unit's
    realized tile.  No two units may end on the same tile and no unit may
    pass through impassable terrain.
    """

    def resolve(self, intents: Sequence[MoveIntent]) -> dict[str, RoomPosition]: ...
