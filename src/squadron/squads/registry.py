"""SquadRegistry — the owning store of all squads.

Architecture
------------
The registry maps squad id -> Squad and is the only shared mutable
structure in the engine.  Units point back at their squad by id
(``unit.tactical.squad_id``) and are resolved through ``squad_of()``.
All mutations (create, join, merge, delete) apply immediately so units
processed later in the same tick see them.

Assignment:
  A unit with a destination joins the first FORMING squad (creation order)
  heading to the same room with a free slot, or founds a new squad whose
  rally point comes from the router's best launch room.

Merging:
  Squads with 1-3 live members look for another such squad whose combined
  size fits, that has a member in the same or an adjacent room, and whose
  target room is equal or unset on one side.  The larger absorbs the
  smaller (the asking squad absorbs on ties).  One merge per squad per tick.

Cleanup:
  Periodically drops dead members, empty squads, and squads stuck in
  FORMING past ``stale_forming_ticks``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from loguru import logger

from app.config import Settings, settings as default_settings
from squadron.squads.squad import Objective, Squad, SquadState, new_squad_id
from squadron.world.grid import rooms_adjacent

if TYPE_CHECKING:
    from squadron.comms.event_bus import EventBus
    from squadron.units.base import Unit
    from squadron.world.interfaces import Router, WorldQuery


class UnknownSquadError(KeyError):
    """Raised when a squad id is required but not registered."""


class UnknownUnitError(KeyError):
    """Raised when a unit id names no friendly unit in the world."""


class SquadRegistry:
    """Owning store of squads with assignment, merge and cleanup logic."""

    def __init__(
        self,
        world: WorldQuery,
        router: Router,
        settings: Settings | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._world = world
        self._router = router
        self._settings = settings or default_settings
        self._event_bus = event_bus
        self._squads: dict[str, Squad] = {}
        # unit_id -> tick of the last assignment that lacked a destination
        self._unassigned: dict[str, int] = {}

    # -- Lookup --------------------------------------------------------------

    def __iter__(self) -> Iterator[Squad]:
        return iter(list(self._squads.values()))

    def __len__(self) -> int:
        return len(self._squads)

    def __contains__(self, squad_id: object) -> bool:
        return squad_id in self._squads

    def get(self, squad_id: str | None) -> Squad | None:
        if squad_id is None:
            return None
        return self._squads.get(squad_id)

    def require(self, squad_id: str) -> Squad:
        squad = self._squads.get(squad_id)
        if squad is None:
            raise UnknownSquadError(squad_id)
        return squad

    def squad_of(self, unit: Unit) -> Squad | None:
        """The unit's squad, clearing a dangling back-reference."""
        squad = self.get(unit.tactical.squad_id)
        if squad is None or unit.unit_id not in squad.slots:
            unit.tactical.squad_id = None
            return None
        return squad

    def live_members(self, squad: Squad) -> list[Unit]:
        """Members that still exist and have health, in join order."""
        out: list[Unit] = []
        for uid in squad.member_ids:
            u = self._world.get_unit(uid)
            if u is not None and u.alive:
                out.append(u)
        return out

    @property
    def unassigned(self) -> dict[str, int]:
        """unit_id -> tick of its last assignment attempt without a destination."""
        return dict(self._unassigned)

    # -- Assignment ----------------------------------------------------------

    def assign_unit(self, unit: Unit, destination_room: str | None, tick: int) -> str | None:
        """Put ``unit`` in a squad heading to ``destination_room``."""
        existing = self.squad_of(unit)
        if existing is not None:
            return existing.squad_id

        if not destination_room:
            if unit.unit_id not in self._unassigned:
                logger.warning(f"{unit.unit_id} has no destination room, cannot assign to squad")
            self._unassigned[unit.unit_id] = tick
            return None
        self._unassigned.pop(unit.unit_id, None)

        max_size = self._settings.max_squad_size
        for squad in self._squads.values():
            if squad.state is not SquadState.FORMING or squad.target_room != destination_room:
                continue
            self._prune_dead(squad)
            if squad.size >= max_size:
                continue
            slot = squad.add_member(unit.unit_id)
            unit.tactical.squad_id = squad.squad_id
            logger.info(f"{unit.unit_id} joined squad {squad.squad_id} as position {slot}")
            self._publish("squad_joined", {
                "squad_id": squad.squad_id, "unit_id": unit.unit_id, "slot": slot,
            })
            return squad.squad_id

        rally = self._router.best_launch_room_for(destination_room) or unit.room
        squad = Squad(
            squad_id=new_squad_id(),
            rally_point=rally,
            created_at=tick,
            target_room=destination_room,
            launch_room=unit.room,
            objective=Objective.CONQUEST,
        )
        squad.add_member(unit.unit_id)
        self._squads[squad.squad_id] = squad
        unit.tactical.squad_id = squad.squad_id
        logger.info(
            f"Created squad {squad.squad_id} for {unit.unit_id} targeting "
            f"{destination_room}, rally at {rally}"
        )
        self._publish("squad_created", {
            "squad_id": squad.squad_id, "unit_id": unit.unit_id,
            "target_room": destination_room, "rally_point": rally,
        })
        return squad.squad_id

    # -- Merging -------------------------------------------------------------

    def try_merge(self, squad: Squad, tick: int) -> Squad | None:
        """Merge ``squad`` with the first compatible under-strength squad.

        Returns the surviving squad, or None when nothing merged.
        """
        if squad.squad_id not in self._squads or squad.last_merge_tick == tick:
            return None
        max_size = self._settings.max_squad_size
        members = self.live_members(squad)
        if not 0 < len(members) < max_size:
            return None

        for other in list(self._squads.values()):
            if other is squad or other.last_merge_tick == tick:
                continue
            other_members = self.live_members(other)
            if not 0 < len(other_members) < max_size:
                continue
            if len(members) + len(other_members) > max_size:
                continue
            if not self._close_enough(members, other_members):
                continue
            if squad.target_room and other.target_room and squad.target_room != other.target_room:
                continue

            if len(other_members) > len(members):
                absorber, absorbed = other, squad
            else:
                absorber, absorbed = squad, other
            self._absorb(absorber, absorbed, tick)
            return absorber
        return None

    @staticmethod
    def _close_enough(a: list[Unit], b: list[Unit]) -> bool:
        return any(rooms_adjacent(ua.room, ub.room) for ua in a for ub in b)

    def _absorb(self, absorber: Squad, absorbed: Squad, tick: int) -> None:
        self._prune_dead(absorber)
        incoming = self.live_members(absorbed)
        for u in incoming:
            absorber.member_ids.append(u.unit_id)
            u.tactical.squad_id = absorber.squad_id
        absorber.renumber_by_join_order()

        if not absorber.target_room and absorbed.target_room:
            absorber.target_room = absorbed.target_room
            absorber.objective = absorbed.objective

        del self._squads[absorbed.squad_id]
        absorber.last_merge_tick = tick
        absorbed.last_merge_tick = tick
        logger.info(
            f"Merging squad {absorbed.squad_id} ({len(incoming)} members) into "
            f"{absorber.squad_id}, now {absorber.size} members"
        )
        self._publish("squad_merged", {
            "squad_id": absorber.squad_id,
            "absorbed_id": absorbed.squad_id,
            "members": list(absorber.member_ids),
        })

    # -- Cleanup -------------------------------------------------------------

    def cleanup(self, tick: int) -> list[str]:
        """Drop dead members, empty squads and stale forming squads."""
        removed: list[str] = []
        stale_after = self._settings.stale_forming_ticks
        for squad in list(self._squads.values()):
            self._prune_dead(squad)
            if not squad.member_ids:
                self.remove(squad.squad_id, reason="empty")
                removed.append(squad.squad_id)
            elif squad.state is SquadState.FORMING and squad.age(tick) > stale_after:
                self.remove(squad.squad_id, reason="stale")
                removed.append(squad.squad_id)
        return removed

    def remove(self, squad_id: str, reason: str = "removed") -> Squad:
        squad = self._squads.pop(squad_id, None)
        if squad is None:
            raise UnknownSquadError(squad_id)
        for uid in squad.member_ids:
            u = self._world.get_unit(uid)
            if u is not None and u.tactical.squad_id == squad_id:
                u.tactical.squad_id = None
        logger.info(f"Cleaned up squad {squad_id} ({reason})")
        self._publish("squad_removed", {"squad_id": squad_id, "reason": reason})
        return squad

    def _prune_dead(self, squad: Squad) -> list[str]:
        live = {u.unit_id for u in self.live_members(squad)}
        dead = [uid for uid in squad.member_ids if uid not in live]
        if dead:
            squad.remove_members(dead)
            logger.debug(f"Squad {squad.squad_id} lost {len(dead)} members")
        return dead

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)
