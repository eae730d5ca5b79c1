"""SquadEngine — per-tick driver for every squad in the registry.

Architecture
------------
One call to ``tick()`` advances all squads by one simulation tick:

  1. For each squad (registry snapshot order) and each of its live members
     not yet processed this tick:
       - reset the member's ``TacticalState``
       - ``state_machine.evaluate(squad)`` (once per squad per tick; may
         merge the squad into another)
       - ``state_machine.act(unit, squad)`` (handler for the current state)
     A second pass catches members that were merged into a squad already
     visited earlier in the tick, so each live member acts exactly once.
  2. The collected move intents go to the ``MovementResolver`` in one batch.
  3. Every ``cleanup_interval`` ticks the registry drops dead members,
     empty squads and stale forming squads.
  4. Every ``status_report_interval`` ticks a status line per squad is
     logged and published as ``squad_status``.

``tick()`` is synchronous and safe to call directly (tests, scenario
runner).  ``start()`` runs it on a daemon thread at ``tick_interval``
seconds for live use behind the status API.  A lock serialises ticks with
status reads from other threads.
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from app.config import Settings, settings as default_settings
from squadron.comms.event_bus import EventBus
from squadron.squads import health
from squadron.squads.registry import SquadRegistry, UnknownUnitError
from squadron.squads.safe_mode import SafeModeLedger
from squadron.squads.squad import SquadStatus
from squadron.squads.state_machine import SquadStateMachine, TickContext
from squadron.squads.targeting import TargetSelector

if TYPE_CHECKING:
    from squadron.squads.orders import MoveIntent, Order
    from squadron.squads.squad import Squad
    from squadron.units.base import Unit
    from squadron.world.grid import RoomPosition
    from squadron.world.interfaces import MovementResolver, Router, WorldQuery


@dataclass
class TickReport:
    """What happened during one tick."""
    tick: int
    acted: list[str] = field(default_factory=list)
    orders: dict[str, list[Order]] = field(default_factory=dict)
    intents: dict[str, MoveIntent] = field(default_factory=dict)
    moves: dict[str, RoomPosition] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)


class SquadEngine:
    """Owns the registry and state machine and advances them tick by tick."""

    def __init__(
        self,
        world: WorldQuery,
        router: Router,
        resolver: MovementResolver | None = None,
        settings: Settings | None = None,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._world = world
        self._router = router
        self._resolver = resolver
        self._settings = settings or default_settings
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._rng = rng or random.Random()

        self.ledger = SafeModeLedger(self._settings.safe_mode_memory_ticks)
        self.registry = SquadRegistry(world, router, self._settings, self._event_bus)
        self.selector = TargetSelector(world)
        self.state_machine = SquadStateMachine(self.registry, self.selector, self._event_bus)

        self._tick = 0
        self._lock = threading.RLock()
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def world(self) -> WorldQuery:
        return self._world

    # -- Assignment ----------------------------------------------------------

    def assign_unit(self, unit_id: str, destination_room: str | None) -> str | None:
        """Put a newly available unit into a squad; returns the squad id.

        Raises UnknownUnitError when ``unit_id`` is not a friendly unit.
        """
        with self._lock:
            unit = self._world.get_unit(unit_id)
            if unit is None or unit.hostile:
                raise UnknownUnitError(unit_id)
            return self.registry.assign_unit(unit, destination_room, self._tick)

    # -- Tick ----------------------------------------------------------------

    def tick(self) -> TickReport:
        """Advance every squad by one tick."""
        with self._lock:
            self._tick += 1
            t = self._tick
            ctx = TickContext(
                tick=t,
                world=self._world,
                router=self._router,
                settings=self._settings,
                ledger=self.ledger,
                rng=self._rng,
            )
            report = TickReport(tick=t)
            processed: dict[str, Unit] = {}

            self._run_pass(ctx, processed)
            # Members merged into an already visited squad
            self._run_pass(ctx, processed)

            for uid, unit in processed.items():
                report.acted.append(uid)
                if unit.tactical.orders:
                    report.orders[uid] = list(unit.tactical.orders)
                if unit.tactical.intent is not None:
                    report.intents[uid] = unit.tactical.intent
                if unit.tactical.label:
                    report.labels[uid] = unit.tactical.label

            if self._resolver is not None and report.intents:
                report.moves = self._resolver.resolve(list(report.intents.values()))

            if t % self._settings.cleanup_interval == 0:
                report.removed = self.registry.cleanup(t)
            if t % self._settings.status_report_interval == 0:
                self.report_status()
            return report

    def _run_pass(self, ctx: TickContext, processed: dict[str, Unit]) -> None:
        for squad in self.registry:
            if squad.squad_id not in self.registry:
                continue
            for unit in self.registry.live_members(squad):
                if unit.unit_id in processed:
                    continue
                current = self.registry.squad_of(unit)
                if current is None:
                    continue
                unit.tactical.reset_for_tick(ctx.tick)
                current = self.state_machine.evaluate(current, ctx)
                self.state_machine.act(unit, current, ctx)
                processed[unit.unit_id] = unit

    # -- Status --------------------------------------------------------------

    def _status_of(self, squad: Squad) -> SquadStatus:
        members = self.registry.live_members(squad)
        return SquadStatus(
            squad_id=squad.squad_id,
            state=squad.state,
            member_count=len(members),
            target_room=squad.target_room,
            avg_health=health.average_health_fraction(members),
            unresolved=squad.unresolved,
        )

    def squad_status(self, squad_id: str) -> SquadStatus | None:
        """Status snapshot of one squad; None if unknown."""
        with self._lock:
            squad = self.registry.get(squad_id)
            return self._status_of(squad) if squad is not None else None

    def all_status(self) -> list[SquadStatus]:
        with self._lock:
            return [self._status_of(s) for s in self.registry]

    def report_status(self) -> list[SquadStatus]:
        """Log one line per squad and publish ``squad_status`` events."""
        statuses = self.all_status()
        if not statuses:
            return statuses
        logger.info(f"=== SQUAD STATUS (tick {self._tick}) ===")
        for st in statuses:
            logger.info(
                f"Squad {st.squad_id}: {st.state.value}, {st.member_count} members, "
                f"{st.avg_health * 100:.0f}% health, target: {st.target_room or 'none'}"
                + (" [unresolved]" if st.unresolved else "")
            )
            self._event_bus.publish("squad_status", {"tick": self._tick, **st.to_dict()})
        return statuses

    # -- Lifecycle -----------------------------------------------------------

    def start(self, interval: float | None = None) -> None:
        if self._running:
            return
        self._running = True
        period = interval if interval is not None else self._settings.tick_interval
        self._thread = threading.Thread(
            target=self._tick_loop, args=(period,), name="squad-tick", daemon=True
        )
        self._thread.start()
        logger.info(f"Squad engine started ({period}s per tick)")

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        logger.info("Squad engine stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _tick_loop(self, period: float) -> None:
        while self._running:
            time.sleep(period)
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"Squad tick {self._tick} failed: {e}")
