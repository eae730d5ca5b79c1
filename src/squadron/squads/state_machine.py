"""SquadStateMachine — per-tick squad evaluation and per-member handlers.

Architecture
------------
Each tick the engine calls, for every live squad member:

  1. ``evaluate(squad, ctx)`` — squad-level bookkeeping, at most once per
     squad per tick: merge attempt, FORMING -> READY check, threat sweep
     (any state but COMBAT/RETREATING -> COMBAT), low-health retreat, and
     area-cleared exit from COMBAT.
  2. ``act(unit, squad, ctx)`` — runs the handler for the squad's *current*
     state on that member.  Handlers read and conditionally write the shared
     squad fields (state, target room, current target) with check-then-set
     writes, so the outcome does not depend on member order.  A handler may
     hand over to the next state's handler in the same tick; the chain is
     bounded by ``_MAX_DELEGATIONS``.

States (closed enum, every one must have a handler):

  FORMING    -> READY       all members at rally, full size or timed out
  READY      -> MOVING      an objective room is resolved
  MOVING     -> COMBAT      threat in the current room
  COMBAT     -> RETREATING  safe mode (reason SAFE_MODE) or avg health < 0.3
  COMBAT     -> MOVING/READY  no hostiles left around the squad
  COMBAT     -> FORMING     same, when combat interrupted forming
  RETREATING -> READY       escaped safe mode, or avg health > 0.8

Handlers never move units.  They record orders and a move intent on
``unit.tactical`` for the combat layer and the movement resolver.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from loguru import logger

from squadron.squads import health
from squadron.squads.formation import desired_position
from squadron.squads.orders import OrderType, issue, move, say
from squadron.squads.squad import Objective, RetreatReason, SquadState
from squadron.units.base import Capability, Structure, object_id
from squadron.world.grid import (
    RoomPosition,
    all_exit_tiles,
    closest_by_range,
    exit_tiles,
    room_linear_distance,
)

if TYPE_CHECKING:
    from app.config import Settings
    from squadron.comms.event_bus import EventBus
    from squadron.squads.registry import SquadRegistry
    from squadron.squads.safe_mode import SafeModeLedger
    from squadron.squads.squad import Squad
    from squadron.squads.targeting import TargetSelector
    from squadron.units.base import Unit
    from squadron.world.interfaces import Router, WorldQuery

# Longest same-tick handler chain, e.g. COMBAT -> RETREATING -> READY
_MAX_DELEGATIONS = 3

# Patrolling units drift back toward the room centre beyond this range
_PATROL_RADIUS = 10

# Move goals that only need to reach a room use this range around its centre
_ROOM_ARRIVAL_RANGE = 20

_CENTER_WAIT_RANGE = 10
_RETREAT_CENTER_RANGE = 5
_EDGE_CLEAR_RANGE = 15


class HandlerTableError(RuntimeError):
    """Raised when a squad state has no handler."""


@dataclass
class TickContext:
    """Everything a handler may consult during one tick."""
    tick: int
    world: WorldQuery
    router: Router
    settings: Settings
    ledger: SafeModeLedger
    rng: random.Random = field(default_factory=random.Random)


Handler = Callable[["Unit", "Squad", "list[Unit]", TickContext, int], None]


class SquadStateMachine:
    """Dispatches squad members to state handlers."""

    def __init__(
        self,
        registry: SquadRegistry,
        selector: TargetSelector,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._selector = selector
        self._event_bus = event_bus
        self._handlers = self._build_handlers()
        missing = set(SquadState) - set(self._handlers)
        if missing:
            raise HandlerTableError(f"no handler for {sorted(s.value for s in missing)}")

    def _build_handlers(self) -> dict[SquadState, Handler]:
        return {
            SquadState.FORMING: self._handle_forming,
            SquadState.READY: self._handle_ready,
            SquadState.MOVING: self._handle_moving,
            SquadState.COMBAT: self._handle_combat,
            SquadState.RETREATING: self._handle_retreating,
        }

    # -- Transitions ---------------------------------------------------------

    def transition(
        self,
        squad: Squad,
        new_state: SquadState,
        ctx: TickContext,
        reason: RetreatReason | None = None,
    ) -> bool:
        """Move ``squad`` to ``new_state``; no-op when already there."""
        if squad.state is new_state and (reason is None or squad.retreat_reason is reason):
            return False
        previous = squad.state
        squad.state = new_state
        if new_state is SquadState.RETREATING:
            squad.retreat_reason = reason
        if new_state is SquadState.COMBAT:
            squad.resume_state = previous
        elif previous is SquadState.COMBAT:
            squad.current_target_id = None
            squad.resume_state = None

        suffix = f" ({reason.value})" if reason is not None else ""
        logger.info(f"Squad {squad.squad_id} {previous.value} -> {new_state.value}{suffix}")
        self._publish("squad_state_changed", {
            "squad_id": squad.squad_id,
            "from": previous.value,
            "to": new_state.value,
            "reason": reason.value if reason else None,
            "tick": ctx.tick,
        })
        return True

    # -- Squad-level evaluation ---------------------------------------------

    def evaluate(self, squad: Squad, ctx: TickContext) -> Squad:
        """Once-per-tick squad bookkeeping.  Returns the squad to act under
        (the survivor if this squad was merged away)."""
        if squad.last_evaluated_tick == ctx.tick:
            return squad
        s = ctx.settings

        members = self._registry.live_members(squad)
        if 0 < len(members) < s.max_squad_size:
            survivor = self._registry.try_merge(squad, ctx.tick)
            if survivor is not None:
                squad = survivor
                members = self._registry.live_members(squad)
        squad.last_evaluated_tick = ctx.tick
        if not members:
            return squad

        if squad.state is SquadState.FORMING:
            self._check_formed(squad, members, ctx)

        threatened = any(self._threats_in(room, ctx) for room in {m.room for m in members})
        if threatened and squad.state not in (SquadState.COMBAT, SquadState.RETREATING):
            logger.info(f"Squad {squad.squad_id} entering COMBAT - hostiles detected")
            self.transition(squad, SquadState.COMBAT, ctx)

        if squad.state is SquadState.COMBAT:
            avg = health.average_health_fraction(members)
            if avg < s.retreat_health_threshold:
                logger.info(f"Squad {squad.squad_id} RETREATING (avg health: {avg * 100:.0f}%)")
                self.transition(squad, SquadState.RETREATING, ctx, RetreatReason.LOW_HEALTH)
            elif not threatened and self._area_clear(members, ctx):
                # A squad caught while gathering still has to pass the forming gates
                if squad.resume_state is SquadState.FORMING:
                    next_state = SquadState.FORMING
                else:
                    next_state = SquadState.MOVING if squad.target_room else SquadState.READY
                logger.info(f"Squad {squad.squad_id} area clear, resuming {next_state.value}")
                self.transition(squad, next_state, ctx)
        return squad

    def _check_formed(self, squad: Squad, members: list[Unit], ctx: TickContext) -> None:
        s = ctx.settings
        at_rally = [m for m in members if m.room == squad.rally_point]
        if len(at_rally) != len(members):
            if ctx.tick % s.status_report_interval == 0:
                logger.debug(
                    f"Squad {squad.squad_id} forming: {len(at_rally)}/{len(members)} "
                    f"at rally, need {s.min_squad_size} total"
                )
            return
        if len(members) >= s.min_squad_size:
            logger.info(
                f"Squad {squad.squad_id} is READY with {len(members)} members "
                f"at rally point {squad.rally_point}"
            )
            self.transition(squad, SquadState.READY, ctx)
        elif squad.age(ctx.tick) > s.forming_timeout_ticks and len(members) >= 2:
            logger.info(f"Squad {squad.squad_id} timing out - proceeding with {len(members)} members")
            self.transition(squad, SquadState.READY, ctx)

    # -- Per-member dispatch -------------------------------------------------

    def act(self, unit: Unit, squad: Squad, ctx: TickContext) -> None:
        members = self._registry.live_members(squad)
        self._dispatch(unit, squad, members, ctx, 0)

    def _dispatch(self, unit, squad, members, ctx, hops: int) -> None:
        self._handlers[squad.state](unit, squad, members, ctx, hops)

    def _delegate(self, unit, squad, members, ctx, hops: int) -> None:
        if hops >= _MAX_DELEGATIONS:
            say(unit, "HOLD")
            return
        self._dispatch(unit, squad, members, ctx, hops + 1)

    # -- FORMING -------------------------------------------------------------

    def _handle_forming(self, unit, squad, members, ctx, hops) -> None:
        rally = squad.rally_point
        if rally is None:
            squad.unresolved = True
            say(unit, "LOST")
            return
        if unit.room != rally:
            move(unit, RoomPosition.center(rally), "RALLY", range=_ROOM_ARRIVAL_RANGE)
            return

        anchor = ctx.world.rally_anchor(rally)
        anchor_range = ctx.settings.rally_anchor_range
        if anchor is not None and not unit.position.in_range_to(anchor, anchor_range):
            move(unit, anchor, "GROUP", range=anchor_range - 1)
            return
        self._hold_formation(unit, squad, members, ctx, idle_label=f"WAIT {len(members)}")
        health.heal_squadmates(unit, members, ctx.settings.heal_range)

    # -- READY ---------------------------------------------------------------

    def _handle_ready(self, unit, squad, members, ctx, hops) -> None:
        if ctx.ledger.is_flagged(squad.target_room, ctx.tick):
            logger.info(
                f"Squad {squad.squad_id} target {squad.target_room} is in safe mode "
                f"- finding new objective"
            )
            squad.target_room = None
            squad.objective = None

        if squad.objective in (Objective.PROTECT_LOGISTICS, Objective.PATROL) or not squad.target_room:
            self._resolve_objective(unit, squad, ctx)

        if squad.target_room:
            squad.unresolved = False
            self.transition(squad, SquadState.MOVING, ctx)
            self._delegate(unit, squad, members, ctx, hops)
            return

        rally = squad.rally_point
        if rally is None:
            if not squad.unresolved:
                logger.warning(f"Squad {squad.squad_id} has no objective and no rally point")
            squad.unresolved = True
            say(unit, "LOST")
            health.heal_squadmates(unit, members, ctx.settings.heal_range)
            return
        if unit.room != rally:
            move(unit, RoomPosition.center(rally), "HOME", range=_ROOM_ARRIVAL_RANGE)
        else:
            self._hold_formation(unit, squad, members, ctx, idle_label="READY")
        health.heal_squadmates(unit, members, ctx.settings.heal_range)

    def _resolve_objective(self, unit, squad, ctx) -> None:
        """protect logistics > patrol remote room > return home."""
        world = ctx.world

        def usable(room: str) -> bool:
            return not ctx.ledger.is_flagged(room, ctx.tick)

        endangered = [r for r in world.endangered_logistics_rooms() if usable(r)]
        if endangered:
            if squad.target_room != endangered[0]:
                logger.info(f"Squad {squad.squad_id} protecting logistics in {endangered[0]}")
            squad.target_room = endangered[0]
            squad.objective = Objective.PROTECT_LOGISTICS
            return

        patrol_rooms = [r for r in world.remote_resource_rooms() if usable(r)]
        if patrol_rooms:
            squad.target_room = ctx.rng.choice(patrol_rooms)
            squad.objective = Objective.PATROL
            logger.info(f"Squad {squad.squad_id} patrolling remote room {squad.target_room}")
            return

        home = squad.rally_point or squad.launch_room
        if home and home != unit.room:
            squad.target_room = home
            squad.objective = Objective.RETURN_HOME
            logger.info(f"Squad {squad.squad_id} no objectives found, returning to {home}")
            return

        squad.target_room = None
        squad.objective = None
        if home == unit.room or unit.room in world.owned_rooms():
            return

        # Stranded away from any known home: adopt the nearest owned room
        nearest = self._nearest_home(unit.room, ctx)
        if nearest is not None:
            logger.info(f"Squad {squad.squad_id} found home base: {nearest}")
            squad.target_room = nearest
            squad.rally_point = nearest
            squad.objective = Objective.RETURN_HOME
        elif not squad.unresolved:
            logger.warning(f"Squad {squad.squad_id} has no valid home base, staying in {unit.room}")
            squad.unresolved = True

    @staticmethod
    def _nearest_home(room: str, ctx: TickContext) -> str | None:
        limit = ctx.settings.home_search_distance
        options = [
            (room_linear_distance(room, r), r)
            for r in ctx.world.owned_rooms()
            if r != room and room_linear_distance(room, r) <= limit
        ]
        return min(options)[1] if options else None

    # -- MOVING --------------------------------------------------------------

    def _handle_moving(self, unit, squad, members, ctx, hops) -> None:
        threats = self._threats_in(unit.room, ctx)
        if threats:
            logger.info(
                f"Squad {squad.squad_id} encountering {len(threats)} threats in "
                f"{unit.room} - engaging"
            )
            self.transition(squad, SquadState.COMBAT, ctx)
            self._delegate(unit, squad, members, ctx, hops)
            return

        target = squad.target_room
        if target and ctx.ledger.is_flagged(target, ctx.tick):
            logger.info(
                f"Squad {squad.squad_id} aborting move to {target} - safe mode for "
                f"{ctx.ledger.remaining(target, ctx.tick)} more ticks"
            )
            squad.target_room = None
            target = None
        if not target:
            self.transition(squad, SquadState.READY, ctx)
            self._delegate(unit, squad, members, ctx, hops)
            return

        if unit.room == target:
            if ctx.world.hostile_units_in(target):
                self.transition(squad, SquadState.COMBAT, ctx)
                self._delegate(unit, squad, members, ctx, hops)
                return
            if squad.objective is Objective.RETURN_HOME or target == squad.rally_point:
                logger.info(f"Squad {squad.squad_id} reached home base {target}")
                squad.target_room = None
                squad.objective = None
                self.transition(squad, SquadState.READY, ctx)
                self._delegate(unit, squad, members, ctx, hops)
                return
            center = RoomPosition.center(target)
            if not unit.position.in_range_to(center, _PATROL_RADIUS):
                move(unit, center, "PATROL", range=_PATROL_RADIUS)
            else:
                say(unit, "PATROL")
        else:
            self._travel(unit, squad, members, target, ctx)

        self._fire_at_nearest(unit, ctx)
        health.heal_squadmates(unit, members, ctx.settings.heal_range)

    def _travel(self, unit, squad, members, target: str, ctx: TickContext) -> None:
        leader = self._leader(squad, members)
        if not self._together(unit, members, ctx):
            if unit is not leader and leader.room != unit.room:
                move(unit, RoomPosition.center(leader.room), "REGROUP", range=_ROOM_ARRIVAL_RANGE)
                return
            if unit is leader:
                center = RoomPosition.center(unit.room)
                if not unit.position.in_range_to(center, _CENTER_WAIT_RANGE):
                    move(unit, center, "WAIT", range=_CENTER_WAIT_RANGE)
                else:
                    say(unit, "WAIT")
                return

        if unit is leader:
            self._lead(unit, squad, target, ctx)
            return

        pos = self._formation_tile(unit, squad, members, ctx)
        if pos is not None and pos != unit.position:
            move(unit, pos, "FORM")
        elif not unit.position.is_near_to(leader.position):
            move(unit, leader.position, "FOLLOW", range=1)

    def _lead(self, unit, squad, target: str, ctx: TickContext) -> None:
        route = ctx.router.route_between(unit.room, target)
        if not route:
            if not squad.unresolved:
                logger.warning(f"Squad {squad.squad_id} has no route {unit.room} -> {target}")
            squad.unresolved = True
            say(unit, "NO ROUTE")
            return
        squad.unresolved = False
        exits = [
            t for t in exit_tiles(unit.room, route[0])
            if ctx.world.terrain_is_passable(t.room, t.x, t.y)
        ]
        exit_tile = closest_by_range(unit.position, exits)
        if exit_tile is None:
            say(unit, "HOLD")
            return
        move(unit, exit_tile, "LEAD", reuse_path=5, avoid_edges=True)

    def _together(self, unit, members, ctx: TickContext) -> bool:
        """All in this unit's room, each with a squadmate within reach."""
        if any(m.room != unit.room for m in members):
            return False
        if len(members) < 2:
            return True
        reach = ctx.settings.regroup_range
        return all(
            any(o is not m and m.position.in_range_to(o.position, reach) for o in members)
            for m in members
        )

    # -- COMBAT --------------------------------------------------------------

    def _handle_combat(self, unit, squad, members, ctx, hops) -> None:
        if ctx.world.room_has_active_safe_mode(unit.room):
            logger.warning(f"Squad combat: room {unit.room} is in SAFE MODE - retreating immediately")
            ctx.ledger.record(unit.room, ctx.tick)
            if squad.fleeing_from_room is None:
                squad.fleeing_from_room = unit.room
            self.transition(squad, SquadState.RETREATING, ctx, RetreatReason.SAFE_MODE)
            self._delegate(unit, squad, members, ctx, hops)
            return

        target = self._selector.resolve(squad, unit)

        s = ctx.settings
        swapped = health.apply_position_swap(
            squad, members, ctx.tick, s.swap_front_threshold, s.swap_margin,
        )
        if swapped is not None:
            front, back = swapped
            logger.info(
                f"Squad position swap: {front.unit_id}({front.health_fraction * 100:.0f}%) "
                f"<-> {back.unit_id}({back.health_fraction * 100:.0f}%)"
            )
            self._publish("squad_position_swap", {
                "squad_id": squad.squad_id,
                "front": front.unit_id,
                "back": back.unit_id,
                "tick": ctx.tick,
            })

        fighter = (unit.has(Capability.ATTACK) or unit.has(Capability.RANGED_ATTACK)
                   or unit.has(Capability.WORK))
        if target is not None and fighter:
            self._engage(unit, target, ctx)
        else:
            self._hold_formation(unit, squad, members, ctx, idle_label="COVER")

        health.heal_squadmates(unit, members, s.heal_range)

    def _engage(self, unit, target, ctx: TickContext) -> None:
        s = ctx.settings
        tid = object_id(target)
        r = unit.position.range_to(target.position)

        if unit.has(Capability.RANGED_ATTACK):
            if self._mass_attack_candidates(unit, ctx) >= s.mass_attack_min_targets:
                issue(unit, OrderType.RANGED_MASS_ATTACK)
            elif r <= s.ranged_range:
                issue(unit, OrderType.RANGED_ATTACK, tid)
        if unit.has(Capability.ATTACK) and r <= s.melee_range:
            issue(unit, OrderType.ATTACK, tid)

        if isinstance(target, Structure):
            if unit.has(Capability.ATTACK) or unit.has(Capability.WORK):
                if r > s.melee_range:
                    move(unit, target.position, range=s.melee_range)
            elif r > s.ranged_range:
                move(unit, target.position, range=s.ranged_range)
        elif unit.has(Capability.RANGED_ATTACK):
            if r < s.ranged_range:
                move(unit, target.position, "KITE", range=s.ranged_range, flee=True, max_rooms=1)
            elif r > s.ranged_range:
                move(unit, target.position, range=s.ranged_range)
        elif r > s.melee_range:
            move(unit, target.position, range=s.melee_range)

        if unit.tactical.label is None:
            say(unit, "ENGAGE")

    def _mass_attack_candidates(self, unit, ctx: TickContext) -> int:
        reach = ctx.settings.ranged_range
        units = [
            h for h in ctx.world.hostile_units_in(unit.room)
            if h.alive and unit.position.in_range_to(h.position, reach)
        ]
        structures = [
            st for st in ctx.world.hostile_structures_in(unit.room)
            if st.counts_for_mass_attack and st.attackable
            and (st.health is None or st.health > 0)
            and unit.position.in_range_to(st.position, reach)
        ]
        return len(units) + len(structures)

    # -- RETREATING ----------------------------------------------------------

    def _handle_retreating(self, unit, squad, members, ctx, hops) -> None:
        if squad.retreat_reason is RetreatReason.SAFE_MODE:
            self._flee_safe_mode(unit, squad, members, ctx)
            return

        rally = squad.rally_point
        if rally is not None and unit.room != rally:
            route = ctx.router.route_between(unit.room, rally)
            exits = []
            if route:
                exits = [
                    t for t in exit_tiles(unit.room, route[0])
                    if ctx.world.terrain_is_passable(t.room, t.x, t.y)
                ]
            goal = closest_by_range(unit.position, exits) or RoomPosition.center(rally)
            move(unit, goal, "RETREAT", reuse_path=3)
        elif rally is not None:
            center = RoomPosition.center(rally)
            if not unit.position.in_range_to(center, _RETREAT_CENTER_RANGE):
                move(unit, center, "RETREAT", range=_RETREAT_CENTER_RANGE)
            else:
                say(unit, "RETREAT")

        if not ctx.world.room_has_active_safe_mode(unit.room):
            self._fire_at_nearest(unit, ctx)
        health.heal_squadmates(unit, members, ctx.settings.heal_range)

        if health.has_recovered(members, ctx.settings.recover_health_threshold):
            logger.info(f"Squad {squad.squad_id} recovered and READY")
            squad.retreat_reason = None
            self.transition(squad, SquadState.READY, ctx)

    def _flee_safe_mode(self, unit, squad, members, ctx: TickContext) -> None:
        world = ctx.world
        room = squad.fleeing_from_room
        if room is None and world.room_has_active_safe_mode(unit.room):
            room = squad.fleeing_from_room = unit.room

        if room is not None and unit.room == room:
            exits = [t for t in all_exit_tiles(room) if world.terrain_is_passable(t.room, t.x, t.y)]
            exit_tile = closest_by_range(unit.position, exits)
            if exit_tile is not None:
                move(unit, exit_tile, "EXIT!", reuse_path=0, max_rooms=1)
            else:
                say(unit, "STUCK")
            return

        if unit.position.on_edge(margin=1):
            move(unit, RoomPosition.center(unit.room), "REGROUP", range=_EDGE_CLEAR_RANGE)
            return

        if any(m.room == room or m.position.on_edge(margin=1) for m in members):
            say(unit, "HOLD")
            health.heal_squadmates(unit, members, ctx.settings.heal_range)
            return

        logger.info(f"Squad {squad.squad_id} escaped safe mode room {room}")
        squad.fleeing_from_room = None
        squad.retreat_reason = None
        if room is not None and squad.target_room == room:
            logger.info(f"Squad {squad.squad_id} clearing target {room} due to safe mode")
            squad.target_room = None
            squad.objective = None
        if world.logistics_units_exist():
            logger.info(f"Squad {squad.squad_id} moving to protect logistics units")
            squad.objective = Objective.PROTECT_LOGISTICS
        self.transition(squad, SquadState.READY, ctx)

        if squad.objective is not Objective.PROTECT_LOGISTICS:
            if squad.rally_point and unit.room != squad.rally_point:
                move(unit, RoomPosition.center(squad.rally_point), "RALLY", range=_ROOM_ARRIVAL_RANGE)
            else:
                say(unit, "IDLE")

    # -- Shared helpers ------------------------------------------------------

    @staticmethod
    def _threats_in(room: str, ctx: TickContext) -> list[Unit]:
        return [h for h in ctx.world.hostile_units_in(room) if h.alive and h.is_threat]

    @staticmethod
    def _area_clear(members, ctx: TickContext) -> bool:
        for room in {m.room for m in members}:
            if any(h.alive for h in ctx.world.hostile_units_in(room)):
                return False
            if any(
                st.attackable and (st.health is None or st.health > 0)
                for st in ctx.world.hostile_structures_in(room)
            ):
                return False
        return True

    @staticmethod
    def _ranked(squad, members) -> list[Unit]:
        """Live members in slot order; rank doubles as formation slot."""
        return sorted(members, key=lambda m: (squad.slot_of(m.unit_id) is None,
                                              squad.slot_of(m.unit_id) or 0))

    def _leader(self, squad, members) -> Unit:
        leader_id = squad.leader_id(among={m.unit_id for m in members})
        return next((m for m in members if m.unit_id == leader_id), members[0])

    def _formation_tile(self, unit, squad, members, ctx: TickContext) -> RoomPosition | None:
        ranked = self._ranked(squad, members)
        leader = self._leader(squad, members)
        rank = next((i for i, m in enumerate(ranked) if m is unit), 0)
        tile = desired_position(
            leader.position,
            rank,
            ctx.world.terrain_is_passable,
            member_pos=unit.position,
            edge_margin=ctx.settings.formation_edge_margin,
        )
        if tile is None:
            logger.debug(f"{unit.unit_id} has no passable formation tile near {leader.position}")
        return tile

    def _hold_formation(self, unit, squad, members, ctx: TickContext, idle_label: str) -> None:
        tile = self._formation_tile(unit, squad, members, ctx)
        if tile is None:
            say(unit, "HOLD")
        elif tile != unit.position:
            move(unit, tile, "FORM")
        else:
            say(unit, idle_label)

    def _fire_at_nearest(self, unit, ctx: TickContext) -> None:
        if not unit.has(Capability.RANGED_ATTACK):
            return
        hostiles = [h for h in ctx.world.hostile_units_in(unit.room) if h.alive]
        enemy = closest_by_range(unit.position, hostiles)
        if enemy is not None and unit.position.in_range_to(enemy.position, ctx.settings.ranged_range):
            issue(unit, OrderType.RANGED_ATTACK, enemy.unit_id)

    def _publish(self, event_type: str, data: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)
