"""Unit tests for SquadStateMachine — transitions and per-state handlers."""

from __future__ import annotations

import random

import pytest

from squadron.comms.event_bus import EventBus, drain
from squadron.squads.orders import OrderType
from squadron.squads.registry import SquadRegistry
from squadron.squads.safe_mode import SafeModeLedger
from squadron.squads.squad import Objective, RetreatReason, SquadState
from squadron.squads.state_machine import HandlerTableError, SquadStateMachine, TickContext
from squadron.squads.targeting import TargetSelector
from squadron.units.base import Capability, Structure, StructureType, Unit
from squadron.world.grid import RoomPosition

pytestmark = pytest.mark.unit

QUAD = [(25, 25), (26, 25), (25, 26), (26, 26)]


def _make_unit(world, uid, room="W1N1", x=25, y=25, hp=100, caps=(Capability.ATTACK,),
               hostile=False, role=""):
    return world.add_unit(Unit(
        unit_id=uid,
        position=RoomPosition(room, x, y),
        health=hp,
        max_health=100,
        capabilities=frozenset(caps),
        hostile=hostile,
        role=role,
    ))


def _make_machine(world, settings, bus=None):
    registry = SquadRegistry(world, world, settings, bus)
    machine = SquadStateMachine(registry, TargetSelector(world), bus)
    return registry, machine


def _ctx(world, settings, tick=1, ledger=None):
    return TickContext(
        tick=tick,
        world=world,
        router=world,
        settings=settings,
        ledger=ledger or SafeModeLedger(settings.safe_mode_memory_ticks),
        rng=random.Random(0),
    )


def _make_squad(world, registry, positions, room="W1N1", dest="W2N1", state=None, **unit_kw):
    units = [
        _make_unit(world, f"m{i}", room=room, x=x, y=y, **unit_kw)
        for i, (x, y) in enumerate(positions)
    ]
    sid = None
    for u in units:
        sid = registry.assign_unit(u, dest, tick=0)
    squad = registry.require(sid)
    if state is not None:
        squad.state = state
    return squad, units


class TestHandlerTable:
    def test_every_state_has_a_handler(self, world, settings):
        _make_machine(world, settings)

    def test_missing_handler_rejected(self, world, settings):
        class Partial(SquadStateMachine):
            def _build_handlers(self):
                table = super()._build_handlers()
                del table[SquadState.RETREATING]
                return table

        registry = SquadRegistry(world, world, settings)
        with pytest.raises(HandlerTableError):
            Partial(registry, TargetSelector(world))


class TestTransition:
    def test_publishes_and_clears_target_leaving_combat(self, world, settings):
        bus = EventBus()
        q = bus.subscribe("squad_state_changed")
        registry, machine = _make_machine(world, settings, bus)
        squad, _ = _make_squad(world, registry, QUAD[:1], state=SquadState.COMBAT)
        squad.current_target_id = "h1"

        assert machine.transition(squad, SquadState.RETREATING, _ctx(world, settings),
                                  RetreatReason.LOW_HEALTH)

        assert squad.current_target_id is None
        assert squad.retreat_reason is RetreatReason.LOW_HEALTH
        data = drain(q)[0]["data"]
        assert (data["from"], data["to"], data["reason"]) == ("combat", "retreating", "low_health")

    def test_same_state_is_noop(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD[:1], state=SquadState.MOVING)
        assert not machine.transition(squad, SquadState.MOVING, _ctx(world, settings))


class TestForming:
    def test_waits_for_straggler_past_timeout(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, QUAD[:2])
        units[1].position = RoomPosition("W2N1", 25, 25)

        machine.evaluate(squad, _ctx(world, settings, tick=300))
        assert squad.state is SquadState.FORMING

    def test_full_squad_at_rally_is_ready(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD)
        machine.evaluate(squad, _ctx(world, settings, tick=1))
        assert squad.state is SquadState.READY

    def test_small_squad_leaves_after_timeout(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD[:2])
        machine.evaluate(squad, _ctx(world, settings, tick=200))
        assert squad.state is SquadState.FORMING
        machine.evaluate(squad, _ctx(world, settings, tick=201))
        assert squad.state is SquadState.READY

    def test_lone_unit_never_times_out(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD[:1])
        machine.evaluate(squad, _ctx(world, settings, tick=450))
        assert squad.state is SquadState.FORMING

    def test_unit_outside_rally_heads_there(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, [(10, 10)], room="W2N1")
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "RALLY"
        assert u.tactical.intent.goal == RoomPosition.center("W1N1")

    def test_unit_far_from_anchor_groups_up(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, [(5, 5)])
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "GROUP"
        assert u.tactical.intent.goal == RoomPosition("W1N1", 25, 25)
        assert u.tactical.intent.range == 4

    def test_unit_in_slot_waits(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, [(24, 24), (25, 24)])
        machine.act(units[1], squad, _ctx(world, settings))
        assert units[1].tactical.label == "WAIT 2"
        assert units[1].tactical.intent is None

    def test_unit_out_of_slot_forms(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, [(24, 24), (27, 27)])
        machine.act(units[1], squad, _ctx(world, settings))
        assert units[1].tactical.label == "FORM"
        assert units[1].tactical.intent.goal == RoomPosition("W1N1", 25, 24)


class TestThreatSweep:
    def test_threat_promotes_to_combat(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, state=SquadState.MOVING)
        _make_unit(world, "h1", x=40, y=40, hostile=True)
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.COMBAT

    def test_harmless_hostile_ignored(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, state=SquadState.MOVING)
        _make_unit(world, "scout", x=40, y=40, hostile=True, caps=())
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.MOVING

    def test_retreating_not_promoted(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, state=SquadState.RETREATING)
        squad.retreat_reason = RetreatReason.LOW_HEALTH
        _make_unit(world, "h1", x=40, y=40, hostile=True)
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.RETREATING

    def test_evaluates_once_per_tick(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, state=SquadState.MOVING)
        ctx = _ctx(world, settings, tick=4)
        machine.evaluate(squad, ctx)
        _make_unit(world, "h1", x=40, y=40, hostile=True)
        machine.evaluate(squad, ctx)
        assert squad.state is SquadState.MOVING
        machine.evaluate(squad, _ctx(world, settings, tick=5))
        assert squad.state is SquadState.COMBAT


class TestCombatExit:
    def test_low_health_retreats(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, QUAD, room="W2N1", hp=40,
                                   state=SquadState.COMBAT)
        _make_unit(world, "h1", room="W2N1", x=40, y=40, hostile=True)
        squad.current_target_id = "h1"

        machine.evaluate(squad, _ctx(world, settings, tick=1))
        assert squad.state is SquadState.COMBAT

        for u in units:
            u.health = 25
        machine.evaluate(squad, _ctx(world, settings, tick=2))
        assert squad.state is SquadState.RETREATING
        assert squad.retreat_reason is RetreatReason.LOW_HEALTH
        assert squad.current_target_id is None

    def test_cleared_area_resumes_moving(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.MOVING

    def test_fight_while_forming_returns_to_forming(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD[:2])
        hostile = _make_unit(world, "h1", x=40, y=40, hostile=True)

        machine.evaluate(squad, _ctx(world, settings, tick=1))
        assert squad.state is SquadState.COMBAT
        assert squad.resume_state is SquadState.FORMING

        hostile.health = 0
        machine.evaluate(squad, _ctx(world, settings, tick=2))
        assert squad.state is SquadState.FORMING
        assert squad.resume_state is None
        assert squad.target_room == "W2N1"

        machine.evaluate(squad, _ctx(world, settings, tick=settings.forming_timeout_ticks))
        assert squad.state is SquadState.FORMING
        machine.evaluate(squad, _ctx(world, settings, tick=settings.forming_timeout_ticks + 1))
        assert squad.state is SquadState.READY

    def test_fight_while_moving_resumes_moving(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, state=SquadState.MOVING)
        hostile = _make_unit(world, "h1", x=40, y=40, hostile=True)

        machine.evaluate(squad, _ctx(world, settings, tick=1))
        assert squad.resume_state is SquadState.MOVING
        hostile.health = 0
        machine.evaluate(squad, _ctx(world, settings, tick=2))
        assert squad.state is SquadState.MOVING

    def test_cleared_area_without_target_is_ready(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        squad.target_room = None
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.READY

    def test_standing_structures_keep_combat(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        world.add_structure(Structure("spawn-x", StructureType.SPAWN,
                                      RoomPosition("W2N1", 10, 10), 500, 500))
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.COMBAT

    def test_unattackable_structures_do_not(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, _ = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        world.add_structure(Structure("ctrl", StructureType.CONTROLLER, RoomPosition("W2N1", 10, 10)))
        machine.evaluate(squad, _ctx(world, settings))
        assert squad.state is SquadState.MOVING

    def test_safe_mode_retreats_same_tick(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        _make_unit(world, "h1", room="W2N1", x=40, y=40, hostile=True)
        world.set_safe_mode("W2N1")
        ctx = _ctx(world, settings, tick=9)

        machine.act(units[0], squad, ctx)

        assert squad.state is SquadState.RETREATING
        assert squad.retreat_reason is RetreatReason.SAFE_MODE
        assert squad.fleeing_from_room == "W2N1"
        assert ctx.ledger.is_flagged("W2N1", 10)
        intent = units[0].tactical.intent
        assert units[0].tactical.label == "EXIT!"
        assert intent.goal.is_exit()
        assert intent.reuse_path == 0


class TestCombatOrders:
    def _combat(self, world, settings, unit_pos, caps):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, [unit_pos], room="W2N1",
                                  state=SquadState.COMBAT, caps=caps)
        return machine, squad, u

    def test_ranged_fires_at_three_and_holds(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.RANGED_ATTACK,))
        _make_unit(world, "h1", room="W2N1", x=28, y=25, hostile=True)
        machine.act(u, squad, _ctx(world, settings))
        assert [(o.type, o.target_id) for o in u.tactical.orders] == [(OrderType.RANGED_ATTACK, "h1")]
        assert u.tactical.intent is None
        assert squad.current_target_id == "h1"

    def test_ranged_kites_when_too_close(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.RANGED_ATTACK,))
        _make_unit(world, "h1", room="W2N1", x=27, y=25, hostile=True)
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.orders[0].type is OrderType.RANGED_ATTACK
        assert u.tactical.intent.flee
        assert u.tactical.intent.range == 3
        assert u.tactical.label == "KITE"

    def test_melee_attacks_adjacent(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.ATTACK,))
        _make_unit(world, "h1", room="W2N1", x=26, y=26, hostile=True)
        machine.act(u, squad, _ctx(world, settings))
        assert [(o.type, o.target_id) for o in u.tactical.orders] == [(OrderType.ATTACK, "h1")]
        assert u.tactical.intent is None

    def test_melee_closes_distance(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.ATTACK,))
        _make_unit(world, "h1", room="W2N1", x=30, y=25, hostile=True)
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.orders == []
        assert u.tactical.intent.goal == RoomPosition("W2N1", 30, 25)
        assert u.tactical.intent.range == 1

    def test_mass_attack_when_crowded(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.RANGED_ATTACK,))
        for i, (x, y) in enumerate([(27, 25), (25, 27), (28, 28)]):
            _make_unit(world, f"h{i}", room="W2N1", x=x, y=y, hostile=True)
        machine.act(u, squad, _ctx(world, settings))
        assert [o.type for o in u.tactical.orders] == [OrderType.RANGED_MASS_ATTACK]

    def test_roads_not_counted_for_mass_attack(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.RANGED_ATTACK,))
        _make_unit(world, "h0", room="W2N1", x=27, y=25, hostile=True)
        _make_unit(world, "h1", room="W2N1", x=25, y=27, hostile=True)
        world.add_structure(Structure("road", StructureType.ROAD, RoomPosition("W2N1", 26, 26), 50, 50))
        machine.act(u, squad, _ctx(world, settings))
        assert [o.type for o in u.tactical.orders] == [OrderType.RANGED_ATTACK]

    def test_structure_target_closes_to_melee(self, world, settings):
        machine, squad, u = self._combat(world, settings, (25, 25), (Capability.ATTACK,))
        world.add_structure(Structure("spawn-x", StructureType.SPAWN, RoomPosition("W2N1", 35, 25), 500, 500))
        machine.act(u, squad, _ctx(world, settings))
        assert squad.current_target_id == "spawn-x"
        assert u.tactical.intent.range == 1

    def test_healer_holds_formation_and_heals(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, [(25, 25), (26, 25)], room="W2N1",
                                   state=SquadState.COMBAT, caps=(Capability.HEAL,))
        units[0].health = 50
        _make_unit(world, "h1", room="W2N1", x=40, y=40, hostile=True)
        machine.act(units[1], squad, _ctx(world, settings))
        assert units[1].tactical.label == "COVER"
        assert [(o.type, o.target_id) for o in units[1].tactical.orders] == [(OrderType.HEAL, "m0")]

    def test_position_swap_published(self, world, settings):
        bus = EventBus()
        q = bus.subscribe("squad_position_swap")
        registry, machine = _make_machine(world, settings, bus)
        squad, units = _make_squad(world, registry, QUAD, room="W2N1", state=SquadState.COMBAT)
        units[0].health = 30
        _make_unit(world, "h1", room="W2N1", x=40, y=40, hostile=True)
        ctx = _ctx(world, settings)
        for u in units:
            machine.act(u, squad, ctx)
        assert squad.slot_of("m0") == 2
        assert squad.slot_of("m2") == 0
        assert len(drain(q)) == 1


class TestReady:
    def _ready(self, world, settings, room="W1N1", pos=(25, 25)):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, [pos], room=room, state=SquadState.READY)
        squad.target_room = None
        squad.objective = None
        return machine, squad, u

    def test_protects_endangered_logistics_first(self, world, settings):
        world.add_room("W1N2", remote=True)
        _make_unit(world, "harv", room="W1N2", x=10, y=10, caps=(), role="remote_harvester")
        _make_unit(world, "h1", room="W1N2", x=12, y=10, hostile=True)
        machine, squad, u = self._ready(world, settings)
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room == "W1N2"
        assert squad.objective is Objective.PROTECT_LOGISTICS
        assert squad.state is SquadState.MOVING

    def test_patrols_remote_room(self, world, settings):
        world.add_room("W1N2", remote=True)
        machine, squad, u = self._ready(world, settings)
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room == "W1N2"
        assert squad.objective is Objective.PATROL
        assert squad.state is SquadState.MOVING

    def test_skips_safe_mode_rooms_and_idles_at_home(self, world, settings):
        world.add_room("W1N2", remote=True)
        ledger = SafeModeLedger()
        ledger.record("W1N2", 0)
        machine, squad, u = self._ready(world, settings)
        machine.act(u, squad, _ctx(world, settings, ledger=ledger))
        assert squad.target_room is None
        assert squad.state is SquadState.READY
        assert not squad.unresolved
        assert u.tactical.label == "READY"

    def test_returns_home_when_away(self, world, settings):
        machine, squad, u = self._ready(world, settings, room="W2N1")
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room == "W1N1"
        assert squad.objective is Objective.RETURN_HOME
        assert squad.state is SquadState.MOVING

    def test_stranded_adopts_nearest_owned_room(self, world, settings):
        machine, squad, u = self._ready(world, settings, room="W5N5")
        squad.rally_point = None
        squad.launch_room = None
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room == "W1N1"
        assert squad.rally_point == "W1N1"
        assert squad.objective is Objective.RETURN_HOME

    def test_nothing_resolvable_is_unresolved(self, world, settings):
        machine, squad, u = self._ready(world, settings, room="W20N20")
        squad.rally_point = None
        squad.launch_room = None
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room is None
        assert squad.state is SquadState.READY
        assert squad.unresolved
        assert u.tactical.label == "LOST"

    def test_conquest_target_kept(self, world, settings):
        world.add_room("W1N2", remote=True)
        machine, squad, u = self._ready(world, settings)
        squad.target_room = "W2N1"
        squad.objective = Objective.CONQUEST
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room == "W2N1"
        assert squad.state is SquadState.MOVING

    def test_safe_mode_target_dropped(self, world, settings):
        ledger = SafeModeLedger()
        ledger.record("W2N1", 0)
        machine, squad, u = self._ready(world, settings)
        squad.target_room = "W2N1"
        squad.objective = Objective.CONQUEST
        machine.act(u, squad, _ctx(world, settings, ledger=ledger))
        assert squad.target_room is None
        assert squad.state is SquadState.READY


class TestMoving:
    def test_leader_heads_for_route_exit(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, QUAD, state=SquadState.MOVING)
        machine.act(units[0], squad, _ctx(world, settings))
        intent = units[0].tactical.intent
        assert units[0].tactical.label == "LEAD"
        assert intent.goal == RoomPosition("W1N1", 0, 25)
        assert intent.avoid_edges

    def test_follower_takes_slot(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, [(25, 25), (28, 25)], state=SquadState.MOVING)
        machine.act(units[1], squad, _ctx(world, settings))
        assert units[1].tactical.label == "FORM"
        assert units[1].tactical.intent.goal == RoomPosition("W1N1", 26, 25)

    def test_split_squad_regroups(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = _make_squad(world, registry, QUAD[:2], state=SquadState.MOVING)
        units[1].position = RoomPosition("W1N2", 25, 25)
        ctx = _ctx(world, settings)
        machine.act(units[0], squad, ctx)
        machine.act(units[1], squad, ctx)
        assert units[0].tactical.label == "WAIT"
        assert units[1].tactical.label == "REGROUP"
        assert units[1].tactical.intent.goal.room == "W1N1"

    def test_lone_survivor_keeps_leading(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], state=SquadState.MOVING)
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "LEAD"

    def test_unreachable_target_is_unresolved(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], dest="W9N9", state=SquadState.MOVING)
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "NO ROUTE"
        assert squad.unresolved

    def test_safe_mode_target_aborted(self, world, settings):
        ledger = SafeModeLedger()
        ledger.record("W2N1", 0)
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], state=SquadState.MOVING)
        machine.act(u, squad, _ctx(world, settings, ledger=ledger))
        assert squad.target_room is None
        assert squad.state is SquadState.READY

    def test_arrival_home_is_ready(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], dest="W1N1", state=SquadState.MOVING)
        squad.objective = Objective.RETURN_HOME
        machine.act(u, squad, _ctx(world, settings))
        assert squad.target_room is None
        assert squad.state is SquadState.READY

    def test_arrival_patrols_towards_centre(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, [(5, 5)], room="W1N2", dest="W1N2",
                                  state=SquadState.MOVING)
        squad.objective = Objective.PATROL
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "PATROL"
        assert u.tactical.intent.goal == RoomPosition.center("W1N2")
        assert squad.state is SquadState.MOVING

    def test_any_hostile_in_target_room_engages(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], room="W2N1", state=SquadState.MOVING)
        _make_unit(world, "scout", room="W2N1", x=40, y=40, hostile=True, caps=())
        machine.act(u, squad, _ctx(world, settings))
        assert squad.state is SquadState.COMBAT
        assert squad.current_target_id == "scout"


class TestRetreating:
    def test_low_health_falls_back_toward_rally(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], room="W2N1", hp=50,
                                  state=SquadState.RETREATING)
        squad.retreat_reason = RetreatReason.LOW_HEALTH
        machine.act(u, squad, _ctx(world, settings))
        assert u.tactical.label == "RETREAT"
        assert u.tactical.intent.goal == RoomPosition("W2N1", 49, 25)
        assert u.tactical.intent.reuse_path == 3
        assert squad.state is SquadState.RETREATING

    def test_recovered_squad_is_ready(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, (u,) = _make_squad(world, registry, QUAD[:1], hp=90, state=SquadState.RETREATING)
        squad.retreat_reason = RetreatReason.LOW_HEALTH
        machine.act(u, squad, _ctx(world, settings))
        assert squad.state is SquadState.READY
        assert squad.retreat_reason is None

    def _fled(self, world, registry, positions):
        squad, units = _make_squad(world, registry, positions, state=SquadState.RETREATING)
        squad.retreat_reason = RetreatReason.SAFE_MODE
        squad.fleeing_from_room = "W2N1"
        return squad, units

    def test_escape_completes_when_all_clear(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = self._fled(world, registry, QUAD[:2])
        machine.act(units[0], squad, _ctx(world, settings))
        assert squad.state is SquadState.READY
        assert squad.fleeing_from_room is None
        assert squad.retreat_reason is None
        assert squad.target_room is None

    def test_escape_turns_to_logistics(self, world, settings):
        _make_unit(world, "carry", room="W1N2", caps=(), role="remote_carry")
        registry, machine = _make_machine(world, settings)
        squad, units = self._fled(world, registry, QUAD[:2])
        machine.act(units[0], squad, _ctx(world, settings))
        assert squad.state is SquadState.READY
        assert squad.objective is Objective.PROTECT_LOGISTICS

    def test_member_on_edge_holds_escape(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = self._fled(world, registry, [(25, 25), (49, 25)])
        ctx = _ctx(world, settings)
        machine.act(units[1], squad, ctx)
        machine.act(units[0], squad, ctx)
        assert units[1].tactical.label == "REGROUP"
        assert units[0].tactical.label == "HOLD"
        assert squad.state is SquadState.RETREATING

    def test_member_still_inside_holds_escape(self, world, settings):
        registry, machine = _make_machine(world, settings)
        squad, units = self._fled(world, registry, QUAD[:2])
        units[1].position = RoomPosition("W2N1", 25, 25)
        ctx = _ctx(world, settings)
        machine.act(units[1], squad, ctx)
        machine.act(units[0], squad, ctx)
        assert units[1].tactical.label == "EXIT!"
        assert squad.state is SquadState.RETREATING
