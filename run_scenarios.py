#!/usr/bin/env python3
"""Run sandbox squad scenarios and report squad outcomes.

Usage:
    python3 run_scenarios.py [scenario_name ...]

Scenario names are JSON files under ``scenarios/`` (without extension).
If no names are given, runs every scenario in that directory.
"""

import random
import sys
import time
from pathlib import Path

# Ensure src/ is on path when run from a checkout
sys.path.insert(0, str(Path(__file__).parent / "src"))

from squadron.comms.event_bus import EventBus, drain
from squadron.squads.engine import SquadEngine
from squadron.world.sandbox import GreedyResolver
from squadron.world.scenario import build_world, load_squad_scenario

SCENARIO_DIR = Path(__file__).parent / "scenarios"


def run_one(name: str) -> dict:
    """Run one scenario to completion, return a summary."""
    print(f"\n{'='*60}")
    print(f"  SCENARIO: {name}")
    print(f"{'='*60}")

    scenario = load_squad_scenario(str(SCENARIO_DIR / f"{name}.json"))
    print(f"  Description: {scenario.description}")
    print(f"  Rooms: {len(scenario.rooms)}, Units: {len(scenario.units)}, "
          f"Structures: {len(scenario.structures)}, Ticks: {scenario.ticks}")

    world = build_world(scenario)
    bus = EventBus(maxsize=10_000)
    events = bus.subscribe()
    engine = SquadEngine(
        world, world, GreedyResolver(world),
        event_bus=bus,
        rng=random.Random(scenario.seed),
    )
    for unit_id, room in scenario.assignments().items():
        engine.assign_unit(unit_id, room)

    t0 = time.time()
    for _ in range(scenario.ticks):
        report = engine.tick()
        world.apply_tick(report)
    elapsed = time.time() - t0

    transitions = [e["data"] for e in drain(events) if e["type"] == "squad_state_changed"]
    print(f"\n  --- State changes ({len(transitions)}) ---")
    for t in transitions:
        reason = f" ({t['reason']})" if t["reason"] else ""
        print(f"  [{t['tick']:5d}] {t['squad_id']}: {t['from']} -> {t['to']}{reason}")

    print(f"\n  --- Squads ---")
    statuses = engine.all_status()
    for st in statuses:
        print(f"  {st.squad_id}  {st.state.value:10s}  members={st.member_count}  "
              f"health={st.avg_health * 100:.0f}%  target={st.target_room or '-'}")

    hostiles_left = sum(1 for u in world.units if u.hostile and u.alive)
    return {
        "scenario": name,
        "status": "ok",
        "squads": len(statuses),
        "transitions": len(transitions),
        "hostiles_left": hostiles_left,
        "wall_time": round(elapsed, 2),
    }


def main():
    names = sys.argv[1:] or sorted(p.stem for p in SCENARIO_DIR.glob("*.json"))
    results = []

    for name in names:
        try:
            results.append(run_one(name))
        except Exception as e:
            print(f"\n  FAILED: {e}")
            results.append({"scenario": name, "status": "error", "error": str(e)})

    print(f"\n\n{'='*60}")
    print("  SUMMARY")
    print(f"{'='*60}")
    for r in results:
        if r["status"] != "ok":
            print(f"  {r['scenario']:30s}  status=error  {r['error']}")
            continue
        print(f"  {r['scenario']:30s}  squads={r['squads']}  transitions={r['transitions']}  "
              f"hostiles_left={r['hostiles_left']}  wall={r['wall_time']}s")


if __name__ == "__main__":
    main()
