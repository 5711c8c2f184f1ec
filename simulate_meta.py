#!/usr/bin/env python3
"""
Run the meta-balance simulation headless for a number of weeks

Usage:
    python simulate_meta.py --weeks 10 --seed 42
    python simulate_meta.py --weeks 20 --auto-resolve --json > run.json
    python simulate_meta.py --weeks 10 --auto-balance --auto-resolve
"""

import sys
import json
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from balance_engine import MetaSimulation, GamePhase, Stat, InsufficientResources, load_settings
from balance_engine.events import ActiveEvent

FEEDBACK_TICK = 0.5
FEEDBACK_WINDOW = 12.0
EVENT_WINDOW = 30.0
AUTO_BALANCE_TOLERANCE = 5.0
AUTO_BALANCE_PERCENT = 10.0


def cheapest_affordable(sim: MetaSimulation, event: ActiveEvent):
    options = sorted(event.definition.responses, key=lambda r: (r.rp_cost + r.cp_cost, -r.sentiment_change))
    for opt in options:
        if sim.resources.can_spend(opt.rp_cost, opt.cp_cost):
            return opt
    return None


def plan_correction(sim: MetaSimulation):
    """Queue a damage card against the character furthest from a 50% win rate."""
    win_rates = sim.store.column(Stat.WIN_RATE)
    worst = max(win_rates, key=lambda a: abs(win_rates[a] - 50.0))
    gap = win_rates[worst] - 50.0
    if abs(gap) <= AUTO_BALANCE_TOLERANCE:
        return None
    percent = -AUTO_BALANCE_PERCENT if gap > 0 else AUTO_BALANCE_PERCENT
    try:
        return sim.queue_balance_change(worst, Stat.DAMAGE, percent)
    except InsufficientResources:
        return None


def run_week(sim: MetaSimulation, auto_resolve: bool, auto_balance: bool = False) -> dict:
    """One PLANNING -> ... -> EVENT loop; returns a summary row."""
    posts = []
    resolved = 0
    expired = 0

    if auto_balance:
        plan_correction(sim)
    sim.advance_phase(GamePhase.IMPLEMENTATION)
    report = sim.last_implementation
    implemented = len(report.implemented) if report else 0
    sim.advance_phase(GamePhase.FEEDBACK)
    elapsed = 0.0
    while elapsed < FEEDBACK_WINDOW:
        result = sim.tick(FEEDBACK_TICK)
        elapsed += FEEDBACK_TICK
        expired += len(result.expired)
        if result.feedback is not None:
            posts.append(result.feedback)

    sim.advance_phase(GamePhase.EVENT)
    if auto_resolve:
        for event in sim.get_active_events():
            opt = cheapest_affordable(sim, event)
            if opt is not None:
                sim.resolve_event(event.event_id, opt.response_id)
                resolved += 1
    expired += len(sim.tick(EVENT_WINDOW).expired)

    row = {
        "week": sim.week,
        "win_rates": {a.value: round(v, 2) for a, v in sim.store.column(Stat.WIN_RATE).items()},
        "popularity": {a.value: round(v, 2) for a, v in sim.store.column(Stat.POPULARITY).items()},
        "sentiment": round(sim.get_community_sentiment(), 2),
        "meta_health": sim.get_meta_health().to_dict(),
        "resources": sim.resources.to_dict(),
        "events_resolved": resolved,
        "events_expired": expired,
        "changes_implemented": implemented,
        "feedback_shown": len(posts),
    }
    sim.advance_phase(GamePhase.PLANNING)
    return row


def print_table(rows):
    print("=" * 96)
    print("META BALANCE SIMULATION")
    print("=" * 96)
    print(f"{'Wk':>3} {'Warrior':>8} {'Mage':>8} {'Support':>8} {'Tank':>8} "
          f"{'Sent':>6} {'Health':>7} {'RP':>4} {'CP':>4} {'Res':>4} {'Exp':>4} {'Posts':>6}")
    for r in rows:
        wr = r["win_rates"]
        print(f"{r['week']:>3} {wr.get('warrior', 0):>8.1f} {wr.get('mage', 0):>8.1f} "
              f"{wr.get('support', 0):>8.1f} {wr.get('tank', 0):>8.1f} "
              f"{r['sentiment']:>6.1f} {r['meta_health']['overall']:>7.1f} "
              f"{r['resources']['rp']:>4} {r['resources']['cp']:>4} "
              f"{r['events_resolved']:>4} {r['events_expired']:>4} {r['feedback_shown']:>6}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Run the meta-balance simulation')
    parser.add_argument('--weeks', type=int, default=10, help='Number of weeks to simulate')
    parser.add_argument('--seed', type=int, default=None, help='RNG seed')
    parser.add_argument('--settings', help='Path to a settings JSON file')
    parser.add_argument('--continuous', action='store_true', help='Continuous event scheduling')
    parser.add_argument('--auto-resolve', action='store_true', help='Resolve events with the cheapest affordable response')
    parser.add_argument('--auto-balance', action='store_true', help='Queue a damage card against the worst outlier each week')
    parser.add_argument('--json', action='store_true', help='Print JSON instead of a table')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    settings = load_settings(args.settings)
    if args.continuous:
        settings.events.schedule_mode = "continuous"

    sim = MetaSimulation(settings=settings, seed=args.seed)
    sim.recalculate_win_rates()
    rows = [run_week(sim, args.auto_resolve, args.auto_balance) for _ in range(args.weeks)]

    if args.json:
        print(json.dumps({"weeks": rows, "final": sim.to_dict()}, indent=2))
    else:
        print_table(rows)
    return rows


if __name__ == "__main__":
    main()
