#!/usr/bin/env python3
"""
Basic Usage Example - Continuum Period Lifecycle Engine

This script walks through a simulated working day against an in-memory
store. It shows how to:
- Bootstrap the first period
- End the current period and start the next one
- Pause and resume
- Edit metadata of open and closed periods
- Check the timeline for gaps and overlaps
- Recover after a crash that left no open period

Run: python examples/basic_usage.py
"""

import asyncio
from typing import List

from continuum_app.config.loader import ConfigLoader
from continuum_app.engine import PeriodLifecycleEngine
from continuum_app.logging import configure_logging
from continuum_app.models.period import Period, PeriodFilter
from continuum_app.persistence.period_store import PeriodStore
from continuum_app.utils.time import ManualClock, format_duration, format_timestamp

MINUTE_MS = 60 * 1000
DAY_START_MS = 1_700_000_000_000


def print_period(period: Period, now: int) -> None:
    """Print one period on a single line."""
    kind = "⏸ pause" if period.is_pause else "▶ work "
    print(f"  {kind} {period.id[:8]} "
          f"{format_timestamp(period.start_time)} → {format_timestamp(period.end_time)} "
          f"({format_duration(period.duration_ms(now) // 1000)}) "
          f"theme={period.theme} name={period.name!r}")


def print_timeline(periods: List[Period], now: int) -> None:
    for period in sorted(periods, key=lambda p: p.start_time):
        print_period(period, now)
    print()


async def run_demo() -> None:
    clock = ManualClock(DAY_START_MS)
    config = ConfigLoader.create().load()
    configure_logging(level=config.logging.level, format_json=config.logging.format_json)

    print("1. Opening an in-memory store and the engine...")
    store = PeriodStore().init()
    engine = PeriodLifecycleEngine(store, clock=clock, config=config)
    engine.add_active_listener(lambda period: print(f"   🔔 active period is now {period.id[:8]}"))
    print()

    print("2. First start on an empty store...")
    outcome = await engine.recover_incomplete_session()
    print(f"   Recovery action: {outcome.action.value}")
    first = outcome.active
    await engine.update_metadata(first.id, {"theme": "work", "category": "development",
                                            "name": "Morning coding", "tags": ["focus"]})
    print()

    print("3. Working for 50 minutes, then switching task...")
    clock.advance(50 * MINUTE_MS)
    second = await engine.transition()
    await engine.update_metadata(second.id, {"theme": "work", "category": "meetings",
                                             "name": "Stand-up"})
    print()

    print("4. Pausing for a coffee and resuming...")
    clock.advance(15 * MINUTE_MS)
    pause = await engine.pause_resume()
    print(f"   Paused: {await engine.is_paused()} (resume_from_id={pause.resume_from_id[:8]})")
    clock.advance(10 * MINUTE_MS)
    resumed = await engine.pause_resume()
    print(f"   Resumed as {resumed.name!r}, state={(await engine.current_state()).value}")
    print()

    print("5. Fixing the notes of a closed period...")
    fixed = await engine.update_metadata(first.id, {"notes": "Refactored the parser",
                                                    "start_time": 0})
    print(f"   start_time kept at {format_timestamp(fixed.start_time)}, notes={fixed.notes!r}")
    print()

    now = clock.now_ms()
    print("6. Timeline so far:")
    print_timeline(await engine.get_periods(), now)

    report = await engine.validate_continuity()
    print(f"7. Continuity: valid={report.valid}, checked={report.checked_count}")
    print()

    print("8. Simulating a crash that lost the open period...")
    active = await engine.get_active_period()
    clock.advance(30 * MINUTE_MS)
    store.upsert(active.close(clock.now_ms()))
    restarted = PeriodLifecycleEngine(store, clock=clock, config=config)
    clock.advance(5 * MINUTE_MS)
    outcome = await restarted.recover_incomplete_session(last_known_close_time=clock.now_ms())
    print(f"   Recovery action: {outcome.action.value}, new active {outcome.active.id[:8]}")
    report = await restarted.validate_continuity()
    print(f"   Continuity after recovery: valid={report.valid}")
    print()

    print("9. Work periods only (export view):")
    work = await restarted.get_periods(PeriodFilter(is_pause=False, closed_only=True))
    print_timeline(work, clock.now_ms())

    stats = store.get_stats()
    print(f"10. Store stats: {stats['total_periods']} periods, "
          f"{stats['pause_periods']} pauses, {stats['open_periods']} open")

    store.close()


def main():
    """Main demo function."""
    print("🚀 Continuum Period Lifecycle Engine - Basic Usage Demo")
    print("=" * 60)
    asyncio.run(run_demo())
    print("✅ Demo completed")


if __name__ == "__main__":
    main()
