#!/usr/bin/env python
"""Operator script for inspecting polling triggers and running ticks by hand.

Usage:
    uv run python scripts/inspect_triggers.py due             # List triggers due now
    uv run python scripts/inspect_triggers.py check <id>      # Run the check for one due trigger
    uv run python scripts/inspect_triggers.py tick            # Run one full tick
"""

import asyncio
import sys

from dotenv import load_dotenv

from polling_scheduler.checker.client import PollExecutor
from polling_scheduler.config import get_settings
from polling_scheduler.scheduler.jobs import create_http_client, logical_tick_time, run_tick_once
from polling_scheduler.store.trigger_store import TriggerStore

load_dotenv()


async def list_due() -> None:
    """List the triggers the next tick would process."""
    settings = get_settings()
    tick_at = logical_tick_time()

    print("=" * 60)
    print(f"Due triggers as of {tick_at.isoformat()}")
    print("=" * 60)

    async with create_http_client(settings) as http:
        store = TriggerStore(
            settings.store.url, settings.store.service_role_key.get_secret_value(), http
        )
        triggers = await store.list_due(settings.scheduler.batch_limit, as_of=tick_at)

    print(f"\n{len(triggers)} trigger(s) due\n")
    for i, trigger in enumerate(triggers, 1):
        owner = "agent" if trigger.is_agent else "workflow"
        print(f"{i:3}. {trigger.id} [{trigger.trigger_type}] ({owner} {trigger.workflow_id})")
        print(f"     next_poll_at: {trigger.next_poll_at.isoformat()}")
        print(f"     interval:     {trigger.poll_interval}s")
        print(f"     cursor:       {trigger.last_cursor or '-'}")
        if trigger.config_error:
            print(f"     config error: {trigger.config_error}")
        print()


async def check_trigger(trigger_id: str) -> None:
    """Call the check endpoint for one due trigger without dispatching or writing."""
    settings = get_settings()
    service_key = settings.store.service_role_key.get_secret_value()

    async with create_http_client(settings) as http:
        store = TriggerStore(settings.store.url, service_key, http)
        triggers = await store.list_due(settings.scheduler.batch_limit, as_of=logical_tick_time())
        trigger = next((t for t in triggers if t.id == trigger_id), None)
        if trigger is None:
            print(f"Trigger {trigger_id} is not due (or not enabled)")
            return

        executor = PollExecutor(
            settings.check.url, service_key, http, check_path=settings.check.check_path
        )
        result = await executor.check(trigger)

    print(f"hasNewData: {result.has_new_data}")
    print(f"items:      {len(result.items)}")
    print(f"newCursor:  {result.new_cursor}")
    print(f"newTs:      {result.new_timestamp}")
    if result.error:
        print(f"error:      {result.error}")
    if result.reason:
        print(f"reason:     {result.reason}")


async def run_tick() -> None:
    """Run one full tick (dispatches events and writes to the store)."""
    summary = await run_tick_once(get_settings())

    if summary.aborted:
        print(f"Tick aborted: {summary.error}")
        return

    print(
        f"due={summary.due} triggered={summary.triggered} errored={summary.errored} "
        f"disabled={summary.disabled} rescheduled={summary.rescheduled} "
        f"({summary.duration_seconds:.2f}s)"
    )
    for outcome in summary.outcomes:
        line = f"  {outcome.trigger_id}: {outcome.outcome.value}"
        if outcome.event_id:
            line += f" event={outcome.event_id}"
        if outcome.error:
            line += f" error={outcome.error}"
        if not outcome.write_ok:
            line += " (store write failed)"
        print(line)


async def main() -> None:
    """Entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return

    command = sys.argv[1].lower()

    if command == "due":
        await list_due()
    elif command == "check" and len(sys.argv) > 2:
        await check_trigger(sys.argv[2])
    elif command == "tick":
        await run_tick()
    else:
        print(f"Unknown command: {' '.join(sys.argv[1:])}")
        print("Available: due, check <trigger_id>, tick")


if __name__ == "__main__":
    asyncio.run(main())
