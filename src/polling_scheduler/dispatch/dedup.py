"""Idempotency keys for dispatched batches.

The key becomes the event id on the event bus, which drops events whose id it
has already seen. Overlapping ticks, a missed reschedule write, or an upstream
API returning the same items in a different order all produce the same key,
so the batch runs downstream once.
"""

import time
from collections.abc import Mapping
from typing import Any

from polling_scheduler.schemas.trigger import PollResult


def item_ids(items: list[Any]) -> list[str]:
    """Return the identifiers carried by ``items``, sorted lexicographically.

    Items that are not mappings or that have no (or an empty) ``id`` are skipped.
    """
    ids = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        item_id = item.get("id")
        if item_id is None or item_id == "":
            continue
        ids.append(str(item_id))
    return sorted(ids)


def compute_event_id(trigger_id: str, result: PollResult, now_ms: int | None = None) -> str:
    """Compute the dedup key for a poll result's batch.

    Falls back to the result's cursor, then its timestamp, when no item has an
    id. If neither exists either, the current time in epoch milliseconds is
    used; such a key cannot deduplicate a repeated observation.

    Args:
        trigger_id: The trigger that observed the batch.
        result: The poll result carrying the batch.
        now_ms: Wall-clock fallback override, mainly for tests.

    Returns:
        ``"{trigger_id}:{ids-or-fallback}"``.
    """
    ids = item_ids(result.items)
    if ids:
        suffix = ",".join(ids)
    elif result.new_cursor:
        suffix = result.new_cursor
    elif result.new_timestamp:
        suffix = result.new_timestamp
    else:
        suffix = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"{trigger_id}:{suffix}"


__all__ = ["compute_event_id", "item_ids"]
