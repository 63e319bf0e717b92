from __future__ import annotations

from typing import Any

from fpl_sync.collector.api_client import FPLClient
from fpl_sync.utils.logging import get_logger


logger = get_logger(component="period_resolver")

BOOTSTRAP_PATH = "/bootstrap-static/"


def find_current_period(events: Any) -> int | None:
    """Return the id of the first event flagged `is_current`, else None."""
    if not isinstance(events, list):
        return None
    for ev in events:
        if not isinstance(ev, dict) or not ev.get("is_current"):
            continue
        try:
            return int(ev["id"])
        except (KeyError, TypeError, ValueError):
            return None
    return None


async def current_period(client: FPLClient, *, fallback: int) -> int:
    """
    Current gameweek from bootstrap metadata.

    Never raises: any failure (fetch, parse, no current event) returns `fallback`
    and logs `current_period_fallback` with the reason.
    """
    try:
        bootstrap = await client.fetch_resource(BOOTSTRAP_PATH)
    except Exception as e:
        logger.warning("current_period_fallback", reason="bootstrap_fetch_failed", err=str(e), fallback=fallback)
        return fallback

    events = bootstrap.get("events") if isinstance(bootstrap, dict) else None
    if not events:
        logger.warning("current_period_fallback", reason="no_events", fallback=fallback)
        return fallback

    period = find_current_period(events)
    if period is None:
        logger.warning("current_period_fallback", reason="no_current_event", events=len(events) if isinstance(events, list) else None, fallback=fallback)
        return fallback

    logger.info("current_period_detected", period=period)
    return period
