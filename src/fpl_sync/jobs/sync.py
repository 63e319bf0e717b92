from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from fpl_sync.collector.api_client import FPLClient
from fpl_sync.collector.paginator import fetch_all_pages
from fpl_sync.collector.period import current_period
from fpl_sync.transforms.snapshots import ManagerSnapshot, reconcile
from fpl_sync.utils.config import Settings
from fpl_sync.utils.db import Store
from fpl_sync.utils.logging import get_logger
from fpl_sync.utils.sink import upsert_period_marker, upsert_snapshots


logger = get_logger(component="sync")


class SyncTimeoutError(Exception):
    pass


@dataclass(frozen=True)
class SyncSummary:
    period: int
    managers_processed: int
    duration_ms: int
    league_sizes: dict[str, int] = field(default_factory=dict)
    dry_run: bool = False


def _write(store: Store, snapshots: list[ManagerSnapshot], period: int) -> int:
    # Snapshots and marker commit together.
    with store.transaction() as conn:
        written = upsert_snapshots(store, snapshots, conn=conn)
        upsert_period_marker(store, period, conn=conn)
    return written


async def _collect(*, settings: Settings, client: FPLClient) -> tuple[int, list[ManagerSnapshot], dict[str, int]]:
    period = await current_period(client, fallback=settings.upstream.fallback_period)

    leagues = settings.leagues
    lists = await asyncio.gather(
        *(fetch_all_pages(client, lg.league_id, label=lg.label, kind=lg.kind) for lg in leagues)
    )
    by_label = {lg.label: lst for lg, lst in zip(leagues, lists)}
    sizes = {label: len(lst) for label, lst in by_label.items()}

    primary = by_label[settings.primary.label]
    if not primary:
        logger.warning("primary_league_empty", league_id=settings.primary.league_id, period=period)

    snapshots = reconcile(
        period,
        primary,
        {lg.label: by_label[lg.label] for lg in settings.secondaries},
    )
    logger.info("snapshots_prepared", period=period, snapshots=len(snapshots), league_sizes=sizes)
    return period, snapshots, sizes


async def run_sync(
    *,
    settings: Settings,
    client: FPLClient,
    store: Store | None,
    dry_run: bool = False,
) -> SyncSummary:
    """
    Bootstrap -> league pages (3 leagues, concurrently) -> reconcile -> upsert.

    `upstream.invocation_deadline_seconds` bounds the upstream phase only. Once
    the write starts it runs to completion, bounded by the store statement_timeout.
    `store` may be None only for a dry run.
    """
    if store is None and not dry_run:
        raise ValueError("store is required unless dry_run=True")

    started = time.monotonic()
    deadline = settings.upstream.invocation_deadline_seconds
    logger.info("sync_started", dry_run=dry_run, leagues=[{"label": lg.label, "league_id": lg.league_id} for lg in settings.leagues])

    try:
        period, snapshots, sizes = await asyncio.wait_for(
            _collect(settings=settings, client=client),
            timeout=deadline,
        )
    except asyncio.TimeoutError as e:
        raise SyncTimeoutError(f"Sync exceeded the {deadline:g}s invocation deadline") from e

    if dry_run:
        # Same collapse the upsert applies to repeated managers.
        written = len({(s.manager_id, s.gw) for s in snapshots})
        logger.info("store_skipped_dry_run", snapshots=len(snapshots), rows=written)
    else:
        assert store is not None
        written = await asyncio.to_thread(_write, store, snapshots, period)
        logger.info("store_written", period=period, snapshots=len(snapshots), rows=written)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("sync_complete", period=period, managers=written, snapshots=len(snapshots), duration_ms=duration_ms, dry_run=dry_run)
    return SyncSummary(
        period=period,
        managers_processed=written,
        duration_ms=duration_ms,
        league_sizes=sizes,
        dry_run=dry_run,
    )
