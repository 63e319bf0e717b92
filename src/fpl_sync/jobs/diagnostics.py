from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fpl_sync.collector.api_client import FPLClient
from fpl_sync.collector.paginator import standings_path
from fpl_sync.collector.period import BOOTSTRAP_PATH, find_current_period
from fpl_sync.transforms.snapshots import ManagerSnapshot
from fpl_sync.utils.config import Settings
from fpl_sync.utils.db import StorageError, Store
from fpl_sync.utils.logging import get_logger
from fpl_sync.utils.sink import SNAPSHOT_TABLE, upsert_snapshots


logger = get_logger(component="diagnostics")

DIAGNOSTIC_MANAGER_ID = 999999


@dataclass
class DiagnosticReport:
    ok: bool = False
    step: str = "init"
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"step": self.step, "error": self.error, **self.details}


def _diagnostic_snapshot(settings: Settings, period: int) -> ManagerSnapshot:
    return ManagerSnapshot(
        manager_id=DIAGNOSTIC_MANAGER_ID,
        gw=period,
        team_name="Test Team",
        player_name="TEST_DIAGNOSTIC",
        classic_rank=DIAGNOSTIC_MANAGER_ID,
        classic_total=0,
        classic_gw_points=0,
        secondary_ranks={lg.label: None for lg in settings.secondaries},
        last_updated=datetime.now(timezone.utc),
    )


async def run_diagnostics(
    *,
    settings: Settings,
    client: FPLClient,
    store: Store | None,
    init_error: str | None = None,
) -> DiagnosticReport:
    """
    Walk every dependency in order and stop at the first failing step:
    env_check, store_connect, upstream_bootstrap, league_api, store_write, store_verify.
    """
    report = DiagnosticReport(details={"timestamp": datetime.now(timezone.utc).isoformat()})
    d = report.details

    try:
        report.step = "env_check"
        d["env"] = {
            "database_url": "SET" if settings.store_url else "MISSING",
            "database_password": f"SET (length: {len(settings.store_key)})" if settings.store_key else "MISSING",
            "cron_secret": "SET" if settings.trigger_secret else "MISSING",
        }
        settings.require_store()

        report.step = "store_connect"
        if store is None:
            raise StorageError(init_error or "Store not initialized")
        if not await asyncio.to_thread(store.ping):
            raise StorageError("Store did not answer SELECT 1")
        d["store"] = "connected"

        report.step = "upstream_bootstrap"
        bootstrap = await client.fetch_resource(BOOTSTRAP_PATH)
        detected = find_current_period(bootstrap.get("events") if isinstance(bootstrap, dict) else None)
        d["fpl"] = {"status": "SUCCESS", "current_period": detected if detected is not None else "unknown"}
        period = detected if detected is not None else settings.upstream.fallback_period

        report.step = "league_api"
        primary = settings.primary
        league_data = await client.fetch_resource(standings_path(primary.league_id, 1, kind=primary.kind))
        league_data = league_data if isinstance(league_data, dict) else {}
        results = (league_data.get("standings") or {}).get("results") or []
        d["league"] = {
            "status": "SUCCESS",
            "league_id": primary.league_id,
            "first_page_managers": len(results) if isinstance(results, list) else 0,
            "league_name": (league_data.get("league") or {}).get("name") or "unknown",
        }

        report.step = "store_write"
        await asyncio.to_thread(upsert_snapshots, store, [_diagnostic_snapshot(settings, period)])
        d["store_write"] = "SUCCESS"

        report.step = "store_verify"
        row = await asyncio.to_thread(
            store.fetch_one,
            f"SELECT manager_id, gw FROM {SNAPSHOT_TABLE} WHERE manager_id = %s AND gw = %s",
            (DIAGNOSTIC_MANAGER_ID, period),
        )
        if row is None:
            raise StorageError(f"Diagnostic row {DIAGNOSTIC_MANAGER_ID}/{period} not found after upsert")
        d["store_verify"] = "DATA FOUND"

        report.ok = True
        report.step = "done"
        logger.info("diagnostics_passed")
    except Exception as e:
        report.ok = False
        report.error = str(e)
        logger.error("diagnostics_failed", step=report.step, err=str(e))

    return report
