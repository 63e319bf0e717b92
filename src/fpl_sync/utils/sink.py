from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from fpl_sync.transforms.snapshots import ManagerSnapshot
from fpl_sync.utils.db import Store


SNAPSHOT_TABLE = "manager_data"
SNAPSHOT_CONFLICT_COLS = ("manager_id", "gw")
MARKER_TABLE = "season_snapshot"
MARKER_ID = 1


def upsert_snapshots(
    store: Store,
    snapshots: Sequence[ManagerSnapshot],
    *,
    conflict_cols: Sequence[str] = SNAPSHOT_CONFLICT_COLS,
    conn: Any = None,
) -> int:
    """Write merged manager rows; an existing (manager_id, gw) row is overwritten."""
    if not snapshots:
        return 0
    rows = [s.to_row() for s in snapshots]
    return store.upsert_rows(table=SNAPSHOT_TABLE, rows=rows, conflict_cols=conflict_cols, conn=conn)


def upsert_period_marker(store: Store, period: int, *, conn: Any = None) -> None:
    store.upsert_rows(
        table=MARKER_TABLE,
        rows=[{"id": MARKER_ID, "current_gw": int(period), "updated_at": datetime.now(timezone.utc)}],
        conflict_cols=("id",),
        conn=conn,
    )
