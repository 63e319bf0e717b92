from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from fpl_sync.transforms.standings import ManagerStanding


class ManagerSnapshot(BaseModel):
    manager_id: int
    gw: int
    team_name: str | None = None
    player_name: str | None = None
    classic_rank: int | None = None
    classic_total: int | None = None
    classic_gw_points: int = 0
    # label -> rank in that league, None when the manager is not a member.
    secondary_ranks: dict[str, int | None] = {}
    last_updated: datetime

    def to_row(self) -> dict[str, Any]:
        """Column mapping for manager_data (one `<label>_rank` column per secondary league)."""
        row: dict[str, Any] = {
            "manager_id": self.manager_id,
            "gw": self.gw,
            "team_name": self.team_name,
            "player_name": self.player_name,
            "classic_rank": self.classic_rank,
            "classic_total": self.classic_total,
            "classic_gw_points": self.classic_gw_points,
        }
        for label, rank in self.secondary_ranks.items():
            row[f"{label}_rank"] = rank
        row["last_updated"] = self.last_updated
        return row


def _index_ranks(standings: Sequence[ManagerStanding]) -> dict[int, int | None]:
    # First occurrence wins, same as a linear scan would.
    out: dict[int, int | None] = {}
    for s in standings:
        out.setdefault(s.manager_id, s.rank)
    return out


def reconcile(
    period: int,
    primary: Sequence[ManagerStanding],
    secondaries: Mapping[str, Sequence[ManagerStanding]],
    *,
    updated_at: datetime | None = None,
) -> list[ManagerSnapshot]:
    """
    One snapshot per primary-league manager, in primary order.

    Secondary ranks are joined by manager id; managers that only appear in a
    secondary league are not included.
    """
    ts = updated_at or datetime.now(timezone.utc)
    indexes = {label: _index_ranks(lst) for label, lst in secondaries.items()}

    return [
        ManagerSnapshot(
            manager_id=m.manager_id,
            gw=int(period),
            team_name=m.entry_name,
            player_name=m.player_name,
            classic_rank=m.rank,
            classic_total=m.total,
            classic_gw_points=m.event_total,
            secondary_ranks={label: idx.get(m.manager_id) for label, idx in indexes.items()},
            last_updated=ts,
        )
        for m in primary
    ]
