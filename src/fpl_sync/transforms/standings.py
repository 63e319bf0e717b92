from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError


class ManagerStanding(BaseModel):
    """One manager's line in one league's standings page."""

    manager_id: int
    player_name: str | None = None
    entry_name: str | None = None
    event_total: int = 0
    total: int | None = None
    rank: int | None = None


@dataclass(frozen=True)
class StandingsPage:
    managers: list[ManagerStanding]
    has_next: bool
    # False when `standings.results` is missing or not a list.
    well_formed: bool
    skipped: int = 0


def transform_standings_page(envelope: Any) -> StandingsPage:
    """
    FPL standings envelope -> ManagerStanding list

    Structure:
      envelope.standings.results -> list of entries ({entry, player_name, entry_name, event_total, total, rank})
      envelope.standings.has_next -> more pages follow
    """
    standings = envelope.get("standings") if isinstance(envelope, dict) else None
    if not isinstance(standings, dict):
        return StandingsPage(managers=[], has_next=False, well_formed=False)

    results = standings.get("results")
    if not isinstance(results, list):
        return StandingsPage(managers=[], has_next=False, well_formed=False)

    managers: list[ManagerStanding] = []
    skipped = 0
    for r in results:
        if not isinstance(r, dict) or r.get("entry") is None:
            skipped += 1
            continue
        try:
            managers.append(
                ManagerStanding.model_validate(
                    {
                        "manager_id": r.get("entry"),
                        "player_name": r.get("player_name"),
                        "entry_name": r.get("entry_name"),
                        "event_total": r.get("event_total") or 0,
                        "total": r.get("total"),
                        "rank": r.get("rank"),
                    }
                )
            )
        except ValidationError:
            skipped += 1

    return StandingsPage(
        managers=managers,
        has_next=bool(standings.get("has_next")),
        well_formed=True,
        skipped=skipped,
    )
