from __future__ import annotations

from fpl_sync.collector.api_client import FPLClient, UpstreamError
from fpl_sync.transforms.standings import ManagerStanding, transform_standings_page
from fpl_sync.utils.logging import get_logger


logger = get_logger(component="paginator")

_STANDINGS_PATHS = {
    "classic": "/leagues-classic/{league_id}/standings/?page_standings={page}",
    "h2h": "/leagues-h2h/{league_id}/standings/?page_standings={page}",
}


def standings_path(league_id: int, page: int, *, kind: str = "classic") -> str:
    try:
        template = _STANDINGS_PATHS[kind]
    except KeyError:
        raise ValueError(f"Unknown league kind: {kind}")
    return template.format(league_id=int(league_id), page=int(page))


async def fetch_all_pages(
    client: FPLClient,
    league_id: int,
    *,
    label: str | None = None,
    kind: str = "classic",
) -> list[ManagerStanding]:
    """
    All standings pages of one league, in upstream order.

    Pages are requested sequentially from 1 while the previous page reported
    `has_next` and returned results. An upstream failure ends pagination early
    and the managers gathered so far are returned (best-effort, logged).
    """
    name = label or str(league_id)
    managers: list[ManagerStanding] = []
    page = 1

    while True:
        path = standings_path(league_id, page, kind=kind)
        try:
            envelope = await client.fetch_resource(path)
        except UpstreamError as e:
            logger.error(
                "league_page_failed",
                league=name,
                league_id=league_id,
                page=page,
                err=str(e),
                managers_kept=len(managers),
            )
            break

        result = transform_standings_page(envelope)
        if not result.well_formed:
            logger.warning("league_page_malformed", league=name, league_id=league_id, page=page)
            break
        if result.skipped:
            logger.warning("league_page_records_skipped", league=name, league_id=league_id, page=page, skipped=result.skipped)

        managers.extend(result.managers)
        logger.info("league_page_fetched", league=name, page=page, managers=len(result.managers), has_next=result.has_next)

        if not result.has_next or not (result.managers or result.skipped):
            break
        page += 1

    logger.info("league_fetch_complete", league=name, league_id=league_id, pages=page, managers=len(managers))
    return managers
