from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from typing import Any, Iterator

import pytest

from fpl_fixtures import FakeFPLClient, FakeStore, classic_path, manager, standings_page
from fpl_sync.jobs.sync import SyncTimeoutError, run_sync
from fpl_sync.utils.db import StorageError


@pytest.mark.asyncio
async def test_run_sync_merges_leagues_and_writes_snapshots(settings, league_routes, fake_store) -> None:
    client = FakeFPLClient(league_routes)

    summary = await run_sync(settings=settings, client=client, store=fake_store)

    assert summary.period == 11
    assert summary.managers_processed == 2
    assert summary.league_sizes == {"classic": 2, "lms": 2, "h2h": 0}

    rows = fake_store.tables["manager_data"]
    assert set(rows) == {(1, 11), (2, 11)}
    assert rows[(1, 11)]["lms_rank"] is None
    assert rows[(2, 11)]["lms_rank"] == 1
    assert rows[(2, 11)]["h2h_rank"] is None
    assert rows[(1, 11)]["classic_gw_points"] == 5
    assert fake_store.tables["season_snapshot"][(1,)]["current_gw"] == 11
    # snapshots and marker share one transaction
    assert fake_store.commits == 1
    assert len({conn for _, _, conn in fake_store.upsert_calls}) == 1


@pytest.mark.asyncio
async def test_second_run_for_same_period_overwrites(settings, league_routes, fake_store) -> None:
    await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=fake_store)

    league_routes[classic_path(100, 1)] = standings_page([manager(1, 2, 58), manager(2, 1, 61)])
    await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=fake_store)

    rows = fake_store.tables["manager_data"]
    assert len(rows) == 2
    assert rows[(1, 11)]["classic_total"] == 58
    assert rows[(2, 11)]["classic_rank"] == 1


@pytest.mark.asyncio
async def test_bootstrap_failure_uses_fallback_period(settings, league_routes, fake_store) -> None:
    del league_routes["/bootstrap-static/"]
    summary = await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=fake_store)
    assert summary.period == settings.upstream.fallback_period


@pytest.mark.asyncio
async def test_empty_primary_league_still_updates_marker(settings, league_routes, fake_store) -> None:
    league_routes[classic_path(100, 1)] = standings_page([])
    summary = await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=fake_store)

    assert summary.managers_processed == 0
    assert "manager_data" not in fake_store.tables
    assert fake_store.tables["season_snapshot"][(1,)]["current_gw"] == 11


@pytest.mark.asyncio
async def test_dry_run_makes_no_writes(settings, league_routes) -> None:
    summary = await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=None, dry_run=True)
    assert summary.dry_run is True
    assert summary.managers_processed == 2


@pytest.mark.asyncio
async def test_store_required_unless_dry_run(settings, league_routes) -> None:
    with pytest.raises(ValueError):
        await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=None)


@pytest.mark.asyncio
async def test_storage_errors_propagate(settings, league_routes) -> None:
    store = FakeStore(fail_with=StorageError("permission denied for table manager_data"))
    with pytest.raises(StorageError):
        await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=store)


class _HangingClient(FakeFPLClient):
    async def fetch_resource(self, path: str) -> Any:
        if path.startswith("/leagues-classic/"):
            await asyncio.sleep(10)
        return await super().fetch_resource(path)


@pytest.mark.asyncio
async def test_invocation_deadline_is_enforced(settings, league_routes, fake_store) -> None:
    from dataclasses import replace

    fast = replace(settings, upstream=replace(settings.upstream, invocation_deadline_seconds=0.05))
    with pytest.raises(SyncTimeoutError):
        await run_sync(settings=fast, client=_HangingClient(league_routes), store=fake_store)
    assert fake_store.tables == {}


class _SlowStore(FakeStore):
    """Write phase outlasts the invocation deadline."""

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        time.sleep(0.3)
        with super().transaction() as conn:
            yield conn


@pytest.mark.asyncio
async def test_slow_write_is_reported_by_its_real_outcome(settings, league_routes) -> None:
    from dataclasses import replace

    store = _SlowStore()
    fast = replace(settings, upstream=replace(settings.upstream, invocation_deadline_seconds=0.1))

    summary = await run_sync(settings=fast, client=FakeFPLClient(league_routes), store=store)

    assert store.commits == 1
    assert summary.managers_processed == 2
    assert set(store.tables["manager_data"]) == {(1, 11), (2, 11)}


@pytest.mark.asyncio
async def test_manager_repeated_across_pages_is_counted_once(settings, league_routes, fake_store) -> None:
    # Manager 2 slid from page 1 to page 2 between the two requests.
    league_routes[classic_path(100, 1)] = standings_page([manager(1, 1, 50), manager(2, 2, 40)], has_next=True)
    league_routes[classic_path(100, 2)] = standings_page([manager(2, 3, 40), manager(4, 4, 30)])

    summary = await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=fake_store)

    assert summary.league_sizes["classic"] == 4
    assert summary.managers_processed == 3
    assert len(fake_store.tables["manager_data"]) == 3


@pytest.mark.asyncio
async def test_dry_run_counts_managers_like_the_upsert(settings, league_routes) -> None:
    league_routes[classic_path(100, 1)] = standings_page([manager(1, 1, 50), manager(1, 1, 50)])
    summary = await run_sync(settings=settings, client=FakeFPLClient(league_routes), store=None, dry_run=True)
    assert summary.managers_processed == 1
