from __future__ import annotations

import asyncio
import hmac
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator
from urllib.parse import unquote

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from fpl_sync.collector.api_client import FPLClient, UpstreamError, normalize_path
from fpl_sync.jobs.diagnostics import run_diagnostics
from fpl_sync.jobs.sync import run_sync
from fpl_sync.utils.config import ConfigError, Settings, load_settings
from fpl_sync.utils.db import StorageError, Store
from fpl_sync.utils.logging import get_logger, setup_logging


logger = get_logger(component="api")

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version"
    ),
}
PROXY_CACHE_CONTROL = "public, s-maxage=30, stale-while-revalidate=60"


class AuthError(Exception):
    pass


@dataclass
class AppContext:
    """
    Application-scoped dependencies, built once at startup.

    A store that failed on a connection error (not on missing credentials) is
    rebuilt on the next request that needs it.
    """

    settings: Settings
    client: FPLClient
    store: Store | None = None
    init_error: str | None = None
    store_retryable: bool = False
    _store_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def ensure_store(self) -> Store | None:
        if self.store is not None or not self.store_retryable:
            return self.store
        async with self._store_lock:
            if self.store is None:
                try:
                    self.store = await asyncio.to_thread(Store.from_settings, self.settings)
                except StorageError as e:
                    self.init_error = str(e)
                    logger.warning("store_init_retry_failed", err=str(e))
                    return None
                self.init_error = None
                self.store_retryable = False
                logger.info("store_initialized", retried=True)
        return self.store

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.store is not None:
            self.store.close()


def build_context(settings: Settings | None = None) -> AppContext:
    """
    Missing or unreachable store credentials do not abort startup: the error is
    kept on the context and reported by every route that needs the store.
    """
    s = settings or load_settings()
    client = FPLClient.from_config(s.upstream)
    try:
        store = Store.from_settings(s)
    except ConfigError as e:
        logger.error("store_init_failed", err=str(e))
        return AppContext(settings=s, client=client, store=None, init_error=str(e))
    except StorageError as e:
        logger.error("store_init_failed", err=str(e), retryable=True)
        return AppContext(settings=s, client=client, store=None, init_error=str(e), store_retryable=True)
    logger.info("store_initialized")
    return AppContext(settings=s, client=client, store=store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    ctx = build_context()
    app.state.ctx = ctx
    try:
        yield
    finally:
        await ctx.aclose()


app = FastAPI(title="fpl-league-sync", version="v1", lifespan=lifespan)


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def _presented_secret(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.headers.get("x-cron-secret")


def verify_trigger_secret(request: Request, expected: str | None) -> None:
    if not expected:
        raise ConfigError("CRON_SECRET is not configured")
    presented = _presented_secret(request)
    if presented is None or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise AuthError("Unauthorized")


def _failure(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


async def _sync_response(request: Request, ctx: AppContext, *, auth_required: bool, trigger: str) -> Response:
    """Shared body of the scheduled and manual triggers."""
    if auth_required:
        try:
            verify_trigger_secret(request, ctx.settings.trigger_secret)
        except AuthError:
            logger.warning("trigger_unauthorized", trigger=trigger)
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
        except ConfigError as e:
            logger.error("trigger_secret_missing", trigger=trigger, err=str(e))
            return _failure(500, str(e))

    store = await ctx.ensure_store()
    if store is None:
        return _failure(500, f"Store not initialized: {ctx.init_error}")

    logger.info("trigger_received", trigger=trigger)
    try:
        summary = await run_sync(settings=ctx.settings, client=ctx.client, store=store)
    except Exception as e:
        logger.exception("sync_failed", trigger=trigger, err=str(e))
        return _failure(500, str(e))

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "period": summary.period,
            "managersProcessed": summary.managers_processed,
            "durationMs": summary.duration_ms,
        },
    )


@app.get("/api/cron/sync-fpl-data")
async def scheduled_sync(request: Request, ctx: AppContext = Depends(get_context)) -> Response:
    return await _sync_response(request, ctx, auth_required=True, trigger="scheduled")


@app.api_route("/api/manual-sync", methods=["GET", "POST"])
async def manual_sync(request: Request, ctx: AppContext = Depends(get_context)) -> Response:
    return await _sync_response(request, ctx, auth_required=False, trigger="manual")


@app.get("/api/test-sync")
async def diagnostic_probe(ctx: AppContext = Depends(get_context)) -> Response:
    store = await ctx.ensure_store()
    report = await run_diagnostics(
        settings=ctx.settings,
        client=ctx.client,
        store=store,
        init_error=ctx.init_error,
    )
    if report.ok:
        return JSONResponse(
            status_code=200,
            content={"success": True, "message": "All diagnostic tests passed!", "diagnostics": report.as_dict()},
        )
    return _failure(500, report.error or "unknown error", step=report.step, diagnostics=report.as_dict())


@app.api_route("/api/proxy", methods=["GET", "OPTIONS"])
async def proxy(request: Request, endpoint: str | None = None, ctx: AppContext = Depends(get_context)) -> Response:
    """Relay an FPL API path for browser clients (CORS)."""
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    if not endpoint:
        return JSONResponse(status_code=400, content={"error": "Missing endpoint parameter"}, headers=CORS_HEADERS)

    try:
        path = normalize_path(unquote(endpoint))
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)}, headers=CORS_HEADERS)

    logger.info("proxy_fetch", path=path)
    try:
        data = await ctx.client.fetch_resource(path)
    except UpstreamError as e:
        logger.error("proxy_failed", path=path, err=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch FPL data", "message": str(e)},
            headers=CORS_HEADERS,
        )

    return JSONResponse(status_code=200, content=data, headers={**CORS_HEADERS, "Cache-Control": PROXY_CACHE_CONTROL})
