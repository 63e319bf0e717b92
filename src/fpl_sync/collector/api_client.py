from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from fpl_sync.utils.config import DEFAULT_BASE_URL, DEFAULT_USER_AGENT, UpstreamConfig
from fpl_sync.utils.logging import get_logger


logger = get_logger(component="fpl_client")


class UpstreamError(Exception):
    pass


class UpstreamHTTPError(UpstreamError):
    def __init__(self, status: int, path: str, body_text: str | None = None) -> None:
        super().__init__(f"FPL API {path} returned {status}")
        self.status = status
        self.path = path
        self.body_text = body_text


class UpstreamParseError(UpstreamError):
    def __init__(self, path: str) -> None:
        super().__init__(f"FPL API {path} returned a body that is not valid JSON")
        self.path = path


class UpstreamTimeoutError(UpstreamError):
    pass


@dataclass(frozen=True)
class APIResult:
    status_code: int
    data: Any
    headers: dict[str, str]


def normalize_path(path: str) -> str:
    """Relative resource path under the API base; absolute URLs are refused."""
    p = (path or "").strip()
    if not p:
        raise ValueError("Empty resource path")
    if "://" in p or p.startswith("//"):
        raise ValueError(f"Resource path must be relative to the FPL API: {p!r}")
    if not p.startswith("/"):
        p = f"/{p}"
    return p


class FPLClient:
    """
    Fantasy Premier League read-only client
    - GET-only
    - Identifying headers on every request (FPL rejects bare clients)
    - Async httpx, one timeout per call, no retries
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = float(timeout_seconds)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_config(cls, cfg: UpstreamConfig) -> FPLClient:
        return cls(base_url=cfg.base_url, timeout_seconds=cfg.timeout_seconds, user_agent=cfg.user_agent)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_resource(self, path: str) -> Any:
        result = await self.get(path)
        return result.data

    async def get(self, path: str, params: dict[str, Any] | None = None) -> APIResult:
        return await self.request("GET", path, params=params)

    async def request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> APIResult:
        if method.upper() != "GET":
            raise ValueError("GET only: the FPL API is read-only")

        endpoint = normalize_path(path)
        logger.debug("fpl_request", path=endpoint)

        try:
            resp = await self._client.request("GET", endpoint, params=params or None)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"FPL API {endpoint} timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"FPL API {endpoint} request error: {e}") from e

        resp_headers = {k: v for k, v in resp.headers.items()}

        if not resp.is_success:
            body_text: str | None
            try:
                body_text = resp.text
            except Exception:
                body_text = None
            raise UpstreamHTTPError(resp.status_code, endpoint, body_text=body_text)

        if resp.status_code == 204 or not resp.content:
            return APIResult(status_code=resp.status_code, data=None, headers=resp_headers)

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamParseError(endpoint) from e
        return APIResult(status_code=resp.status_code, data=data, headers=resp_headers)
