import logging
from typing import Any, Optional

import httpx

from canteen.config import settings

logger = logging.getLogger("canteen.upstream")


class UpstreamError(Exception):
    """Network failure or non-2xx answer from the canteen backend."""

    def __init__(self, message: str, status: int = 0, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


def api_path(path: str, prefix: str) -> str:
    prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""
    p = path if path.startswith("/") else f"/{path}"
    if prefix and (p == prefix or p.startswith(prefix + "/")):
        return p
    return f"{prefix}{p}"


class UpstreamClient:
    """
    Thin async wrapper over the canteen REST API.
    Pass `transport` to run against an in-process or mock backend.
    """

    def __init__(self, base_url: Optional[str] = None, prefix: Optional[str] = None,
                 token: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.prefix = settings.API_PREFIX if prefix is None else prefix
        headers = {"Accept": "application/json"}
        token = token or settings.API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip("/"),
            headers=headers,
            timeout=settings.HTTP_TIMEOUT if timeout is None else timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        url = api_path(path, self.prefix)
        try:
            return await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"GET {url} failed: {e}") from e

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        r = await self.get(path, params=params)
        is_json = "application/json" in r.headers.get("content-type", "")
        data: Any = None
        if r.status_code != 204 and r.content:
            try:
                data = r.json() if is_json else r.text
            except ValueError:
                logger.warning("unparsable body from %s", r.request.url)
                data = None
        if not r.is_success:
            msg = None
            if isinstance(data, dict):
                msg = data.get("error") or data.get("message")
            elif isinstance(data, str) and data:
                msg = data
            raise UpstreamError(msg or f"{r.status_code} {r.reason_phrase}", r.status_code, data)
        return data if is_json else None
