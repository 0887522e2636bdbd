"""HTTP access to the metric endpoints."""

from typing import Any

import aiohttp

DEFAULT_BASE_URL = "http://127.0.0.1:61208/api/metrics"
DEFAULT_TIMEOUT = 3.0


class SourceError(Exception):
    """A metric endpoint answered, but not with a usable JSON body."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"{endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class MetricsClient:
    """
    Fetches JSON bodies from ``<base_url>/<endpoint>``.

    The session is created on first use inside the running event loop and
    shared by every fetch until ``close()``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, endpoint: str) -> str:
        return f"{self._base_url}/{endpoint}"

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def fetch(self, endpoint: str) -> Any:
        """
        GET one endpoint and decode its JSON body.

        Raises:
            SourceError: On a non-2xx status or a body that is not JSON.
            aiohttp.ClientError: On transport failures.
            asyncio.TimeoutError: When the request exceeds the timeout.
        """
        session = self._ensure_session()
        async with session.get(self.url_for(endpoint), headers={"Cache-Control": "no-store"}) as response:
            if not 200 <= response.status < 300:
                raise SourceError(endpoint, f"HTTP {response.status}")
            try:
                return await response.json(content_type=None)
            except ValueError as exc:
                raise SourceError(endpoint, "malformed JSON body") from exc

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
