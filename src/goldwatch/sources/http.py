"""Rate-limited async HTTP transport shared by all source clients."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from goldwatch.core.config import HttpConfig
from goldwatch.core.exceptions import NetworkError

logger = logging.getLogger(__name__)


class HttpFetcher:
    """Thin wrapper over ``httpx.AsyncClient`` with a token-bucket limiter.

    Every request is a single request/response cycle: no retries, no
    engine-level timeout beyond the transport timeout from config. Transport
    failures and non-2xx statuses are raised as NetworkError.

    Use via ``async with HttpFetcher(...) as http:`` or call ``close()``.
    """

    def __init__(
        self,
        config: HttpConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or HttpConfig()
        self._limiter = AsyncLimiter(max_rate=self._config.rate_limit, time_period=1.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": self._config.user_agent},
            timeout=httpx.Timeout(self._config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def config(self) -> HttpConfig:
        return self._config

    @property
    def browser_headers(self) -> dict[str, str]:
        """Header set that passes for a desktop browser.

        Some scraped hosts reject requests without these.
        """
        return {
            "User-Agent": self._config.user_agent,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,*/*;q=0.8"
            ),
            "Accept-Language": self._config.accept_language,
            "Cache-Control": "no-cache",
        }

    async def get(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one GET request.

        Returns:
            The response, guaranteed to have a 2xx status.

        Raises:
            NetworkError: Transport failure or non-2xx status.
        """
        await self._limiter.acquire()
        try:
            response = await self._client.get(url, headers=headers, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(
                f"Request to {url} failed: {e.__class__.__name__}: {e}",
                context={"url": url, "error": str(e)},
            ) from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code} from {url}",
                context={"url": url, "status_code": response.status_code},
            )

        logger.debug("GET %s -> %d (%d bytes)", url, response.status_code, len(response.content))
        return response
