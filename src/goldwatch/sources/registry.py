"""Source → client lookup table."""

from __future__ import annotations

import logging
from typing import Iterator

from goldwatch.core.config import GoldwatchConfig
from goldwatch.core.models import Source
from goldwatch.sources.clients import (
    BrandRoutedClient,
    DirectApiClient,
    FetchResult,
    ScrapedPageClient,
    SourceClient,
)
from goldwatch.sources.directory import DirectoryResolver
from goldwatch.sources.http import HttpFetcher

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Maps each source to the client that knows how to fetch it.

    The scheduler only talks to the registry, so adding a provider means
    registering a client here.
    """

    def __init__(self) -> None:
        self._clients: dict[Source, SourceClient] = {}

    def register(self, source: Source, client: SourceClient) -> None:
        if source in self._clients:
            raise ValueError(
                f"Source '{source.value}' is already registered. Use replace() to override."
            )
        self._clients[source] = client

    def replace(self, source: Source, client: SourceClient) -> None:
        if source not in self._clients:
            raise KeyError(f"Source '{source.value}' is not registered.")
        self._clients[source] = client

    def get(self, source: Source) -> SourceClient:
        try:
            return self._clients[source]
        except KeyError:
            raise KeyError(f"No client registered for source '{source.value}'.") from None

    @property
    def sources(self) -> list[Source]:
        """Registered sources, in enum declaration order."""
        return [s for s in Source if s in self._clients]

    def __contains__(self, source: object) -> bool:
        return source in self._clients

    def __iter__(self) -> Iterator[Source]:
        return iter(self.sources)

    def __len__(self) -> int:
        return len(self._clients)

    async def fetch(self, source: Source, target_override: Source | None = None) -> FetchResult:
        return await self.get(source).fetch(source, target_override)


def build_default_registry(
    http: HttpFetcher,
    resolver: DirectoryResolver,
    config: GoldwatchConfig,
) -> SourceRegistry:
    """Register the built-in client for every source."""
    encodings = config.http.fallback_encodings
    urls = config.sources

    direct = DirectApiClient(http, {Source.JD_FINANCE: urls.jd_finance_url}, encodings=encodings)
    scraped = ScrapedPageClient(
        http,
        {Source.SHUIBEI: urls.shuibei_url, Source.SGE: urls.sge_url},
        encodings=encodings,
    )
    branded = BrandRoutedClient(http, resolver, urls.brand_price_url, encodings=encodings)

    registry = SourceRegistry()
    for source in Source:
        client = next(c for c in (direct, scraped, branded) if c.supports(source))
        registry.register(source, client)

    logger.debug("Registered %d sources", len(registry))
    return registry
