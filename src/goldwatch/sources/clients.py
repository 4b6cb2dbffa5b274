"""Source clients: one fetch strategy per provider family.

All clients share one contract, ``fetch(source, target_override=None)``,
and report failures as a ``FetchResult`` carrying a ``FetchError`` instead
of raising.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Sequence
from urllib.parse import quote

import httpx

from goldwatch.core.exceptions import DecodeError, ExtractionMiss, FetchError, RoutingError
from goldwatch.core.models import Brand, PriceReading, QuoteRow, Source, SourceFamily
from goldwatch.extraction.extractors import (
    DEFAULT_FALLBACK_ENCODINGS,
    decode_document,
    extract_json_price,
    extract_pattern_price,
    extract_table,
)
from goldwatch.extraction.rules import profile_for
from goldwatch.sources.directory import DirectoryResolver
from goldwatch.sources.http import HttpFetcher

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one fetch: either a reading or an error, never both."""

    source: Source
    reading: PriceReading | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.reading is not None


class SourceClient(ABC):
    """Base class for provider-family clients."""

    family: SourceFamily

    def __init__(
        self,
        http: HttpFetcher,
        encodings: Sequence[str] = DEFAULT_FALLBACK_ENCODINGS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._http = http
        self._encodings = tuple(encodings)
        self._now = now

    def supports(self, source: Source) -> bool:
        return source.family is self.family

    async def fetch(self, source: Source, target_override: Source | None = None) -> FetchResult:
        """Fetch ``source`` and attribute the outcome to ``target_override``.

        The override lets a sweep record a reading under another source
        identity; it defaults to ``source`` itself.
        """
        target = target_override or source
        try:
            price, quotes = await self._fetch_price(source)
        except FetchError as exc:
            exc.source = target
            return FetchResult(source=target, error=exc)

        reading = PriceReading(
            source=target,
            price=price,
            observed_at=self._now(),
            quotes=quotes,
        )
        return FetchResult(source=target, reading=reading)

    @abstractmethod
    async def _fetch_price(self, source: Source) -> tuple[float, tuple[QuoteRow, ...]]:
        """Return the price and any quote rows, raising FetchError on failure."""

    def _decode(self, response: httpx.Response) -> str:
        text = decode_document(response.content, response.charset_encoding, self._encodings)
        if text is None:
            url = str(response.url)
            raise DecodeError(
                f"Could not decode response from {url}",
                context={"url": url, "encodings": list(self._encodings)},
            )
        return text


class DirectApiClient(SourceClient):
    """One GET to a fixed JSON endpoint, price at a fixed key path."""

    family = SourceFamily.DIRECT_API

    def __init__(self, http: HttpFetcher, urls: Mapping[Source, str], **kwargs) -> None:
        super().__init__(http, **kwargs)
        self._urls = dict(urls)

    async def _fetch_price(self, source: Source) -> tuple[float, tuple[QuoteRow, ...]]:
        url = self._urls[source]
        response = await self._http.get(url)
        path = profile_for(source).json_path

        price = extract_json_price(self._decode(response), path)
        if price is None:
            raise ExtractionMiss(
                f"No numeric price at {'.'.join(path)}",
                context={"url": url, "path": list(path)},
            )
        return price, ()


class ScrapedPageClient(SourceClient):
    """One GET with browser headers, then pattern or table extraction."""

    family = SourceFamily.SCRAPED_PAGE

    def __init__(self, http: HttpFetcher, urls: Mapping[Source, str], **kwargs) -> None:
        super().__init__(http, **kwargs)
        self._urls = dict(urls)

    async def _fetch_price(self, source: Source) -> tuple[float, tuple[QuoteRow, ...]]:
        url = self._urls[source]
        response = await self._http.get(url, headers=self._http.browser_headers)
        text = self._decode(response)
        profile = profile_for(source)

        if profile.is_table:
            table = extract_table(text, profile.table_pattern)
            if table.mean is None:
                raise ExtractionMiss("No quote rows matched", context={"url": url})
            logger.debug("%s: %d quote rows, mean %.2f", source.value, len(table.rows), table.mean)
            return table.mean, table.rows

        price = extract_pattern_price(text, profile.rules, profile.bounds)
        if price is None:
            raise ExtractionMiss(
                f"None of {len(profile.rules)} pattern rules produced a plausible price",
                context={"url": url},
            )
        return price, ()


class BrandRoutedClient(SourceClient):
    """Resolve the source's brand keyword, then query the brand endpoint.

    If the keyword does not resolve (typically because the directory is
    still empty), the directory is refreshed and resolution retried once.
    """

    family = SourceFamily.BRAND_ROUTED

    def __init__(
        self,
        http: HttpFetcher,
        resolver: DirectoryResolver,
        url_template: str,
        **kwargs,
    ) -> None:
        super().__init__(http, **kwargs)
        self._resolver = resolver
        self._url_template = url_template

    async def _fetch_price(self, source: Source) -> tuple[float, tuple[QuoteRow, ...]]:
        brand = await self._route(source)
        url = self._url_template.format(brand_id=quote(brand.id, safe=""))
        response = await self._http.get(url)
        path = profile_for(source).json_path

        price = extract_json_price(self._decode(response), path)
        if price is None:
            raise ExtractionMiss(
                f"No numeric price at {'.'.join(path)} for brand {brand.name!r}",
                context={"url": url, "brand_id": brand.id},
            )
        return price, ()

    async def _route(self, source: Source) -> Brand:
        keyword = source.brand_keyword
        if not keyword:
            raise RoutingError(f"Source {source.value!r} has no brand keyword")

        brand = self._resolver.resolve(keyword)
        if brand is not None:
            return brand

        logger.info("Brand %r not in directory, refreshing once", keyword)
        directory = await self._resolver.refresh()
        brand = self._resolver.resolve(keyword, directory)
        if brand is None:
            raise RoutingError(
                f"Brand keyword {keyword!r} not found in directory",
                context={"keyword": keyword, "directory_size": len(directory)},
            )
        return brand
