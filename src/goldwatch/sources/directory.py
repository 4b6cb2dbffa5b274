"""Brand directory: fetch, parse, cache, and resolve brand keywords."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Callable, Sequence

from goldwatch.core.exceptions import DecodeError
from goldwatch.core.models import Brand, Directory
from goldwatch.extraction.extractors import DEFAULT_FALLBACK_ENCODINGS, decode_document
from goldwatch.sources.http import HttpFetcher

logger = logging.getLogger(__name__)

# The directory ships as a script with object literals embedded in it; only
# brace-balanced fragments without nesting are considered.
_FRAGMENT_RE = re.compile(r"\{[^{}]*\}")
_ID_RE = re.compile(r"""(?<!\w)["']?_id["']?\s*:\s*["']([^"']*)["']""")
_BRAND_RE = re.compile(r"""(?<!\w)["']?brand["']?\s*:\s*["']([^"']*)["']""")


def _unescape(raw: str) -> str:
    if "\\" not in raw:
        return raw
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw


def parse_directory(document: str) -> Directory:
    """Parse ``{"_id": ..., "brand": ...}``-shaped fragments, in document order.

    Fragments without an ``_id`` key are not brand records and are ignored.
    Records with an empty id or a missing/empty brand name are skipped.
    """
    brands: Directory = []

    for fragment in _FRAGMENT_RE.finditer(document):
        text = fragment.group(0)
        id_match = _ID_RE.search(text)
        if id_match is None:
            continue

        name_match = _BRAND_RE.search(text)
        brand_id = id_match.group(1).strip()
        name = _unescape(name_match.group(1)).strip() if name_match else ""
        if not brand_id or not name:
            logger.debug("Skipping malformed directory fragment: %.80s", text)
            continue

        brands.append(Brand(id=brand_id, name=name))

    return brands


def resolve_brand(keyword: str, directory: Sequence[Brand]) -> Brand | None:
    """First brand whose name contains ``keyword``, or None."""
    for brand in directory:
        if keyword in brand.name:
            return brand
    return None


class DirectoryResolver:
    """Caches the last successfully fetched brand directory.

    Concurrent ``refresh()`` calls are coalesced: a caller that waited on an
    in-progress refresh reuses its result instead of fetching again.
    """

    def __init__(
        self,
        http: HttpFetcher,
        url: str,
        max_age: float = 6 * 3600.0,
        encodings: Sequence[str] = DEFAULT_FALLBACK_ENCODINGS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http
        self._url = url
        self._max_age = max_age
        self._encodings = tuple(encodings)
        self._clock = clock
        self._directory: Directory = []
        self._fetched_at: float | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def directory(self) -> Directory:
        return list(self._directory)

    @property
    def is_empty(self) -> bool:
        return not self._directory

    @property
    def is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at >= self._max_age

    async def refresh(self) -> Directory:
        """Fetch and parse the directory, replacing the cache on success.

        Raises:
            NetworkError: The directory document could not be fetched.
            DecodeError: The document could not be decoded.
        """
        generation = self._generation
        async with self._lock:
            if self._generation != generation:
                return self.directory

            response = await self._http.get(self._url)
            text = decode_document(response.content, response.charset_encoding, self._encodings)
            if text is None:
                raise DecodeError(
                    f"Could not decode brand directory from {self._url}",
                    context={"url": self._url, "encodings": list(self._encodings)},
                )

            brands = parse_directory(text)
            self._directory = brands
            self._fetched_at = self._clock()
            self._generation += 1
            logger.info("Brand directory refreshed: %d brands", len(brands))
            return list(brands)

    async def ensure(self) -> Directory:
        """Refresh when the cache is empty or older than ``max_age``."""
        if self.is_empty or self.is_stale:
            return await self.refresh()
        return self.directory

    def resolve(self, keyword: str, directory: Sequence[Brand] | None = None) -> Brand | None:
        """Resolve against ``directory`` or, by default, the cached one."""
        return resolve_brand(keyword, self._directory if directory is None else directory)
