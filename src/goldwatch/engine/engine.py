"""PriceEngine: the read/command surface consumed by UIs and entry points."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable

from goldwatch.core.config import GoldwatchConfig
from goldwatch.core.exceptions import FetchError
from goldwatch.core.models import AggregationSnapshot, Directory, Source
from goldwatch.engine.scheduler import Scheduler
from goldwatch.engine.store import AggregationStore, Listener
from goldwatch.sources.directory import DirectoryResolver
from goldwatch.sources.http import HttpFetcher
from goldwatch.sources.registry import SourceRegistry, build_default_registry

logger = logging.getLogger(__name__)

DirectoryCallback = Callable[[Directory | None, FetchError | None], None]


class PriceEngine:
    """Wires transport, directory, clients, store and scheduler together.

    Commands return immediately; fetches complete in the background and land
    in the store. Use via ``async with PriceEngine(config) as engine:``.
    """

    def __init__(
        self,
        config: GoldwatchConfig | None = None,
        *,
        http: HttpFetcher | None = None,
        registry: SourceRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or GoldwatchConfig()
        self._owns_http = http is None
        self._http = http or HttpFetcher(self._config.http)
        self._resolver = DirectoryResolver(
            self._http,
            self._config.sources.directory_url,
            max_age=self._config.directory.max_age,
            encodings=self._config.http.fallback_encodings,
            clock=clock,
        )
        self._registry = registry or build_default_registry(
            self._http, self._resolver, self._config
        )
        self._store = AggregationStore(
            Source(self._config.selected_source),
            reject_out_of_order=self._config.scheduler.reject_out_of_order,
        )
        self._scheduler = Scheduler(
            self._registry,
            self._store,
            self._resolver,
            self._config.scheduler,
            clock=clock,
        )
        self._background: set[asyncio.Task[Directory | None]] = set()

    async def __aenter__(self) -> PriceEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def config(self) -> GoldwatchConfig:
        return self._config

    @property
    def store(self) -> AggregationStore:
        return self._store

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def resolver(self) -> DirectoryResolver:
        return self._resolver

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        await self._scheduler.start()

    async def stop(self) -> None:
        await self._scheduler.stop()

    async def close(self) -> None:
        """Stop ticking, let in-flight fetches and refreshes land, then close transport."""
        await self._scheduler.stop()
        await self._scheduler.drain()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        if self._owns_http:
            await self._http.close()

    def select_source(self, source: Source | str) -> asyncio.Task[None]:
        return self._scheduler.select_source(Source(source))

    def refresh_selected(self) -> asyncio.Task[None]:
        return self._scheduler.refresh_selected()

    def force_refresh_all(self) -> list[asyncio.Task[None]]:
        return self._scheduler.force_refresh_all()

    def snapshot(self) -> AggregationSnapshot:
        return self._store.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._store.subscribe(listener)

    def refresh_directory(
        self,
        on_complete: DirectoryCallback | None = None,
    ) -> asyncio.Task[Directory | None]:
        """Refresh the brand directory in the background.

        ``on_complete`` receives ``(brands, None)`` on success or
        ``(None, error)`` on failure. Unexpected errors are logged and
        reported as a ``FetchError``. ``close()`` waits for the task.
        """

        async def _run() -> Directory | None:
            try:
                brands = await self._resolver.refresh()
            except FetchError as exc:
                logger.warning("Brand directory refresh failed: %s", exc)
                error = exc
            except Exception as exc:
                logger.exception("Unexpected failure refreshing the brand directory")
                error = FetchError(str(exc), context={"error": type(exc).__name__})
            else:
                if on_complete is not None:
                    on_complete(brands, None)
                return brands
            if on_complete is not None:
                on_complete(None, error)
            return None

        task = asyncio.create_task(_run(), name="goldwatch-directory")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def sweep(self, sources: Iterable[Source] | None = None) -> AggregationSnapshot:
        """Fetch sources once (all by default) and wait for them to land."""
        if not self._store.initialized:
            self._store.initialize(Source)
        if sources is None:
            self._scheduler.force_refresh_all()
        else:
            for source in sources:
                self._scheduler.refresh_source(source)
        await self._scheduler.drain()
        return self._store.snapshot()
