"""Tiered refresh scheduler driving all source fetches."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable

from goldwatch.core.config import SchedulerConfig
from goldwatch.core.exceptions import FetchError
from goldwatch.core.models import Source, SourceFamily, Tier, sources_in_tier
from goldwatch.engine.store import AggregationStore
from goldwatch.sources.clients import FetchResult
from goldwatch.sources.directory import DirectoryResolver
from goldwatch.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


class Scheduler:
    """Issues fetches per tier and applies their outcomes to the store.

    Each fetch runs as its own task; nothing serializes fetches across
    sources, and a tick does not wait for the previous tick's fetches of the
    same source. ``stop()`` halts future ticks only: fetches already in
    flight complete and still update the store.

    The fast tier runs on every tick. A slower tier runs when at least its
    interval has elapsed since its last run, measured with ``clock``.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        store: AggregationStore,
        resolver: DirectoryResolver | None = None,
        config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = config or SchedulerConfig()
        self._registry = registry
        self._store = store
        self._resolver = resolver
        self._clock = clock
        self._intervals: dict[Tier, float] = {
            Tier.FAST: config.fast_interval,
            Tier.PAGES: config.pages_interval,
            Tier.BRANDS: config.brands_interval,
        }
        self._last_run: dict[Tier, float | None] = {tier: None for tier in Tier}
        self._tasks: set[asyncio.Task[None]] = set()
        self._loop_task: asyncio.Task[None] | None = None
        self._start_lock = asyncio.Lock()
        self._stop_requests = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def base_period(self) -> float:
        return self._intervals[Tier.FAST]

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def last_run(self, tier: Tier) -> float | None:
        return self._last_run[tier]

    # --- Lifecycle ---

    async def start(self, selected: Source | None = None) -> None:
        """Reset the store, prime the selected source, and begin ticking.

        Concurrent calls start at most one tick loop. A ``stop()`` issued
        while a start is still waiting on the directory aborts that start.
        """
        stops_seen = self._stop_requests
        async with self._start_lock:
            if self.running or self._stop_requests != stops_seen:
                return

            self._store.initialize(Source, selected)
            self._last_run = {tier: None for tier in Tier}

            # out of band so the selected price shows up before the first sweep
            self.refresh_source(self._store.selected_source)

            if self._resolver is not None and self._has_brand_sources():
                try:
                    await self._resolver.ensure()
                except FetchError as exc:
                    logger.warning("Brand directory unavailable at start: %s", exc)

            if self._stop_requests != stops_seen:
                logger.info("Scheduler stopped before its first tick")
                return

            self._loop_task = asyncio.create_task(self._run_loop(), name="goldwatch-scheduler")
            logger.info("Scheduler started (base period %.1fs)", self.base_period)

    async def stop(self) -> None:
        """Cancel the periodic tick, or a start still in progress.

        In-flight fetches are left to finish.
        """
        self._stop_requests += 1
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Scheduler stopped (%d fetches still in flight)", self.in_flight)

    async def drain(self) -> None:
        """Wait until every issued fetch has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Commands ---

    def tick(self) -> list[asyncio.Task[None]]:
        """Run one scheduling step and return the fetch tasks it issued."""
        now = self._clock()
        tasks = self._refresh_tier(Tier.FAST, now)
        for tier in (Tier.PAGES, Tier.BRANDS):
            last = self._last_run[tier]
            if last is None or now - last >= self._intervals[tier]:
                tasks.extend(self._refresh_tier(tier, now))
        return tasks

    def force_refresh_all(self) -> list[asyncio.Task[None]]:
        """Fetch every source now and restart every tier's timer."""
        now = self._clock()
        tasks: list[asyncio.Task[None]] = []
        for tier in Tier:
            tasks.extend(self._refresh_tier(tier, now))
        return tasks

    def select_source(self, source: Source) -> asyncio.Task[None]:
        self._store.select(source)
        return self.refresh_source(source)

    def refresh_selected(self) -> asyncio.Task[None]:
        return self.refresh_source(self._store.selected_source)

    def refresh_source(
        self,
        source: Source,
        target_override: Source | None = None,
    ) -> asyncio.Task[None]:
        """Issue one fetch of ``source`` without waiting for it."""
        target = target_override or source
        sequence = self._store.next_sequence(target)
        self._store.fetch_started()
        task = asyncio.create_task(
            self._run_fetch(source, target_override, sequence),
            name=f"fetch-{source.value}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- Internals ---

    def _refresh_tier(self, tier: Tier, now: float) -> list[asyncio.Task[None]]:
        self._last_run[tier] = now
        return [
            self.refresh_source(source, target_override=source)
            for source in sources_in_tier(tier)
            if source in self._registry
        ]

    def _has_brand_sources(self) -> bool:
        return any(s.family is SourceFamily.BRAND_ROUTED for s in self._registry.sources)

    async def _run_fetch(
        self,
        source: Source,
        target_override: Source | None,
        sequence: int,
    ) -> None:
        target = target_override or source
        try:
            try:
                result = await self._registry.fetch(source, target_override)
            except Exception as exc:
                logger.exception("Unexpected failure fetching %s", source.value)
                result = FetchResult(source=target, error=FetchError(str(exc), source=target))

            if result.ok:
                logger.debug("%s: %.2f", target.value, result.reading.price)
            else:
                logger.warning(
                    "Source %s unavailable: %s: %s",
                    target.value, type(result.error).__name__, result.error,
                )
            self._store.apply(result, sequence=sequence)
        finally:
            self._store.fetch_finished()

    async def _run_loop(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self.base_period)
