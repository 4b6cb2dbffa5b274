"""Aggregation store: last known price and availability per source."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable

from goldwatch.core.models import AggregationSnapshot, QuoteRow, Source, SourceState
from goldwatch.sources.clients import FetchResult

logger = logging.getLogger(__name__)

Listener = Callable[[AggregationSnapshot], None]


class AggregationStore:
    """Shared mutable state behind a single lock.

    Mutations come from fetch completions; readers only take snapshots or
    subscribe. The lock is held just long enough to copy or update a few
    fields, so a reader never waits on network I/O. Listeners run after the
    lock is released, on the thread that performed the mutation.

    Writers pass the sequence number obtained from ``next_sequence()`` when
    their fetch was issued. A completion issued before the source was last
    selected is always dropped. With ``reject_out_of_order`` enabled, a
    completion older than the newest applied one for that source is dropped
    too; without it, the last completion wins even if it was issued earlier.
    """

    def __init__(
        self,
        selected: Source = Source.JD_FINANCE,
        *,
        reject_out_of_order: bool = False,
    ) -> None:
        self._lock = threading.Lock()
        self._states: dict[Source, SourceState] = {}
        self._selected = selected
        self._selected_price: float | None = None
        self._selected_available = False
        self._last_update: datetime | None = None
        self._version = 0
        self._in_flight = 0
        self._reject_out_of_order = reject_out_of_order
        self._issued: dict[Source, int] = {}
        self._applied: dict[Source, int] = {}
        self._stale_before: dict[Source, int] = {}
        self._listeners: list[Listener] = []

    # --- Lifecycle ---

    def initialize(
        self,
        sources: Iterable[Source] = Source,
        selected: Source | None = None,
    ) -> None:
        """Reset every source to unavailable."""
        with self._lock:
            self._states = {s: SourceState() for s in sources}
            if selected is not None:
                self._selected = selected
            self._selected_price = None
            self._selected_available = False
            self._last_update = None
            self._applied.clear()
            self._stale_before.clear()
            self._version += 1
            snap = self._snapshot_locked()
        self._notify(snap)

    @property
    def initialized(self) -> bool:
        with self._lock:
            return bool(self._states)

    @property
    def selected_source(self) -> Source:
        with self._lock:
            return self._selected

    # --- Writers ---

    def next_sequence(self, source: Source) -> int:
        """Issue a monotonically increasing fetch number for ``source``."""
        with self._lock:
            seq = self._issued.get(source, 0) + 1
            self._issued[source] = seq
            return seq

    def mark_available(
        self,
        source: Source,
        price: float,
        at: datetime,
        quotes: tuple[QuoteRow, ...] = (),
        sequence: int | None = None,
    ) -> bool:
        """Record a successful reading. Returns False if it was discarded."""
        with self._lock:
            if not self._accept_locked(source, sequence):
                return False
            self._states[source] = SourceState(
                price=price, available=True, updated_at=at, quotes=quotes
            )
            self._last_update = at
            if source == self._selected:
                self._selected_price = price
                self._selected_available = True
            self._version += 1
            snap = self._snapshot_locked()
        self._notify(snap)
        return True

    def mark_unavailable(self, source: Source, sequence: int | None = None) -> bool:
        """Flag a source unavailable, keeping its last known price."""
        with self._lock:
            if not self._accept_locked(source, sequence):
                return False
            previous = self._states.get(source, SourceState())
            self._states[source] = previous.model_copy(update={"available": False})
            if source == self._selected:
                self._selected_available = False
            self._version += 1
            snap = self._snapshot_locked()
        self._notify(snap)
        return True

    def apply(self, result: FetchResult, sequence: int | None = None) -> bool:
        """Apply a fetch outcome to the source it is attributed to."""
        if result.reading is not None:
            r = result.reading
            return self.mark_available(r.source, r.price, r.observed_at, r.quotes, sequence)
        return self.mark_unavailable(result.source, sequence)

    def select(self, source: Source) -> None:
        """Switch the selected source.

        The new selection reads as unavailable until its own next successful
        fetch; readings from fetches issued before the switch are not reused.
        """
        with self._lock:
            self._selected = source
            self._selected_price = None
            self._selected_available = False
            previous = self._states.get(source, SourceState())
            self._states[source] = previous.model_copy(update={"available": False})
            # fetches already in flight for this source belong to the old view
            self._stale_before[source] = self._issued.get(source, 0)
            self._version += 1
            snap = self._snapshot_locked()
        self._notify(snap)

    def fetch_started(self) -> None:
        with self._lock:
            self._in_flight += 1

    def fetch_finished(self) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)

    # --- Readers ---

    def snapshot(self) -> AggregationSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every mutation.

        Returns a function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # --- Internals ---

    def _accept_locked(self, source: Source, sequence: int | None) -> bool:
        if sequence is None:
            return True
        floor = self._stale_before.get(source, 0)
        if self._reject_out_of_order:
            floor = max(floor, self._applied.get(source, 0))
        if sequence <= floor:
            logger.debug(
                "Dropping stale completion for %s (seq %d <= %d)",
                source.value, sequence, floor,
            )
            return False
        self._applied[source] = max(sequence, self._applied.get(source, 0))
        return True

    def _snapshot_locked(self) -> AggregationSnapshot:
        return AggregationSnapshot(
            sources=dict(self._states),
            selected_source=self._selected,
            selected_price=self._selected_price,
            selected_available=self._selected_available,
            last_update=self._last_update,
            version=self._version,
            in_flight=self._in_flight,
        )

    def _notify(self, snap: AggregationSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snap)
            except Exception:
                logger.exception("Store listener %r failed", listener)
