"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from goldwatch.core.models import AggregationSnapshot, Source


class HealthResponse(BaseModel):
    """Liveness and scheduler state."""

    status: str
    version: str
    running: bool
    sources: int
    directory_size: int


class SourceInfo(BaseModel):
    """Static description of a source."""

    source: str
    label: str
    family: str
    tier: str
    brand_keyword: str | None = None


class QuoteRowResponse(BaseModel):
    label: str
    price: float
    timestamp_text: str


class SourceStateResponse(BaseModel):
    """Last known state of one source."""

    source: str
    label: str
    price: float | None
    available: bool
    updated_at: datetime | None
    quotes: list[QuoteRowResponse] = []


class SnapshotResponse(BaseModel):
    """Current aggregation snapshot."""

    selected_source: str
    selected_price: float | None
    price_not_available: bool
    display_price: str
    last_update: datetime | None
    version: int
    is_loading: bool
    sources: list[SourceStateResponse]

    @classmethod
    def from_snapshot(cls, snap: AggregationSnapshot) -> SnapshotResponse:
        return cls(
            selected_source=snap.selected_source.value,
            selected_price=snap.selected_price,
            price_not_available=snap.price_not_available,
            display_price=snap.display_price(),
            last_update=snap.last_update,
            version=snap.version,
            is_loading=snap.is_loading,
            sources=[
                SourceStateResponse(
                    source=source.value,
                    label=source.label,
                    price=state.price,
                    available=state.available,
                    updated_at=state.updated_at,
                    quotes=[
                        QuoteRowResponse(
                            label=q.label, price=q.price, timestamp_text=q.timestamp_text
                        )
                        for q in state.quotes
                    ],
                )
                for source, state in sorted(
                    snap.sources.items(), key=lambda kv: list(Source).index(kv[0])
                )
            ],
        )


class CommandResponse(BaseModel):
    """Acknowledgement of a fire-and-forget command."""

    accepted: bool = True
    detail: str


class BrandResponse(BaseModel):
    id: str
    name: str


class DirectoryResponse(BaseModel):
    """Cached brand directory."""

    total: int
    stale: bool
    items: list[BrandResponse]
