"""FastAPI route definitions for the goldwatch API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

import goldwatch
from goldwatch.api.deps import get_engine
from goldwatch.api.schemas import (
    BrandResponse,
    CommandResponse,
    DirectoryResponse,
    HealthResponse,
    SnapshotResponse,
    SourceInfo,
)
from goldwatch.core.models import Source
from goldwatch.engine.engine import PriceEngine

router = APIRouter()


def _parse_source(name: str) -> Source:
    try:
        return Source(name.lower())
    except ValueError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown source: {name}",
        ) from None


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: PriceEngine = Depends(get_engine)):
    """Liveness and scheduler state."""
    return HealthResponse(
        status="ok",
        version=goldwatch.__version__,
        running=engine.running,
        sources=len(engine.registry),
        directory_size=len(engine.resolver.directory),
    )


# -- Sources and snapshot --


@router.get("/sources", response_model=list[SourceInfo])
async def list_sources(engine: PriceEngine = Depends(get_engine)):
    """All registered sources with their family and refresh tier."""
    return [
        SourceInfo(
            source=s.value,
            label=s.label,
            family=s.family.value,
            tier=s.tier.value,
            brand_keyword=s.brand_keyword,
        )
        for s in engine.registry.sources
    ]


@router.get("/snapshot", response_model=SnapshotResponse)
async def get_snapshot(engine: PriceEngine = Depends(get_engine)):
    """Current price and availability of every source."""
    return SnapshotResponse.from_snapshot(engine.snapshot())


# -- Commands --


@router.post("/select/{source}", response_model=CommandResponse)
async def select_source(source: str, engine: PriceEngine = Depends(get_engine)):
    """Switch the selected source and fetch it immediately."""
    selected = _parse_source(source)
    engine.select_source(selected)
    return CommandResponse(detail=f"Selected {selected.value}")


@router.post("/refresh", response_model=CommandResponse)
async def refresh(
    all_sources: bool = Query(False, alias="all", description="Refresh every source"),
    engine: PriceEngine = Depends(get_engine),
):
    """Refresh the selected source, or every source with ``?all=true``."""
    if all_sources:
        tasks = engine.force_refresh_all()
        return CommandResponse(detail=f"Refreshing {len(tasks)} sources")
    engine.refresh_selected()
    return CommandResponse(detail=f"Refreshing {engine.snapshot().selected_source.value}")


# -- Directory --


@router.get("/directory", response_model=DirectoryResponse)
async def get_directory(engine: PriceEngine = Depends(get_engine)):
    """Cached brand directory."""
    brands = engine.resolver.directory
    return DirectoryResponse(
        total=len(brands),
        stale=engine.resolver.is_stale,
        items=[BrandResponse(id=b.id, name=b.name) for b in brands],
    )


@router.post("/directory/refresh", response_model=DirectoryResponse)
async def refresh_directory(engine: PriceEngine = Depends(get_engine)):
    """Re-fetch the brand directory and return it."""
    brands = await engine.refresh_directory()
    if brands is None:
        raise HTTPException(status_code=502, detail="Brand directory refresh failed")
    return DirectoryResponse(
        total=len(brands),
        stale=False,
        items=[BrandResponse(id=b.id, name=b.name) for b in brands],
    )
