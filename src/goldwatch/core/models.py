"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import math
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Enumerations ---


class SourceFamily(StrEnum):
    """Provider families; each one is served by a dedicated client."""

    DIRECT_API = "direct_api"
    SCRAPED_PAGE = "scraped_page"
    BRAND_ROUTED = "brand_routed"


class Tier(StrEnum):
    """Refresh tiers driven by the scheduler."""

    FAST = "fast"
    PAGES = "pages"
    BRANDS = "brands"


class Source(StrEnum):
    """Upstream price providers. The set is closed."""

    JD_FINANCE = "jd_finance"
    SHUIBEI = "shuibei"
    SGE = "sge"
    CHOW_TAI_FOOK = "chow_tai_fook"
    LAO_FENG_XIANG = "lao_feng_xiang"
    CHOW_SANG_SANG = "chow_sang_sang"
    LUK_FOOK = "luk_fook"
    CHOW_TAI_SENG = "chow_tai_seng"
    CAIBAI = "caibai"

    @property
    def label(self) -> str:
        return _SOURCE_META[self][0]

    @property
    def family(self) -> SourceFamily:
        return _SOURCE_META[self][1]

    @property
    def brand_keyword(self) -> str | None:
        return _SOURCE_META[self][2]

    @property
    def display_precision(self) -> int:
        """Decimals shown for this source (JD quotes to the fen)."""
        return 2 if self is Source.JD_FINANCE else 0

    @property
    def tier(self) -> Tier:
        return _FAMILY_TIER[self.family]


# label, family, brand keyword
_SOURCE_META: dict[Source, tuple[str, SourceFamily, str | None]] = {
    Source.JD_FINANCE: ("京东金融", SourceFamily.DIRECT_API, None),
    Source.SHUIBEI: ("水贝金价", SourceFamily.SCRAPED_PAGE, None),
    Source.SGE: ("上海金交所", SourceFamily.SCRAPED_PAGE, None),
    Source.CHOW_TAI_FOOK: ("周大福", SourceFamily.BRAND_ROUTED, "周大福"),
    Source.LAO_FENG_XIANG: ("老凤祥", SourceFamily.BRAND_ROUTED, "老凤祥"),
    Source.CHOW_SANG_SANG: ("周生生", SourceFamily.BRAND_ROUTED, "周生生"),
    Source.LUK_FOOK: ("六福珠宝", SourceFamily.BRAND_ROUTED, "六福"),
    Source.CHOW_TAI_SENG: ("周六福", SourceFamily.BRAND_ROUTED, "周六福"),
    Source.CAIBAI: ("菜百首饰", SourceFamily.BRAND_ROUTED, "菜百"),
}

_FAMILY_TIER: dict[SourceFamily, Tier] = {
    SourceFamily.DIRECT_API: Tier.FAST,
    SourceFamily.SCRAPED_PAGE: Tier.PAGES,
    SourceFamily.BRAND_ROUTED: Tier.BRANDS,
}


def sources_in_tier(tier: Tier) -> list[Source]:
    """Return the sources refreshed by a tier, in declaration order."""
    return [s for s in Source if s.tier == tier]


# --- Directory ---


class Brand(BaseModel):
    """An entry of the upstream brand directory."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str


Directory = list[Brand]


# --- Extraction artifacts ---


class QuoteRow(BaseModel):
    """One row of a multi-row quote table."""

    model_config = ConfigDict(frozen=True)

    label: str
    price: float
    timestamp_text: str = ""


class TableExtraction(BaseModel):
    """All rows matched in a quote table and their rounded mean."""

    model_config = ConfigDict(frozen=True)

    rows: tuple[QuoteRow, ...] = ()
    mean: float | None = None


# --- Readings and state ---


class PriceReading(BaseModel):
    """Outcome of one successful fetch."""

    model_config = ConfigDict(frozen=True)

    source: Source
    price: float
    observed_at: datetime
    quotes: tuple[QuoteRow, ...] = ()

    @field_validator("price")
    @classmethod
    def price_must_be_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got {v}")
        return v


class SourceState(BaseModel):
    """Last known price and availability of a single source."""

    model_config = ConfigDict(frozen=True)

    price: float | None = None
    available: bool = False
    updated_at: datetime | None = None
    quotes: tuple[QuoteRow, ...] = ()


class AggregationSnapshot(BaseModel):
    """Immutable read of the aggregation store."""

    model_config = ConfigDict(frozen=True)

    sources: dict[Source, SourceState]
    selected_source: Source
    selected_price: float | None = None
    selected_available: bool = False
    last_update: datetime | None = None
    version: int = 0
    in_flight: int = 0

    def __getitem__(self, source: Source) -> SourceState:
        return self.sources[source]

    @property
    def price_not_available(self) -> bool:
        return not self.selected_available

    @property
    def is_loading(self) -> bool:
        return self.in_flight > 0

    def display_price(self) -> str:
        """Render the selected price the way the price popover shows it."""
        if not self.selected_available or self.selected_price is None:
            return "G0.00"
        precision = self.selected_source.display_precision
        return f"G{self.selected_price:.{precision}f}"
