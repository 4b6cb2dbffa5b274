"""Provider-specific extraction rule sets."""

from __future__ import annotations

import re
from dataclasses import dataclass

from goldwatch.core.models import Source, SourceFamily
from goldwatch.extraction.extractors import PatternRule, PriceBounds, RuleTarget


@dataclass(frozen=True)
class ExtractionProfile:
    """How to pull a price out of one provider's response.

    Exactly one of ``json_path``, ``rules`` or ``table_pattern`` drives
    extraction, depending on the provider family.
    """

    json_path: tuple[str, ...] = ()
    rules: tuple[PatternRule, ...] = ()
    bounds: PriceBounds | None = None
    table_pattern: re.Pattern[str] | None = None

    @property
    def is_table(self) -> bool:
        return self.table_pattern is not None


JD_FINANCE_PROFILE = ExtractionProfile(json_path=("resultData", "datas", "price"))

BRAND_PROFILE = ExtractionProfile(json_path=("data", "price"))

# Shuibei pages are redesigned often and the headline number sits next to
# phone numbers and dates, hence the redundant phrasings and the 3-digit bound.
SHUIBEI_PROFILE = ExtractionProfile(
    rules=(
        PatternRule(
            "headline_id",
            re.compile(r'id=["\']shuibei-price["\'][^>]*>\s*([\d.,]+)\s*<'),
        ),
        PatternRule(
            "data_attribute",
            re.compile(r'data-price=["\']([\d.,]+)["\']'),
        ),
        PatternRule(
            "today_price_label",
            re.compile(r"今日水贝金价\s*[:：]?\s*([\d.,]+)\s*元"),
            RuleTarget.TEXT,
        ),
        PatternRule(
            "brand_near_unit",
            re.compile(r"水贝黄金\D{0,12}?([\d.,]+)\s*元\s*/\s*克"),
            RuleTarget.TEXT,
        ),
        PatternRule(
            "any_per_gram",
            re.compile(r"([\d.,]+)\s*元\s*/\s*克"),
            RuleTarget.TEXT,
        ),
    ),
    bounds=PriceBounds(100.0, 1000.0),
)

SGE_PROFILE = ExtractionProfile(
    table_pattern=re.compile(
        r"<tr[^>]*>\s*"
        r"<td[^>]*>\s*(?P<label>(?:Au|iAu|PGC)[^<]{0,24}?)\s*</td>\s*"
        r"<td[^>]*>\s*(?P<price>[\d.,]+)\s*</td>\s*"
        r"<td[^>]*>\s*(?P<ts>[^<]*?)\s*</td>",
        re.IGNORECASE,
    ),
)

PROFILES: dict[Source, ExtractionProfile] = {
    Source.JD_FINANCE: JD_FINANCE_PROFILE,
    Source.SHUIBEI: SHUIBEI_PROFILE,
    Source.SGE: SGE_PROFILE,
}


def profile_for(source: Source) -> ExtractionProfile:
    """Return the extraction profile for a source.

    Brand-routed sources share one profile since they hit the same endpoint.
    """
    if source in PROFILES:
        return PROFILES[source]
    if source.family is SourceFamily.BRAND_ROUTED:
        return BRAND_PROFILE
    raise KeyError(f"No extraction profile for source {source.value!r}")
