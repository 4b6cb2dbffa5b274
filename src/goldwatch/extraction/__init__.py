"""Extractor library: raw upstream documents to optional prices."""

from goldwatch.extraction.extractors import (
    DEFAULT_FALLBACK_ENCODINGS,
    PatternRule,
    PriceBounds,
    RuleTarget,
    decode_document,
    extract_json_price,
    extract_pattern_price,
    extract_table,
    parse_price,
    visible_text,
)
from goldwatch.extraction.rules import PROFILES, ExtractionProfile, profile_for

__all__ = [
    "DEFAULT_FALLBACK_ENCODINGS",
    "ExtractionProfile",
    "PROFILES",
    "PatternRule",
    "PriceBounds",
    "RuleTarget",
    "decode_document",
    "extract_json_price",
    "extract_pattern_price",
    "extract_table",
    "parse_price",
    "profile_for",
    "visible_text",
]
