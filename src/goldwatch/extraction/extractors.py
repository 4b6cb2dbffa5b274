"""Price extraction from raw upstream documents.

Every function here is total: malformed input yields ``None`` (or an empty
``TableExtraction``), never an exception. Upstream markup and JSON schemas
change without notice, so a miss is an expected outcome, not an error.
"""

from __future__ import annotations

import codecs
import json
import logging
import math
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Sequence

from bs4 import BeautifulSoup

from goldwatch.core.models import QuoteRow, TableExtraction

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_ENCODINGS: tuple[str, ...] = ("utf-8", "gb18030", "gbk", "big5")

_NUMERIC_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


class RuleTarget(StrEnum):
    """What a pattern rule is matched against."""

    HTML = "html"
    TEXT = "text"


@dataclass(frozen=True)
class PatternRule:
    """One ordered text-matching strategy; group 1 captures the number."""

    name: str
    pattern: re.Pattern[str]
    target: RuleTarget = RuleTarget.HTML


@dataclass(frozen=True)
class PriceBounds:
    """Plausible price range for a provider, ``low <= price < high``."""

    low: float
    high: float

    def __contains__(self, value: float) -> bool:
        return self.low <= value < self.high


def parse_price(raw: Any) -> float | None:
    """Parse a numeric-looking value as a base-10 float.

    Accepts strings (thousands separators and surrounding whitespace are
    tolerated) and real numbers. Booleans, NaN and infinities are rejected.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None
    if not isinstance(raw, str):
        return None

    cleaned = raw.strip().replace(",", "")
    if not _NUMERIC_RE.fullmatch(cleaned):
        return None
    return float(cleaned)


def extract_json_price(body: bytes | str, path: Sequence[str]) -> float | None:
    """Navigate a fixed key path in a JSON document and parse the leaf.

    Args:
        body: Raw JSON response (bytes or already-decoded text).
        path: Nested object keys, outermost first.

    Returns:
        The parsed price, or None on bad JSON, a missing key, a non-object
        container, or a leaf that is not a numeric string/number.
    """
    try:
        node: Any = json.loads(body)
    except ValueError:
        return None

    for key in path:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]

    return parse_price(node)


def visible_text(html: str) -> str:
    """Collapse an HTML document to its visible text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(" ", strip=True)


def extract_pattern_price(
    document: str,
    rules: Sequence[PatternRule],
    bounds: PriceBounds | None = None,
) -> float | None:
    """Return the value captured by the first rule that matches.

    Rules are tried in order and only their first match is considered. When
    ``bounds`` is given, a parsed value outside it is discarded and the next
    rule is tried.
    """
    text: str | None = None

    for rule in rules:
        if rule.target is RuleTarget.TEXT:
            if text is None:
                text = visible_text(document)
            haystack = text
        else:
            haystack = document

        match = rule.pattern.search(haystack)
        if match is None:
            continue

        value = parse_price(match.group(1))
        if value is None:
            logger.debug("Rule %s matched unparsable text %r", rule.name, match.group(1))
            continue

        if bounds is not None and value not in bounds:
            logger.debug(
                "Rule %s value %s outside [%s, %s), trying next rule",
                rule.name, value, bounds.low, bounds.high,
            )
            continue

        return value

    return None


def extract_table(document: str, pattern: re.Pattern[str]) -> TableExtraction:
    """Extract every quote row matched by ``pattern`` and their mean.

    The pattern must define named groups ``label`` and ``price``; ``ts`` is
    optional. Rows whose price does not parse are skipped. The mean is
    rounded to two decimals and is None when no row matched.
    """
    rows: list[QuoteRow] = []
    has_ts = "ts" in pattern.groupindex

    for match in pattern.finditer(document):
        price = parse_price(match.group("price"))
        if price is None:
            continue
        rows.append(
            QuoteRow(
                label=match.group("label").strip(),
                price=price,
                timestamp_text=(match.group("ts") or "").strip() if has_ts else "",
            )
        )

    if not rows:
        return TableExtraction()

    mean = round(sum(r.price for r in rows) / len(rows), 2)
    return TableExtraction(rows=tuple(rows), mean=mean)


def decode_document(
    content: bytes,
    declared: str | None = None,
    fallbacks: Sequence[str] = DEFAULT_FALLBACK_ENCODINGS,
) -> str | None:
    """Decode a response body, trying the declared encoding first.

    Unknown encoding names are skipped. Returns None when every candidate
    fails.
    """
    seen: set[str] = set()
    candidates = [declared, *fallbacks] if declared else list(fallbacks)

    for name in candidates:
        try:
            canonical = codecs.lookup(name).name
        except LookupError:
            logger.debug("Unknown encoding %r, skipping", name)
            continue
        if canonical in seen:
            continue
        seen.add(canonical)

        try:
            return content.decode(canonical)
        except UnicodeDecodeError:
            logger.debug("Body is not valid %s, trying next encoding", canonical)

    return None
