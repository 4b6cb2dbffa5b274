"""Custom exception hierarchy for goldwatch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from goldwatch.core.models import Source


class GoldwatchError(Exception):
    """Base exception for all goldwatch errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(GoldwatchError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class FetchError(GoldwatchError):
    """A source could not produce a price.

    Policy: never raised past the source client. The client returns it in a
    FetchResult and the scheduler marks the source unavailable.

    Context keys:
        url: str — the URL that was being fetched, when known
    """

    def __init__(
        self,
        message: str,
        source: Source | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.source = source


class NetworkError(FetchError):
    """Transport, DNS, TLS failure or a non-2xx HTTP status.

    Context keys:
        status_code: int | None — HTTP status when a response arrived
        error: str — transport error text
    """


class DecodeError(FetchError):
    """Response bytes could not be decoded under any attempted encoding.

    Context keys:
        encodings: list[str] — encodings that were tried
    """


class ExtractionMiss(FetchError):
    """Body decoded, but no field or pattern yielded a plausible price."""


class RoutingError(FetchError):
    """Brand keyword not found in the directory, even after one refresh.

    Context keys:
        keyword: str — the brand keyword that failed to resolve
        directory_size: int — number of brands in the directory
    """
