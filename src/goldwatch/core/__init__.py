"""goldwatch.core — Foundation types, config, and exceptions."""

from goldwatch.core.config import (
    APIConfig,
    DirectoryConfig,
    GoldwatchConfig,
    HttpConfig,
    LoggingConfig,
    SchedulerConfig,
    SourcesConfig,
    load_config,
)
from goldwatch.core.exceptions import (
    ConfigError,
    DecodeError,
    ExtractionMiss,
    FetchError,
    GoldwatchError,
    NetworkError,
    RoutingError,
)
from goldwatch.core.models import (
    AggregationSnapshot,
    Brand,
    Directory,
    PriceReading,
    QuoteRow,
    Source,
    SourceFamily,
    SourceState,
    TableExtraction,
    Tier,
    sources_in_tier,
)

__all__ = [
    # Enums
    "Source",
    "SourceFamily",
    "Tier",
    "sources_in_tier",
    # Models
    "Brand",
    "Directory",
    "QuoteRow",
    "TableExtraction",
    "PriceReading",
    "SourceState",
    "AggregationSnapshot",
    # Config
    "GoldwatchConfig",
    "HttpConfig",
    "SourcesConfig",
    "SchedulerConfig",
    "DirectoryConfig",
    "LoggingConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "GoldwatchError",
    "ConfigError",
    "FetchError",
    "NetworkError",
    "DecodeError",
    "ExtractionMiss",
    "RoutingError",
]
