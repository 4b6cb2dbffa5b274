"""Source clients, brand directory, and the shared HTTP transport."""

from goldwatch.sources.clients import (
    BrandRoutedClient,
    DirectApiClient,
    FetchResult,
    ScrapedPageClient,
    SourceClient,
)
from goldwatch.sources.directory import DirectoryResolver, parse_directory, resolve_brand
from goldwatch.sources.http import HttpFetcher
from goldwatch.sources.registry import SourceRegistry, build_default_registry

__all__ = [
    "BrandRoutedClient",
    "DirectApiClient",
    "DirectoryResolver",
    "FetchResult",
    "HttpFetcher",
    "ScrapedPageClient",
    "SourceClient",
    "SourceRegistry",
    "build_default_registry",
    "parse_directory",
    "resolve_brand",
]
