"""FastAPI surface over the price engine."""

from goldwatch.api.app import create_app

__all__ = ["create_app"]
