"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from goldwatch.core.config import GoldwatchConfig
from goldwatch.engine.engine import PriceEngine


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: GoldwatchConfig
    engine: PriceEngine


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> GoldwatchConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_engine(request: Request) -> PriceEngine:
    """Dependency: retrieve the running price engine."""
    return request.app.state.app_state.engine
