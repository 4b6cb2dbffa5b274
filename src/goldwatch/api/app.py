"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from goldwatch.api.deps import AppState
from goldwatch.api.routes import router
from goldwatch.core.config import GoldwatchConfig, load_config
from goldwatch.core.exceptions import ConfigError, GoldwatchError
from goldwatch.engine.engine import PriceEngine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the engine on startup, drain and close it on shutdown."""
    config = app.state._pending_config or load_config()
    engine = app.state._pending_engine or PriceEngine(config)

    app.state.app_state = AppState(config=config, engine=engine)
    if app.state._autostart:
        await engine.start()

    yield

    await engine.close()


def create_app(
    config: GoldwatchConfig | None = None,
    engine: PriceEngine | None = None,
    autostart: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    import goldwatch

    app = FastAPI(
        title="goldwatch API",
        description="Aggregated gold prices from multiple upstream sources",
        version=goldwatch.__version__,
        lifespan=lifespan,
    )

    # Stash construction args so lifespan can retrieve them
    app.state._pending_config = config or (engine.config if engine else None)
    app.state._pending_engine = engine
    app.state._autostart = autostart

    app.include_router(router, prefix="/api")

    @app.exception_handler(GoldwatchError)
    async def goldwatch_exception_handler(request: Request, exc: GoldwatchError):
        status = 400 if isinstance(exc, ConfigError) else 502
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
