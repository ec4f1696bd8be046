"""Material Mapper FastAPI application entry point.

Wires together the mapper provider, the analysis runner, the progress
tracker and the diagram state via dependency injection.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from material_mapper import __version__
from material_mapper.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from material_mapper.api.routes import router as api_router
from material_mapper.api.websocket import websocket_progress
from material_mapper.config.loader import load_config
from material_mapper.config.settings import Settings
from material_mapper.pipeline.orchestrator import DEFAULT_CHANNEL, AnalysisRunner
from material_mapper.pipeline.progress_tracker import ProgressTracker
from material_mapper.providers.mapper.http_mapper_provider import HttpMapperProvider
from material_mapper.services.bipartite_graph import BipartiteGraph, GraphLayout
from material_mapper.services.output_formatter import OutputFormatter
from material_mapper.utils.errors import ConfigurationError
from material_mapper.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def _validate_settings(app_settings: Settings) -> None:
    if not app_settings.mapper_api_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            message=f"MAPPER_API_URL must be an http(s) URL, got {app_settings.mapper_api_url!r}",
        )
    if not app_settings.mapper_agent_id:
        raise ConfigurationError(message="MAPPER_AGENT_ID must not be empty")


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    _validate_settings(app_settings)
    app_config = app_config or {}

    # -- Shared resources --
    http_client = httpx.AsyncClient()

    # -- Analysis backend --
    provider = HttpMapperProvider(settings=app_settings, http_client=http_client)

    # -- Stream consumption --
    progress_tracker = ProgressTracker()
    runner = AnalysisRunner(
        provider=provider,
        progress_tracker=progress_tracker,
        channel=DEFAULT_CHANNEL,
    )

    # -- Diagram --
    graph = BipartiteGraph(layout=GraphLayout.from_config(app_config.get("graph")))

    provider_registry = {"mapper": provider.is_available()}

    return {
        "http_client": http_client,
        "provider": provider,
        "progress_tracker": progress_tracker,
        "runner": runner,
        "channel": DEFAULT_CHANNEL,
        "graph": graph,
        "formatter": OutputFormatter(),
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        mapper_url=settings.mapper_api_url,
        mapper_available=components["provider_registry"]["mapper"],
    )

    yield

    # -- Shutdown: stop the active run, then close the shared client --
    runner: AnalysisRunner = components["runner"]
    await runner.cancel()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Material Mapper API",
        version=__version__,
        description=(
            "Submit a building strategy, follow the backend's staged analysis as "
            "it streams in, and explore which material flows connect to which "
            "ecosystem services."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("app", {}).get("cors_origins"))

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/progress")
    async def ws_progress(websocket: WebSocket) -> None:
        await websocket_progress(websocket)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "material_mapper.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
