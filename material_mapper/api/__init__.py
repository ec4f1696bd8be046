"""Material Mapper API layer - routes, schemas, WebSocket, and middleware."""

from material_mapper.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from material_mapper.api.routes import router
from material_mapper.api.schemas import (
    AnalysisResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    ErrorResponse,
    GraphResponse,
    HealthResponse,
    HoverRequest,
    SelectRequest,
)
from material_mapper.api.websocket import websocket_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_progress",
    "AnalysisResponse",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "ErrorResponse",
    "GraphResponse",
    "HealthResponse",
    "HoverRequest",
    "SelectRequest",
]
