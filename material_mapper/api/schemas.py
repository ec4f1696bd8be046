"""Pydantic request/response schemas for the Material Mapper API.

Defines the public contract for all REST endpoints: submission, snapshot
polling, the graph view and its hover/selection controls, and health.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These Pydantic models define the *shape* of every HTTP request body
# and response body in the API.  FastAPI uses them for:
#
#   1. **Validation**: incoming JSON is validated against the schema.
#      Invalid requests get a 422 error with details.
#   2. **Serialization**: outgoing objects are converted to JSON matching
#      the schema (via response_model=...).
#   3. **Documentation**: OpenAPI docs are generated from them (/docs).
#
# Convention: Request schemas end with "Request", response schemas
# end with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from material_mapper.models.graph import GraphSide
from material_mapper.models.mapper import EcosystemServiceDetail


class AnalyzeRequest(BaseModel):
    """A building strategy to analyse."""

    strategy_description: str = Field(min_length=1, description="Free-text building strategy")
    stream: bool = Field(default=True, description="Use the streaming endpoint")
    wait: bool = Field(default=False, description="Respond only after the run has finished")

    @field_validator("strategy_description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("strategy_description must not be blank")
        return value


class AnalyzeResponse(BaseModel):
    """Returned once a submission has superseded any previous run."""

    run_id: str
    status: str = "started"
    message: str


class AnalysisResponse(BaseModel):
    """The current snapshot, as a summary and in full."""

    run_id: str | None = None
    summary: dict[str, Any]
    analysis: dict[str, Any]


class HoverRequest(BaseModel):
    """Pointer enters an item, or leaves the diagram when ``item_id`` is null."""

    side: GraphSide | None = None
    item_id: str | None = None


class SelectRequest(BaseModel):
    """Click on a right-hand item; clicking the selected item clears it."""

    item_id: str


class GraphResponse(BaseModel):
    """Graph view with per-item and per-edge highlight state."""

    run_id: str | None = None
    graph: dict[str, Any]
    selected_detail: EcosystemServiceDetail | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
