"""FastAPI API routes for the Material Mapper client.

Provides REST endpoints for submitting a strategy, reading the current
analysis snapshot, driving the connection diagram (hover, select), and
exporting it as SVG.  Service dependencies are resolved from
``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                  Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/analyses                          POST    Submit strategy (supersedes)
# /api/v1/analyses/current                  GET     Current snapshot + summary
# /api/v1/analyses/current/graph            GET     Graph view + highlight state
# /api/v1/analyses/current/graph/hover      POST    Enter / leave an item
# /api/v1/analyses/current/graph/select     POST    Toggle selected service
# /api/v1/analyses/current/graph.svg        GET     Diagram as SVG
# /api/v1/health                            GET     Health check + provider status
#
# There is one analysis at a time.  Submitting cancels the previous run
# and replaces its snapshot before the new request is sent.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from material_mapper import __version__
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
from material_mapper.models.graph import GraphSide
from material_mapper.pipeline.orchestrator import AnalysisRunner
from material_mapper.services.bipartite_graph import BipartiteGraph
from material_mapper.services.output_formatter import OutputFormatter
from material_mapper.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers - resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_runner(request: Request) -> AnalysisRunner:
    """Return the analysis runner from application state."""
    return request.app.state.runner


def _get_graph(request: Request) -> BipartiteGraph:
    """Return the diagram state holder, synced to the current snapshot."""
    graph: BipartiteGraph = request.app.state.graph
    graph.update_view(request.app.state.runner.graph_view())
    return graph


def _get_formatter(request: Request) -> OutputFormatter:
    """Return the output formatter from application state."""
    return request.app.state.formatter


RunnerDep = Annotated[AnalysisRunner, Depends(_get_runner)]
GraphDep = Annotated[BipartiteGraph, Depends(_get_graph)]
FormatterDep = Annotated[OutputFormatter, Depends(_get_formatter)]


def _graph_response(runner: AnalysisRunner, graph: BipartiteGraph) -> GraphResponse:
    return GraphResponse(
        run_id=runner.run_id,
        graph=graph.describe(),
        selected_detail=graph.selected_detail(runner.snapshot.ecosystem_service_details),
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@router.post(
    "/analyses",
    response_model=AnalyzeResponse,
    status_code=202,
    summary="Submit a building strategy for analysis",
)
async def submit_analysis(
    body: AnalyzeRequest,
    runner: RunnerDep,
    request: Request,
) -> AnalyzeResponse:
    """Start a new analysis, superseding the one in flight (if any)."""
    graph: BipartiteGraph = request.app.state.graph
    graph.clear_hover()
    graph.clear_selection()

    run_id = await runner.submit(body.strategy_description, stream=body.stream)
    _logger.info("analysis_accepted", run_id=run_id, streaming=body.stream, wait=body.wait)

    if body.wait:
        snapshot = await runner.wait()
        return AnalyzeResponse(
            run_id=run_id,
            status=snapshot.stage.value,
            message=snapshot.error or snapshot.message or "Analysis finished.",
        )

    return AnalyzeResponse(
        run_id=run_id,
        message="Analysis started. Follow progress on /ws/progress.",
    )


@router.get(
    "/analyses/current",
    response_model=AnalysisResponse,
    summary="Current analysis snapshot",
)
async def get_current_analysis(runner: RunnerDep, formatter: FormatterDep) -> AnalysisResponse:
    """Return the latest snapshot, partial while a run is streaming."""
    snapshot = runner.snapshot
    return AnalysisResponse(
        run_id=runner.run_id,
        summary=formatter.format_summary(snapshot, runner.run_id),
        analysis=formatter.format_full_analysis(snapshot, runner.run_id, runner.graph_view()),
    )


# ---------------------------------------------------------------------------
# Connection diagram
# ---------------------------------------------------------------------------


@router.get(
    "/analyses/current/graph",
    response_model=GraphResponse,
    summary="Connection diagram with highlight state",
)
async def get_graph(runner: RunnerDep, graph: GraphDep) -> GraphResponse:
    return _graph_response(runner, graph)


@router.post(
    "/analyses/current/graph/hover",
    response_model=GraphResponse,
    summary="Move the pointer onto or off a diagram item",
)
async def hover_graph(body: HoverRequest, runner: RunnerDep, graph: GraphDep) -> GraphResponse:
    """Enter an item with ``{side, item_id}``; leave with ``item_id: null``.

    Leaving without a side clears any hover.
    """
    if body.item_id is not None:
        if body.side is None:
            raise HTTPException(status_code=422, detail="side is required with item_id")
        graph.on_hover_enter(body.side, body.item_id)
    elif body.side is not None:
        graph.on_hover_leave(body.side)
    else:
        graph.clear_hover()
    return _graph_response(runner, graph)


@router.post(
    "/analyses/current/graph/select",
    response_model=GraphResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Toggle the selected ecosystem service",
)
async def select_graph_item(
    body: SelectRequest,
    runner: RunnerDep,
    graph: GraphDep,
) -> GraphResponse:
    right_ids = {item.id for item in graph.view.right_items}
    if body.item_id not in right_ids and body.item_id != graph.selected_id:
        raise HTTPException(status_code=404, detail=f"Unknown ecosystem service: {body.item_id}")
    graph.on_click(GraphSide.RIGHT, body.item_id)
    return _graph_response(runner, graph)


@router.get(
    "/analyses/current/graph.svg",
    response_class=Response,
    responses={200: {"content": {"image/svg+xml": {}}}},
    summary="Connection diagram as SVG",
)
async def get_graph_svg(graph: GraphDep) -> Response:
    return Response(content=graph.render_svg(), media_type="image/svg+xml")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("mapper", False) else "unhealthy"
    return HealthResponse(
        status=status,
        version=__version__,
        providers=providers,
    )
