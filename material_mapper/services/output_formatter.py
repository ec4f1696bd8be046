"""Structured output formatting for Material Mapper analyses.

Transforms an :class:`AnalysisSnapshot` into clean JSON-serialisable
dictionaries for the API and the CLI.  Two output modes are supported:

- **Full analysis**: every extracted material, matched flow, connection
  and service detail, plus the graph view.
- **Summary**: the compact counts view used by status endpoints and the
  progress feed.
"""

from __future__ import annotations

from typing import Any

from material_mapper.models.graph import GraphView
from material_mapper.models.mapper import MatchedFlow
from material_mapper.models.pipeline import AnalysisSnapshot
from material_mapper.pipeline.progress_tracker import summarize
from material_mapper.services.graph_view_builder import build_graph_view_from_snapshot
from material_mapper.utils.logging import get_logger


class OutputFormatter:
    """Transforms analysis snapshots into structured output dictionaries.

    All public methods return plain ``dict`` objects that are directly
    JSON-serialisable (no Pydantic models or enums remain).
    """

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def format_full_analysis(
        self,
        snapshot: AnalysisSnapshot,
        run_id: str | None = None,
        graph: GraphView | None = None,
    ) -> dict[str, Any]:
        """Transform a snapshot into the complete JSON structure.

        Parameters
        ----------
        snapshot:
            The snapshot to format; may be partial.
        run_id:
            Identifier of the run that produced it.
        graph:
            A precomputed graph view.  Derived from *snapshot* when omitted.

        Returns
        -------
        dict[str, Any]
            Structured output dictionary.
        """
        matched = snapshot.matched_materials
        result: dict[str, Any] = {
            "run_id": run_id,
            "stage": snapshot.stage.value,
            "message": snapshot.message,
            "elapsed_ms": snapshot.elapsed_ms,
            "error": snapshot.error,
            "progress": {
                "total_chunks": snapshot.total_chunks,
                "current_chunk": snapshot.current_chunk,
                "chunks_completed": snapshot.chunks_completed,
                "chunk_progress": round(snapshot.chunk_progress, 1),
            },
            "extracted_materials": [
                {"name": name, "matched": name in matched}
                for name in snapshot.extracted_materials
            ],
            "matched_bmfs": [self._format_flow(flow) for flow in snapshot.matched_bmfs],
            "unmatched_materials": list(snapshot.unmatched_materials),
            "ecosystem_connections": [
                conn.model_dump() for conn in snapshot.ecosystem_connections
            ],
            "ecosystem_services": list(snapshot.ecosystem_services),
            "ecosystem_service_details": {
                name: detail.model_dump()
                for name, detail in snapshot.ecosystem_service_details.items()
            },
            "graph": self.format_graph(graph or build_graph_view_from_snapshot(snapshot)),
            "processing_time_ms": snapshot.processing_time_ms,
            "cost_usd": snapshot.cost_usd,
        }

        self._logger.debug(
            "full_analysis_formatted",
            run_id=run_id,
            stage=snapshot.stage.value,
        )
        return result

    def format_summary(self, snapshot: AnalysisSnapshot, run_id: str | None = None) -> dict[str, Any]:
        """Produce the abbreviated counts view of a snapshot."""
        summary = summarize(run_id, snapshot)
        summary["processing_time_s"] = self._seconds(snapshot.processing_time_ms)
        return summary

    @staticmethod
    def format_graph(graph: GraphView) -> dict[str, Any]:
        """Serialise a graph view (items and edges only, no highlight state)."""
        return graph.model_dump()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_flow(flow: MatchedFlow) -> dict[str, Any]:
        return {
            "name": flow.name,
            "flow_type": flow.flow_type.value,
            "confidence": flow.confidence.value,
            "matched_materials": list(flow.matched_materials),
            "reason": flow.reason,
        }

    @staticmethod
    def _seconds(milliseconds: float | None) -> float | None:
        if milliseconds is None:
            return None
        return round(milliseconds / 1000, 1)
