"""Analysis state models for the Material Mapper stream consumer.

Defines the stage enumeration and :class:`AnalysisSnapshot`, the single
source of truth for one analysis run.  The snapshot is frozen: the stage
aggregator (material_mapper/pipeline/stage_aggregator.py) never mutates it,
it produces a new snapshot per applied event via ``model_copy(update={...})``.

Architecture note:
    The analysis runner (material_mapper/pipeline/orchestrator.py) holds
    exactly one snapshot per active run and swaps in a fresh, empty
    snapshot whenever a new strategy is submitted.  Anything holding a
    reference to an older snapshot keeps seeing a consistent (if stale)
    view, which is what lets the API and the WebSocket read it without
    locking.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from material_mapper.models.mapper import (
    EcosystemConnection,
    EcosystemServiceDetail,
    MatchedFlow,
)


# ---------------------------------------------------------------------------
# AnalysisStage - the state machine driven by stream events.
# ---------------------------------------------------------------------------
class AnalysisStage(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Stages of one streamed analysis run.

    IDLE → STAGE1 → STAGE2 → STAGE3 → COMPLETE, with ERROR reachable from
    every stage.  ERROR is absorbing for the run; COMPLETE only accepts the
    authoritative ``result`` event (or an ``error``).
    """

    IDLE = "idle"           # Created, no event applied yet
    STAGE1 = "stage1"       # Extracting materials from the strategy text
    STAGE2 = "stage2"       # Matching materials against known flows
    STAGE3 = "stage3"       # Linking flows to ecosystem services
    COMPLETE = "complete"   # Backend finished successfully
    ERROR = "error"         # Run failed (transport or backend error)


_RUNNING_STAGES = frozenset({AnalysisStage.STAGE1, AnalysisStage.STAGE2, AnalysisStage.STAGE3})


# ---------------------------------------------------------------------------
# AnalysisSnapshot - the aggregated view of the run so far.
# ---------------------------------------------------------------------------
class AnalysisSnapshot(BaseModel):
    """Best-known view of one analysis, updated as events arrive.

    Immutable - use model_copy(update={...}) to produce new snapshots.
    ``matched_bmfs`` is insertion-ordered and unique by name; during the
    partial stages it only ever grows.
    """

    model_config = ConfigDict(frozen=True)

    stage: AnalysisStage = AnalysisStage.IDLE
    # Human-readable status line, taken from the latest event that had one.
    message: str = ""
    elapsed_ms: float | None = None

    # Stage 1 output - display order is first appearance.
    extracted_materials: list[str] = Field(default_factory=list)
    # Stage 2 output - merged across chunks, first-seen name wins.
    matched_bmfs: list[MatchedFlow] = Field(default_factory=list)
    # Only the final result reports materials no flow matched.
    unmatched_materials: list[str] = Field(default_factory=list)
    total_chunks: int = 0
    current_chunk: int = 0
    chunks_completed: int = 0

    # Stage 3 output.
    ecosystem_connections: list[EcosystemConnection] = Field(default_factory=list)
    ecosystem_services: list[str] = Field(default_factory=list)
    ecosystem_service_details: dict[str, EcosystemServiceDetail] = Field(default_factory=dict)

    # Set by the terminal result.
    processing_time_ms: float | None = None
    cost_usd: float | None = None

    # Set when stage is ERROR.
    error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.stage in _RUNNING_STAGES

    @property
    def is_terminal(self) -> bool:
        return self.stage in (AnalysisStage.COMPLETE, AnalysisStage.ERROR)

    @property
    def chunk_progress(self) -> float:
        """Share of stage 2 chunks completed, 0.0–100.0."""
        if self.total_chunks <= 0:
            return 0.0
        return min(100.0, 100.0 * self.chunks_completed / self.total_chunks)

    @property
    def matched_materials(self) -> set[str]:
        """Every material at least one matched flow refers to."""
        return {material for flow in self.matched_bmfs for material in flow.matched_materials}

    def flow_names(self) -> list[str]:
        return [flow.name for flow in self.matched_bmfs]
