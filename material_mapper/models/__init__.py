"""Material Mapper domain models - re-exports all public model classes.

The models are organized across four submodules by domain concern:
    - mapper.py   - Matched flows, ecosystem connections, service details, results
    - events.py   - Tagged stream events (one model per ``event_type``)
    - pipeline.py - Analysis stage machine and the aggregated snapshot
    - graph.py    - Bipartite graph view consumed by the visualizer
"""

from __future__ import annotations

from material_mapper.models.events import (
    KNOWN_EVENT_TYPES,
    CompleteEvent,
    ErrorEvent,
    ResultEvent,
    Stage1CompleteEvent,
    Stage1StartEvent,
    Stage2ChunkCompleteEvent,
    Stage2StartEvent,
    Stage3CompleteEvent,
    Stage3StartEvent,
    StreamEvent,
    UnknownEvent,
    parse_event,
)
from material_mapper.models.graph import (
    BipartiteConnection,
    BipartiteItem,
    GraphSide,
    GraphView,
    HighlightState,
)
from material_mapper.models.mapper import (
    Confidence,
    EcosystemConnection,
    EcosystemServiceDetail,
    FlowType,
    MapperResult,
    MatchedFlow,
    SupplementaryConnection,
)
from material_mapper.models.pipeline import AnalysisSnapshot, AnalysisStage

__all__ = [
    "KNOWN_EVENT_TYPES",
    "AnalysisSnapshot",
    "AnalysisStage",
    "BipartiteConnection",
    "BipartiteItem",
    "CompleteEvent",
    "Confidence",
    "EcosystemConnection",
    "EcosystemServiceDetail",
    "ErrorEvent",
    "FlowType",
    "GraphSide",
    "GraphView",
    "HighlightState",
    "MapperResult",
    "MatchedFlow",
    "ResultEvent",
    "Stage1CompleteEvent",
    "Stage1StartEvent",
    "Stage2ChunkCompleteEvent",
    "Stage2StartEvent",
    "Stage3CompleteEvent",
    "Stage3StartEvent",
    "StreamEvent",
    "SupplementaryConnection",
    "UnknownEvent",
    "parse_event",
]
