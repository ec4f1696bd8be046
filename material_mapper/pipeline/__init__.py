"""Stream consumption components for the Material Mapper client."""

from material_mapper.pipeline.frame_parser import FrameParser, iter_frames
from material_mapper.pipeline.orchestrator import AnalysisRunner
from material_mapper.pipeline.progress_tracker import ProgressTracker
from material_mapper.pipeline.stage_aggregator import StageAggregator, fold_events, reduce_event

__all__ = [
    "AnalysisRunner",
    "FrameParser",
    "ProgressTracker",
    "StageAggregator",
    "fold_events",
    "iter_frames",
    "reduce_event",
]
