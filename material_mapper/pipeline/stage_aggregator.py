"""Stage aggregator: folds stream events into an :class:`AnalysisSnapshot`.

The core is a pure reducer, :func:`reduce_event`, of type
``(snapshot, event) -> snapshot``.  It never mutates its input; every
applied event yields a new frozen snapshot via ``model_copy(update=...)``.

# ─── TRANSITION TABLE ─────────────────────────────────────────────────
#
#   event_type              stage →    snapshot effect
#   ─────────────────────   ────────   ──────────────────────────────────
#   stage1_start            stage1     message / elapsed only
#   stage1_complete         stage1     extracted materials replaced
#   stage2_start            stage2     total_chunks set, counters reset
#   stage2_chunk_complete   stage2     new flow names appended (first wins)
#   stage3_start            stage3     message / elapsed only
#   stage3_complete         stage3     connections, services, details replaced
#   complete                complete   message / elapsed only
#   result                  complete   every data field overwritten
#   error                   error      error message captured
#   (anything else)         unchanged  ignored
#
# ERROR is absorbing.  Once COMPLETE, only ``result`` and ``error`` apply.
# ──────────────────────────────────────────────────────────────────────

Stage 2 chunks come from parallel backend workers and may complete in any
order.  Deduplicating by flow name on append makes the merge idempotent
and insensitive to chunk order, so no reordering buffer is needed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import structlog

from material_mapper.models.events import (
    ErrorEvent,
    ResultEvent,
    Stage1CompleteEvent,
    Stage2ChunkCompleteEvent,
    Stage2StartEvent,
    Stage3CompleteEvent,
    StreamEvent,
    UnknownEvent,
    parse_event,
)
from material_mapper.models.mapper import MapperResult, MatchedFlow
from material_mapper.models.pipeline import AnalysisSnapshot, AnalysisStage
from material_mapper.utils.errors import ProtocolError
from material_mapper.utils.logging import get_logger

_AFTER_COMPLETE = frozenset({"result", "error"})


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def merge_flows(existing: list[MatchedFlow], incoming: Iterable[MatchedFlow]) -> list[MatchedFlow]:
    """Append flows whose name is not yet present; first occurrence wins.

    Later observations of a known name are dropped, not merged, including
    duplicates inside *incoming* itself.
    """
    seen = {flow.name for flow in existing}
    merged = list(existing)
    for flow in incoming:
        if flow.name in seen:
            continue
        seen.add(flow.name)
        merged.append(flow)
    return merged


def _status(event: StreamEvent) -> dict[str, Any]:
    update: dict[str, Any] = {}
    if event.message is not None:
        update["message"] = event.message
    if event.elapsed_ms is not None:
        update["elapsed_ms"] = event.elapsed_ms
    return update


def apply_result(snapshot: AnalysisSnapshot, result: MapperResult) -> AnalysisSnapshot:
    """Overwrite every data field of *snapshot* with *result*.

    Used for the terminal ``result`` event and for the non-streaming
    ``invoke`` path.  Partial state from the stages is superseded, even
    where it conflicts.
    """
    return snapshot.model_copy(
        update={
            "stage": AnalysisStage.COMPLETE,
            "extracted_materials": list(dict.fromkeys(result.extracted_materials)),
            "matched_bmfs": merge_flows([], result.matched_bmfs),
            "unmatched_materials": list(result.unmatched_materials),
            "ecosystem_connections": list(result.ecosystem_connections),
            "ecosystem_services": list(result.ecosystem_services),
            "ecosystem_service_details": dict(result.ecosystem_service_details),
            "processing_time_ms": result.processing_time_ms,
            "cost_usd": result.cost_usd,
            "error": None,
        }
    )


def fail(snapshot: AnalysisSnapshot, message: str) -> AnalysisSnapshot:
    """Drive *snapshot* to the absorbing ERROR stage with *message*."""
    if snapshot.stage == AnalysisStage.ERROR:
        return snapshot
    return snapshot.model_copy(
        update={"stage": AnalysisStage.ERROR, "error": message, "message": message}
    )


# ---------------------------------------------------------------------------
# Per-event handlers
# ---------------------------------------------------------------------------


def _on_stage1_start(snapshot: AnalysisSnapshot, event: StreamEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(update={"stage": AnalysisStage.STAGE1, **_status(event)})


def _on_stage1_complete(snapshot: AnalysisSnapshot, event: Stage1CompleteEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(
        update={
            "stage": AnalysisStage.STAGE1,
            "extracted_materials": list(dict.fromkeys(event.extracted_materials)),
            **_status(event),
        }
    )


def _on_stage2_start(snapshot: AnalysisSnapshot, event: Stage2StartEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(
        update={
            "stage": AnalysisStage.STAGE2,
            "total_chunks": event.total_chunks,
            "current_chunk": 0,
            "chunks_completed": 0,
            **_status(event),
        }
    )


def _on_stage2_chunk_complete(
    snapshot: AnalysisSnapshot, event: Stage2ChunkCompleteEvent
) -> AnalysisSnapshot:
    return snapshot.model_copy(
        update={
            "stage": AnalysisStage.STAGE2,
            "matched_bmfs": merge_flows(snapshot.matched_bmfs, event.matched_bmfs),
            "current_chunk": event.current_chunk,
            "chunks_completed": snapshot.chunks_completed + 1,
            **_status(event),
        }
    )


def _on_stage3_start(snapshot: AnalysisSnapshot, event: StreamEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(update={"stage": AnalysisStage.STAGE3, **_status(event)})


def _on_stage3_complete(snapshot: AnalysisSnapshot, event: Stage3CompleteEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(
        update={
            "stage": AnalysisStage.STAGE3,
            "ecosystem_connections": list(event.ecosystem_connections),
            "ecosystem_services": list(event.ecosystem_services),
            "ecosystem_service_details": dict(event.ecosystem_service_details),
            **_status(event),
        }
    )


def _on_complete(snapshot: AnalysisSnapshot, event: StreamEvent) -> AnalysisSnapshot:
    return snapshot.model_copy(update={"stage": AnalysisStage.COMPLETE, **_status(event)})


def _on_result(snapshot: AnalysisSnapshot, event: ResultEvent) -> AnalysisSnapshot:
    return apply_result(snapshot, event.result).model_copy(update=_status(event))


def _on_error(snapshot: AnalysisSnapshot, event: ErrorEvent) -> AnalysisSnapshot:
    failed = fail(snapshot, event.error_message)
    if event.elapsed_ms is not None:
        failed = failed.model_copy(update={"elapsed_ms": event.elapsed_ms})
    return failed


_HANDLERS: dict[str, Callable[[AnalysisSnapshot, Any], AnalysisSnapshot]] = {
    "stage1_start": _on_stage1_start,
    "stage1_complete": _on_stage1_complete,
    "stage2_start": _on_stage2_start,
    "stage2_chunk_complete": _on_stage2_chunk_complete,
    "stage3_start": _on_stage3_start,
    "stage3_complete": _on_stage3_complete,
    "complete": _on_complete,
    "result": _on_result,
    "error": _on_error,
}


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def reduce_event(
    snapshot: AnalysisSnapshot, event: StreamEvent | UnknownEvent
) -> AnalysisSnapshot:
    """Apply one event to *snapshot* and return the resulting snapshot.

    Returns *snapshot* itself (same object) when the event is ignored:
    unknown event types, anything after ERROR, and partial-stage events
    after COMPLETE.
    """
    if isinstance(event, UnknownEvent):
        return snapshot
    if snapshot.stage == AnalysisStage.ERROR:
        return snapshot
    if snapshot.stage == AnalysisStage.COMPLETE and event.event_type not in _AFTER_COMPLETE:
        return snapshot

    handler = _HANDLERS.get(event.event_type)
    if handler is None:
        return snapshot
    return handler(snapshot, event)


def fold_events(
    events: Iterable[StreamEvent | UnknownEvent],
    snapshot: AnalysisSnapshot | None = None,
) -> AnalysisSnapshot:
    """Reduce an ordered sequence of events, starting from a fresh snapshot."""
    state = snapshot or AnalysisSnapshot()
    for event in events:
        state = reduce_event(state, event)
    return state


# ---------------------------------------------------------------------------
# StageAggregator - the per-run holder around the reducer
# ---------------------------------------------------------------------------


class StageAggregator:
    """Holds the current snapshot of one run and applies events to it.

    A new aggregator is created for every submission; it is never reset
    in place.  Raw payloads that fail validation are logged and skipped.
    """

    def __init__(self, run_id: str = "", snapshot: AnalysisSnapshot | None = None) -> None:
        self._run_id = run_id
        self._snapshot = snapshot or AnalysisSnapshot()
        self._logger: structlog.BoundLogger = get_logger(__name__)
        self.events_applied = 0
        self.events_ignored = 0

    @property
    def snapshot(self) -> AnalysisSnapshot:
        return self._snapshot

    def apply(self, event: StreamEvent | UnknownEvent) -> AnalysisSnapshot:
        """Apply a typed event; returns the (possibly unchanged) snapshot."""
        updated = reduce_event(self._snapshot, event)
        if updated is self._snapshot:
            self.events_ignored += 1
            self._logger.debug(
                "stream_event_ignored",
                run_id=self._run_id,
                event_type=event.event_type,
                stage=self._snapshot.stage.value,
            )
            return self._snapshot

        self.events_applied += 1
        if updated.stage != self._snapshot.stage:
            self._logger.info(
                "analysis_stage_changed",
                run_id=self._run_id,
                from_stage=self._snapshot.stage.value,
                to_stage=updated.stage.value,
            )
        self._snapshot = updated
        return updated

    def apply_payload(self, payload: dict[str, Any]) -> AnalysisSnapshot:
        """Validate a decoded frame and apply it.

        Schema-invalid frames are protocol errors: logged as warnings and
        skipped, never surfaced to the user.
        """
        try:
            event = parse_event(payload)
        except ProtocolError as exc:
            self.events_ignored += 1
            self._logger.warning(
                "stream_event_invalid",
                run_id=self._run_id,
                event_type=payload.get("event_type"),
                error=exc.message,
            )
            return self._snapshot
        return self.apply(event)

    def apply_result(self, result: MapperResult) -> AnalysisSnapshot:
        self._snapshot = apply_result(self._snapshot, result)
        return self._snapshot

    def fail(self, message: str) -> AnalysisSnapshot:
        self._snapshot = fail(self._snapshot, message)
        return self._snapshot
