"""Stream event models for the analysis event stream.

Each ``data:`` frame of the backend's stream carries one JSON object with an
``event_type`` discriminator.  Every known tag has its own frozen Pydantic
model with a strict payload schema, and the tags together form a
discriminated union (:data:`StreamEvent`).  Tags this client does not know
are wrapped in :class:`UnknownEvent` so newer backends cannot break older
consumers.

Event sequence for one analysis:

    stage1_start → stage1_complete                      (material extraction)
    stage2_start → stage2_chunk_complete × N            (flow matching, any order)
    stage3_start → stage3_complete                      (ecosystem linkage)
    complete → result                                   (authoritative totals)

``error`` may arrive at any point and ends the run.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from material_mapper.models.mapper import (
    EcosystemConnection,
    EcosystemServiceDetail,
    MapperResult,
    MatchedFlow,
)
from material_mapper.utils.errors import ProtocolError


class StreamEventBase(BaseModel):
    """Fields every stream event may carry."""

    model_config = ConfigDict(frozen=True)

    message: str | None = None
    elapsed_ms: float | None = None


# ---------------------------------------------------------------------------
# Stage 1: material extraction
# ---------------------------------------------------------------------------
class Stage1StartEvent(StreamEventBase):
    event_type: Literal["stage1_start"] = "stage1_start"


class Stage1CompleteEvent(StreamEventBase):
    event_type: Literal["stage1_complete"] = "stage1_complete"
    extracted_materials: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Stage 2: flow matching, fanned out over parallel chunks
# ---------------------------------------------------------------------------
class Stage2StartEvent(StreamEventBase):
    event_type: Literal["stage2_start"] = "stage2_start"
    total_chunks: int = Field(default=0, ge=0)


class Stage2ChunkCompleteEvent(StreamEventBase):
    event_type: Literal["stage2_chunk_complete"] = "stage2_chunk_complete"
    current_chunk: int = Field(default=0, ge=0)
    matched_bmfs: list[MatchedFlow] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Stage 3: ecosystem service linkage
# ---------------------------------------------------------------------------
class Stage3StartEvent(StreamEventBase):
    event_type: Literal["stage3_start"] = "stage3_start"


class Stage3CompleteEvent(StreamEventBase):
    event_type: Literal["stage3_complete"] = "stage3_complete"
    ecosystem_connections: list[EcosystemConnection] = Field(default_factory=list)
    ecosystem_services: list[str] = Field(default_factory=list)
    ecosystem_service_details: dict[str, EcosystemServiceDetail] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Terminal events
# ---------------------------------------------------------------------------
class CompleteEvent(StreamEventBase):
    event_type: Literal["complete"] = "complete"


class ResultEvent(StreamEventBase):
    """The authoritative final result.

    The backend sends the result fields at the top level of the frame; a
    frame that nests them under ``result`` (the non-streaming document
    shape) is accepted too.
    """

    event_type: Literal["result"] = "result"
    result: MapperResult = Field(default_factory=MapperResult)

    @model_validator(mode="before")
    @classmethod
    def _collect_result_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict) or isinstance(data.get("result"), (dict, MapperResult)):
            return data
        result_fields = {
            key: value for key, value in data.items() if key in MapperResult.model_fields
        }
        envelope = {
            key: value for key, value in data.items() if key not in MapperResult.model_fields
        }
        envelope["result"] = result_fields
        return envelope


class ErrorEvent(StreamEventBase):
    event_type: Literal["error"] = "error"
    error: str | None = None

    @property
    def error_message(self) -> str:
        """Best available human-readable failure text."""
        return self.error or self.message or "Analysis failed"


class UnknownEvent(StreamEventBase):
    """An event whose tag this client does not recognise; always ignored."""

    event_type: str
    raw: dict[str, Any] = Field(default_factory=dict)


StreamEvent = Annotated[
    Union[
        Stage1StartEvent,
        Stage1CompleteEvent,
        Stage2StartEvent,
        Stage2ChunkCompleteEvent,
        Stage3StartEvent,
        Stage3CompleteEvent,
        CompleteEvent,
        ResultEvent,
        ErrorEvent,
    ],
    Field(discriminator="event_type"),
]

KNOWN_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "stage1_start",
        "stage1_complete",
        "stage2_start",
        "stage2_chunk_complete",
        "stage3_start",
        "stage3_complete",
        "complete",
        "result",
        "error",
    }
)

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: dict[str, Any]) -> StreamEvent | UnknownEvent:
    """Validate a decoded frame into its tagged event model.

    Parameters
    ----------
    payload:
        One JSON object from a ``data:`` line.

    Returns
    -------
    StreamEvent or UnknownEvent
        The typed event; :class:`UnknownEvent` when the tag is missing or
        not one of :data:`KNOWN_EVENT_TYPES`.

    Raises
    ------
    ProtocolError
        If a known tag's payload does not match its schema.
    """
    event_type = payload.get("event_type")
    if not isinstance(event_type, str) or event_type not in KNOWN_EVENT_TYPES:
        message = payload.get("message")
        elapsed = payload.get("elapsed_ms")
        return UnknownEvent(
            event_type=str(event_type),
            message=message if isinstance(message, str) else None,
            elapsed_ms=elapsed if isinstance(elapsed, (int, float)) else None,
            raw=payload,
        )

    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(
            message=f"Invalid {event_type} payload: {exc.error_count()} validation error(s)",
        ) from exc
