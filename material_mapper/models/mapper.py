"""Material-flow and ecosystem-service models for the Material Mapper.

Defines Pydantic v2 models for the records the analysis backend emits:
matched material flows (BMFs), flow-to-service connections, ecosystem
service details, and the complete result document.  All models use frozen
config to enforce immutability.

The data forms a bipartite structure:
    - MatchedFlow           = a catalogued flow the strategy's materials match
    - EcosystemConnection   = an edge from a flow to an ecosystem service
    - EcosystemServiceDetail = descriptive record for one service, keyed by name
    - MapperResult          = every field of a finished analysis at once
"""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class FlowType(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Direction of a material flow relative to the building.

    Only ``OUTFLOW`` and ``BOTH`` flows can emit a downstream effect on an
    ecosystem service; the graph view excludes the rest.
    """

    INFLOW = "inflow"
    OUTFLOW = "outflow"
    BOTH = "both"
    UNKNOWN = "unknown"

    @property
    def emits_downstream(self) -> bool:
        return self in (FlowType.OUTFLOW, FlowType.BOTH)


class Confidence(str, Enum):  # noqa: UP042
    """Qualitative confidence the backend attaches to a flow match."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# MatchedFlow - one BMF match.
# ---------------------------------------------------------------------------
class MatchedFlow(BaseModel):
    """A material-flow record matched against the extracted materials.

    Unique by ``name`` within an aggregated result.  The non-streaming
    endpoint spells the key ``bmf_name``; both spellings validate.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(validation_alias=AliasChoices("name", "bmf_name"))
    flow_type: FlowType = FlowType.UNKNOWN
    confidence: Confidence
    # Ordered set: display order is first appearance, duplicates collapse.
    matched_materials: list[str] = Field(default_factory=list)
    reason: str = ""

    @field_validator("flow_type", mode="before")
    @classmethod
    def _normalise_flow_type(cls, value: object) -> object:
        if value is None:
            return FlowType.UNKNOWN
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {ft.value for ft in FlowType}:
                return lowered
            return FlowType.UNKNOWN
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalise_confidence(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("matched_materials")
    @classmethod
    def _dedupe_materials(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


# ---------------------------------------------------------------------------
# Ecosystem service records
# ---------------------------------------------------------------------------
class EcosystemConnection(BaseModel):
    """A many-to-many edge between a flow and an ecosystem service."""

    model_config = ConfigDict(frozen=True)

    bmf_name: str
    ecosystem_service: str
    relationship_type: str = ""


class SupplementaryConnection(BaseModel):
    """Free-text note linking a flow to a service inside a detail record."""

    model_config = ConfigDict(frozen=True)

    bmf_name: str
    ecosystem_service: str
    text: str = ""
    direction: str | None = None


class EcosystemServiceDetail(BaseModel):
    """Descriptive record for one ecosystem service, shown in the detail panel."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    category: str = ""
    supplementary_connections: list[SupplementaryConnection] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# MapperResult - the complete analysis in one document.
# ---------------------------------------------------------------------------
class MapperResult(BaseModel):
    """Every field of a finished analysis.

    Returned wrapped in ``{"result": ...}`` by the non-streaming endpoint and
    carried by the terminal ``result`` stream event.  Applying it replaces
    all partial state.
    """

    model_config = ConfigDict(frozen=True)

    extracted_materials: list[str] = Field(default_factory=list)
    matched_bmfs: list[MatchedFlow] = Field(default_factory=list)
    unmatched_materials: list[str] = Field(default_factory=list)
    ecosystem_connections: list[EcosystemConnection] = Field(default_factory=list)
    ecosystem_services: list[str] = Field(default_factory=list)
    ecosystem_service_details: dict[str, EcosystemServiceDetail] = Field(default_factory=dict)
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    cost_usd: float = Field(default=0.0, ge=0.0)
