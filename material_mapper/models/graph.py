"""Graph view models for the bipartite connection diagram.

A :class:`GraphView` is a pure projection of an analysis snapshot: the
flows that can affect an ecosystem service on the left, the services on
the right, and the deduplicated edges between them.  It is never persisted
and is recomputed whenever the snapshot changes.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HighlightState(str, Enum):  # noqa: UP042
    """Render state of an item or edge under the current hover."""

    NORMAL = "normal"
    HIGHLIGHTED = "highlighted"
    DIMMED = "dimmed"


class GraphSide(str, Enum):  # noqa: UP042
    LEFT = "left"
    RIGHT = "right"


class BipartiteItem(BaseModel):
    """One row in either column of the diagram."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    # Short secondary text rendered after the label (confidence, category).
    meta: str | None = None


class BipartiteConnection(BaseModel):
    """An edge from a left item to a right item."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    target_id: str
    # Optional weight for line thickness.
    weight: float | None = None
    label: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_id, self.target_id)


class GraphView(BaseModel):
    """Ordered items and deduplicated edges ready for the visualizer."""

    model_config = ConfigDict(frozen=True)

    left_items: list[BipartiteItem] = Field(default_factory=list)
    right_items: list[BipartiteItem] = Field(default_factory=list)
    connections: list[BipartiteConnection] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.left_items and not self.right_items
