"""Bipartite connection visualizer: hover/selection model plus SVG output.

Renders a :class:`GraphView` as two aligned columns joined by curved
connectors and tracks the transient interaction state the diagram needs:
one hovered item (left or right, never both) and one selected right-hand
item that drives the detail panel.

# ─── HOW HIGHLIGHTING WORKS ───────────────────────────────────────────
#
#   view.connections ──(once per data change)──→ by_source: left → {right}
#                                               by_target: right → {left}
#
#   hover_left("steel")   → edges from "steel" highlighted, all others dimmed
#                         → "steel" + its targets highlighted, rest dimmed
#   hover_right("soil")   → the mirror image, via by_target
#   clear_hover()         → everything back to normal
#
# Adjacency is rebuilt only when the connection list changes, so a hover
# is a couple of set lookups per edge and never a walk over the graph.
# Selection is independent of hover: it survives hover changes and data
# updates, and only click_right() changes it.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from material_mapper.models.graph import (
    BipartiteConnection,
    GraphSide,
    GraphView,
    HighlightState,
)
from material_mapper.models.mapper import EcosystemServiceDetail
from material_mapper.utils.logging import get_logger

logger = get_logger(__name__)

# Control points sit at 40% and 60% of the connection area so every curve
# leaves and enters its column horizontally.
_CONTROL_RATIO = 0.4


class GraphLayout(BaseModel):
    """Geometry and colours of the rendered diagram."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    left_header: str = "Sources"
    right_header: str = "Targets"
    row_height: float = Field(default=32, gt=0)
    column_width: float = Field(default=200, gt=0)
    connection_area_width: float = Field(default=160, gt=0)
    connection_color: str = "#94a3b8"
    highlight_color: str = "#3b82f6"
    text_color: str = "#374151"
    meta_color: str = "#9ca3af"
    header_color: str = "#9ca3af"
    # Edge opacity while another item is hovered.
    dimmed_opacity: float = Field(default=0.15, ge=0.0, le=1.0)
    normal_opacity: float = Field(default=0.6, ge=0.0, le=1.0)
    # Label opacity of items outside the hovered neighbourhood.
    dimmed_item_opacity: float = Field(default=0.3, ge=0.0, le=1.0)
    header_height: float = 28
    label_padding: float = 12
    font_size: float = 13

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> GraphLayout:
        """Build a layout from the ``graph`` section of ``config.yaml``."""
        return cls.model_validate(dict(config or {}))


class BipartiteGraph:
    """Interaction state and rendering for one bipartite diagram.

    Parameters
    ----------
    view:
        Items and edges to draw.  Replace it with :meth:`update_view`.
    layout:
        Geometry and colours; defaults match the web diagram.
    on_select:
        Called with the new ``selected_id`` (or ``None``) whenever a click
        changes the selection.
    """

    def __init__(
        self,
        view: GraphView | None = None,
        layout: GraphLayout | None = None,
        on_select: Callable[[str | None], None] | None = None,
    ) -> None:
        self._layout = layout or GraphLayout()
        self._on_select = on_select
        self._view = GraphView()
        self._connections: list[BipartiteConnection] = []
        self._by_source: dict[str, set[str]] = {}
        self._by_target: dict[str, set[str]] = {}
        self._left_y: dict[str, float] = {}
        self._right_y: dict[str, float] = {}
        self._hovered_side: GraphSide | None = None
        self._hovered_id: str | None = None
        self._selected_id: str | None = None
        self.adjacency_builds = 0
        self.update_view(view or GraphView())

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    @property
    def view(self) -> GraphView:
        return self._view

    @property
    def layout(self) -> GraphLayout:
        return self._layout

    def update_view(self, view: GraphView) -> None:
        """Swap in new data, keeping hover and selection.

        Row positions follow the new item order on every call; the
        adjacency maps are rebuilt only when the connections differ.
        """
        self._view = view
        self._left_y = {item.id: self.item_y(i) for i, item in enumerate(view.left_items)}
        self._right_y = {item.id: self.item_y(i) for i, item in enumerate(view.right_items)}
        if view.connections != self._connections or self.adjacency_builds == 0:
            self._build_adjacency(view.connections)

    def _build_adjacency(self, connections: list[BipartiteConnection]) -> None:
        by_source: dict[str, set[str]] = {}
        by_target: dict[str, set[str]] = {}
        for conn in connections:
            by_source.setdefault(conn.source_id, set()).add(conn.target_id)
            by_target.setdefault(conn.target_id, set()).add(conn.source_id)
        self._connections = list(connections)
        self._by_source = by_source
        self._by_target = by_target
        self.adjacency_builds += 1
        logger.debug("graph_adjacency_built", edges=len(connections), builds=self.adjacency_builds)

    def targets_of(self, left_id: str) -> frozenset[str]:
        return frozenset(self._by_source.get(left_id, ()))

    def sources_of(self, right_id: str) -> frozenset[str]:
        return frozenset(self._by_target.get(right_id, ()))

    # ------------------------------------------------------------------
    # Hover
    # ------------------------------------------------------------------

    @property
    def hovered_left_id(self) -> str | None:
        return self._hovered_id if self._hovered_side == GraphSide.LEFT else None

    @property
    def hovered_right_id(self) -> str | None:
        return self._hovered_id if self._hovered_side == GraphSide.RIGHT else None

    @property
    def is_hovering(self) -> bool:
        return self._hovered_id is not None

    def hover_left(self, item_id: str) -> None:
        self._hovered_side = GraphSide.LEFT
        self._hovered_id = item_id

    def hover_right(self, item_id: str) -> None:
        self._hovered_side = GraphSide.RIGHT
        self._hovered_id = item_id

    def leave_left(self) -> None:
        if self._hovered_side == GraphSide.LEFT:
            self.clear_hover()

    def leave_right(self) -> None:
        if self._hovered_side == GraphSide.RIGHT:
            self.clear_hover()

    def clear_hover(self) -> None:
        self._hovered_side = None
        self._hovered_id = None

    def on_hover_enter(self, side: GraphSide | str, item_id: str) -> None:
        """Pointer entered an item on *side*."""
        if GraphSide(side) == GraphSide.LEFT:
            self.hover_left(item_id)
        else:
            self.hover_right(item_id)

    def on_hover_leave(self, side: GraphSide | str) -> None:
        """Pointer left the item it was over on *side*."""
        if GraphSide(side) == GraphSide.LEFT:
            self.leave_left()
        else:
            self.leave_right()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    def click_right(self, item_id: str) -> str | None:
        """Toggle selection of a right-hand item; returns the new selection."""
        self._selected_id = None if self._selected_id == item_id else item_id
        logger.debug("graph_selection_changed", selected_id=self._selected_id)
        if self._on_select is not None:
            self._on_select(self._selected_id)
        return self._selected_id

    def on_click(self, side: GraphSide | str, item_id: str) -> str | None:
        """Click on an item.  Only right-hand items are selectable."""
        if GraphSide(side) == GraphSide.RIGHT:
            return self.click_right(item_id)
        return self._selected_id

    def clear_selection(self) -> None:
        if self._selected_id is not None:
            self._selected_id = None
            if self._on_select is not None:
                self._on_select(None)

    def selected_detail(
        self, details: Mapping[str, EcosystemServiceDetail]
    ) -> EcosystemServiceDetail | None:
        if self._selected_id is None:
            return None
        return details.get(self._selected_id)

    # ------------------------------------------------------------------
    # Highlight state
    # ------------------------------------------------------------------

    def edge_state(self, source_id: str, target_id: str) -> HighlightState:
        if self._hovered_id is None:
            return HighlightState.NORMAL
        if self._hovered_side == GraphSide.LEFT:
            if source_id == self._hovered_id and target_id in self._by_source.get(
                self._hovered_id, ()
            ):
                return HighlightState.HIGHLIGHTED
            return HighlightState.DIMMED
        if target_id == self._hovered_id and source_id in self._by_target.get(
            self._hovered_id, ()
        ):
            return HighlightState.HIGHLIGHTED
        return HighlightState.DIMMED

    def left_item_state(self, item_id: str) -> HighlightState:
        if self._hovered_id is None:
            return HighlightState.NORMAL
        if self._hovered_side == GraphSide.LEFT:
            highlighted = item_id == self._hovered_id
        else:
            highlighted = item_id in self._by_target.get(self._hovered_id, ())
        return HighlightState.HIGHLIGHTED if highlighted else HighlightState.DIMMED

    def right_item_state(self, item_id: str) -> HighlightState:
        if self._hovered_id is None:
            return HighlightState.NORMAL
        if self._hovered_side == GraphSide.RIGHT:
            highlighted = item_id == self._hovered_id
        else:
            highlighted = item_id in self._by_source.get(self._hovered_id, ())
        return HighlightState.HIGHLIGHTED if highlighted else HighlightState.DIMMED

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def item_y(self, index: int) -> float:
        """Vertical centre of row *index* inside the connection area."""
        row = self._layout.row_height
        return index * row + row / 2

    def connector_path(self, y1: float, y2: float) -> str:
        """Cubic Bezier from the left edge at *y1* to the right edge at *y2*."""
        x1 = 0
        x2 = self._layout.connection_area_width
        cx = x2 * _CONTROL_RATIO
        return (
            f"M {_num(x1)},{_num(y1)} "
            f"C {_num(x1 + cx)},{_num(y1)} {_num(x2 - cx)},{_num(y2)} {_num(x2)},{_num(y2)}"
        )

    @property
    def height(self) -> float:
        rows = max(len(self._view.left_items), len(self._view.right_items))
        return rows * self._layout.row_height

    @property
    def width(self) -> float:
        return self._layout.column_width * 2 + self._layout.connection_area_width

    def drawable_edges(self) -> list[tuple[BipartiteConnection, float, float]]:
        """Edges whose both endpoints have a row, with their y positions."""
        edges = []
        for conn in self._view.connections:
            y1 = self._left_y.get(conn.source_id)
            y2 = self._right_y.get(conn.target_id)
            if y1 is None or y2 is None:
                continue
            edges.append((conn, y1, y2))
        return edges

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def describe(self) -> dict[str, Any]:
        """JSON-ready state of every item and drawable edge."""
        return {
            "hovered": (
                {"side": self._hovered_side.value, "id": self._hovered_id}
                if self._hovered_side is not None
                else None
            ),
            "selected_id": self._selected_id,
            "left_items": [
                {
                    "id": item.id,
                    "label": item.label,
                    "meta": item.meta,
                    "y": self._left_y[item.id],
                    "state": self.left_item_state(item.id).value,
                }
                for item in self._view.left_items
            ],
            "right_items": [
                {
                    "id": item.id,
                    "label": item.label,
                    "meta": item.meta,
                    "y": self._right_y[item.id],
                    "state": self.right_item_state(item.id).value,
                }
                for item in self._view.right_items
            ],
            "connections": [
                {
                    "source_id": conn.source_id,
                    "target_id": conn.target_id,
                    "label": conn.label,
                    "path": self.connector_path(y1, y2),
                    "state": self.edge_state(conn.source_id, conn.target_id).value,
                }
                for conn, y1, y2 in self.drawable_edges()
            ],
        }

    def render_svg(self) -> str:
        """Self-contained SVG of the diagram in its current highlight state."""
        lay = self._layout
        width = self.width
        height = lay.header_height + self.height
        area_x = lay.column_width
        right_x = lay.column_width + lay.connection_area_width
        top = lay.header_height
        font = f'font-family="ui-monospace, monospace" font-size="{_num(lay.font_size)}"'

        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {_num(width)} {_num(height)}" '
            f'width="{_num(width)}" height="{_num(height)}">'
        )

        # Headers
        header_y = lay.header_height / 2
        svg += (
            f'<text x="{_num(area_x - lay.label_padding)}" y="{_num(header_y)}" text-anchor="end" '
            f'dominant-baseline="middle" fill="{lay.header_color}" {font}>'
            f"{_xml_esc(lay.left_header.upper())}</text>"
        )
        svg += (
            f'<text x="{_num(right_x + lay.label_padding)}" y="{_num(header_y)}" '
            f'dominant-baseline="middle" fill="{lay.header_color}" {font}>'
            f"{_xml_esc(lay.right_header.upper())}</text>"
        )

        # Connectors
        svg += f'<g transform="translate({_num(area_x)},{_num(top)})">'
        for conn, y1, y2 in self.drawable_edges():
            state = self.edge_state(conn.source_id, conn.target_id)
            base_width = conn.weight if conn.weight else 1
            if state == HighlightState.HIGHLIGHTED:
                stroke, opacity, stroke_width = lay.highlight_color, 1.0, max(2, base_width)
            elif state == HighlightState.DIMMED:
                stroke, opacity, stroke_width = lay.connection_color, lay.dimmed_opacity, base_width
            else:
                stroke, opacity, stroke_width = lay.connection_color, lay.normal_opacity, base_width
            title = f"{conn.source_id} → {conn.target_id}"
            if conn.label:
                title += f" ({conn.label})"
            svg += (
                f'<path d="{self.connector_path(y1, y2)}" fill="none" stroke="{stroke}" '
                f'stroke-width="{_num(stroke_width)}" opacity="{_num(opacity)}" '
                f'data-state="{state.value}"><title>{_xml_esc(title)}</title></path>'
            )
        svg += "</g>"

        # Left column, right-aligned against the connection area
        for item in self._view.left_items:
            state = self.left_item_state(item.id)
            svg += self._label(
                item.label,
                item.meta,
                x=area_x - lay.label_padding,
                y=top + self._left_y[item.id],
                state=state,
                anchor="end",
                font=font,
            )

        # Right column, left-aligned against the connection area
        for item in self._view.right_items:
            state = self.right_item_state(item.id)
            selected = ' font-weight="bold"' if item.id == self._selected_id else ""
            svg += self._label(
                item.label,
                item.meta,
                x=right_x + lay.label_padding,
                y=top + self._right_y[item.id],
                state=state,
                anchor="start",
                font=font + selected,
            )

        svg += "</svg>"
        return svg

    def _label(
        self,
        label: str,
        meta: str | None,
        *,
        x: float,
        y: float,
        state: HighlightState,
        anchor: str,
        font: str,
    ) -> str:
        lay = self._layout
        fill = lay.highlight_color if state == HighlightState.HIGHLIGHTED else lay.text_color
        opacity = lay.dimmed_item_opacity if state == HighlightState.DIMMED else 1.0
        meta_span = ""
        if meta:
            meta_span = f'<tspan dx="4" fill="{lay.meta_color}">{_xml_esc(meta)}</tspan>'
        return (
            f'<text x="{_num(x)}" y="{_num(y)}" text-anchor="{anchor}" dominant-baseline="middle" '
            f'fill="{fill}" opacity="{_num(opacity)}" data-state="{state.value}" {font}>'
            f"{_xml_esc(label)}{meta_span}</text>"
        )


def _num(value: float) -> str:
    """Format a coordinate without a trailing ``.0``."""
    return f"{value:g}" if isinstance(value, float) else str(value)


def _xml_esc(s: str) -> str:
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")
