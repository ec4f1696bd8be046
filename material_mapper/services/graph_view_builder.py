"""Projection of an analysis snapshot into a bipartite graph view.

Left column: flows that can push an effect downstream (``outflow`` or
``both``) and appear in at least one ecosystem connection.  Right column:
the ecosystem services.  Edges: connections from a left flow to a service,
one per (flow, service) pair.

Design pattern: pure function.  No caching, no hidden state; equal inputs
always give equal views.  Callers that want to avoid recomputation memoise
on the identity of the three input lists (see AnalysisRunner.graph_view).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from material_mapper.models.graph import BipartiteConnection, BipartiteItem, GraphView
from material_mapper.models.mapper import (
    EcosystemConnection,
    EcosystemServiceDetail,
    MatchedFlow,
)
from material_mapper.models.pipeline import AnalysisSnapshot


def build_graph_view(
    matched_bmfs: Iterable[MatchedFlow],
    ecosystem_connections: Iterable[EcosystemConnection],
    ecosystem_services: Iterable[str],
    service_details: Mapping[str, EcosystemServiceDetail] | None = None,
) -> GraphView:
    """Build the left items, right items and deduplicated edges.

    Parameters
    ----------
    matched_bmfs:
        Flows matched so far; only their ``flow_type`` and confidence are
        read.  A connection naming a flow absent from this list, or an
        ``inflow``/``unknown`` flow, contributes no left item.
    ecosystem_connections:
        Flow-to-service records, possibly with duplicates.
    ecosystem_services:
        Service names for the right column.
    service_details:
        Optional detail map; a service's category becomes its item meta.
    """
    connections = list(ecosystem_connections)
    details = service_details or {}

    emitting: dict[str, MatchedFlow] = {}
    for flow in matched_bmfs:
        if flow.flow_type.emits_downstream and flow.name not in emitting:
            emitting[flow.name] = flow

    left_ids = sorted({conn.bmf_name for conn in connections if conn.bmf_name in emitting})
    left_set = set(left_ids)
    left_items = [
        BipartiteItem(id=name, label=name, meta=emitting[name].confidence.value)
        for name in left_ids
    ]

    right_items = []
    for service in sorted(set(ecosystem_services)):
        detail = details.get(service)
        right_items.append(
            BipartiteItem(
                id=service,
                label=service,
                meta=detail.category if detail is not None and detail.category else None,
            )
        )

    edges: list[BipartiteConnection] = []
    seen: set[tuple[str, str]] = set()
    for conn in connections:
        if conn.bmf_name not in left_set:
            continue
        key = (conn.bmf_name, conn.ecosystem_service)
        if key in seen:
            continue
        seen.add(key)
        edges.append(
            BipartiteConnection(
                source_id=conn.bmf_name,
                target_id=conn.ecosystem_service,
                label=conn.relationship_type or None,
            )
        )

    return GraphView(left_items=left_items, right_items=right_items, connections=edges)


def build_graph_view_from_snapshot(snapshot: AnalysisSnapshot) -> GraphView:
    """Convenience projection of a whole snapshot."""
    return build_graph_view(
        snapshot.matched_bmfs,
        snapshot.ecosystem_connections,
        snapshot.ecosystem_services,
        snapshot.ecosystem_service_details,
    )
