"""Dependency impact graph for a set of changed configuration names."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import networkx as nx

from guardian_engine.models.analysis import RiskLevel

if TYPE_CHECKING:
    from guardian_engine.analysis.risk_scorer import RiskScorer


def build_impact_graph(names: Iterable[str], scorer: RiskScorer) -> nx.DiGraph:
    """Build a directed graph from each name to the documents depending on it.

    Nodes for the requested names carry the per-item risk level of their
    impact score.  Dependents pulled in only as neighbours are marked
    ``low``: they are affected but not themselves being changed.

    Parameters
    ----------
    names:
        Names being changed, in display order.
    scorer:
        Scorer whose dependency index and analysis are used per node.
    """
    graph = nx.DiGraph()
    requested: list[str] = list(dict.fromkeys(names))

    for name in requested:
        analysis = scorer.analyze_config(name)
        graph.add_node(
            name,
            type=analysis.config_type,
            risk=analysis.risk_level.value,
            impact_score=analysis.impact_score,
            changed=True,
        )
        for dependent in analysis.dependents:
            if dependent not in graph:
                dependent_analysis = scorer.analyze_config(dependent)
                graph.add_node(
                    dependent,
                    type=dependent_analysis.config_type,
                    risk=RiskLevel.LOW.value,
                    impact_score=dependent_analysis.impact_score,
                    changed=False,
                )
            graph.add_edge(name, dependent)

    return graph


def graph_to_dict(graph: nx.DiGraph) -> dict[str, list[dict[str, Any]]]:
    """Render *graph* as ``{"nodes": [...], "links": [...]}`` with integer node ids."""
    node_ids: dict[str, int] = {}
    nodes: list[dict[str, Any]] = []
    for node_id, (name, data) in enumerate(graph.nodes(data=True)):
        node_ids[name] = node_id
        nodes.append(
            {
                "id": node_id,
                "name": name,
                "type": data.get("type", "Configuration"),
                "risk": data.get("risk", RiskLevel.LOW.value),
                "impactScore": data.get("impact_score", 0),
            }
        )
    links = [{"source": node_ids[src], "target": node_ids[dst]} for src, dst in graph.edges()]
    return {"nodes": nodes, "links": links}
