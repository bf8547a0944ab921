"""Dependency lookups, ordering and impact graphs."""

from guardian_engine.graph.dependency_index import DependencyIndex, order_by_dependencies
from guardian_engine.graph.impact_graph import build_impact_graph, graph_to_dict

__all__ = [
    "DependencyIndex",
    "build_impact_graph",
    "graph_to_dict",
    "order_by_dependencies",
]
