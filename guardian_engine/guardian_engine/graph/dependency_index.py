"""Forward and reverse dependency lookups over the active configuration store.

Forward dependencies come straight from a document's ``dependencies``
block.  Reverse dependents are found by scanning every document in the
store, which costs O(N) reads per lookup and O(N^2) when a caller asks for
the dependents of every changed name.  Configuration sets are small
(hundreds of documents), so an unmemoized scan is acceptable for single
lookups; whole-set analysis passes should use :meth:`DependencyIndex.memoized`,
which builds the inverted index once in a single O(N) pass.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import networkx as nx

from guardian_engine.models.analysis import DependencySet
from guardian_engine.storage.base import ConfigStore
from guardian_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)


class DependencyIndex:
    """Dependency queries against one configuration store.

    Parameters
    ----------
    store:
        Normally the "active" store.
    memoize:
        When ``True`` the first :meth:`dependents_of` call builds a reverse
        index of the whole store and later calls answer from it.  Use only
        for the duration of one analysis pass: the cache never notices
        writes made to the store afterwards.
    """

    def __init__(self, store: ConfigStore, *, memoize: bool = False) -> None:
        self._store = store
        self._memoize = memoize
        self._dependencies: dict[str, DependencySet] = {}
        self._reverse: dict[str, list[str]] | None = None

    @property
    def store(self) -> ConfigStore:
        return self._store

    def memoized(self) -> DependencyIndex:
        """Return a fresh memoizing index over the same store."""
        return DependencyIndex(self._store, memoize=True)

    def dependencies_of(self, name: str) -> DependencySet:
        """Declared dependencies of *name*; every category empty when absent."""
        if self._memoize and name in self._dependencies:
            return self._dependencies[name]
        deps = DependencySet.from_document(self._store.read(name))
        if self._memoize:
            self._dependencies[name] = deps
        return deps

    @profile_operation("dependency.dependents")
    def dependents_of(self, name: str) -> list[str]:
        """Names whose ``config`` dependency list contains *name*, sorted."""
        if self._memoize:
            if self._reverse is None:
                self._reverse = self._build_reverse_index()
            return list(self._reverse.get(name, []))

        dependents = []
        for candidate in self._store.list_all():
            if name in self.dependencies_of(candidate).config:
                dependents.append(candidate)
        return sorted(dependents)

    def _build_reverse_index(self) -> dict[str, list[str]]:
        reverse: dict[str, set[str]] = {}
        for candidate in self._store.list_all():
            for target in self.dependencies_of(candidate).config:
                reverse.setdefault(target, set()).add(candidate)
        logger.debug("Built reverse dependency index for %d targets", len(reverse))
        return {target: sorted(names) for target, names in reverse.items()}


# ---------------------------------------------------------------------------
# Dependency ordering
# ---------------------------------------------------------------------------


def _lexicographic_topological_sort(graph: nx.DiGraph) -> list[str]:
    in_degree = {node: graph.in_degree(node) for node in graph.nodes}
    heap = [node for node, degree in in_degree.items() if degree == 0]
    heapq.heapify(heap)
    ordered: list[str] = []
    while heap:
        node = heapq.heappop(heap)
        ordered.append(node)
        for successor in graph.successors(node):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(heap, successor)
    if len(ordered) != graph.number_of_nodes():
        raise nx.NetworkXUnfeasible("Dependency graph contains a cycle")
    return ordered


def order_by_dependencies(names: Iterable[str], documents: Mapping[str, Any]) -> list[str]:
    """Order *names* so that each name's config dependencies within the set come first.

    Only dependencies that are themselves in *names* constrain the order;
    ties are broken alphabetically.  When the declared dependencies form a
    cycle the names are returned in plain alphabetical order.

    Parameters
    ----------
    names:
        The names to order (e.g. one changelist bucket).
    documents:
        Mapping used to look up each name's ``dependencies`` block.
    """
    members = sorted(set(names))
    if len(members) < 2:
        return members

    graph = nx.DiGraph()
    graph.add_nodes_from(members)
    member_set = set(members)
    for name in members:
        for dependency in DependencySet.from_document(documents.get(name)).config:
            if dependency in member_set and dependency != name:
                graph.add_edge(dependency, name)

    try:
        return _lexicographic_topological_sort(graph)
    except nx.NetworkXUnfeasible:
        cycles = list(nx.simple_cycles(graph))
        logger.warning(
            "Cyclic config dependencies among %d names, falling back to alphabetical order: %s",
            len(members),
            "; ".join(" -> ".join(c) for c in cycles[:3]),
        )
        return members
