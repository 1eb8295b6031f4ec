"""Reachability over the reference graph: which declarations are used."""
from collections import deque
from typing import Dict, List, Optional, Set, Tuple
import networkx as nx

from .graph_builder import ReferenceGraph
from .model import SyntaxTree
from ..utils.logger import debug, debug_enabled


class UsageInfo:
    """Usage predicate produced once by the reachability pass.

    A declaration is used if its canonical id was reached from a root, or if
    its span is exactly the span of a reached main-file declaration (covers
    out-of-line template members whose canonical node and physical span
    diverge).
    """

    def __init__(self, tree: SyntaxTree, graph: ReferenceGraph, visited: Set[int]):
        self.tree = tree
        self.graph = graph
        self.visited = frozenset(visited)
        self.used_spans: Set[Tuple[int, int]] = {
            (tree[decl_id].extent.start, tree[decl_id].extent.end)
            for decl_id in visited
            if tree.in_main_file(tree[decl_id].extent)
        }

    def is_used(self, decl_id: int) -> bool:
        """Check whether a declaration is transitively required by a root.

        Args:
            decl_id: Any physical declaration id (canonicalized here)

        Returns:
            True if the declaration must stay
        """
        if self.graph.canonical_of(decl_id) in self.visited:
            return True
        extent = self.tree[decl_id].extent
        return (extent.start, extent.end) in self.used_spans

    def why(self, decl_id: int) -> Optional[List[int]]:
        """Explain why a declaration is kept.

        Args:
            decl_id: Declaration to explain

        Returns:
            Canonical ids from a root to the declaration, or None if unused
        """
        target = self.graph.canonical_of(decl_id)
        if target not in self.visited:
            return None
        if target in self.graph.roots:
            return [target]

        best = None
        for root in sorted(self.graph.roots):
            try:
                path = nx.shortest_path(self.graph.graph, root, target)
            except (nx.NetworkXNoPath, nx.NodeNotFound):
                continue
            if best is None or len(path) < len(best):
                best = path
        if best is None:
            # reached only through the destructor rule, which has no edge
            return [target]
        return best


class ReachabilityAnalyzer:
    """Forward worklist from the roots over the reference graph."""

    def __init__(self, tree: SyntaxTree, graph: ReferenceGraph):
        """Initialize analyzer.

        Args:
            tree: Declaration tree
            graph: Output of ReferenceGraphBuilder.build_graph()
        """
        self.tree = tree
        self.graph = graph
        self._destructors = self._collect_destructors()

    def _collect_destructors(self) -> Dict[int, int]:
        """Map each canonical record to its destructor (from any redeclaration)."""
        destructors = {}
        for decl in self.tree.all_decls():
            if decl.destructor is not None:
                destructors.setdefault(self.graph.canonical_of(decl.id), decl.destructor)
        return destructors

    def compute_usage(self) -> UsageInfo:
        """Visit everything reachable from the roots.

        Returns:
            UsageInfo over the visited set
        """
        visited: Set[int] = set()
        queue = deque(sorted(self.graph.canonical_of(root) for root in self.graph.roots))
        trace = debug_enabled()

        while queue:
            decl_id = queue.popleft()
            if decl_id in visited:
                continue
            visited.add(decl_id)
            if trace:
                decl = self.tree[decl_id]
                debug(f"used {decl.kind.value} '{decl.name}'@{decl.extent.start}")

            if decl_id in self.graph.graph:
                queue.extend(self.graph.graph.successors(decl_id))

            # No syntactic call site exists for end-of-scope destruction:
            # a reachable record keeps its destructor.
            destructor = self._destructors.get(decl_id)
            if destructor is not None:
                queue.append(self.graph.canonical_of(destructor))

        return UsageInfo(self.tree, self.graph, visited)
