"""Slicing of comma-separated variable declarations.

``int a = 1, b = 2, c = 3;`` is one statement but three declarations, so
unused members are cut out one declarator at a time.
"""
from typing import List

from ..analyzer.graph_builder import ReferenceGraph
from ..analyzer.model import Decl, Span, SyntaxTree
from ..analyzer.parser import TokenLocator
from ..analyzer.reachability import UsageInfo
from ..utils.logger import debug
from .rewriter import RangeRewriter


class GroupedDeclarationPruner:
    """Removes unused members of each cluster of global variables."""

    def __init__(self, tree: SyntaxTree, graph: ReferenceGraph, usage: UsageInfo,
                 rewriter: RangeRewriter, locator: TokenLocator):
        self.tree = tree
        self.graph = graph
        self.usage = usage
        self.rewriter = rewriter
        self.locator = locator

    def run(self) -> int:
        """Prune every cluster in start order.

        Returns:
            Number of variables whose deletion was accepted
        """
        removed = 0
        for start in sorted(self.graph.clusters):
            members = [self.tree[decl_id] for decl_id in self.graph.clusters[start]]
            removed += self.prune_cluster(members)
        return removed

    def prune_cluster(self, members: List[Decl]) -> int:
        """Delete the unused declarators of one declaration statement.

        Args:
            members: Variables sharing one start, in declarator order

        Returns:
            Number of variables removed
        """
        if not members:
            return 0
        used = [self.usage.is_used(self.graph.canonical_of(var.id)) for var in members]
        if not any(used):
            return self._remove_statement(members)

        last = max(index for index, is_used in enumerate(used) if is_used)
        removed = 0
        for index in range(last):
            if not used[index] and self._remove_declarator(members[index]):
                removed += 1

        if last + 1 < len(members):
            removed += self._remove_tail(members[last], members[last + 1:])
        return removed

    def _remove_statement(self, members: List[Decl]) -> int:
        """Nothing is used: type specifier through ';'."""
        first, final = members[0], members[-1]
        semicolon = self.locator.find_token_after(final.extent.end, ';')
        if semicolon is None:
            debug(f"no ';' after variable '{final.name}', kept")
            return 0
        end = semicolon.end
        comment = self.locator.trailing_comment(end)
        if comment is not None:
            end = comment.end
        span = Span(self.tree.main_file, first.extent.start, end)
        if not self.rewriter.remove_range(span):
            return 0
        if first.comment is not None and self.tree.in_main_file(first.comment):
            self.rewriter.remove_range(first.comment)
        return len(members)

    def _remove_declarator(self, var: Decl) -> bool:
        """Declarator start through the following ',' and the blanks after it."""
        if var.location is None:
            return False
        comma = self.locator.find_token_after(var.extent.end, ',')
        if comma is None:
            debug(f"no ',' after variable '{var.name}', kept")
            return False
        start = self.locator.declarator_start(var.location)
        end = self.locator.horizontal_space_after(comma.end)
        return self.rewriter.remove_range(Span(self.tree.main_file, start, end))

    def _remove_tail(self, last_used: Decl, tail: List[Decl]) -> int:
        """Everything after the last used declarator, starting with its ','."""
        comma = self.locator.find_token_after(last_used.extent.end, ',')
        if comma is None:
            debug(f"no ',' after variable '{last_used.name}', tail kept")
            return 0
        span = Span(self.tree.main_file, comma.start, tail[-1].extent.end)
        return len(tail) if self.rewriter.remove_range(span) else 0
