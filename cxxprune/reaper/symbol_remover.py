"""Removal planner: decides, per physical declaration, what to delete."""
from typing import Optional, Set

from ..analyzer.graph_builder import ReferenceGraph
from ..analyzer.model import Decl, DeclKind, Span, SyntaxTree
from ..analyzer.parser import TokenLocator
from ..analyzer.reachability import UsageInfo
from ..utils.logger import debug
from .rewriter import RangeRewriter


class RemovalPlanner:
    """Walks the real (non-implicit, non-instantiated) code in file order.

    Outer declarations are visited before their members, so when a whole
    class or namespace goes, the deletions requested for its members are
    dropped by the rewriter as overlapping.
    """

    def __init__(self, tree: SyntaxTree, graph: ReferenceGraph, usage: UsageInfo,
                 rewriter: RangeRewriter, locator: TokenLocator):
        """Initialize planner.

        Args:
            tree: Declaration tree
            graph: Reference graph (for canonical ids)
            usage: Usage predicate from the reachability pass
            rewriter: Receives the deletions
            locator: Token view of the main buffer
        """
        self.tree = tree
        self.graph = graph
        self.usage = usage
        self.rewriter = rewriter
        self.locator = locator
        self.declared: Set[int] = set()  # canonical ids already emitted
        self.used_namespaces: Set[int] = set()
        self.removed_count = 0

        self._handlers = {
            DeclKind.EMPTY: self._visit_empty,
            DeclKind.NAMESPACE: self._visit_namespace,
            DeclKind.FUNCTION: self._visit_function,
            DeclKind.FUNCTION_TEMPLATE: self._visit_function_template,
            DeclKind.RECORD: self._visit_record,
            DeclKind.CLASS_TEMPLATE: self._visit_class_template,
            DeclKind.TYPEDEF: self._visit_typedef,
            DeclKind.ALIAS_TEMPLATE: self._visit_alias_template,
            DeclKind.USING_DIRECTIVE: self._visit_using_directive,
        }

    def run(self) -> int:
        """Plan deletions for the whole file.

        Returns:
            Number of declarations whose deletion was accepted
        """
        for decl in self.tree.walk(physical_only=True):
            handler = self._handlers.get(decl.kind)
            if handler is None or not self.tree.in_main_file(decl.extent):
                continue
            handler(decl)
        return self.removed_count

    def _canonical(self, decl_id: int) -> int:
        return self.graph.canonical_of(decl_id)

    def _is_unused(self, decl_id: int) -> bool:
        return not self.usage.is_used(self._canonical(decl_id))

    # -- per-kind decisions ---------------------------------------------------

    def _visit_empty(self, decl: Decl):
        self.remove_decl(decl)

    def _visit_namespace(self, decl: Decl):
        # each occurrence on its own: not canonicalized
        if not self.usage.is_used(decl.id):
            self.remove_decl(decl)

    def need_to_remove_function(self, function: Decl) -> bool:
        """Unused, or a bodiless redeclaration of something already emitted.

        Defaulted and deleted members take part in overload resolution even
        when nothing references them, so they always stay.
        """
        if function.is_defaulted_or_deleted:
            return False
        canonical = self._canonical(function.id)
        is_unused = not self.usage.is_used(canonical)
        is_redeclaration = not function.is_definition and canonical in self.declared
        return is_unused or is_redeclaration

    def _visit_function(self, decl: Decl):
        if self.need_to_remove_function(decl):
            self.remove_decl(decl)
        self.declared.add(self._canonical(decl.id))

    def _visit_function_template(self, decl: Decl):
        pattern = self.tree[decl.templated] if decl.templated is not None else decl

        # Out-of-line member templates: the pattern's span starts first and
        # the pattern is handled as a function on its own.
        if pattern is not decl and pattern.extent.start < decl.extent.start:
            return

        if self.need_to_remove_function(pattern):
            self.remove_decl(decl)
        if pattern is decl:
            self.declared.add(self._canonical(decl.id))

    def _visit_record(self, decl: Decl):
        if decl.described_template is not None:
            # class template pattern: handled by the class template
            return
        self._remove_type_if_unneeded(decl)

    def _visit_class_template(self, decl: Decl):
        self._remove_type_if_unneeded(decl)

    def _remove_type_if_unneeded(self, decl: Decl):
        canonical = self._canonical(decl.id)
        is_unused = not self.usage.is_used(canonical)
        is_redeclaration = not decl.is_definition and canonical in self.declared
        # `struct A {...} a;` and `typedef struct {...} T;`: the class is part
        # of a larger declaration that goes or stays as a whole
        is_standalone = self.locator.find_token_after(decl.extent.end, ';') is not None
        if (is_unused or is_redeclaration) and is_standalone:
            self.remove_decl(decl)
        self.declared.add(canonical)

    def _visit_typedef(self, decl: Decl):
        if decl.described_template is not None:
            # pattern of an alias template: handled by the alias template
            return
        if self._is_unused(decl.id):
            self.remove_decl(decl)

    def _visit_alias_template(self, decl: Decl):
        if self._is_unused(decl.id):
            self.remove_decl(decl)

    def _visit_using_directive(self, decl: Decl):
        """Keep the first directive per namespace, drop the repeats.

        Directives carry no incoming edges, so usage says nothing about them.
        """
        if decl.nominated is None:
            return
        namespace = self._original_namespace(decl.nominated)
        if namespace in self.used_namespaces:
            self.remove_decl(decl)
        else:
            self.used_namespaces.add(namespace)

    def _original_namespace(self, decl_id: int) -> int:
        seen = {decl_id}
        current = self.tree[decl_id]
        while current.redeclares is not None and current.redeclares not in seen:
            seen.add(current.redeclares)
            current = self.tree[current.redeclares]
        return current.id

    # -- deletion -------------------------------------------------------------

    def removal_span(self, decl: Decl) -> Span:
        """Declaration span extended through its ';' and a comment ending its line."""
        end = decl.extent.end
        semicolon = self.locator.find_token_after(end, ';')
        if semicolon is not None:
            end = semicolon.end
        comment = self.locator.trailing_comment(end)
        if comment is not None:
            end = comment.end
        return Span(decl.extent.file, decl.extent.start, end)

    def remove_decl(self, decl: Optional[Decl]):
        """Request deletion of a declaration and of its attached comment.

        Args:
            decl: Declaration to delete (ignored if None or not in the main file)
        """
        if decl is None or not self.tree.in_main_file(decl.extent):
            return
        span = self.removal_span(decl)
        debug(f"remove {decl.kind.value} '{decl.name}' [{span.start}, {span.end})")
        if self.rewriter.remove_range(span):
            self.removed_count += 1

        if decl.comment is not None and self.tree.in_main_file(decl.comment):
            self.rewriter.remove_range(decl.comment)
