"""Reference graph builder using NetworkX.

Creates a directed graph where edge (A, B) means "declaration A requires
declaration B". Every syntactic way one declaration can need another is one
rule below; each rule is a pure function of a declaration (and the tree it
lives in) returning raw edges. The builder runs the rules over the whole
tree, then canonicalizes once and turns the raw edges into the graph.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple, Union
import networkx as nx

from .model import (
    RETAINED_KINDS, SCOPE_KINDS, VALUE_KINDS,
    Decl, DeclKind, Reference, SyntaxTree, TypeKind, TypeRef,
)
from ..config import DEFAULT_KEEP_MARKER
from ..utils.logger import debug, debug_enabled


@dataclass(frozen=True)
class DeclEdge:
    """source requires the declaration target."""
    source: int
    target: int
    reason: str


@dataclass(frozen=True)
class TypeEdge:
    """source requires every declaration the type decomposes into."""
    source: int
    type: TypeRef
    reason: str


Edge = Union[DeclEdge, TypeEdge]

FUNCTION_KINDS = frozenset({DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE})

# Looked through without adding an edge of their own
_TRANSPARENT_TYPES = frozenset({
    TypeKind.ELABORATED, TypeKind.PAREN, TypeKind.POINTER,
    TypeKind.REFERENCE, TypeKind.ARRAY,
})


def _edge(source: Optional[int], target: Optional[int], reason: str) -> List[Edge]:
    if source is None or target is None:
        return []
    return [DeclEdge(source, target, reason)]


def _type_edge(source: Optional[int], type_ref: Optional[TypeRef], reason: str) -> List[Edge]:
    if source is None or type_ref is None:
        return []
    return [TypeEdge(source, type_ref, reason)]


# =========================================================================
# Per-kind rules
# =========================================================================

def context_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Any declaration requires its enclosing class or namespace."""
    if decl.context is None:
        return []
    if decl.context_kind in FUNCTION_KINDS or decl.context_kind == DeclKind.TRANSLATION_UNIT:
        return []
    return _edge(decl.id, decl.context, "context")


def value_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Functions require their parameters and locals; values require their type."""
    edges = []
    if decl.parent is not None and tree[decl.parent].kind in FUNCTION_KINDS:
        # every parameter and local lives as long as its function
        edges += _edge(decl.parent, decl.id, "local")
    edges += _type_edge(decl.id, decl.type, "type")
    return edges


def retained_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Declarations that are never deleted alone are required by their scope.

    Fields, enums, enumerators and 'other' declarations stay in the output
    whenever their scope does, so whatever they reference must stay too.
    File-scope ones are roots instead (see is_retained_root).
    """
    if decl.context is None:
        return []
    if decl.context_kind in SCOPE_KINDS or decl.context_kind in FUNCTION_KINDS:
        return _edge(decl.context, decl.id, "retained member")
    return []


def is_retained_root(decl: Decl, tree: SyntaxTree) -> bool:
    """Retained declarations outside any removable scope are roots."""
    if decl.kind not in RETAINED_KINDS or not tree.in_main_file(decl.extent):
        return False
    if decl.is_implicit or decl.is_instantiation:
        return False
    return not (decl.context_kind in SCOPE_KINDS or decl.context_kind in FUNCTION_KINDS)


def function_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Return type, specialized template and instantiation origin.

    Template patterns (functions described by a function template) only get
    their generic edges: the instantiations carry the real dependencies.
    """
    if decl.described_template is not None:
        return []

    edges = []
    if decl.template_origin is not None:
        origin = tree[decl.template_origin]
        pattern = origin.templated if origin.templated is not None else origin.id
        edges += _edge(decl.id, pattern, "specialization")
    edges += _type_edge(decl.id, decl.return_type, "return type")
    edges += _edge(decl.id, decl.instantiated_from, "instantiated from")
    return edges


def method_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """A method requires its class; a class requires all its virtual methods.

    Virtual methods may be called only through dispatch, so retaining a class
    retains every virtual method it declares.
    """
    if not decl.is_method:
        return []
    edges = _edge(decl.id, decl.context, "owner")
    if decl.is_virtual:
        edges += _edge(decl.context, decl.id, "virtual")
    return edges


def template_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Templates require their pattern and the member template they came from."""
    return (_edge(decl.id, decl.templated, "pattern")
            + _edge(decl.id, decl.instantiated_from, "instantiated from"))


def record_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    return (_edge(decl.id, decl.described_template, "described template")
            + _edge(decl.id, decl.template_origin, "specialization"))


def typedef_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    return (_type_edge(decl.id, decl.underlying, "underlying type")
            + _edge(decl.id, decl.described_template, "described template"))


def field_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    return _edge(decl.id, decl.context, "owner")


def variable_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """Static members of class template instantiations require their pattern."""
    return _edge(decl.id, decl.instantiated_from, "instantiated from")


def template_param_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """A default template argument is required by the template declaring it."""
    return _type_edge(decl.parent, decl.default_type, "default argument")


KIND_RULES: Dict[DeclKind, Tuple[Callable[[Decl, SyntaxTree], List[Edge]], ...]] = {
    DeclKind.FUNCTION: (function_edges, method_edges),
    DeclKind.FUNCTION_TEMPLATE: (template_edges,),
    DeclKind.CLASS_TEMPLATE: (template_edges,),
    DeclKind.ALIAS_TEMPLATE: (template_edges,),
    DeclKind.RECORD: (record_edges,),
    DeclKind.TYPEDEF: (typedef_edges,),
    DeclKind.FIELD: (field_edges,),
    DeclKind.VARIABLE: (variable_edges,),
    DeclKind.TEMPLATE_TYPE_PARAM: (template_param_edges,),
}


def reference_edges(owner: Decl, ref: Reference) -> List[Edge]:
    """Edges for one call, member access, cast, written type, ...

    Args:
        owner: Innermost declaration containing the reference
        ref: The reference

    Returns:
        Edges from owner; unresolved (dependent) references yield none
    """
    if ref.dependent:
        return []
    reason = ref.kind.value
    edges = _edge(owner.id, ref.target, reason) + _type_edge(owner.id, ref.type, reason)
    for qualifier in ref.qualifiers:
        edges += _type_edge(owner.id, qualifier, "qualifier")
    return edges


def decl_edges(decl: Decl, tree: SyntaxTree) -> List[Edge]:
    """All raw edges contributed by one declaration."""
    edges = context_edges(decl, tree)
    if decl.kind in VALUE_KINDS:
        edges += value_edges(decl, tree)
    if decl.kind in RETAINED_KINDS:
        edges += retained_edges(decl, tree)
    for rule in KIND_RULES.get(decl.kind, ()):
        edges += rule(decl, tree)
    for ref in decl.references:
        edges += reference_edges(decl, ref)
    return edges


# =========================================================================
# Builder
# =========================================================================

@dataclass
class ReferenceGraph:
    """Output of the build phase; read-only for every later stage."""
    graph: nx.DiGraph
    roots: Set[int]
    canonical: Dict[int, int]
    clusters: Dict[int, List[int]] = field(default_factory=dict)
    definitions: Dict[int, int] = field(default_factory=dict)
    deferred: List[int] = field(default_factory=list)

    def canonical_of(self, decl_id: int) -> int:
        return self.canonical.get(decl_id, decl_id)


class ReferenceGraphBuilder:
    """Build the directed reference graph of one translation unit."""

    def __init__(self, tree: SyntaxTree,
                 keep_marker: Union[str, Callable[[str], bool]] = DEFAULT_KEEP_MARKER):
        """Initialize graph builder.

        Args:
            tree: Declaration tree produced by the front-end
            keep_marker: Marker substring, or a predicate over comment text
        """
        self.tree = tree
        if callable(keep_marker):
            self.is_keep_comment = keep_marker
        else:
            self.is_keep_comment = lambda text: keep_marker in text
        self._trace = debug_enabled()

    def build_graph(self) -> ReferenceGraph:
        """Traverse every declaration and build the reference graph.

        Returns:
            ReferenceGraph with canonical nodes, deduplicated edges, roots,
            grouped-variable clusters and the forced-parse list
        """
        raw_edges: Dict[Edge, None] = {}
        raw_roots: List[int] = []
        clusters: Dict[int, List[int]] = {}
        deferred: List[int] = []

        for decl in self.tree.all_decls():
            for edge in decl_edges(decl, self.tree):
                raw_edges.setdefault(edge)
            if self._is_root(decl):
                raw_roots.append(decl.id)
            if decl.is_late_parsed and self.tree.in_main_file(decl.extent):
                deferred.append(decl.id)
            if self._is_grouped_variable(decl):
                clusters.setdefault(decl.extent.start, []).append(decl.id)

        # Spans of lazily parsed bodies are only final once parsed.
        # Malformed deferred bodies don't matter for slicing.
        if deferred:
            with self.tree.suppressed_diagnostics():
                self.tree.parse_deferred(deferred)

        canonical = self._canonicalize()
        result = ReferenceGraph(
            graph=nx.DiGraph(),
            roots={canonical[decl_id] for decl_id in raw_roots},
            canonical=canonical,
            clusters={
                start: sorted(members, key=self._declarator_order)
                for start, members in sorted(clusters.items())
            },
            deferred=deferred,
        )
        for decl in self.tree.all_decls():
            if decl.is_definition:
                result.definitions.setdefault(canonical[decl.id], decl.id)

        result.graph.add_nodes_from(sorted(set(canonical.values())))
        for edge in raw_edges:
            if isinstance(edge, DeclEdge):
                self._add_edge(result, edge.source, edge.target, edge.reason)
            else:
                for target in self._type_targets(edge.type, result):
                    self._add_edge(result, edge.source, target, edge.reason)

        return result

    def _is_root(self, decl: Decl) -> bool:
        """Entry point, keep-marked declarations and file-scope retained ones."""
        if decl.is_entry_point:
            return True
        if is_retained_root(decl, self.tree):
            return True
        if not self.tree.in_main_file(decl.extent) or decl.comment is None:
            return False
        return self.is_keep_comment(self.tree.text(decl.comment))

    def _is_grouped_variable(self, decl: Decl) -> bool:
        return (decl.kind == DeclKind.VARIABLE and not decl.is_local
                and not decl.is_implicit and not decl.is_instantiation
                and self.tree.in_main_file(decl.extent))

    def _declarator_order(self, decl_id: int) -> Tuple[int, int]:
        decl = self.tree[decl_id]
        location = decl.location if decl.location is not None else decl.extent.end
        return location, decl_id

    def _canonicalize(self) -> Dict[int, int]:
        """Map every declaration to the first declaration of its entity.

        Namespace occurrences keep their own id: each one is removed or kept
        independently of its siblings.
        """
        canonical = {}
        for decl in self.tree.decls:
            if decl.kind == DeclKind.NAMESPACE:
                canonical[decl.id] = decl.id
                continue
            current = decl
            seen = {current.id}
            while current.redeclares is not None and current.redeclares not in seen:
                if not 0 <= current.redeclares < len(self.tree):
                    break
                current = self.tree[current.redeclares]
                seen.add(current.id)
            canonical[decl.id] = current.id
        return canonical

    def _type_targets(self, type_ref: TypeRef, result: ReferenceGraph) -> Iterator[int]:
        """Declarations a type decomposes into.

        Worklist with a visited set keyed by type value, so self-referential
        and recursive template structures terminate.
        """
        seen: Set[TypeRef] = set()
        work = [type_ref]
        while work:
            current = work.pop()
            if current is None or current in seen:
                continue
            seen.add(current)

            if current.kind in _TRANSPARENT_TYPES:
                work.append(current.inner)
            elif current.kind == TypeKind.TYPEDEF:
                if current.decl is not None:
                    yield current.decl
            elif current.kind == TypeKind.RECORD:
                if current.decl is None or not self._valid(current.decl):
                    continue
                yield current.decl
                definition_id = result.definitions.get(
                    result.canonical_of(current.decl), current.decl)
                definition = self.tree[definition_id]
                # bases of a class template pattern depend on its arguments
                if definition.described_template is None:
                    work.extend(definition.bases)
            elif current.kind == TypeKind.TEMPLATE_SPECIALIZATION:
                if current.decl is not None:
                    yield current.decl
                work.extend(current.args)
                work.append(current.inner)

    def _valid(self, decl_id: int) -> bool:
        return 0 <= decl_id < len(self.tree)

    def _add_edge(self, result: ReferenceGraph, source: int, target: int, reason: str):
        if not (self._valid(source) and self._valid(target)):
            return
        source = result.canonical_of(source)
        target = result.canonical_of(target)
        if source == target or result.graph.has_edge(source, target):
            return
        result.graph.add_edge(source, target, reason=reason)
        if self._trace:
            debug(f"edge {self._describe(source)} → {self._describe(target)} ({reason})")

    def _describe(self, decl_id: int) -> str:
        decl = self.tree[decl_id]
        return f"{decl.kind.value} '{decl.name}'@{decl.extent.start}"
