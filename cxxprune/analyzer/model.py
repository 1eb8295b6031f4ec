"""Declaration tree model consumed by the pruning engine.

A front-end (see clang_frontend.py) resolves names, types and templates and
hands the engine a SyntaxTree: an arena of Decl records addressed by integer
ids, plus the text of the single file that may be rewritten. Everything the
engine needs to know about C++ is expressed through these types.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class DeclKind(Enum):
    """Closed set of declaration kinds the engine dispatches on."""
    TRANSLATION_UNIT = "translation_unit"
    NAMESPACE = "namespace"
    FUNCTION = "function"
    FUNCTION_TEMPLATE = "function_template"
    RECORD = "record"
    CLASS_TEMPLATE = "class_template"
    TYPEDEF = "typedef"  # typedef and non-template `using X = ...`
    ALIAS_TEMPLATE = "alias_template"
    VARIABLE = "variable"
    PARAMETER = "parameter"
    FIELD = "field"
    ENUM = "enum"
    ENUMERATOR = "enumerator"
    TEMPLATE_TYPE_PARAM = "template_type_param"
    USING_DIRECTIVE = "using_directive"
    EMPTY = "empty"
    OTHER = "other"  # static_assert, using-declarations, friends, linkage specs


# Kinds that own a scope whose members may require them
SCOPE_KINDS = frozenset({
    DeclKind.NAMESPACE, DeclKind.RECORD, DeclKind.CLASS_TEMPLATE, DeclKind.ENUM,
})

# ValueDecl in clang terms: has a type of its own
VALUE_KINDS = frozenset({
    DeclKind.FUNCTION, DeclKind.VARIABLE, DeclKind.PARAMETER,
    DeclKind.FIELD, DeclKind.ENUMERATOR,
})

# Never deleted on their own; their enclosing scope keeps them alive
RETAINED_KINDS = frozenset({
    DeclKind.FIELD, DeclKind.ENUM, DeclKind.ENUMERATOR, DeclKind.OTHER,
})


@dataclass(frozen=True)
class Span:
    """Half-open byte range [start, end) of a file's expansion locations."""
    file: str
    start: int
    end: int

    @property
    def is_valid(self) -> bool:
        return bool(self.file) and 0 <= self.start <= self.end

    def overlaps(self, other: 'Span') -> bool:
        """True if both spans are in one file and share at least one byte."""
        return (self.file == other.file
                and self.start < other.end and other.start < self.end)


class TypeKind(Enum):
    RECORD = "record"  # any tag type: class, struct, union, enum
    TYPEDEF = "typedef"
    POINTER = "pointer"
    REFERENCE = "reference"
    ARRAY = "array"
    TEMPLATE_SPECIALIZATION = "template_specialization"
    ELABORATED = "elaborated"
    PAREN = "paren"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class TypeRef:
    """Immutable description of a written or deduced type.

    TypeRefs compare and hash by value, so a visited set keyed by TypeRef
    terminates on recursive template structures.
    """
    kind: TypeKind
    decl: Optional[int] = None  # tag, typedef or template declaration
    inner: Optional['TypeRef'] = None  # pointee, element, named or desugared type
    args: Tuple['TypeRef', ...] = ()  # template type arguments

    @classmethod
    def record(cls, decl: int) -> 'TypeRef':
        return cls(TypeKind.RECORD, decl=decl)

    @classmethod
    def typedef(cls, decl: int) -> 'TypeRef':
        return cls(TypeKind.TYPEDEF, decl=decl)

    @classmethod
    def pointer(cls, inner: 'TypeRef') -> 'TypeRef':
        return cls(TypeKind.POINTER, inner=inner)

    @classmethod
    def reference(cls, inner: 'TypeRef') -> 'TypeRef':
        return cls(TypeKind.REFERENCE, inner=inner)

    @classmethod
    def array(cls, element: 'TypeRef') -> 'TypeRef':
        return cls(TypeKind.ARRAY, inner=element)

    @classmethod
    def specialization(cls, template: int, *args: 'TypeRef',
                       desugared: Optional['TypeRef'] = None) -> 'TypeRef':
        return cls(TypeKind.TEMPLATE_SPECIALIZATION, decl=template,
                   inner=desugared, args=tuple(args))


class RefKind(Enum):
    """Syntactic ways an expression or written type requires a declaration."""
    CALL = "call"
    CONSTRUCT = "construct"
    TEMPORARY_OBJECT = "temporary_object"
    NEW = "new"
    DECL_REF = "decl_ref"
    MEMBER = "member"
    CAST = "cast"
    VALUE_INIT = "value_init"
    SIZEOF = "sizeof"  # sizeof / alignof with a type argument
    LAMBDA = "lambda"
    TYPE_NAME = "type_name"


@dataclass(frozen=True)
class Reference:
    """One requirement made from inside a declaration's body or signature."""
    kind: RefKind
    target: Optional[int] = None
    type: Optional[TypeRef] = None
    qualifiers: Tuple[TypeRef, ...] = ()  # innermost qualifier first
    dependent: bool = False  # unresolved callee inside a template pattern


@dataclass
class Decl:
    """A physical declaration in the arena."""
    id: int
    kind: DeclKind
    name: str
    extent: Span
    location: Optional[int] = None  # offset of the declared name
    comment: Optional[Span] = None  # attached leading comment
    parent: Optional[int] = None  # lexical parent
    context: Optional[int] = None  # semantic DeclContext
    context_kind: Optional[DeclKind] = None  # kept in sync by SyntaxTree
    children: List[int] = field(default_factory=list)
    redeclares: Optional[int] = None  # earlier declaration of the same entity

    # structural references
    type: Optional[TypeRef] = None
    return_type: Optional[TypeRef] = None
    underlying: Optional[TypeRef] = None
    bases: List[TypeRef] = field(default_factory=list)
    default_type: Optional[TypeRef] = None
    templated: Optional[int] = None  # template -> its pattern declaration
    described_template: Optional[int] = None  # pattern -> its template
    template_origin: Optional[int] = None  # specialization -> template / partial spec
    instantiated_from: Optional[int] = None  # member instantiated from member (template)
    destructor: Optional[int] = None
    nominated: Optional[int] = None  # using-directive -> namespace

    references: List[Reference] = field(default_factory=list)

    # flags
    is_entry_point: bool = False
    is_definition: bool = False
    is_defaulted_or_deleted: bool = False
    is_virtual: bool = False
    is_implicit: bool = False
    is_instantiation: bool = False
    is_local: bool = False
    is_late_parsed: bool = False
    deferred_extent: Optional[Span] = None  # span revealed by forcing a deferred parse

    @property
    def is_method(self) -> bool:
        return self.kind == DeclKind.FUNCTION and self.context_kind in (
            DeclKind.RECORD, DeclKind.CLASS_TEMPLATE)


class SyntaxTree:
    """Arena of declarations over one translation unit.

    Decl 0 is the translation unit. Spans of declarations from included
    files carry their own file name; only spans in ``main_file`` are ever
    rewritten.
    """

    def __init__(self, main_file: str, buffer: str | bytes):
        """Initialize an empty tree.

        Args:
            main_file: Name of the file under rewrite
            buffer: Original text of that file
        """
        self.main_file = main_file
        self.buffer = buffer.encode('utf-8') if isinstance(buffer, str) else bytes(buffer)
        self.decls: List[Decl] = []
        self._diagnostics_suppressed = 0
        self.root = self.add(
            DeclKind.TRANSLATION_UNIT, "", Span(main_file, 0, len(self.buffer)), parent=None
        )

    def add(self, kind: DeclKind, name: str, extent: Span,
            parent: Optional[int | Decl] = 0, context: Optional[int | Decl] = None,
            **attrs) -> Decl:
        """Append a declaration to the arena.

        Args:
            kind: Declaration kind
            name: Spelled name ('' for anonymous declarations)
            extent: Source span of the declaration
            parent: Lexical parent (id or Decl); None for nodes outside the walk
            context: Semantic context; defaults to the lexical parent
            **attrs: Any other Decl field

        Returns:
            The new Decl
        """
        parent_id = parent.id if isinstance(parent, Decl) else parent
        context_id = context.id if isinstance(context, Decl) else context
        if context_id is None:
            context_id = parent_id

        decl = Decl(id=len(self.decls), kind=kind, name=name, extent=extent,
                    parent=parent_id, context=context_id, **attrs)
        if context_id is not None:
            decl.context_kind = self.decls[context_id].kind
        self.decls.append(decl)
        if parent_id is not None:
            self.decls[parent_id].children.append(decl.id)
        return decl

    def set_context(self, decl: Decl, context: Optional[int]):
        """Re-point a declaration's semantic context after creation."""
        decl.context = context
        decl.context_kind = self.decls[context].kind if context is not None else None

    def __getitem__(self, decl_id: int) -> Decl:
        return self.decls[decl_id]

    def __len__(self) -> int:
        return len(self.decls)

    def in_main_file(self, span: Optional[Span]) -> bool:
        """True if span is a valid range of the file under rewrite."""
        return (span is not None and span.is_valid
                and span.file == self.main_file and span.end <= len(self.buffer))

    def text(self, span: Span) -> str:
        """Text of a main-file span ('' for spans elsewhere)."""
        if not self.in_main_file(span):
            return ""
        return self.buffer[span.start:span.end].decode('utf-8', errors='replace')

    def walk(self, physical_only: bool = False) -> Iterator[Decl]:
        """Pre-order traversal in file order from the translation unit.

        Args:
            physical_only: Skip implicit declarations, template
                instantiations and everything nested in them

        Yields:
            Declarations (the translation unit itself excluded)
        """
        stack = list(reversed(self.decls[self.root.id].children))
        while stack:
            decl = self.decls[stack.pop()]
            if physical_only and (decl.is_implicit or decl.is_instantiation):
                continue
            yield decl
            stack.extend(reversed(decl.children))

    def all_decls(self) -> Iterator[Decl]:
        """Every declaration in the arena, including nodes outside the walk."""
        return iter(self.decls[1:])

    # -- deferred parsing ----------------------------------------------------

    @property
    def diagnostics_suppressed(self) -> bool:
        return self._diagnostics_suppressed > 0

    @contextmanager
    def suppressed_diagnostics(self):
        """Reentrant scope in which front-end diagnostics are not reported."""
        self._diagnostics_suppressed += 1
        try:
            yield self
        finally:
            self._diagnostics_suppressed -= 1

    def parse_deferred(self, decl_ids: List[int]) -> Dict[int, Span]:
        """Force the parse of lazily parsed bodies so their spans are final.

        The in-memory tree knows the full span up front (``deferred_extent``);
        front-ends that really parse lazily override this.

        Args:
            decl_ids: Declarations flagged ``is_late_parsed``

        Returns:
            Mapping of declaration id to its updated span
        """
        updated = {}
        for decl_id in decl_ids:
            decl = self.decls[decl_id]
            if decl.deferred_extent is not None:
                decl.extent = decl.deferred_extent
                decl.deferred_extent = None
                updated[decl_id] = decl.extent
            decl.is_late_parsed = False
        return updated
