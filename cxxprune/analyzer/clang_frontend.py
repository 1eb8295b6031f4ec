"""libclang front-end: compiles one C++ file and converts it to a SyntaxTree.

libclang resolves names, overloads and templates; this module walks the
cursors of the main file and records, for every declaration, what it
references. Declarations outside the walk (header declarations, template
instantiations) become nodes lazily the first time something refers to them.

libclang hides implicit code (implicit constructor calls, instantiated
template bodies, operator calls made by library templates), so a few
conservative stand-ins are added here:

- a class requires each of its constructors;
- a class requires its member operators, and a free operator is required by
  every class its parameters mention;
- an explicit specialization is required by every class among its
  template arguments;
- a member access libclang cannot resolve (dependent code in templates)
  requires every main-file member or function with that name.
"""
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from clang.cindex import (
    Config as ClangConfig,
    Cursor,
    CursorKind,
    Diagnostic,
    Index,
    TokenKind,
    TranslationUnitLoadError,
    TypeKind as ClangTypeKind,
    conf,
)

from .model import Decl, DeclKind, RefKind, Reference, Span, SyntaxTree, TypeRef
from .parser import TokenLocator
from ..config import get_config
from ..utils.logger import debug

DEFAULT_ARGS = ('-x', 'c++', '-std=c++17', '-fno-delayed-template-parsing')

_DECL_KINDS = {
    CursorKind.NAMESPACE: DeclKind.NAMESPACE,
    CursorKind.FUNCTION_DECL: DeclKind.FUNCTION,
    CursorKind.CXX_METHOD: DeclKind.FUNCTION,
    CursorKind.CONSTRUCTOR: DeclKind.FUNCTION,
    CursorKind.DESTRUCTOR: DeclKind.FUNCTION,
    CursorKind.CONVERSION_FUNCTION: DeclKind.FUNCTION,
    CursorKind.FUNCTION_TEMPLATE: DeclKind.FUNCTION_TEMPLATE,
    CursorKind.STRUCT_DECL: DeclKind.RECORD,
    CursorKind.CLASS_DECL: DeclKind.RECORD,
    CursorKind.UNION_DECL: DeclKind.RECORD,
    CursorKind.CLASS_TEMPLATE_PARTIAL_SPECIALIZATION: DeclKind.RECORD,
    CursorKind.CLASS_TEMPLATE: DeclKind.CLASS_TEMPLATE,
    CursorKind.TYPEDEF_DECL: DeclKind.TYPEDEF,
    CursorKind.TYPE_ALIAS_DECL: DeclKind.TYPEDEF,
    CursorKind.TYPE_ALIAS_TEMPLATE_DECL: DeclKind.ALIAS_TEMPLATE,
    CursorKind.VAR_DECL: DeclKind.VARIABLE,
    CursorKind.PARM_DECL: DeclKind.PARAMETER,
    CursorKind.FIELD_DECL: DeclKind.FIELD,
    CursorKind.ENUM_DECL: DeclKind.ENUM,
    CursorKind.ENUM_CONSTANT_DECL: DeclKind.ENUMERATOR,
    CursorKind.USING_DIRECTIVE: DeclKind.USING_DIRECTIVE,
    CursorKind.USING_DECLARATION: DeclKind.OTHER,
    CursorKind.NAMESPACE_ALIAS: DeclKind.OTHER,
    CursorKind.STATIC_ASSERT: DeclKind.OTHER,
    CursorKind.FRIEND_DECL: DeclKind.OTHER,
}

# Semantic contexts looked through when resolving a declaration's context
_TRANSPARENT_CONTEXTS = frozenset({CursorKind.LINKAGE_SPEC, CursorKind.UNEXPOSED_DECL})

_TEMPLATE_KINDS = frozenset({
    CursorKind.FUNCTION_TEMPLATE, CursorKind.CLASS_TEMPLATE,
    CursorKind.CLASS_TEMPLATE_PARTIAL_SPECIALIZATION,
})

# Declarations whose nested declarations are not nodes of their own
_PASSIVE_KINDS = frozenset({CursorKind.FRIEND_DECL, CursorKind.UNEXPOSED_DECL})

# Names the language calls without a written reference
_IMPLICITLY_CALLED = frozenset({'begin', 'end', 'swap'})

_DEFAULTED_OR_DELETED = re.compile(rb'=\s*(default|delete)\s*;?\s*$')

_POINTER_TYPES = frozenset({ClangTypeKind.POINTER, ClangTypeKind.MEMBERPOINTER})
_REFERENCE_TYPES = frozenset({ClangTypeKind.LVALUEREFERENCE, ClangTypeKind.RVALUEREFERENCE})
_ARRAY_TYPES = frozenset({
    ClangTypeKind.CONSTANTARRAY, ClangTypeKind.INCOMPLETEARRAY,
    ClangTypeKind.VARIABLEARRAY, ClangTypeKind.DEPENDENTSIZEDARRAY,
})
_MAX_TYPE_DEPTH = 32

CursorKey = Tuple[int, int]


class FrontendError(RuntimeError):
    """The translation unit could not be compiled; nothing was produced."""


def _key(cursor: Cursor) -> CursorKey:
    return cursor.kind.value, cursor.hash


class ClangFrontend:
    """Builds a SyntaxTree for one C++ source file with libclang."""

    def __init__(self, libclang_path: Optional[str] = None, all_comments: Optional[bool] = None):
        """Initialize front-end.

        Args:
            libclang_path: libclang shared library (defaults to configuration,
                then to the library bundled with the bindings)
            all_comments: Attach ordinary comments, not only documentation ones
        """
        config = get_config()
        self.libclang_path = libclang_path or config.libclang_path
        self.all_comments = config.all_comments if all_comments is None else all_comments
        self.extra_args = config.clang_args

    def _create_index(self) -> Index:
        if self.libclang_path and not ClangConfig.loaded:
            ClangConfig.set_library_file(self.libclang_path)
        return Index.create()

    def parse(self, path: Union[str, Path], text: Optional[Union[str, bytes]] = None,
              args: Sequence[str] = ()) -> SyntaxTree:
        """Compile a file and convert it.

        Args:
            path: Main file name
            text: Contents to compile instead of reading path
            args: Extra compiler arguments

        Returns:
            Declaration tree of the translation unit

        Raises:
            FrontendError: If libclang fails or reports an error
        """
        path = str(path)
        if text is None:
            with open(path, 'rb') as f:
                buffer = f.read()
        else:
            buffer = text.encode('utf-8') if isinstance(text, str) else bytes(text)

        compile_args = list(DEFAULT_ARGS) + list(self.extra_args) + list(args)
        unsaved_files = None
        if text is not None:
            unsaved_files = [(path, buffer.decode('utf-8', errors='replace'))]
        try:
            index = self._create_index()
            tu = index.parse(path, args=compile_args, unsaved_files=unsaved_files)
        except TranslationUnitLoadError as e:
            raise FrontendError(f"{path}: libclang could not parse the file ({e})") from e

        errors = [diag for diag in tu.diagnostics if diag.severity >= Diagnostic.Error]
        if errors:
            raise FrontendError("\n".join(self._format(diag) for diag in errors))

        tree = _TreeConverter(tu, path, buffer, self.all_comments).convert()
        debug(f"{path}: {len(tree)} declarations")
        return tree

    @staticmethod
    def _format(diag: Diagnostic) -> str:
        location = diag.location
        file_name = location.file.name if location.file else '<unknown>'
        return f"{file_name}:{location.line}:{location.column}: error: {diag.spelling}"


class _TreeConverter:
    """One-shot conversion of a translation unit."""

    def __init__(self, tu, main_file: str, buffer: bytes, all_comments: bool):
        self.tu = tu
        self.main_file = main_file
        self.tree = SyntaxTree(main_file, buffer)
        self.locator = TokenLocator(self.tree.buffer)
        self.all_comments = all_comments

        self.nodes: Dict[CursorKey, int] = {_key(tu.cursor): self.tree.root.id}
        self.adopted: Set[int] = {self.tree.root.id}
        self.unresolved: List[Tuple[int, RefKind, str]] = []
        self.specialization_args: Dict[int, List[TypeRef]] = {}

    def convert(self) -> SyntaxTree:
        self._walk()
        self._resolve_by_name()
        self._add_operator_stand_ins()
        self._add_specialization_stand_ins()
        for decl in self.tree.all_decls():
            if decl.id in self.adopted or decl.is_instantiation:
                continue
            if self.tree.in_main_file(decl.extent):
                # seen only through references: compiler-generated
                decl.is_implicit = True
        return self.tree

    # -- cursors ------------------------------------------------------------------

    def _in_main_file(self, cursor: Cursor) -> bool:
        location = cursor.location
        return location.file is not None and location.file.name == self.main_file

    def _span(self, cursor: Cursor) -> Span:
        extent = cursor.extent
        file = extent.start.file
        if file is None:
            return Span("", -1, -1)
        return Span(file.name, extent.start.offset, extent.end.offset)

    def _decl_kind(self, cursor: Cursor) -> Optional[DeclKind]:
        if cursor.kind == CursorKind.UNEXPOSED_DECL:
            # `;` on its own, or something libclang does not expose
            # (variable templates, ...): kept whole, with all it references
            span = self._span(cursor)
            if self.tree.in_main_file(span) and self.tree.buffer[span.start:span.end].strip() == b';':
                return DeclKind.EMPTY
            return DeclKind.OTHER
        return _DECL_KINDS.get(cursor.kind)

    def _context_cursor(self, cursor: Cursor) -> Optional[Cursor]:
        parent = cursor.semantic_parent
        while parent is not None and parent.kind in _TRANSPARENT_CONTEXTS:
            parent = parent.semantic_parent
        return parent

    def _node(self, cursor: Optional[Cursor]) -> Optional[int]:
        """Id of the node for a declaration cursor, created on first sight."""
        if cursor is None:
            return None
        if cursor.kind == CursorKind.TRANSLATION_UNIT:
            return self.tree.root.id
        key = _key(cursor)
        if key in self.nodes:
            return self.nodes[key]
        kind = self._decl_kind(cursor)
        if kind is None:
            return None

        decl = self.tree.add(kind, cursor.spelling, self._span(cursor), parent=None)
        self.nodes[key] = decl.id
        self._describe(decl, cursor)
        return decl.id

    def _describe(self, decl: Decl, cursor: Cursor):
        """Fill in everything libclang knows about a declaration cursor."""
        self.tree.set_context(decl, self._node(self._context_cursor(cursor)))
        if self._in_main_file(cursor):
            decl.location = cursor.location.offset

        canonical = cursor.canonical
        if canonical is not None and _key(canonical) != _key(cursor):
            decl.redeclares = self._node(canonical)

        decl.is_definition = cursor.is_definition()
        kind = decl.kind
        if kind == DeclKind.FUNCTION:
            decl.is_virtual = cursor.kind != CursorKind.FUNCTION_DECL and cursor.is_virtual_method()
            decl.return_type = self._type_ref(cursor.result_type)
            decl.is_entry_point = (decl.name == 'main' and decl.context == self.tree.root.id)
            decl.is_defaulted_or_deleted = self._is_defaulted_or_deleted(decl)
        elif kind in (DeclKind.VARIABLE, DeclKind.FIELD, DeclKind.PARAMETER):
            decl.type = self._type_ref(cursor.type)
        elif kind == DeclKind.TYPEDEF:
            decl.underlying = self._type_ref(cursor.underlying_typedef_type)
        elif kind == DeclKind.USING_DIRECTIVE:
            namespaces = [child.referenced for child in cursor.get_children()
                          if child.kind == CursorKind.NAMESPACE_REF]
            if namespaces:
                decl.nominated = self._node(namespaces[-1])

        specialized = conf.lib.clang_getSpecializedCursorTemplate(cursor)
        if specialized is not None:
            decl.is_instantiation = True
            origin = self._node(specialized)
            if specialized.kind in _TEMPLATE_KINDS and kind != DeclKind.CLASS_TEMPLATE:
                decl.template_origin = origin
            else:
                decl.instantiated_from = origin
            if kind == DeclKind.RECORD:
                self.specialization_args[decl.id] = self._template_args(cursor.type)

    def _is_defaulted_or_deleted(self, decl: Decl) -> bool:
        if not self.tree.in_main_file(decl.extent):
            return False
        text = self.tree.buffer[decl.extent.start:decl.extent.end]
        return _DEFAULTED_OR_DELETED.search(text) is not None

    # -- types --------------------------------------------------------------------

    def _type_ref(self, ctype, depth: int = 0) -> Optional[TypeRef]:
        """Convert a libclang type; None when it names no declaration."""
        if ctype is None or depth > _MAX_TYPE_DEPTH:
            return None
        kind = ctype.kind
        if kind == ClangTypeKind.INVALID:
            return None
        if kind in _POINTER_TYPES:
            inner = self._type_ref(ctype.get_pointee(), depth + 1)
            return TypeRef.pointer(inner) if inner else None
        if kind in _REFERENCE_TYPES:
            inner = self._type_ref(ctype.get_pointee(), depth + 1)
            return TypeRef.reference(inner) if inner else None
        if kind in _ARRAY_TYPES:
            inner = self._type_ref(ctype.get_array_element_type(), depth + 1)
            return TypeRef.array(inner) if inner else None
        if kind == ClangTypeKind.ELABORATED:
            return self._type_ref(ctype.get_named_type(), depth + 1)
        if kind == ClangTypeKind.AUTO:
            canonical = ctype.get_canonical()
            if canonical.kind == ClangTypeKind.AUTO:
                return None
            return self._type_ref(canonical, depth + 1)

        declaration = ctype.get_declaration()
        if declaration is None or declaration.kind == CursorKind.NO_DECL_FOUND:
            return None
        decl_id = self._node(declaration)
        if decl_id is None:
            return None
        decl = self.tree[decl_id]
        if decl.kind == DeclKind.TYPEDEF:
            return TypeRef.typedef(decl_id)
        if decl.kind not in (DeclKind.RECORD, DeclKind.CLASS_TEMPLATE, DeclKind.ENUM):
            return None

        args = self._template_args(ctype, depth)
        if decl.template_origin is not None or args:
            template = decl.template_origin if decl.template_origin is not None else decl_id
            return TypeRef.specialization(template, *args, desugared=TypeRef.record(decl_id))
        return TypeRef.record(decl_id)

    def _template_args(self, ctype, depth: int = 0) -> List[TypeRef]:
        args = []
        for index in range(max(ctype.get_num_template_arguments(), 0)):
            arg = self._type_ref(ctype.get_template_argument_type(index), depth + 1)
            if arg is not None:
                args.append(arg)
        return args

    # -- walk ---------------------------------------------------------------------

    def _walk(self):
        """Pre-order walk of the main file's cursors.

        Stack entries: (cursor, innermost enclosing node, inside a function,
        passive). Passive subtrees (friend declarations, unexposed ones)
        contribute references but no nodes.
        """
        root = self.tree.root.id
        stack = [(cursor, root, False, False)
                 for cursor in reversed(list(self.tu.cursor.get_children()))
                 if self._in_main_file(cursor)]

        while stack:
            cursor, owner, in_function, passive = stack.pop()
            kind = cursor.kind
            owner_kind = self.tree[owner].kind

            if kind.is_declaration() and not passive and self._creates_node(cursor, owner_kind):
                decl_id = self._adopt(cursor, owner, in_function)
                if decl_id is None:
                    continue
                decl = self.tree[decl_id]
                owner = decl_id
                in_function = in_function or decl.kind in (DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE)
                passive = kind in _PASSIVE_KINDS
            elif kind.is_reference() or kind.is_expression():
                self._record_reference(cursor, owner)

            children = list(cursor.get_children())
            stack.extend((child, owner, in_function, passive) for child in reversed(children))

    def _creates_node(self, cursor: Cursor, owner_kind: DeclKind) -> bool:
        if self._decl_kind(cursor) is None:
            return False
        if cursor.kind == CursorKind.PARM_DECL:
            # parameters of function types in typedefs, pointers, ...
            return owner_kind in (DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE)
        return True

    def _adopt(self, cursor: Cursor, owner: int, in_function: bool) -> Optional[int]:
        """Place a walked declaration in the tree under its lexical parent.

        Returns None if the cursor was already walked (libclang visits a tag
        defined inside a typedef twice).
        """
        decl_id = self._node(cursor)
        if decl_id is None or decl_id in self.adopted:
            return None
        self.adopted.add(decl_id)
        decl = self.tree[decl_id]
        decl.parent = owner
        self.tree[owner].children.append(decl_id)
        decl.is_instantiation = False
        decl.is_local = in_function and decl.kind == DeclKind.VARIABLE

        if self.tree.in_main_file(decl.extent):
            comment = self.locator.leading_comment(decl.extent.start, self.all_comments)
            if comment is not None:
                decl.comment = Span(self.main_file, *comment)

        owner_decl = self.tree[owner]
        if decl.kind == DeclKind.TYPEDEF and owner_decl.kind == DeclKind.ALIAS_TEMPLATE:
            decl.described_template = owner
            owner_decl.templated = decl_id
        if owner_decl.kind in (DeclKind.RECORD, DeclKind.CLASS_TEMPLATE):
            if cursor.kind == CursorKind.CONSTRUCTOR:
                owner_decl.references.append(Reference(RefKind.CONSTRUCT, target=decl_id))
            elif cursor.kind == CursorKind.DESTRUCTOR:
                owner_decl.destructor = decl_id
        if decl.kind == DeclKind.RECORD:
            decl.bases = [base for base in (
                self._type_ref(child.type) for child in cursor.get_children()
                if child.kind == CursorKind.CXX_BASE_SPECIFIER) if base is not None]
        return decl_id

    def _record_reference(self, cursor: Cursor, owner: int):
        kind = cursor.kind
        if kind == CursorKind.NAMESPACE_REF:
            return
        if kind == CursorKind.OVERLOADED_DECL_REF:
            count = conf.lib.clang_getNumOverloadedDecls(cursor)
            targets = [conf.lib.clang_getOverloadedDecl(cursor, index) for index in range(count)]
            if not targets:
                self._defer_by_name(owner, RefKind.CALL, cursor.spelling)
            for target in targets:
                self._add_reference(owner, RefKind.CALL, target)
            return

        ref_kind = self._ref_kind(cursor)
        if ref_kind is None:
            return
        referenced = cursor.referenced
        if referenced is None:
            if kind in (CursorKind.MEMBER_REF_EXPR, CursorKind.DECL_REF_EXPR):
                self._defer_by_name(owner, ref_kind, cursor.spelling or self._written_name(cursor))
            elif kind == CursorKind.CALL_EXPR:
                self._defer_by_name(owner, ref_kind, cursor.spelling)
            return
        if referenced.kind == CursorKind.CONSTRUCTOR and ref_kind == RefKind.CALL:
            ref_kind = RefKind.CONSTRUCT
        self._add_reference(owner, ref_kind, referenced)

    @staticmethod
    def _ref_kind(cursor: Cursor) -> Optional[RefKind]:
        kind = cursor.kind
        if kind == CursorKind.CALL_EXPR:
            return RefKind.CALL
        if kind in (CursorKind.DECL_REF_EXPR, CursorKind.TEMPLATE_REF):
            return RefKind.DECL_REF
        if kind in (CursorKind.MEMBER_REF_EXPR, CursorKind.MEMBER_REF):
            return RefKind.MEMBER
        if kind == CursorKind.TYPE_REF:
            return RefKind.TYPE_NAME
        return None

    def _add_reference(self, owner: int, ref_kind: RefKind, referenced: Optional[Cursor]):
        target = self._node(referenced)
        if target is None or target == owner:
            return
        target_kind = self.tree[target].kind
        if ref_kind == RefKind.TYPE_NAME:
            if target_kind == DeclKind.TYPEDEF:
                ref = Reference(ref_kind, type=TypeRef.typedef(target))
            elif target_kind in (DeclKind.RECORD, DeclKind.ENUM):
                ref = Reference(ref_kind, type=TypeRef.record(target))
            else:
                ref = Reference(ref_kind, target=target)
        else:
            ref = Reference(ref_kind, target=target)
        self.tree[owner].references.append(ref)

    @staticmethod
    def _written_name(cursor: Cursor) -> str:
        """Member name of a dependent reference, read from its tokens.

        libclang leaves the spelling of `t.size`, `T::make` and `this->b`
        empty. The cursor's location is the member name; failing that, the
        last identifier of the expression is.
        """
        offset = cursor.location.offset
        identifiers = [token for token in cursor.get_tokens() if token.kind == TokenKind.IDENTIFIER]
        for token in identifiers:
            if token.extent.start.offset == offset:
                return token.spelling
        return identifiers[-1].spelling if identifiers else ''

    def _defer_by_name(self, owner: int, ref_kind: RefKind, name: str):
        if name:
            self.unresolved.append((owner, ref_kind, name))

    # -- conservative stand-ins ---------------------------------------------------

    def _walked_main_file_decls(self) -> Iterable[Decl]:
        for decl in self.tree.walk(physical_only=True):
            if self.tree.in_main_file(decl.extent):
                yield decl

    def _resolve_by_name(self):
        """Dependent names: every main-file function or member of that name."""
        if not self.unresolved:
            return
        candidates: Dict[str, List[int]] = {}
        for decl in self._walked_main_file_decls():
            if decl.kind in (DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE, DeclKind.FIELD) or (
                    decl.kind == DeclKind.VARIABLE and not decl.is_local):
                candidates.setdefault(decl.name, []).append(decl.id)
        for owner, ref_kind, name in self.unresolved:
            for target in candidates.get(name, ()):
                if target != owner:
                    self.tree[owner].references.append(Reference(ref_kind, target=target))

    def _add_operator_stand_ins(self):
        """Operators and begin/end/swap may be called by code libclang hides."""
        for decl in self._walked_main_file_decls():
            if decl.kind not in (DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE):
                continue
            if not (decl.name.startswith('operator') or decl.name in _IMPLICITLY_CALLED):
                continue
            if decl.context_kind in (DeclKind.RECORD, DeclKind.CLASS_TEMPLATE):
                self.tree[decl.context].references.append(Reference(RefKind.CALL, target=decl.id))
                continue
            for child_id in decl.children:
                child = self.tree[child_id]
                if child.kind != DeclKind.PARAMETER:
                    continue
                for record in self._records_in(child.type):
                    self.tree[record].references.append(Reference(RefKind.CALL, target=decl.id))

    def _add_specialization_stand_ins(self):
        """`template<> struct hash<Foo>` is used wherever Foo is."""
        for decl_id, args in self.specialization_args.items():
            if decl_id not in self.adopted:
                continue
            for arg in args:
                for record in self._records_in(arg):
                    self.tree[record].references.append(Reference(RefKind.TYPE_NAME, target=decl_id))

    def _records_in(self, type_ref: Optional[TypeRef]) -> List[int]:
        records = []
        work = [type_ref]
        seen = set()
        while work:
            current = work.pop()
            if current is None or current in seen:
                continue
            seen.add(current)
            if current.decl is not None and self.tree[current.decl].kind in (
                    DeclKind.RECORD, DeclKind.CLASS_TEMPLATE):
                records.append(current.decl)
            work.append(current.inner)
            work.extend(current.args)
        return records
