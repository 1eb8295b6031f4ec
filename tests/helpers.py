"""Builders for in-memory declaration trees.

Spans are located by substring search in the test program, so tests read
like the C++ they describe. Test programs are ASCII: character offsets are
byte offsets.
"""
import re
from typing import List, Optional, Sequence

from cxxprune.analyzer.model import Decl, DeclKind, RefKind, Reference, Span, SyntaxTree, TypeRef
from cxxprune.optimizer import DeclarationOptimizer

MAIN_FILE = "main.cpp"


class TreeBuilder:
    """SyntaxTree under construction for one test program."""

    def __init__(self, code: str, main_file: str = MAIN_FILE):
        self.code = code
        self.tree = SyntaxTree(main_file, code)

    def offset(self, text: str, occurrence: int = 1) -> int:
        start = -1
        for _ in range(occurrence):
            start = self.code.index(text, start + 1)
        return start

    def span(self, text: str, occurrence: int = 1) -> Span:
        start = self.offset(text, occurrence)
        return Span(self.tree.main_file, start, start + len(text))

    def has(self, text: str) -> bool:
        return text in self.code

    def add(self, kind: DeclKind, name: str, text: Optional[str] = None,
            parent=0, occurrence: int = 1, **attrs) -> Decl:
        """Add a declaration whose extent is the given text.

        The name location defaults to the first whole-word match of name
        inside the extent.
        """
        extent = attrs.pop('extent', None) or self.span(text, occurrence)
        if 'location' not in attrs and name:
            body = self.code[extent.start:extent.end]
            match = re.search(r'(?<!\w)' + re.escape(name) + r'(?!\w)', body)
            if match:
                attrs['location'] = extent.start + match.start()
        return self.tree.add(kind, name, extent, parent=parent, **attrs)

    def add_variables(self, statement: str, declarators: Sequence[str],
                      parent=0, **attrs) -> List[Decl]:
        """Add one variable per declarator of a declaration statement.

        Every variable starts where the statement starts (at its type) and
        ends with its own declarator, the way compilers report them.
        """
        start = self.offset(statement)
        variables = []
        cursor = start
        for declarator in declarators:
            position = self.code.index(declarator, cursor)
            name = re.search(r'\w+', declarator).group()
            variables.append(self.tree.add(
                DeclKind.VARIABLE, name,
                Span(self.tree.main_file, start, position + len(declarator)),
                parent=parent,
                location=position + declarator.index(name),
                **attrs,
            ))
            cursor = position + len(declarator)
        return variables

    def main(self, text: str, *targets: Decl, **attrs) -> Decl:
        """Add the entry point, referencing each target."""
        references = [reference_to(target) for target in targets]
        return self.add(DeclKind.FUNCTION, "main", text, is_entry_point=True,
                        is_definition=True, references=references, **attrs)


def reference_to(target: Decl) -> Reference:
    """The natural reference to a declaration: call, type name or use."""
    if target.kind in (DeclKind.FUNCTION, DeclKind.FUNCTION_TEMPLATE):
        return Reference(RefKind.CALL, target=target.id)
    if target.kind == DeclKind.TYPEDEF:
        return Reference(RefKind.TYPE_NAME, type=TypeRef.typedef(target.id))
    if target.kind in (DeclKind.RECORD, DeclKind.ENUM):
        return Reference(RefKind.TYPE_NAME, type=TypeRef.record(target.id))
    if target.kind == DeclKind.FIELD:
        return Reference(RefKind.MEMBER, target=target.id)
    return Reference(RefKind.DECL_REF, target=target.id)


def optimize(builder: TreeBuilder, **kwargs) -> str:
    """Run the whole pipeline over a built tree."""
    kwargs.setdefault('keep_marker', 'caide keep')
    kwargs.setdefault('all_comments', False)
    return DeclarationOptimizer(**kwargs).optimize(builder.tree)
