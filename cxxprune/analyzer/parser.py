"""Tree-sitter token view of the file under rewrite.

The semantic tree says *what* to delete; this module answers the lexical
questions around a deletion: is the declaration followed by its ``;``,
where does the next ``,`` sit, where does a declarator really start, and
which documentation comment is attached to a declaration.
"""
from bisect import bisect_left
from dataclasses import dataclass
from typing import List, Optional, Tuple
from tree_sitter import Language, Parser, Node
import tree_sitter_cpp as tscpp


@dataclass(frozen=True)
class Token:
    """A non-empty leaf of the concrete syntax tree."""
    kind: str  # tree-sitter node type: ';', ',', 'identifier', 'comment', ...
    start: int
    end: int


POINTER_TOKENS = frozenset({'*', '&', '&&'})
CV_TOKENS = frozenset({'const', 'volatile'})


def is_doc_comment(text: bytes) -> bool:
    """Check for a Doxygen-style leading comment (///, //!, /** */, /*! */).

    Args:
        text: Raw comment text

    Returns:
        True for documentation comments that attach to the next declaration
    """
    if text.startswith((b'///<', b'//!<', b'/**<', b'/*!<')):
        # trailing member comments document the previous declaration
        return False
    if text.startswith(b'///'):
        return not text.startswith(b'////')
    if text.startswith(b'/**'):
        return not text.startswith(b'/***') and text != b'/**/'
    return text.startswith((b'//!', b'/*!'))


class TokenLocator:
    """Lexical index of one C++ buffer built with the tree-sitter C++ grammar."""

    def __init__(self, buffer: str | bytes):
        """Parse buffer and index its leaf tokens.

        Args:
            buffer: Source text of the file under rewrite
        """
        self.buffer = buffer.encode('utf-8') if isinstance(buffer, str) else bytes(buffer)
        self.parser = self._create_parser()
        tree = self.parser.parse(self.buffer)
        self.tokens = self._collect_tokens(tree.root_node)
        self._starts = [token.start for token in self.tokens]

    def _create_parser(self) -> Parser:
        """Factory method using the tree-sitter v0.23+ API.

        Returns:
            Parser configured for C++
        """
        return Parser(Language(tscpp.language()))

    def _collect_tokens(self, root: Node) -> List[Token]:
        """Flatten the tree into its leaves in source order.

        Zero-width leaves (error recovery's MISSING nodes) are dropped.
        """
        tokens = []
        stack = [root]
        while stack:
            node = stack.pop()
            if node.child_count == 0:
                if node.end_byte > node.start_byte:
                    tokens.append(Token(node.type, node.start_byte, node.end_byte))
                continue
            stack.extend(reversed(node.children))
        tokens.sort(key=lambda token: (token.start, token.end))
        return tokens

    def text(self, token: Token) -> bytes:
        return self.buffer[token.start:token.end]

    def token_after(self, offset: int) -> Optional[Token]:
        """First non-comment token starting at or after offset."""
        index = bisect_left(self._starts, offset)
        while index < len(self.tokens):
            token = self.tokens[index]
            if token.kind != 'comment':
                return token
            index += 1
        return None

    def token_before(self, offset: int) -> Optional[Token]:
        """Last non-comment token ending at or before offset."""
        index = bisect_left(self._starts, offset) - 1
        while index >= 0:
            token = self.tokens[index]
            if token.kind != 'comment' and token.end <= offset:
                return token
            index -= 1
        return None

    def find_token_after(self, offset: int, kind: str) -> Optional[Token]:
        """Return the next token if it is of the wanted kind.

        Mirrors a raw-lexer lookahead: only the token immediately following
        offset (comments skipped) is considered.

        Args:
            offset: End of the construct being inspected
            kind: Token kind, e.g. ';' or ','

        Returns:
            The token, or None if something else comes next
        """
        token = self.token_after(offset)
        if token is not None and token.kind == kind:
            return token
        return None

    def declarator_start(self, name_offset: int) -> int:
        """Start of the declarator whose identifier begins at name_offset.

        Steps back over pointer/reference operators (and cv-qualifiers that
        follow a pointer operator) so slicing ``int *a, b;`` never leaves a
        stray ``*`` behind.
        """
        position = name_offset
        while True:
            previous = self.token_before(position)
            if previous is None:
                return position
            if previous.kind in POINTER_TOKENS:
                position = previous.start
                continue
            if previous.kind in CV_TOKENS:
                before = previous
                while before is not None and before.kind in CV_TOKENS:
                    before = self.token_before(before.start)
                if before is not None and before.kind in POINTER_TOKENS:
                    position = before.start
                    continue
            return position

    def horizontal_space_after(self, offset: int) -> int:
        """Offset of the first byte at/after offset that is not a space or tab."""
        while offset < len(self.buffer) and self.buffer[offset] in b' \t':
            offset += 1
        return offset

    def trailing_comment(self, offset: int) -> Optional[Token]:
        """Comment that follows offset on the same line and ends that line.

        Args:
            offset: End of a construct, e.g. just past its ';'

        Returns:
            The comment token, or None if anything else shares the line
        """
        index = bisect_left(self._starts, offset)
        if index >= len(self.tokens):
            return None
        token = self.tokens[index]
        if token.kind != 'comment' or self.buffer[offset:token.start].strip(b' \t'):
            return None
        line_end = self.buffer.find(b'\n', token.end)
        if line_end == -1:
            line_end = len(self.buffer)
        if self.buffer[token.end:line_end].strip():
            return None
        return token

    def _starts_line(self, offset: int) -> bool:
        line_start = self.buffer.rfind(b'\n', 0, offset) + 1
        return not self.buffer[line_start:offset].strip()

    def leading_comment(self, offset: int, all_comments: bool = False) -> Optional[Tuple[int, int]]:
        """Find the comment block attached in front of a declaration.

        The block is a run of comments, each starting its own line, separated
        from one another and from the declaration by whitespace without a
        blank line.

        Args:
            offset: Start of the declaration
            all_comments: Accept ordinary comments, not only documentation ones

        Returns:
            (start, end) of the block, or None
        """
        index = bisect_left(self._starts, offset) - 1
        cursor = offset
        block_start = block_end = None

        while index >= 0:
            token = self.tokens[index]
            if token.kind != 'comment' or token.end > cursor:
                break
            gap = self.buffer[token.end:cursor]
            if gap.strip() or gap.count(b'\n') > 1:
                break
            if not all_comments and not is_doc_comment(self.text(token)):
                break
            if not self._starts_line(token.start):
                break
            block_start = token.start
            if block_end is None:
                block_end = token.end
            cursor = token.start
            index -= 1

        if block_start is None:
            return None
        return block_start, block_end
