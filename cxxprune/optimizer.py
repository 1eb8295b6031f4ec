"""Dead-declaration elimination pipeline for one translation unit.

Strictly staged: build the reference graph, compute usage, plan deletions,
slice grouped variables, run finalizers, apply. Every stage only reads the
results of the previous ones; the rewriter is the single mutable sink.
"""
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

from .analyzer.graph_builder import ReferenceGraph, ReferenceGraphBuilder
from .analyzer.model import SyntaxTree
from .analyzer.parser import TokenLocator
from .analyzer.reachability import ReachabilityAnalyzer, UsageInfo
from .config import get_config
from .reaper.rewriter import RangeRewriter
from .reaper.symbol_remover import RemovalPlanner
from .reaper.var_pruner import GroupedDeclarationPruner
from .utils.logger import debug

# Runs after planning, before apply_changes (e.g. inactive preprocessor blocks)
Finalizer = Callable[[RangeRewriter], None]


class DeclarationOptimizer:
    """Removes every declaration not transitively required by a root.

    The results of the last run stay available for inspection through
    ``last_graph``, ``last_usage`` and ``last_rewriter``.
    """

    def __init__(self, keep_marker: Union[str, Callable[[str], bool], None] = None,
                 all_comments: Optional[bool] = None):
        """Initialize optimizer.

        Args:
            keep_marker: Marker substring or predicate over comment text
                (defaults to the configured marker)
            all_comments: Treat ordinary comments as attached to declarations
                (defaults to configuration)
        """
        config = get_config()
        self.keep_marker = keep_marker if keep_marker is not None else config.keep_marker
        self.all_comments = config.all_comments if all_comments is None else all_comments
        self.last_graph: Optional[ReferenceGraph] = None
        self.last_usage: Optional[UsageInfo] = None
        self.last_rewriter: Optional[RangeRewriter] = None

    def analyze(self, tree: SyntaxTree) -> UsageInfo:
        """Build the graph and compute usage without touching the text."""
        self.last_graph = ReferenceGraphBuilder(tree, self.keep_marker).build_graph()
        self.last_usage = ReachabilityAnalyzer(tree, self.last_graph).compute_usage()
        debug(f"{len(self.last_usage.visited)} of {self.last_graph.graph.number_of_nodes()} "
              f"declarations used, {len(self.last_graph.roots)} roots")
        return self.last_usage

    def optimize(self, tree: SyntaxTree, finalizers: Iterable[Finalizer] = ()) -> str:
        """Remove unused declarations from the main file of a tree.

        Args:
            tree: Declaration tree of the translation unit
            finalizers: Extra rewrite passes run before the deletions apply

        Returns:
            Transformed text of the main file
        """
        usage = self.analyze(tree)
        graph = self.last_graph

        locator = TokenLocator(tree.buffer)
        rewriter = RangeRewriter(tree.buffer, tree.main_file)
        self.last_rewriter = rewriter

        removed = RemovalPlanner(tree, graph, usage, rewriter, locator).run()
        removed += GroupedDeclarationPruner(tree, graph, usage, rewriter, locator).run()
        for finalize in finalizers:
            finalize(rewriter)
        debug(f"{removed} declarations removed, {len(rewriter.removed)} ranges")

        rewriter.apply_changes()
        return rewriter.result()


def optimize_file(path: Union[str, Path], args: Sequence[str] = (),
                  optimizer: Optional[DeclarationOptimizer] = None) -> str:
    """Parse a C++ file with libclang and return its minimized text.

    Args:
        path: Source file (the only file that is rewritten)
        args: Extra compiler arguments (include paths, defines, ...)
        optimizer: Configured optimizer to run (a default one otherwise)

    Returns:
        Transformed source text

    Raises:
        FrontendError: If the file does not compile
    """
    from .analyzer.clang_frontend import ClangFrontend

    optimizer = optimizer or DeclarationOptimizer()
    tree = ClangFrontend(all_comments=optimizer.all_comments).parse(path, args=args)
    return optimizer.optimize(tree)
