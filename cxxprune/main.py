"""cxxprune CLI - whole-program dead-declaration elimination for C++ files."""
from collections import Counter
from pathlib import Path
import difflib
import sys
import typer
from enum import Enum
from typing import List, Optional
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from cxxprune.utils.safe_console import SafeConsole
from cxxprune.analyzer.clang_frontend import ClangFrontend, FrontendError
from cxxprune.analyzer.model import DeclKind, SyntaxTree
from cxxprune.config import __version__
from cxxprune.optimizer import DeclarationOptimizer

app = typer.Typer(
    name="cxxprune",
    help="Remove every declaration a C++ program does not need",
    add_completion=False
)
# Reports go to stderr: stdout carries the rewritten source
console = SafeConsole(stderr=True)


class CxxStandard(str, Enum):
    """Language standards accepted by --std."""
    CXX11 = "c++11"
    CXX14 = "c++14"
    CXX17 = "c++17"
    CXX20 = "c++20"
    CXX23 = "c++23"


def _std_option():
    return typer.Option(
        None, "--std", help="C++ standard to compile with (default: c++17)",
        case_sensitive=False,
    )


def _load(source: Path, clang_args: List[str], std: Optional[CxxStandard] = None,
          all_comments: Optional[bool] = None) -> SyntaxTree:
    """Compile a source file, exiting with status 1 on any failure."""
    if std is not None:
        # the last -std wins
        clang_args = list(clang_args) + [f"-std={std.value}"]
    if not source.exists():
        console.print(f"[bold red]Error:[/bold red] File does not exist: {escape(str(source))}")
        raise typer.Exit(1)
    try:
        return ClangFrontend(all_comments=all_comments).parse(source, args=clang_args)
    except FrontendError as e:
        console.print(Panel(escape(str(e)), title="[bold red]Compilation failed[/bold red]",
                            border_style="red"))
        raise typer.Exit(1)


def _describe(tree: SyntaxTree, decl_id: int) -> str:
    decl = tree[decl_id]
    name = decl.name or "<anonymous>"
    if tree.in_main_file(decl.extent):
        line = tree.buffer.count(b'\n', 0, decl.extent.start) + 1
        return f"{decl.kind.value} {name} (line {line})"
    return f"{decl.kind.value} {name} ({decl.extent.file or 'builtin'})"


@app.command()
def optimize(
    source: Path = typer.Argument(..., help="C++ source file to minimize"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the result here instead of stdout"),
    clang_arg: List[str] = typer.Option([], "--arg", "-a", help="Extra compiler argument (repeatable)"),
    std: Optional[CxxStandard] = _std_option(),
    keep_marker: Optional[str] = typer.Option(None, "--keep-marker", help="Comment marker that keeps a declaration"),
    all_comments: bool = typer.Option(False, "--all-comments", help="Attach ordinary comments, not only doc comments"),
    diff: bool = typer.Option(False, "--diff", help="Show a unified diff instead of the result"),
):
    """Remove unused declarations from SOURCE."""
    if keep_marker is not None and not keep_marker.strip():
        console.print("[bold red]Error:[/bold red] --keep-marker must not be empty")
        raise typer.Exit(1)

    optimizer = DeclarationOptimizer(keep_marker=keep_marker, all_comments=all_comments or None)
    tree = _load(source, clang_arg, std, optimizer.all_comments)
    result = optimizer.optimize(tree)
    original = tree.buffer.decode('utf-8', errors='replace')

    if diff:
        lines = difflib.unified_diff(
            original.splitlines(keepends=True), result.splitlines(keepends=True),
            fromfile=str(source), tofile=f"{source} (optimized)")
        text = "".join(lines)
        if not text:
            console.print("[green]Nothing to remove.[/green]")
        else:
            console.print_diff(text)
    elif output is not None:
        output.write_text(result, encoding='utf-8')
        console.print(f"[green]Wrote {escape(str(output))}[/green]")
    else:
        sys.stdout.write(result)

    removed = len(optimizer.last_rewriter.removed)
    console.print(f"[dim]{removed} range(s) removed, "
                  f"{len(original) - len(result)} characters saved[/dim]")


@app.command()
def explain(
    source: Path = typer.Argument(..., help="C++ source file"),
    name: str = typer.Argument(..., help="Declaration name to explain"),
    clang_arg: List[str] = typer.Option([], "--arg", "-a", help="Extra compiler argument (repeatable)"),
    std: Optional[CxxStandard] = _std_option(),
):
    """Show why declarations named NAME are kept, or that they would go."""
    tree = _load(source, clang_arg, std)
    optimizer = DeclarationOptimizer()
    usage = optimizer.analyze(tree)

    matches = [decl for decl in tree.walk(physical_only=True)
               if decl.name == name and tree.in_main_file(decl.extent)]
    if not matches:
        console.print(f"[yellow]No declaration named '{escape(name)}' in {escape(str(source))}[/yellow]")
        raise typer.Exit(1)

    for decl in matches:
        path = usage.why(decl.id)
        title = escape(_describe(tree, decl.id))
        if path is None:
            console.print(Panel("[red]unused: would be removed[/red]", title=title))
            continue
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Step", justify="right", style="dim")
        table.add_column("Declaration", style="cyan")
        table.add_column("Because", style="magenta")
        graph = optimizer.last_graph.graph
        for step, decl_id in enumerate(path):
            if step == 0:
                reason = "root"
            else:
                reason = graph.edges[path[step - 1], decl_id].get("reason", "")
            table.add_row(str(step), escape(_describe(tree, decl_id)), reason)
        console.print(Panel(table, title=title))


@app.command()
def graph(
    source: Path = typer.Argument(..., help="C++ source file"),
    clang_arg: List[str] = typer.Option([], "--arg", "-a", help="Extra compiler argument (repeatable)"),
    std: Optional[CxxStandard] = _std_option(),
):
    """Print reference graph statistics for SOURCE."""
    tree = _load(source, clang_arg, std)
    optimizer = DeclarationOptimizer()
    usage = optimizer.analyze(tree)
    reference_graph = optimizer.last_graph

    main_decls = [decl for decl in tree.walk(physical_only=True) if tree.in_main_file(decl.extent)]
    table = Table(title=f"Reference Graph: {source}", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Declarations (main file)", str(len(main_decls)))
    table.add_row("Declarations (total)", str(len(tree) - 1))
    table.add_row("Graph Nodes", str(reference_graph.graph.number_of_nodes()))
    table.add_row("Graph Edges", str(reference_graph.graph.number_of_edges()))
    table.add_row("Roots", str(len(reference_graph.roots)))
    table.add_row("Used", str(len(usage.visited)))
    table.add_row("Unused (main file)", str(sum(
        1 for decl in main_decls
        if decl.kind not in (DeclKind.PARAMETER, DeclKind.USING_DIRECTIVE) and not usage.is_used(decl.id))))
    table.add_row("Variable Groups", str(len(reference_graph.clusters)))
    console.print(table)

    reasons = Counter(reason for _, _, reason in reference_graph.graph.edges(data="reason"))
    if reasons:
        reason_table = Table(title="Edges by Reason", show_header=True, header_style="bold cyan")
        reason_table.add_column("Reason", style="magenta")
        reason_table.add_column("Edges", justify="right", style="green")
        for reason, count in reasons.most_common():
            reason_table.add_row(reason, str(count))
        console.print(reason_table)


def _version_callback(value: bool):
    if value:
        console.print(f"cxxprune {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """cxxprune - dead-declaration elimination for single C++ translation units."""
    pass


if __name__ == "__main__":
    app()
