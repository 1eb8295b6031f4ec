"""Rich Console wrapper used by the CLI.

Sanitizes Unicode glyphs on terminals that can't print them and keeps
reports on stderr when the rewritten source is streamed to stdout.
"""
from rich.console import Console
from rich.syntax import Syntax
from typing import Any
from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console that replaces Unicode icons with ASCII on non-UTF-8 terminals."""

    def __init__(self, *args, **kwargs):
        """Initialize SafeConsole with UTF-8 capability detection.

        All arguments are passed through to Rich's Console.
        """
        self._needs_sanitization = not is_utf8_capable()

        if self._needs_sanitization:
            kwargs['legacy_windows'] = True

        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        """Print with automatic Unicode sanitization.

        Args:
            *objects: Objects to print (same as Rich Console.print)
            **kwargs: Keyword arguments (same as Rich Console.print)
        """
        if self._needs_sanitization:
            objects = tuple(
                sanitize_for_terminal(obj) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)

    def print_diff(self, diff_text: str) -> None:
        """Show a unified diff of C++ source.

        Source text is never sanitized: on terminals that need it the diff is
        printed verbatim, without markup or highlighting.

        Args:
            diff_text: Output of difflib.unified_diff, joined
        """
        if self._needs_sanitization:
            super().print(diff_text, markup=False, highlight=False, end="")
        else:
            super().print(Syntax(diff_text, "diff", theme="ansi_dark"))
