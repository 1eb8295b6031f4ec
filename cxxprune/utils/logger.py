"""Terminal-safe output and debug tracing.

Detects terminal encoding and provides ASCII alternatives for the few
Unicode glyphs the CLI prints, so reports never crash a non-UTF-8 terminal.
Debug tracing is switched on with CXXPRUNE_DEBUG and always goes to stderr,
leaving stdout free for the rewritten source.
"""
import sys
import locale
from typing import Callable


# Unicode to ASCII fallbacks for terminals without UTF-8
ICON_MAP = {
    '✓': '[OK]',
    '✗': '[DEL]',
    '⚠': '[WARN]',
    '→': '->',
    '←': '<-',
    '…': '...',
    '•': '*',
    '│': '|',
    '─': '-',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding:
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (ValueError, LookupError):
        return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding() in ('utf-8', 'utf8', 'utf_8')


def sanitize_for_terminal(text: str) -> str:
    """Replace Unicode icons with ASCII equivalents if terminal doesn't support UTF-8.

    Args:
        text: Text potentially containing Unicode icons

    Returns:
        str: Sanitized text safe for current terminal
    """
    if is_utf8_capable():
        return text

    sanitized = text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        sanitized = sanitized.replace(unicode_char, ascii_replacement)
    return sanitized


def create_safe_print() -> Callable:
    """Create a print function that automatically sanitizes output."""
    def safe_print(*args, **kwargs):
        """Print with automatic Unicode sanitization."""
        sanitized_args = [
            sanitize_for_terminal(arg) if isinstance(arg, str) else arg
            for arg in args
        ]
        print(*sanitized_args, **kwargs)

    return safe_print


safe_print = create_safe_print()


def debug_enabled() -> bool:
    """Return True when CXXPRUNE_DEBUG tracing is on."""
    # Imported lazily: config loads .env, which tests may not want at import time
    from ..config import get_config
    return get_config().debug


def debug(message: str):
    """Trace an engine decision to stderr when debugging is enabled.

    Args:
        message: Line to print (sanitized for the terminal)
    """
    if debug_enabled():
        safe_print(f"[cxxprune] {message}", file=sys.stderr)
