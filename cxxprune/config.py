"""Configuration management for cxxprune.

Loads environment variables and provides centralized config access.
"""
import os
import shlex
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

__version__ = "0.3.0"

DEFAULT_KEEP_MARKER = "caide keep"

_TRUTHY = {"1", "true", "yes", "on"}


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_file: Optional[str | Path] = None):
        """Initialize config by loading .env file.

        Args:
            env_file: Optional explicit .env path (default: project root .env)
        """
        if env_file is None:
            env_file = Path(__file__).parent.parent / ".env"
        load_dotenv(env_file)

        self._validate()

    def _validate(self):
        """Validate configured values.

        Raises:
            ValueError: If the keep marker is set but empty
        """
        if not self.keep_marker.strip():
            raise ValueError(
                "CXXPRUNE_KEEP_MARKER must not be empty. "
                "Unset it to use the default marker."
            )

    @property
    def keep_marker(self) -> str:
        """Substring that marks a declaration's leading comment as a root.

        Returns:
            Marker string (default: 'caide keep')
        """
        return os.getenv("CXXPRUNE_KEEP_MARKER", DEFAULT_KEEP_MARKER)

    @property
    def clang_args(self) -> List[str]:
        """Extra compiler arguments passed to the front-end.

        Returns:
            List of arguments split with shell rules
        """
        return shlex.split(os.getenv("CXXPRUNE_CLANG_ARGS", ""))

    @property
    def libclang_path(self) -> Optional[str]:
        """Explicit path to the libclang shared library, if any."""
        return os.getenv("CXXPRUNE_LIBCLANG") or None

    @property
    def all_comments(self) -> bool:
        """Whether ordinary (non-documentation) comments attach to declarations."""
        return os.getenv("CXXPRUNE_ALL_COMMENTS", "").strip().lower() in _TRUTHY

    @property
    def debug(self) -> bool:
        """Whether graph and rewriter decisions are traced to stderr."""
        return os.getenv("CXXPRUNE_DEBUG", "").strip().lower() in _TRUTHY


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Drop the cached Config so the next get_config() re-reads the environment."""
    global _config
    _config = None
