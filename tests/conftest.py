import os
import pytest

from cxxprune.config import reset_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Every test starts from default configuration."""
    for name in list(os.environ):
        if name.startswith("CXXPRUNE_"):
            monkeypatch.delenv(name)
    reset_config()
    yield
    reset_config()
