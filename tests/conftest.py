"""Shared test fixtures."""

import copy

import pytest

from tmux_layout.config_loader import DEFAULT_CONFIG
from tmux_layout.normalizer import normalize_document
from tmux_layout.sequencer import sequence_project
from tmux_layout.variables import VariableContext

# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def home(monkeypatch, tmp_path):
    """Point ~ at a temporary directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return str(home_dir)


@pytest.fixture
def context() -> VariableContext:
    """Small, fixed variable context."""
    return VariableContext.from_environment(
        args=["first", "second"],
        environ={"HOME": "/home/dev", "PROJECT": "shop", "EMPTY": ""},
    )


@pytest.fixture
def settings() -> dict:
    """Default settings, never read from the user's config file."""
    return copy.deepcopy(DEFAULT_CONFIG)


# =============================================================================
# Compilation Helpers
# =============================================================================


@pytest.fixture
def compile_doc(context):
    """Normalize and sequence a raw document in one step."""

    def _compile(document, **kwargs):
        project = normalize_document(document, context)
        return sequence_project(project, **kwargs)

    return _compile