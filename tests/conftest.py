"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkouts)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CLI_PATH = FIXTURES_DIR / "fake_cli.py"

from cli_wrap import config as cli_wrap_config  # noqa: E402
from cli_wrap.cli import Cli  # noqa: E402
from cli_wrap.runtime.process import ProcessSpec  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_config():
    """Make every test start from freshly loaded configuration."""
    cli_wrap_config._config = None
    yield
    cli_wrap_config._config = None


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_cli_path() -> Path:
    """Return path to fake CLI script."""
    return FAKE_CLI_PATH


@pytest.fixture
def fake_cli():
    """Factory for a Cli running the fake CLI script with the given arguments."""

    def _make(*args: str) -> Cli:
        return Cli.wrap(sys.executable).set_arguments([str(FAKE_CLI_PATH), *args])

    return _make


@pytest.fixture
def fake_spec():
    """Factory for a ProcessSpec running the fake CLI script."""

    def _make(*args: str, **kwargs) -> ProcessSpec:
        return ProcessSpec(argv=[sys.executable, str(FAKE_CLI_PATH), *args], **kwargs)

    return _make
