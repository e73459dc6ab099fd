"""Test fixtures for CLI tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide Click CLI test runner.

    Returns
    -------
    CliRunner
        Click test runner.
    """
    return CliRunner()


@pytest.fixture
def sample_targets(monkeypatch: pytest.MonkeyPatch) -> str:
    """Make the sample configuration module importable.

    Parameters
    ----------
    monkeypatch : pytest.MonkeyPatch
        Pytest's monkeypatch fixture.

    Returns
    -------
    str
        Module name to use in ``module:ClassName`` targets.
    """
    monkeypatch.syspath_prepend(str(Path(__file__).parent))
    return "sample_config"


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Clear variables the CLI and the sample targets read.

    Parameters
    ----------
    monkeypatch : pytest.MonkeyPatch
        Pytest's monkeypatch fixture.

    Returns
    -------
    pytest.MonkeyPatch
        The same monkeypatch, for setting variables in the test.
    """
    for key in list(os.environ):
        if key.startswith(("ENVBIND_", "SVC_")):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Restore root logger handlers replaced by the CLI's logging setup."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
