"""Root pytest configuration for envbind tests."""

from __future__ import annotations

import os

import pytest


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove test-prefixed variables from the process environment.

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
        if key.startswith(("APP_", "ENVBIND_", "TEST_")):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch
