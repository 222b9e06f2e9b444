"""Shared pytest fixtures and configuration."""
import os

import pytest

# Pytest markers are defined in pytest.ini


@pytest.fixture(autouse=True)
def clean_davit_env(monkeypatch):
    """Keep the developer's DAVIT_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("DAVIT_"):
            monkeypatch.delenv(key, raising=False)
