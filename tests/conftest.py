import pytest

import decoratedmcp.registry
from decoratedmcp import OperationRegistry


@pytest.fixture
def registry(monkeypatch: pytest.MonkeyPatch) -> OperationRegistry:
    """A fresh registry installed as the process-wide default for the duration of a test."""
    fresh = OperationRegistry()
    monkeypatch.setattr(decoratedmcp.registry, "_default_registry", fresh)
    return fresh
