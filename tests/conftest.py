"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add tests directory to path so fakes can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from fakes import NOW, FakePushTransport, InMemoryStorage  # noqa: E402


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def storage() -> InMemoryStorage:
    """Empty in-memory document store."""
    return InMemoryStorage()


@pytest.fixture
def transport() -> FakePushTransport:
    """Push transport that records every multicast."""
    return FakePushTransport()
