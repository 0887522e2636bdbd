"""Shared fixtures for vitals tests."""

import pytest

from fakes import FakeSources


@pytest.fixture
def fake_sources():
    """Sources that all fail until a test sets responses."""
    return FakeSources()
