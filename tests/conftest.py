"""Pytest configuration and shared fixtures."""

import pytest

import combus
from combus import ComBus


@pytest.fixture
def bus() -> ComBus:
    """A fresh bus with its own transport."""
    return ComBus()


@pytest.fixture(autouse=True)
def reset_default_bus():
    """Keep the process-wide default bus from leaking listeners between tests."""
    combus.reset()
    yield
    combus.reset()
