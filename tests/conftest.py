"""Shared test fixtures for cooking session tests."""

import os
import sys

# Add project root to path so tests can import session_engine, server, etc.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from session_engine import SessionEngine
from tests.helpers import FakeClock, make_recipe


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    """Fresh SessionEngine on a fake clock."""
    return SessionEngine(clock=clock)


@pytest.fixture
def recipe():
    """Two steps: 10 and 8 minutes."""
    return make_recipe()


@pytest.fixture
def started(engine, recipe):
    """Engine with a running session for the 10/8 minute recipe."""
    engine.start("pasta", recipe)
    return engine
