"""
Pytest configuration for the event loop simulator tests.

Provides a fresh engine per test, plus one with a small step budget.
"""

from __future__ import annotations

import pytest

from loopsim import Engine, LoopConfig


@pytest.fixture
def engine() -> Engine:
    return Engine()


@pytest.fixture
def small_engine() -> Engine:
    """Engine with a tight callback budget, for runaway-loop tests."""
    return Engine(LoopConfig(max_steps=50))
