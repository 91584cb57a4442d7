"""
Pytest configuration for BDD tests.

Imports the step definitions so pytest-bdd can find them, and provides the
per-scenario ``bdd_context`` dictionary shared between steps.
"""

from typing import Any, Dict

import pytest

from .steps.engine_steps import *  # noqa: F401,F403


@pytest.fixture
def bdd_context() -> Dict[str, Any]:
    """Mutable state shared by the steps of one scenario."""
    return {"sources": {}, "config": {}}
