"""
Executable BDD scenarios for the engine.

These scenarios are defined in features/engine.feature; the step
definitions live in steps/engine_steps.py.

Running:
    pytest tests/bdd -v
"""

import pytest
from pytest_bdd import scenarios

pytestmark = pytest.mark.bdd

scenarios("features/engine.feature")
