import os
import sys

import pytest

# Ensure the flat module layout is importable from tests
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from helpers import FakeSession, pokeapi_routes


@pytest.fixture
def pokeapi_session():
    return FakeSession(pokeapi_routes())
