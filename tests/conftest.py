"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure test environment (no .env, deterministic settings)
  - Provide the in-process FakeStore and a FixedClock
  - Wire the four repositories over the fake store

Collaborators:
  - pytest / pytest-asyncio
  - saaskit.testing: FakeStore, FixedClock, claims factories
  - saaskit.container.build_repositories

Notes:
  - Fixtures are function-scoped: every test gets a clean store
"""

import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from saaskit.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from saaskit.container import Repositories, build_repositories  # noqa: E402
from saaskit.testing import FakeStore, FixedClock  # noqa: E402



def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (PostgreSQL, RUN_INTEGRATION=1)"
    )


@pytest.fixture
def clock() -> FixedClock:
    """R: Reloj fijo (2024-01-02T15:04:05.123Z)."""
    return FixedClock()


@pytest.fixture
def store() -> FakeStore:
    """R: Store en memoria que graba sentencias y transacciones."""
    return FakeStore()


@pytest.fixture
def repos(store: FakeStore, clock: FixedClock) -> Repositories:
    """R: Repositorios cableados sobre el FakeStore."""
    return build_repositories(
        store,
        clock=clock,
        find_max_limit=100,
        default_timezone="America/Anchorage",
    )
