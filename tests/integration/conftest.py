"""
Name: Integration Test DB Setup

Responsibilities:
  - Ensure the schema exists before integration tests run
  - Run Alembic migrations once per test session
  - Give each test a real PostgresStore over a fresh pool and empty tables

Notes:
  - Only runs when RUN_INTEGRATION=1
  - Uses DATABASE_URL from environment (see alembic/env.py)
  - The pool is opened per test: pytest-asyncio runs each test in its own loop
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from psycopg import connect

from saaskit.container import build_repositories
from saaskit.crosscutting.config import get_settings
from saaskit.infrastructure.db import PostgresStore, close_pool, init_pool

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = os.getenv("POSTGRES_HOST_PORT", "5432")
DB_NAME = os.getenv("POSTGRES_DB", "saaskit")
DEFAULT_DATABASE_URL = (
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

TABLES = ("account_preferences", "users_accounts", "accounts", "users")


if os.getenv("RUN_INTEGRATION") == "1":
    os.environ.setdefault("DATABASE_URL", DEFAULT_DATABASE_URL)
    get_settings.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> None:
    """Run Alembic migrations for integration tests."""
    if os.getenv("RUN_INTEGRATION") != "1":
        return

    root_dir = Path(__file__).resolve().parents[2]
    config = Config(str(root_dir / "alembic.ini"))
    config.set_main_option("script_location", str(root_dir / "alembic"))

    command.upgrade(config, "head")


@pytest.fixture
def clean_tables(apply_migrations) -> None:
    """R: Tablas vacías antes de cada test (hijos primero)."""
    database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    with connect(database_url, autocommit=True) as conn:
        conn.execute(f"TRUNCATE {', '.join(TABLES)}")


@pytest_asyncio.fixture
async def store(clean_tables):
    """R: Store real sobre un pool propio del test."""
    settings = get_settings()
    pool = await init_pool(
        settings.database_url,
        min_size=1,
        max_size=4,
    )
    try:
        yield PostgresStore(pool)
    finally:
        await close_pool()


@pytest.fixture
def repos(store, clock):
    return build_repositories(
        store,
        clock=clock,
        find_max_limit=100,
        default_timezone="America/Anchorage",
    )
