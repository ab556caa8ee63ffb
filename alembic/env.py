"""
============================================================
TARJETA CRC — alembic/env.py
============================================================
Responsibilities:
  - Correr las migraciones del esquema saaskit (accounts, users,
    users_accounts, account_preferences) online u offline.
  - Resolver la DSN: -x database_url=... > DATABASE_URL > Settings.

Collaborators:
  - Alembic (context, config)
  - SQLAlchemy (create_engine + NullPool, driver psycopg 3)
  - saaskit.crosscutting.config.get_settings

Policy:
  - Sin ORM ni autogenerate: las revisiones se escriben a mano.
============================================================
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from saaskit.crosscutting.config import get_settings

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name, disable_existing_loggers=False)

# R: La DSN de la app es libpq ("postgresql://"); SQLAlchemy necesita el dialecto.
_DRIVER_PREFIXES = ("postgresql://", "postgres://")


def database_url() -> str:
    url = (
        context.get_x_argument(as_dictionary=True).get("database_url")
        or os.environ.get("DATABASE_URL")
        or get_settings().database_url
    )
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    for prefix in _DRIVER_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def run_migrations_offline() -> None:
    """Emite el SQL sin conectarse (alembic upgrade --sql)."""
    context.configure(
        url=database_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=None)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
