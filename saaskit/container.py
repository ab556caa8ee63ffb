"""
===============================================================================
TARJETA CRC — saaskit/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer repositorios sobre UN store compartido (el pool va por referencia).
  - Cablear las referencias explícitas entre repos hermanos (cascadas).
  - Exponer factories cacheadas (lru_cache) para el proceso y un builder
    explícito (build_repositories) para tests y workers.
  - startup()/shutdown(): ciclo de vida del pool según Settings.

Colaboradores:
  - crosscutting.config.get_settings
  - infrastructure.db (pool + store)
  - infrastructure.repositories.postgres.*
  - application.usecases.SignupUseCase

Notas:
  - Este archivo NO contiene lógica de negocio.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .application.usecases import SignupUseCase
from .crosscutting.clock import Clock
from .crosscutting.config import get_settings
from .infrastructure.db import PostgresStore, close_pool, get_pool, init_pool
from .infrastructure.db.store import Executor
from .infrastructure.repositories.postgres import (
    PostgresAccountPreferenceRepository,
    PostgresAccountRepository,
    PostgresUserAccountRepository,
    PostgresUserRepository,
)


@dataclass(frozen=True)
class Repositories:
    """Los cuatro repositorios cableados sobre el mismo store."""

    store: Executor
    accounts: PostgresAccountRepository
    users: PostgresUserRepository
    memberships: PostgresUserAccountRepository
    preferences: PostgresAccountPreferenceRepository

    def signup(self) -> SignupUseCase:
        return SignupUseCase(self.store, self.accounts, self.users, self.memberships)


def build_repositories(
    store: Executor,
    *,
    clock: Optional[Clock] = None,
    find_max_limit: Optional[int] = None,
    default_timezone: Optional[str] = None,
) -> Repositories:
    """Arma los repositorios con referencias explícitas (sin singletons)."""
    opts = {
        "clock": clock,
        "find_max_limit": find_max_limit,
        "default_timezone": default_timezone,
    }
    memberships = PostgresUserAccountRepository(store, **opts)
    preferences = PostgresAccountPreferenceRepository(store, **opts)
    accounts = PostgresAccountRepository(
        store, memberships=memberships, preferences=preferences, **opts
    )
    users = PostgresUserRepository(store, memberships=memberships, **opts)
    return Repositories(
        store=store,
        accounts=accounts,
        users=users,
        memberships=memberships,
        preferences=preferences,
    )


# =============================================================================
# Singletons del proceso
# =============================================================================


@lru_cache(maxsize=1)
def get_store() -> PostgresStore:
    """Store sobre el pool global (requiere init_pool/startup previo)."""
    settings = get_settings()
    return PostgresStore(
        get_pool(),
        bindtype=settings.db_bindtype,
        slow_query_seconds=settings.db_slow_query_seconds,
    )


@lru_cache(maxsize=1)
def get_repositories() -> Repositories:
    return build_repositories(get_store())


def get_signup_use_case() -> SignupUseCase:
    return get_repositories().signup()


def clear_container() -> None:
    """Olvida los singletons (tests, o tras cerrar el pool)."""
    get_repositories.cache_clear()
    get_store.cache_clear()


# =============================================================================
# Ciclo de vida
# =============================================================================


async def startup() -> None:
    settings = get_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not set.")
    await init_pool(
        settings.database_url,
        settings.db_pool_min_size,
        settings.db_pool_max_size,
    )


async def shutdown() -> None:
    await close_pool()
    clear_container()
