"""
===============================================================================
USE CASE: Sign-up
===============================================================================

Name:
    Sign-up Use Case

Business Goal:
    Dar de alta un tenant completo en una sola operación:
      - la cuenta
      - su primer usuario
      - la membresía admin que los vincula

Why (Context / Intención):
    - Sin membresía admin la cuenta queda huérfana (nadie puede administrarla).
    - Las tres inserciones corren en UNA transacción: cualquier falla deja la
      base como estaba (ni usuario ni cuenta sueltos).

-------------------------------------------------------------------------------
CRC CARD (Class-Responsibility-Collaborator)
-------------------------------------------------------------------------------
Class:
    SignupUseCase

Responsibilities:
    - Probar unicidad de email y de nombre de cuenta.
    - Validar el request compuesto (todas las fallas juntas).
    - Crear usuario, cuenta (signup/billing = usuario nuevo) y membresía admin
      dentro de una transacción del store.
    - Devolver SignupResult con los tres registros.

Collaborators:
    - PostgresUserRepository / PostgresAccountRepository /
      PostgresUserAccountRepository (ligados a la transacción vía bind())
    - Executor (store compartido)
    - domain.validation.parse_request

-------------------------------------------------------------------------------
INPUTS / OUTPUTS
-------------------------------------------------------------------------------
Inputs:
    - SignupRequest(account: SignupAccount, user: SignupUser)
    - now: Optional[datetime] (None => reloj de los repositorios)

Outputs:
    - SignupResult(account, user, user_account)

Error Mapping:
    - BAD_REQUEST: request inválido / email o nombre tomados
    - CONFLICT: carrera contra otro sign-up en un constraint no mapeado
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...crosscutting.logger import logger
from ...domain.entities import Account, User, UserAccount, UserAccountRole
from ...domain.requests import (
    AccountCreateRequest,
    SignupAccount,
    SignupRequest,
    SignupUser,
    UserAccountCreateRequest,
    UserCreateRequest,
)
from ...domain.validation import parse_request
from ...identity.claims import Claims
from ...infrastructure.db.store import Executor
from ...infrastructure.repositories.postgres import (
    PostgresAccountRepository,
    PostgresUserAccountRepository,
    PostgresUserRepository,
)

# Sign-up corre como caller interno (bypass del gate).
INTERNAL = Claims()


@dataclass(frozen=True)
class SignupResult:
    account: Account
    user: User
    user_account: UserAccount


class SignupUseCase:
    """
    Use Case (Command):
        Orquesta tres repositorios en una única transacción.
    """

    def __init__(
        self,
        store: Executor,
        accounts: PostgresAccountRepository,
        users: PostgresUserRepository,
        memberships: PostgresUserAccountRepository,
    ) -> None:
        self._store = store
        self._accounts = accounts
        self._users = users
        self._memberships = memberships

    async def execute(
        self, req: SignupRequest, now: Optional[datetime] = None
    ) -> SignupResult:
        # ---------------------------------------------------------------------
        # 1) Probes de unicidad (advisory: el constraint es la verdad).
        # ---------------------------------------------------------------------
        email_unique = await self._users.unique_email(req.user.email)
        name_unique = await self._accounts.unique_name(req.account.name)

        # ---------------------------------------------------------------------
        # 2) Validación compuesta: account.* y user.* en un solo BadRequest.
        # ---------------------------------------------------------------------
        req = parse_request(
            SignupRequest,
            req,
            unique_facts={
                (SignupUser.__name__, "email"): email_unique,
                (SignupAccount.__name__, "name"): name_unique,
            },
        )

        # ---------------------------------------------------------------------
        # 3) Inserciones en una transacción (rollback ante cualquier error).
        # ---------------------------------------------------------------------
        async with self._store.transaction() as tx:
            user = await self._users.bind(tx).create(
                INTERNAL,
                UserCreateRequest(
                    first_name=req.user.first_name,
                    last_name=req.user.last_name,
                    email=req.user.email,
                    password=req.user.password,
                    password_confirm=req.user.password_confirm,
                    timezone=req.account.timezone,
                ),
                now,
            )
            account = await self._accounts.bind(tx).create(
                INTERNAL,
                AccountCreateRequest(
                    name=req.account.name,
                    address1=req.account.address1,
                    address2=req.account.address2,
                    city=req.account.city,
                    region=req.account.region,
                    country=req.account.country,
                    zipcode=req.account.zipcode,
                    timezone=req.account.timezone,
                    signup_user_id=user.id,
                    billing_user_id=user.id,
                ),
                now,
            )
            user_account = await self._memberships.bind(tx).create(
                INTERNAL,
                UserAccountCreateRequest(
                    user_id=user.id,
                    account_id=account.id,
                    roles=[UserAccountRole.ADMIN.value],
                ),
                now,
            )

        logger.info(
            "Sign-up completed",
            extra={"account_id": account.id, "user_id": user.id},
        )
        return SignupResult(account=account, user=user, user_account=user_account)
