"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/account.py
============================================================
Class: PostgresAccountRepository

Responsibilities:
- Acceso a datos de Accounts (tenants) en PostgreSQL.
- CRUD + archivado (soft-delete vía archived_at) con cascada a membresías.
- Delete en transacción: membresías -> preferencias -> cuenta.
- Probe de unicidad de nombre (entre cuentas no archivadas).
- Enforce de transiciones de status (pending -> active -> disabled -> active).

Collaborators:
- PostgresUserAccountRepository / PostgresAccountPreferenceRepository (cascadas)
- identity.claims_gate (account_list_predicate, decide_create, decide_account)
- domain.requests Account*Request
- crosscutting.logger.logger

Constraints / Notes:
- El gate se evalúa sobre el id de la cuenta.
- "" en signup_user_id/billing_user_id limpia la referencia.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from ....crosscutting.exceptions import BadRequestError, NotFoundError
from ....crosscutting.logger import logger
from ....domain.entities import Account, AccountStatus, can_transition
from ....domain.requests import (
    AccountArchiveRequest,
    AccountCreateRequest,
    AccountDeleteRequest,
    AccountFindRequest,
    AccountUpdateRequest,
)
from ....domain.validation import validate_request
from ....identity.claims import Claims
from ....identity.claims_gate import Operation, account_list_predicate, decide_create
from ...db.sqlbuilder import (
    Assign,
    DeleteBuilder,
    Equal,
    InsertBuilder,
    IsNull,
    NotEqual,
    SelectBuilder,
    UpdateBuilder,
)
from ...db.store import Executor, Row
from .account_preference import PostgresAccountPreferenceRepository
from .base import PostgresRepository, assignments
from .user_account import PostgresUserAccountRepository

ACCOUNT_COLUMNS = (
    "id",
    "name",
    "address1",
    "address2",
    "city",
    "region",
    "country",
    "zipcode",
    "status",
    "timezone",
    "signup_user_id",
    "billing_user_id",
    "created_at",
    "updated_at",
    "archived_at",
)


class PostgresAccountRepository(PostgresRepository[Account]):
    """R: Implementación PostgreSQL del repositorio de Accounts."""

    _TABLE = "accounts"
    _COLUMNS = ACCOUNT_COLUMNS
    _UNIQUE_CONSTRAINTS = {"accounts_name_unique": "name"}

    def __init__(
        self,
        store: Optional[Executor] = None,
        *,
        memberships: Optional[PostgresUserAccountRepository] = None,
        preferences: Optional[PostgresAccountPreferenceRepository] = None,
        **kwargs,
    ) -> None:
        super().__init__(store, **kwargs)
        # R: Referencias explícitas a los repos hermanos (cascadas).
        self._memberships = memberships or PostgresUserAccountRepository(
            store, clock=self._clock
        )
        self._preferences = preferences or PostgresAccountPreferenceRepository(
            store, clock=self._clock
        )

    # =========================================================
    # Mapping
    # =========================================================
    def _row_to_entity(self, row: Row) -> Account:
        (
            account_id,
            name,
            address1,
            address2,
            city,
            region,
            country,
            zipcode,
            status,
            tz,
            signup_user_id,
            billing_user_id,
            created_at,
            updated_at,
            archived_at,
        ) = row

        return Account(
            id=account_id,
            name=name,
            address1=address1 or "",
            address2=address2 or "",
            city=city or "",
            region=region or "",
            country=country or "",
            zipcode=zipcode or "",
            status=AccountStatus(status),
            timezone=tz or "",
            signup_user_id=signup_user_id,
            billing_user_id=billing_user_id,
            created_at=created_at,
            updated_at=updated_at,
            archived_at=archived_at,
        )

    # =========================================================
    # Probes
    # =========================================================
    async def unique_name(self, name: str, exclude_id: Optional[str] = None) -> bool:
        """True si ninguna cuenta no archivada (distinta de exclude_id) usa `name`."""
        taken = await self._exists(
            Equal("name", name),
            IsNull("archived_at"),
            NotEqual("id", exclude_id) if exclude_id else None,
        )
        return not taken

    async def can_read(self, claims: Claims, account_id: str) -> bool:
        decision = await self._account_decision(claims, account_id, Operation.READ)
        return decision.allowed

    async def can_modify(self, claims: Claims, account_id: str) -> bool:
        decision = await self._account_decision(claims, account_id, Operation.MODIFY)
        return decision.allowed

    # =========================================================
    # Public API
    # =========================================================
    async def find(
        self, claims: Claims, req: Optional[AccountFindRequest] = None
    ) -> List[Account]:
        """R: Lista cuentas visibles para los claims."""
        return await self._find(
            req or AccountFindRequest(), account_list_predicate(claims, "id")
        )

    async def read(
        self, claims: Claims, account_id: str, include_archived: bool = False
    ) -> Account:
        await self._authorize_account(claims, account_id, Operation.READ)
        stmt = (
            self._select(
                Equal("id", account_id),
                None if include_archived else IsNull("archived_at"),
            )
            .limit(1)
            .build()
        )
        account = await self._fetch_one(stmt)
        if account is None:
            raise NotFoundError(f"account {account_id} not found")
        return account

    async def create(
        self,
        claims: Claims,
        req: AccountCreateRequest,
        now: Optional[datetime] = None,
    ) -> Account:
        unique = await self.unique_name(req.name) if req.name else True
        req = validate_request(req, unique={"name": unique})
        decide_create(claims).enforce()

        now = self._now(now)
        insert = (
            InsertBuilder(self._TABLE)
            .set("id", str(uuid4()))
            .set("name", req.name)
            .set("address1", req.address1)
            .set("address2", req.address2 or "")
            .set("city", req.city)
            .set("region", req.region)
            .set("country", req.country)
            .set("zipcode", req.zipcode)
            .set("status", req.status or AccountStatus.PENDING.value)
            .set("timezone", req.timezone or self.default_timezone)
            .set("signup_user_id", req.signup_user_id or None)
            .set("billing_user_id", req.billing_user_id or None)
            .set("created_at", now)
            .set("updated_at", now)
            .returning(*self._COLUMNS)
        )
        account = await self._write_one(insert.build())
        logger.info("Account created", extra={"account_id": account.id})
        return account

    async def update(
        self,
        claims: Claims,
        req: AccountUpdateRequest,
        now: Optional[datetime] = None,
    ) -> None:
        """
        R: Update parcial. Sin campos => no-op (no toca updated_at).
        """
        unique = True
        if req.name:
            unique = await self.unique_name(req.name, exclude_id=req.id)
        req = validate_request(req, unique={"name": unique})
        await self._authorize_account(claims, req.id, Operation.MODIFY)

        values = assignments(
            {
                "name": req.name,
                "address1": req.address1,
                "address2": req.address2,
                "city": req.city,
                "region": req.region,
                "country": req.country,
                "zipcode": req.zipcode,
                "status": req.status,
                "timezone": req.timezone,
            }
        )
        # R: "" limpia la referencia (NULL); None no la toca.
        for ref in ("signup_user_id", "billing_user_id"):
            value = getattr(req, ref)
            if value is not None:
                values[ref] = value or None
        if not values:
            return

        if "status" in values:
            await self._check_transition(req.id, AccountStatus(values["status"]))

        values["updated_at"] = self._now(now)
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(*(Assign(col, val) for col, val in values.items()))
            .where(Equal("id", req.id), IsNull("archived_at"))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(f"account {req.id} not found")

    async def _check_transition(self, account_id: str, target: AccountStatus) -> None:
        stmt = (
            SelectBuilder(self._TABLE, ["status"])
            .where(Equal("id", account_id), IsNull("archived_at"))
            .limit(1)
            .build()
        )
        row = await self.store.query_row(stmt)
        if row is None:
            raise NotFoundError(f"account {account_id} not found")
        current = AccountStatus(row[0])
        if not can_transition(current, target):
            raise BadRequestError.for_field(
                "status",
                "transition",
                f"status cannot change from {current.value} to {target.value}",
                target.value,
            )

    async def archive(
        self,
        claims: Claims,
        req: AccountArchiveRequest,
        now: Optional[datetime] = None,
    ) -> None:
        """R: Archiva la cuenta y, en la misma transacción, sus membresías."""
        req = validate_request(req)
        await self._authorize_account(claims, req.id, Operation.MODIFY)
        now = self._now(now)

        async with self.store.transaction() as tx:
            stmt = (
                UpdateBuilder(self._TABLE)
                .set(Assign("archived_at", now), Assign("updated_at", now))
                .where(Equal("id", req.id), IsNull("archived_at"))
                .build()
            )
            if await self.bind(tx)._write(stmt) == 0:
                raise NotFoundError(f"account {req.id} not found")
            memberships = await self._memberships.bind(tx).archive_for_account(
                req.id, now
            )

        logger.info(
            "Account archived",
            extra={"account_id": req.id, "memberships": memberships},
        )

    async def delete(self, claims: Claims, req: AccountDeleteRequest) -> None:
        """
        R: Hard delete en una transacción (hijos antes que el padre).
        Cualquier error => rollback; la cuenta puede estar archivada.
        """
        req = validate_request(req)
        await self._authorize_account(claims, req.id, Operation.MODIFY)

        async with self.store.transaction() as tx:
            memberships = await self._memberships.bind(tx).delete_for_account(req.id)
            preferences = await self._preferences.bind(tx).delete_for_account(req.id)
            stmt = DeleteBuilder(self._TABLE).where(Equal("id", req.id)).build()
            if await self.bind(tx)._write(stmt) == 0:
                raise NotFoundError(f"account {req.id} not found")

        logger.info(
            "Account deleted",
            extra={
                "account_id": req.id,
                "memberships": memberships,
                "preferences": preferences,
            },
        )
