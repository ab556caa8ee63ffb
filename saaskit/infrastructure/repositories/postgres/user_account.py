"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user_account.py
============================================================
Class: PostgresUserAccountRepository

Responsibilities:
- Acceso a datos de membresías (users_accounts) en PostgreSQL.
- Find / FindByUserID / FindByAccountID / Read (por id o por par) /
  Create / Update (roles, status) / Archive / Delete.
- Helpers de cascada sin claims (los invoca el repo padre dentro de su tx):
  archive_for_account, archive_for_user, delete_for_account, delete_for_user.

Collaborators:
- identity.claims_gate (el gate se evalúa sobre account_id)
- domain.requests UserAccount*Request
- crosscutting.logger.logger

Constraints / Notes:
- Par (user_id, account_id) único entre membresías no archivadas.
- roles: text[] no vacío, subset de {admin, user}.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from ....crosscutting.exceptions import NotFoundError
from ....crosscutting.logger import logger
from ....domain.entities import UserAccount, UserAccountRole, UserAccountStatus
from ....domain.requests import (
    FindRequest,
    UserAccountArchiveRequest,
    UserAccountCreateRequest,
    UserAccountDeleteRequest,
    UserAccountFindRequest,
    UserAccountReadRequest,
    UserAccountUpdateRequest,
)
from ....domain.validation import validate_request
from ....identity.claims import Claims
from ....identity.claims_gate import Operation, account_list_predicate
from ...db.sqlbuilder import Assign, DeleteBuilder, Equal, InsertBuilder, IsNull, UpdateBuilder
from ...db.store import Row
from .base import PostgresRepository, assignments

USER_ACCOUNT_COLUMNS = (
    "id",
    "user_id",
    "account_id",
    "roles",
    "status",
    "created_at",
    "updated_at",
    "archived_at",
)


class PostgresUserAccountRepository(PostgresRepository[UserAccount]):
    """R: Implementación PostgreSQL del repositorio de membresías."""

    _TABLE = "users_accounts"
    _COLUMNS = USER_ACCOUNT_COLUMNS
    _UNIQUE_CONSTRAINTS = {"users_accounts_user_account_unique": "user_id"}

    def _row_to_entity(self, row: Row) -> UserAccount:
        (
            membership_id,
            user_id,
            account_id,
            roles,
            status,
            created_at,
            updated_at,
            archived_at,
        ) = row

        return UserAccount(
            id=membership_id,
            user_id=user_id,
            account_id=account_id,
            roles=[UserAccountRole(r) for r in roles or []],
            status=UserAccountStatus(status),
            created_at=created_at,
            updated_at=updated_at,
            archived_at=archived_at,
        )

    async def unique_pair(self, user_id: str, account_id: str) -> bool:
        taken = await self._exists(
            Equal("user_id", user_id),
            Equal("account_id", account_id),
            IsNull("archived_at"),
        )
        return not taken

    def _pair(self, user_id: str, account_id: str):
        return Equal("user_id", user_id), Equal("account_id", account_id)

    # =========================================================
    # Listados
    # =========================================================
    async def find(
        self, claims: Claims, req: Optional[UserAccountFindRequest] = None
    ) -> List[UserAccount]:
        return await self._find(
            req or UserAccountFindRequest(),
            account_list_predicate(claims, "account_id"),
        )

    async def find_by_user_id(
        self, claims: Claims, user_id: str, req: Optional[FindRequest] = None
    ) -> List[UserAccount]:
        return await self._find(
            req or UserAccountFindRequest(),
            account_list_predicate(claims, "account_id"),
            Equal("user_id", user_id),
        )

    async def find_by_account_id(
        self, claims: Claims, account_id: str, req: Optional[FindRequest] = None
    ) -> List[UserAccount]:
        return await self._find(
            req or UserAccountFindRequest(),
            account_list_predicate(claims, "account_id"),
            Equal("account_id", account_id),
        )

    # =========================================================
    # Lecturas puntuales
    # =========================================================
    async def read(self, claims: Claims, req: UserAccountReadRequest) -> UserAccount:
        """R: Lee la membresía del par (user_id, account_id)."""
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.READ)
        stmt = (
            self._select(
                *self._pair(req.user_id, req.account_id),
                None if req.include_archived else IsNull("archived_at"),
            )
            .order_by("created_at desc")
            .limit(1)
            .build()
        )
        membership = await self._fetch_one(stmt)
        if membership is None:
            raise NotFoundError(
                f"membership of user {req.user_id} in account {req.account_id} not found"
            )
        return membership

    async def read_by_id(
        self, claims: Claims, membership_id: str, include_archived: bool = False
    ) -> UserAccount:
        stmt = (
            self._select(
                Equal("id", membership_id),
                None if include_archived else IsNull("archived_at"),
            )
            .limit(1)
            .build()
        )
        membership = await self._fetch_one(stmt)
        if membership is None:
            raise NotFoundError(f"membership {membership_id} not found")
        await self._authorize_account(claims, membership.account_id, Operation.READ)
        return membership

    # =========================================================
    # Escrituras
    # =========================================================
    async def create(
        self,
        claims: Claims,
        req: UserAccountCreateRequest,
        now: Optional[datetime] = None,
    ) -> UserAccount:
        unique = True
        if req.user_id and req.account_id:
            unique = await self.unique_pair(req.user_id, req.account_id)
        req = validate_request(req, unique={"user_id": unique})
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)

        now = self._now(now)
        insert = (
            InsertBuilder(self._TABLE)
            .set("id", str(uuid4()))
            .set("user_id", req.user_id)
            .set("account_id", req.account_id)
            .set("roles", list(req.roles))
            .set("status", req.status or UserAccountStatus.ACTIVE.value)
            .set("created_at", now)
            .set("updated_at", now)
            .returning(*self._COLUMNS)
        )
        return await self._write_one(insert.build())

    async def update(
        self,
        claims: Claims,
        req: UserAccountUpdateRequest,
        now: Optional[datetime] = None,
    ) -> None:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)

        values = assignments(
            {
                "roles": list(req.roles) if req.roles else None,
                "status": req.status,
            }
        )
        if not values:
            return
        values["updated_at"] = self._now(now)
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(*(Assign(col, val) for col, val in values.items()))
            .where(*self._pair(req.user_id, req.account_id), IsNull("archived_at"))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(
                f"membership of user {req.user_id} in account {req.account_id} not found"
            )

    async def archive(
        self,
        claims: Claims,
        req: UserAccountArchiveRequest,
        now: Optional[datetime] = None,
    ) -> None:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)
        now = self._now(now)
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(Assign("archived_at", now), Assign("updated_at", now))
            .where(*self._pair(req.user_id, req.account_id), IsNull("archived_at"))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(
                f"membership of user {req.user_id} in account {req.account_id} not found"
            )

    async def delete(self, claims: Claims, req: UserAccountDeleteRequest) -> None:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)
        stmt = (
            DeleteBuilder(self._TABLE)
            .where(*self._pair(req.user_id, req.account_id))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(
                f"membership of user {req.user_id} in account {req.account_id} not found"
            )

    # =========================================================
    # Cascadas (sin claims: las autoriza el repo padre)
    # =========================================================
    async def _archive_where(self, column: str, value: str, now: datetime) -> int:
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(Assign("archived_at", now), Assign("updated_at", now))
            .where(Equal(column, value), IsNull("archived_at"))
            .build()
        )
        count = await self._write(stmt)
        logger.debug("Memberships archived", extra={column: value, "count": count})
        return count

    async def archive_for_account(self, account_id: str, now: datetime) -> int:
        return await self._archive_where("account_id", account_id, now)

    async def archive_for_user(self, user_id: str, now: datetime) -> int:
        return await self._archive_where("user_id", user_id, now)

    async def delete_for_account(self, account_id: str) -> int:
        stmt = DeleteBuilder(self._TABLE).where(Equal("account_id", account_id)).build()
        return await self._write(stmt)

    async def delete_for_user(self, user_id: str) -> int:
        stmt = DeleteBuilder(self._TABLE).where(Equal("user_id", user_id)).build()
        return await self._write(stmt)
