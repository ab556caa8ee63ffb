"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user.py
============================================================
Class: PostgresUserRepository

Responsibilities:
- Acceso a datos de Users en PostgreSQL.
- Create con hash Argon2 (password_confirm debe coincidir).
- Update parcial, UpdatePassword, Archive (cascada a membresías del
  usuario) y Delete transaccional (membresías -> usuario).
- FindByAccount: usuarios vinculados a una cuenta vía membresías.
- Probe de unicidad de email (entre usuarios no archivados).

Collaborators:
- PostgresUserAccountRepository (cascadas)
- identity.passwords (hash_password)
- identity.claims_gate (user_list_predicate, decide_user, decide_create)

Constraints / Notes:
- password_hash NUNCA se selecciona: no está en USER_COLUMNS.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from ....crosscutting.exceptions import NotFoundError
from ....crosscutting.logger import logger
from ....domain.entities import User
from ....domain.requests import (
    UserArchiveRequest,
    UserCreateRequest,
    UserDeleteRequest,
    UserFindByAccountRequest,
    UserFindRequest,
    UserUpdatePasswordRequest,
    UserUpdateRequest,
)
from ....domain.validation import validate_request
from ....identity.claims import Claims
from ....identity.claims_gate import (
    MEMBERSHIP_TABLE,
    Operation,
    decide_create,
    user_list_predicate,
)
from ....identity.passwords import hash_password
from ...db.sqlbuilder import (
    Assign,
    DeleteBuilder,
    Equal,
    In,
    InsertBuilder,
    IsNull,
    NotEqual,
    SelectBuilder,
    UpdateBuilder,
)
from ...db.store import Executor, Row
from .base import PostgresRepository, assignments
from .user_account import PostgresUserAccountRepository

USER_COLUMNS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "timezone",
    "created_at",
    "updated_at",
    "archived_at",
)


class PostgresUserRepository(PostgresRepository[User]):
    """R: Implementación PostgreSQL del repositorio de Users."""

    _TABLE = "users"
    _COLUMNS = USER_COLUMNS
    _UNIQUE_CONSTRAINTS = {"users_email_unique": "email"}

    def __init__(
        self,
        store: Optional[Executor] = None,
        *,
        memberships: Optional[PostgresUserAccountRepository] = None,
        **kwargs,
    ) -> None:
        super().__init__(store, **kwargs)
        self._memberships = memberships or PostgresUserAccountRepository(
            store, clock=self._clock
        )

    def _row_to_entity(self, row: Row) -> User:
        (
            user_id,
            email,
            first_name,
            last_name,
            tz,
            created_at,
            updated_at,
            archived_at,
        ) = row

        return User(
            id=user_id,
            email=email,
            first_name=first_name or "",
            last_name=last_name or "",
            timezone=tz or "",
            created_at=created_at,
            updated_at=updated_at,
            archived_at=archived_at,
        )

    async def unique_email(self, email: str, exclude_id: Optional[str] = None) -> bool:
        taken = await self._exists(
            Equal("email", email),
            IsNull("archived_at"),
            NotEqual("id", exclude_id) if exclude_id else None,
        )
        return not taken

    # =========================================================
    # Lecturas
    # =========================================================
    async def find(
        self, claims: Claims, req: Optional[UserFindRequest] = None
    ) -> List[User]:
        return await self._find(req or UserFindRequest(), user_list_predicate(claims, "id"))

    async def find_by_account(
        self, claims: Claims, req: UserFindByAccountRequest
    ) -> List[User]:
        """R: Usuarios con membresía no archivada en req.account_id."""
        members = SelectBuilder(MEMBERSHIP_TABLE, ["user_id"]).where(
            Equal("account_id", req.account_id), IsNull("archived_at")
        )
        return await self._find(
            req, user_list_predicate(claims, "id"), In("id", members)
        )

    async def read(
        self, claims: Claims, user_id: str, include_archived: bool = False
    ) -> User:
        await self._authorize_user(claims, user_id, Operation.READ)
        stmt = (
            self._select(
                Equal("id", user_id),
                None if include_archived else IsNull("archived_at"),
            )
            .limit(1)
            .build()
        )
        user = await self._fetch_one(stmt)
        if user is None:
            raise NotFoundError(f"user {user_id} not found")
        return user

    # =========================================================
    # Escrituras
    # =========================================================
    async def create(
        self,
        claims: Claims,
        req: UserCreateRequest,
        now: Optional[datetime] = None,
    ) -> User:
        unique = await self.unique_email(req.email) if req.email else True
        req = validate_request(req, unique={"email": unique})
        decide_create(claims).enforce()

        now = self._now(now)
        insert = (
            InsertBuilder(self._TABLE)
            .set("id", str(uuid4()))
            .set("email", req.email)
            .set("password_hash", hash_password(req.password))
            .set("first_name", req.first_name)
            .set("last_name", req.last_name)
            .set("timezone", req.timezone or self.default_timezone)
            .set("created_at", now)
            .set("updated_at", now)
            .returning(*self._COLUMNS)
        )
        user = await self._write_one(insert.build())
        logger.info("User created", extra={"user_id": user.id})
        return user

    async def update(
        self,
        claims: Claims,
        req: UserUpdateRequest,
        now: Optional[datetime] = None,
    ) -> None:
        unique = True
        if req.email:
            unique = await self.unique_email(req.email, exclude_id=req.id)
        req = validate_request(req, unique={"email": unique})
        await self._authorize_user(claims, req.id, Operation.MODIFY)

        values = assignments(
            {
                "email": req.email,
                "first_name": req.first_name,
                "last_name": req.last_name,
                "timezone": req.timezone,
            }
        )
        if not values:
            return
        values["updated_at"] = self._now(now)
        await self._update_row(req.id, values)

    async def update_password(
        self,
        claims: Claims,
        req: UserUpdatePasswordRequest,
        now: Optional[datetime] = None,
    ) -> None:
        req = validate_request(req)
        await self._authorize_user(claims, req.id, Operation.MODIFY)
        await self._update_row(
            req.id,
            {"password_hash": hash_password(req.password), "updated_at": self._now(now)},
        )

    async def _update_row(self, user_id: str, values: dict) -> None:
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(*(Assign(col, val) for col, val in values.items()))
            .where(Equal("id", user_id), IsNull("archived_at"))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(f"user {user_id} not found")

    async def archive(
        self,
        claims: Claims,
        req: UserArchiveRequest,
        now: Optional[datetime] = None,
    ) -> None:
        """R: Archiva el usuario y sus membresías en una transacción."""
        req = validate_request(req)
        await self._authorize_user(claims, req.id, Operation.MODIFY)
        now = self._now(now)

        async with self.store.transaction() as tx:
            await self.bind(tx)._update_row(
                req.id, {"archived_at": now, "updated_at": now}
            )
            memberships = await self._memberships.bind(tx).archive_for_user(req.id, now)

        logger.info(
            "User archived", extra={"user_id": req.id, "memberships": memberships}
        )

    async def delete(self, claims: Claims, req: UserDeleteRequest) -> None:
        """R: Hard delete: membresías primero, luego el usuario."""
        req = validate_request(req)
        await self._authorize_user(claims, req.id, Operation.MODIFY)

        async with self.store.transaction() as tx:
            memberships = await self._memberships.bind(tx).delete_for_user(req.id)
            stmt = DeleteBuilder(self._TABLE).where(Equal("id", req.id)).build()
            if await self.bind(tx)._write(stmt) == 0:
                raise NotFoundError(f"user {req.id} not found")

        logger.info(
            "User deleted", extra={"user_id": req.id, "memberships": memberships}
        )
