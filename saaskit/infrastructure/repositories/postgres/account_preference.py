"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/account_preference.py
============================================================
Class: PostgresAccountPreferenceRepository

Responsibilities:
- Preferencias de cuenta (PK account_id + name) en PostgreSQL.
- Set = upsert sobre account_preferences_pkey: pisa value, refresca
  updated_at y limpia archived_at.
- Find / FindByAccountID / Read / Archive / Delete.

Collaborators:
- domain.validation (regla preference_value con el nombre en contexto)
- identity.claims_gate (gate por account_id)

Constraints / Notes:
- Exactamente una fila por (account_id, name).
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ....crosscutting.exceptions import NotFoundError
from ....domain.entities import AccountPreference, AccountPreferenceName
from ....domain.requests import (
    AccountPreferenceArchiveRequest,
    AccountPreferenceDeleteRequest,
    AccountPreferenceFindByAccountIDRequest,
    AccountPreferenceFindRequest,
    AccountPreferenceReadRequest,
    AccountPreferenceSetRequest,
)
from ....domain.validation import validate_request
from ....identity.claims import Claims
from ....identity.claims_gate import Operation, account_list_predicate
from ...db.sqlbuilder import Assign, DeleteBuilder, Equal, InsertBuilder, IsNull, UpdateBuilder
from ...db.store import Row
from .base import PostgresRepository

ACCOUNT_PREFERENCE_COLUMNS = (
    "account_id",
    "name",
    "value",
    "created_at",
    "updated_at",
    "archived_at",
)

PRIMARY_KEY_CONSTRAINT = "account_preferences_pkey"


class PostgresAccountPreferenceRepository(PostgresRepository[AccountPreference]):
    """R: Implementación PostgreSQL del repositorio de preferencias."""

    _TABLE = "account_preferences"
    _COLUMNS = ACCOUNT_PREFERENCE_COLUMNS

    def _row_to_entity(self, row: Row) -> AccountPreference:
        account_id, name, value, created_at, updated_at, archived_at = row
        return AccountPreference(
            account_id=account_id,
            name=AccountPreferenceName(name),
            value=value,
            created_at=created_at,
            updated_at=updated_at,
            archived_at=archived_at,
        )

    def _key(self, account_id: str, name: str):
        return Equal("account_id", account_id), Equal("name", name)

    async def find(
        self, claims: Claims, req: Optional[AccountPreferenceFindRequest] = None
    ) -> List[AccountPreference]:
        return await self._find(
            req or AccountPreferenceFindRequest(),
            account_list_predicate(claims, "account_id"),
        )

    async def find_by_account_id(
        self, claims: Claims, req: AccountPreferenceFindByAccountIDRequest
    ) -> List[AccountPreference]:
        return await self._find(
            req,
            account_list_predicate(claims, "account_id"),
            Equal("account_id", req.account_id),
        )

    async def read(
        self, claims: Claims, req: AccountPreferenceReadRequest
    ) -> AccountPreference:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.READ)
        stmt = (
            self._select(
                *self._key(req.account_id, req.name),
                None if req.include_archived else IsNull("archived_at"),
            )
            .limit(1)
            .build()
        )
        pref = await self._fetch_one(stmt)
        if pref is None:
            raise NotFoundError(
                f"preference {req.name} of account {req.account_id} not found"
            )
        return pref

    async def set(
        self,
        claims: Claims,
        req: AccountPreferenceSetRequest,
        now: Optional[datetime] = None,
    ) -> AccountPreference:
        """R: Upsert por PK; el value se valida contra el tipo de preferencia."""
        req = validate_request(req, preference_name=req.name)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)

        now = self._now(now)
        insert = (
            InsertBuilder(self._TABLE)
            .set("account_id", req.account_id)
            .set("name", req.name)
            .set("value", req.value)
            .set("created_at", now)
            .set("updated_at", now)
            .on_conflict_constraint(
                PRIMARY_KEY_CONSTRAINT,
                excluded=["value", "updated_at"],
                assign=[Assign("archived_at", None)],
            )
            .returning(*self._COLUMNS)
        )
        return await self._write_one(insert.build())

    async def archive(
        self,
        claims: Claims,
        req: AccountPreferenceArchiveRequest,
        now: Optional[datetime] = None,
    ) -> None:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)
        now = self._now(now)
        stmt = (
            UpdateBuilder(self._TABLE)
            .set(Assign("archived_at", now), Assign("updated_at", now))
            .where(*self._key(req.account_id, req.name), IsNull("archived_at"))
            .build()
        )
        if await self._write(stmt) == 0:
            raise NotFoundError(
                f"preference {req.name} of account {req.account_id} not found"
            )

    async def delete(self, claims: Claims, req: AccountPreferenceDeleteRequest) -> None:
        req = validate_request(req)
        await self._authorize_account(claims, req.account_id, Operation.MODIFY)
        stmt = DeleteBuilder(self._TABLE).where(*self._key(req.account_id, req.name)).build()
        if await self._write(stmt) == 0:
            raise NotFoundError(
                f"preference {req.name} of account {req.account_id} not found"
            )

    async def delete_for_account(self, account_id: str) -> int:
        """Cascada: la autoriza el repo de cuentas dentro de su transacción."""
        stmt = DeleteBuilder(self._TABLE).where(Equal("account_id", account_id)).build()
        return await self._write(stmt)
