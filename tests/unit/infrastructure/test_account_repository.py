"""
Name: Account Repository Tests

Responsibilities:
  - Test create defaults, uniqueness probe and unique-violation translation
  - Test Find SQL (archived filter, claims gate, order/limit/offset)
  - Test partial update, status transitions and claims gate on modify
  - Test archive / delete cascades inside one transaction

Notes:
  - Runs over FakeStore: statements are asserted, no PostgreSQL
"""

import pytest

from saaskit.crosscutting.exceptions import (
    BadRequestError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    NotFoundError,
)
from saaskit.domain.entities import AccountStatus
from saaskit.domain.requests import (
    AccountArchiveRequest,
    AccountDeleteRequest,
    AccountFindRequest,
    AccountUpdateRequest,
)
from saaskit.testing import (
    DEFAULT_NOW,
    account_claims,
    account_create_request,
    admin_claims,
    internal_claims,
)

ACC1 = "0d7f5b1e-7c0a-4d59-9a4f-3c2b1a0e9d81"
ACC2 = "5e3a9c2d-1b4f-4e6a-8d7c-2f1e0b9a8c72"
U1 = "9a8b7c6d-5e4f-4a3b-9c2d-1e0f9a8b7c63"

ROW_SELECT = r"^SELECT id, name, address1"
PROBE = r"^SELECT roles FROM users_accounts"


def _account_row(account_id=ACC1, name="Acme", status="active", archived_at=None):
    return (
        account_id,
        name,
        "1 Main St",
        "",
        "Anchorage",
        "AK",
        "US",
        "99501",
        status,
        "America/Anchorage",
        None,
        None,
        DEFAULT_NOW,
        DEFAULT_NOW,
        archived_at,
    )


@pytest.mark.unit
class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults_and_clock(self, repos, store):
        account = await repos.accounts.create(
            internal_claims(), account_create_request(name="Acme")
        )
        assert account.name == "Acme"
        assert account.status == AccountStatus.PENDING
        assert account.timezone == "America/Anchorage"
        assert account.created_at == DEFAULT_NOW
        assert account.updated_at == DEFAULT_NOW
        assert account.archived_at is None
        assert store.sql[0] == (
            "SELECT 1 FROM accounts WHERE name = ? AND archived_at IS NULL LIMIT 1"
        )
        assert store.sql[1].startswith("INSERT INTO accounts (id, name, ")

    @pytest.mark.asyncio
    async def test_taken_name_is_a_bad_request(self, repos, store):
        store.on(r"^SELECT 1 FROM accounts", rows=[(1,)])
        with pytest.raises(BadRequestError) as exc_info:
            await repos.accounts.create(
                internal_claims(), account_create_request(name="Acme")
            )
        assert exc_info.value.has("name", "unique")
        assert not store.find(r"^INSERT")

    @pytest.mark.asyncio
    async def test_lost_race_is_translated(self, repos, store):
        store.on(
            r"^INSERT INTO accounts",
            error=ConflictError("dup", constraint="accounts_name_unique"),
        )
        with pytest.raises(BadRequestError) as exc_info:
            await repos.accounts.create(internal_claims(), account_create_request())
        assert exc_info.value.has("name", "unique")

    @pytest.mark.asyncio
    async def test_unknown_constraint_stays_conflict(self, repos, store):
        store.on(r"^INSERT INTO accounts", error=ConflictError("dup", constraint="other"))
        with pytest.raises(ConflictError):
            await repos.accounts.create(internal_claims(), account_create_request())

    @pytest.mark.asyncio
    async def test_non_admin_cannot_create(self, repos, store):
        with pytest.raises(ForbiddenError):
            await repos.accounts.create(
                account_claims(ACC1, U1), account_create_request()
            )
        assert not store.find(r"^INSERT")

    @pytest.mark.asyncio
    async def test_invalid_request_lists_fields(self, repos):
        with pytest.raises(BadRequestError) as exc_info:
            await repos.accounts.create(
                internal_claims(), account_create_request(city="", status="frozen")
            )
        assert exc_info.value.has("city", "required")
        assert exc_info.value.has("status", "oneof")


@pytest.mark.unit
class TestFind:
    @pytest.mark.asyncio
    async def test_order_limit_offset(self, repos, store):
        store.on(ROW_SELECT, rows=[_account_row(ACC2), _account_row(ACC1)])
        req = AccountFindRequest(order=["created_at desc"], limit=2, offset=1)
        accounts = await repos.accounts.find(internal_claims(), req)
        assert [a.id for a in accounts] == [ACC2, ACC1]
        sql, args = store.statements[0]
        assert sql.endswith(
            "FROM accounts WHERE archived_at IS NULL"
            " ORDER BY created_at desc LIMIT 2 OFFSET 1"
        )
        assert args == []

    @pytest.mark.asyncio
    async def test_claims_gate_filters_by_membership(self, repos, store):
        await repos.accounts.find(account_claims(ACC1, U1))
        sql, args = store.statements[0]
        assert sql.endswith(
            "WHERE archived_at IS NULL AND id IN (SELECT account_id FROM users_accounts"
            " WHERE (account_id = ? OR user_id = ?))"
        )
        assert args == [ACC1, U1]

    @pytest.mark.asyncio
    async def test_caller_where_and_limit_clamp(self, repos, store):
        req = AccountFindRequest(
            where="status = ?", args=["active"], limit=5000, offset=-4, include_archived=True
        )
        await repos.accounts.find(internal_claims(), req)
        sql, args = store.statements[0]
        assert sql.endswith("FROM accounts WHERE (status = ?) LIMIT 100 OFFSET 0")
        assert args == ["active"]

    @pytest.mark.asyncio
    async def test_unknown_order_column(self, repos, store):
        with pytest.raises(BadRequestError) as exc_info:
            await repos.accounts.find(
                internal_claims(), AccountFindRequest(order=["password_hash"])
            )
        assert exc_info.value.has("order", "column")
        assert store.statements == []


@pytest.mark.unit
class TestRead:
    @pytest.mark.asyncio
    async def test_read_in_audience(self, repos, store):
        store.on(ROW_SELECT, rows=[_account_row()])
        account = await repos.accounts.read(account_claims(ACC1, U1), ACC1)
        assert account.id == ACC1
        assert account.status == AccountStatus.ACTIVE
        assert not store.find(PROBE)

    @pytest.mark.asyncio
    async def test_archived_is_hidden(self, repos, store):
        with pytest.raises(NotFoundError):
            await repos.accounts.read(internal_claims(), ACC1)
        assert store.sql[0].endswith("WHERE id = ? AND archived_at IS NULL LIMIT 1")

    @pytest.mark.asyncio
    async def test_include_archived(self, repos, store):
        store.on(ROW_SELECT, rows=[_account_row(archived_at=DEFAULT_NOW)])
        account = await repos.accounts.read(internal_claims(), ACC1, include_archived=True)
        assert account.is_archived
        assert store.sql[0].endswith("WHERE id = ? LIMIT 1")

    @pytest.mark.asyncio
    async def test_other_account_without_membership(self, repos, store):
        with pytest.raises(ForbiddenError):
            await repos.accounts.read(account_claims(ACC1, U1), ACC2)
        assert store.statements == [
            (
                "SELECT roles FROM users_accounts WHERE account_id = ? AND user_id = ? LIMIT 1",
                [ACC2, U1],
            )
        ]

    @pytest.mark.asyncio
    async def test_other_account_with_membership(self, repos, store):
        store.on(PROBE, rows=[(["user"],)])
        store.on(ROW_SELECT, rows=[_account_row(ACC2)])
        account = await repos.accounts.read(account_claims(ACC1, U1), ACC2)
        assert account.id == ACC2

    @pytest.mark.asyncio
    async def test_can_read_and_modify(self, repos, store):
        store.on(PROBE, rows=[(["user"],)])
        claims = account_claims(ACC1, U1)
        assert await repos.accounts.can_read(claims, ACC2) is True
        assert await repos.accounts.can_modify(claims, ACC2) is False


@pytest.mark.unit
class TestUpdate:
    @pytest.mark.asyncio
    async def test_admin_of_other_account_is_forbidden(self, repos, store):
        with pytest.raises(ForbiddenError):
            await repos.accounts.update(
                admin_claims(ACC1, U1), AccountUpdateRequest(id=ACC2, city="Juneau")
            )
        assert not store.find(r"^UPDATE")

    @pytest.mark.asyncio
    async def test_admin_of_audience_updates(self, repos, store):
        await repos.accounts.update(
            admin_claims(ACC1, U1), AccountUpdateRequest(id=ACC1, city="Juneau")
        )
        assert store.statements == [
            (
                "UPDATE accounts SET city = ?, updated_at = ?"
                " WHERE id = ? AND archived_at IS NULL",
                ["Juneau", DEFAULT_NOW, ACC1],
            )
        ]

    @pytest.mark.asyncio
    async def test_empty_update_is_a_no_op(self, repos, store):
        await repos.accounts.update(internal_claims(), AccountUpdateRequest(id=ACC1))
        assert store.statements == []

    @pytest.mark.asyncio
    async def test_empty_reference_clears_column(self, repos, store):
        await repos.accounts.update(
            internal_claims(), AccountUpdateRequest(id=ACC1, billing_user_id="")
        )
        sql, args = store.statements[0]
        assert sql.startswith("UPDATE accounts SET billing_user_id = ?, updated_at = ?")
        assert args[0] is None

    @pytest.mark.asyncio
    async def test_rename_excludes_itself_from_probe(self, repos, store):
        await repos.accounts.update(
            internal_claims(), AccountUpdateRequest(id=ACC1, name="Acme 2")
        )
        assert store.statements[0] == (
            "SELECT 1 FROM accounts WHERE name = ? AND archived_at IS NULL"
            " AND id <> ? LIMIT 1",
            ["Acme 2", ACC1],
        )

    @pytest.mark.asyncio
    async def test_missing_row_is_not_found(self, repos, store):
        store.on(r"^UPDATE accounts", rowcount=0)
        with pytest.raises(NotFoundError):
            await repos.accounts.update(
                internal_claims(), AccountUpdateRequest(id=ACC1, city="Juneau")
            )

    @pytest.mark.asyncio
    async def test_allowed_status_transition(self, repos, store):
        store.on(r"^SELECT status FROM accounts", rows=[("pending",)])
        await repos.accounts.update(
            internal_claims(), AccountUpdateRequest(id=ACC1, status="active")
        )
        assert store.find(r"^UPDATE accounts SET status = \?")

    @pytest.mark.asyncio
    async def test_rejected_status_transition(self, repos, store):
        store.on(r"^SELECT status FROM accounts", rows=[("pending",)])
        with pytest.raises(BadRequestError) as exc_info:
            await repos.accounts.update(
                internal_claims(), AccountUpdateRequest(id=ACC1, status="disabled")
            )
        assert exc_info.value.has("status", "transition")
        assert not store.find(r"^UPDATE")


@pytest.mark.unit
class TestArchiveAndDelete:
    @pytest.mark.asyncio
    async def test_archive_cascades_to_memberships(self, repos, store):
        await repos.accounts.archive(internal_claims(), AccountArchiveRequest(id=ACC1))
        assert store.events == ["BEGIN", "COMMIT"]
        assert store.statements == [
            (
                "UPDATE accounts SET archived_at = ?, updated_at = ?"
                " WHERE id = ? AND archived_at IS NULL",
                [DEFAULT_NOW, DEFAULT_NOW, ACC1],
            ),
            (
                "UPDATE users_accounts SET archived_at = ?, updated_at = ?"
                " WHERE account_id = ? AND archived_at IS NULL",
                [DEFAULT_NOW, DEFAULT_NOW, ACC1],
            ),
        ]

    @pytest.mark.asyncio
    async def test_archive_of_archived_account(self, repos, store):
        store.on(r"^UPDATE accounts", rowcount=0)
        with pytest.raises(NotFoundError):
            await repos.accounts.archive(internal_claims(), AccountArchiveRequest(id=ACC1))
        assert store.events == ["BEGIN", "ROLLBACK"]
        assert not store.find(r"^UPDATE users_accounts")

    @pytest.mark.asyncio
    async def test_delete_removes_children_first(self, repos, store):
        await repos.accounts.delete(internal_claims(), AccountDeleteRequest(id=ACC1))
        assert store.events == ["BEGIN", "COMMIT"]
        assert store.sql == [
            "DELETE FROM users_accounts WHERE account_id = ?",
            "DELETE FROM account_preferences WHERE account_id = ?",
            "DELETE FROM accounts WHERE id = ?",
        ]

    @pytest.mark.asyncio
    async def test_delete_failure_rolls_back(self, repos, store):
        store.on(r"^DELETE FROM accounts", error=DatabaseError("boom"))
        with pytest.raises(DatabaseError):
            await repos.accounts.delete(internal_claims(), AccountDeleteRequest(id=ACC1))
        assert store.events == ["BEGIN", "ROLLBACK"]

    @pytest.mark.asyncio
    async def test_delete_requires_modify(self, repos, store):
        store.on(PROBE, rows=[(["user"],)])
        with pytest.raises(ForbiddenError):
            await repos.accounts.delete(
                account_claims(ACC1, U1), AccountDeleteRequest(id=ACC2)
            )
        assert store.events == []
