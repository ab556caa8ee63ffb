"""
Name: Account Preference Repository Tests

Responsibilities:
  - Test Set (upsert on the primary key, value format validation)
  - Test reads, archive and delete by (account_id, name)
"""

import pytest

from saaskit.crosscutting.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saaskit.domain.entities import AccountPreferenceName
from saaskit.domain.requests import (
    AccountPreferenceArchiveRequest,
    AccountPreferenceDeleteRequest,
    AccountPreferenceFindByAccountIDRequest,
    AccountPreferenceReadRequest,
    AccountPreferenceSetRequest,
)
from saaskit.testing import DEFAULT_NOW, account_claims, admin_claims, internal_claims

ACC1 = "6b8d7c5f-8a92-4ba3-9eb5-cf607182a3b4"
U1 = "7c9e8d6a-9ba3-4cb4-8fc6-d07182a3b4c5"


@pytest.mark.unit
class TestSet:
    @pytest.mark.asyncio
    async def test_upserts_on_primary_key(self, repos, store):
        req = AccountPreferenceSetRequest(
            account_id=ACC1, name="datetime_format", value="2006-01-02 at 3:04PM MST"
        )
        pref = await repos.preferences.set(admin_claims(ACC1, U1), req)
        assert pref.name == AccountPreferenceName.DATETIME_FORMAT
        assert pref.value == "2006-01-02 at 3:04PM MST"
        assert pref.archived_at is None

        sql, args = store.statements[0]
        assert sql == (
            "INSERT INTO account_preferences"
            " (account_id, name, value, created_at, updated_at) VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT ON CONSTRAINT account_preferences_pkey"
            " DO UPDATE SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at,"
            " archived_at = ?"
            " RETURNING account_id, name, value, created_at, updated_at, archived_at"
        )
        assert args == [
            ACC1,
            "datetime_format",
            "2006-01-02 at 3:04PM MST",
            DEFAULT_NOW,
            DEFAULT_NOW,
            None,
        ]

    @pytest.mark.asyncio
    async def test_rejects_bad_format(self, repos, store):
        req = AccountPreferenceSetRequest(
            account_id=ACC1, name="datetime_format", value="xxxxxx"
        )
        with pytest.raises(BadRequestError) as exc_info:
            await repos.preferences.set(internal_claims(), req)
        assert exc_info.value.has("value", "preference_value")
        assert store.statements == []

    @pytest.mark.asyncio
    async def test_rejects_unknown_name(self, repos, store):
        req = AccountPreferenceSetRequest(account_id=ACC1, name="color", value="red")
        with pytest.raises(BadRequestError) as exc_info:
            await repos.preferences.set(internal_claims(), req)
        assert exc_info.value.has("name", "oneof")

    @pytest.mark.asyncio
    async def test_plain_user_cannot_set(self, repos, store):
        req = AccountPreferenceSetRequest(account_id=ACC1, name="time_format", value="3:04PM")
        store.on(r"^SELECT roles FROM users_accounts", rows=[(["user"],)])
        with pytest.raises(ForbiddenError):
            await repos.preferences.set(account_claims(ACC1, U1), req)
        assert not store.find(r"^INSERT")


@pytest.mark.unit
class TestReadArchiveDelete:
    @pytest.mark.asyncio
    async def test_read_missing(self, repos, store):
        req = AccountPreferenceReadRequest(account_id=ACC1, name="date_format")
        with pytest.raises(NotFoundError):
            await repos.preferences.read(account_claims(ACC1, U1), req)
        assert store.sql[0].endswith(
            "FROM account_preferences WHERE account_id = ? AND name = ?"
            " AND archived_at IS NULL LIMIT 1"
        )

    @pytest.mark.asyncio
    async def test_find_by_account(self, repos, store):
        store.on(
            r"^SELECT account_id, name, value",
            rows=[(ACC1, "time_format", "15:04", DEFAULT_NOW, DEFAULT_NOW, None)],
        )
        prefs = await repos.preferences.find_by_account_id(
            internal_claims(), AccountPreferenceFindByAccountIDRequest(account_id=ACC1)
        )
        assert [p.name for p in prefs] == [AccountPreferenceName.TIME_FORMAT]

    @pytest.mark.asyncio
    async def test_archive_and_delete(self, repos, store):
        await repos.preferences.archive(
            internal_claims(),
            AccountPreferenceArchiveRequest(account_id=ACC1, name="date_format"),
        )
        await repos.preferences.delete(
            internal_claims(),
            AccountPreferenceDeleteRequest(account_id=ACC1, name="date_format"),
        )
        assert store.sql == [
            "UPDATE account_preferences SET archived_at = ?, updated_at = ?"
            " WHERE account_id = ? AND name = ? AND archived_at IS NULL",
            "DELETE FROM account_preferences WHERE account_id = ? AND name = ?",
        ]

    @pytest.mark.asyncio
    async def test_delete_missing(self, repos, store):
        store.on(r"^DELETE", rowcount=0)
        with pytest.raises(NotFoundError):
            await repos.preferences.delete(
                internal_claims(),
                AccountPreferenceDeleteRequest(account_id=ACC1, name="date_format"),
            )
