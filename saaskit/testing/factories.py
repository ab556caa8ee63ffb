"""
Name: Request factories + mock creators

Responsibilities:
  - Build valid requests with unique natural keys (name, email)
  - Create fixture rows through the repositories under internal claims

Notes:
  - Overrides win over defaults: account_create_request(name="Acme")
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import uuid4

from ..domain.entities import Account, User, UserAccount, UserAccountRole
from ..domain.requests import (
    AccountCreateRequest,
    SignupAccount,
    SignupRequest,
    SignupUser,
    UserAccountCreateRequest,
    UserCreateRequest,
)
from ..infrastructure.repositories.postgres import (
    PostgresAccountRepository,
    PostgresUserAccountRepository,
    PostgresUserRepository,
)
from .claims import internal_claims

DEFAULT_PASSWORD = "p@ss-W0rd"


def _suffix() -> str:
    return uuid4().hex[:8]


def account_create_request(**overrides: Any) -> AccountCreateRequest:
    data = {
        "name": f"Account {_suffix()}",
        "address1": "221 Main St.",
        "address2": "Suite 100",
        "city": "Valdez",
        "region": "AK",
        "country": "USA",
        "zipcode": "99686",
    }
    data.update(overrides)
    return AccountCreateRequest(**data)


def user_create_request(**overrides: Any) -> UserCreateRequest:
    data = {
        "first_name": "Lee",
        "last_name": "Brown",
        "email": f"lee.{_suffix()}@example.com",
        "password": DEFAULT_PASSWORD,
        "password_confirm": DEFAULT_PASSWORD,
    }
    data.update(overrides)
    return UserCreateRequest(**data)


def signup_request(
    account: Optional[dict] = None, user: Optional[dict] = None
) -> SignupRequest:
    acc = {
        "name": f"Account {_suffix()}",
        "address1": "221 Main St.",
        "city": "Valdez",
        "region": "AK",
        "country": "USA",
        "zipcode": "99686",
    }
    usr = {
        "first_name": "Lee",
        "last_name": "Brown",
        "email": f"lee.{_suffix()}@example.com",
        "password": DEFAULT_PASSWORD,
        "password_confirm": DEFAULT_PASSWORD,
    }
    acc.update(account or {})
    usr.update(user or {})
    return SignupRequest(account=SignupAccount(**acc), user=SignupUser(**usr))


async def mock_account(
    accounts: PostgresAccountRepository,
    now: Optional[datetime] = None,
    **overrides: Any,
) -> Account:
    return await accounts.create(
        internal_claims(), account_create_request(**overrides), now
    )


async def mock_user(
    users: PostgresUserRepository,
    now: Optional[datetime] = None,
    **overrides: Any,
) -> User:
    return await users.create(internal_claims(), user_create_request(**overrides), now)


async def mock_user_account(
    memberships: PostgresUserAccountRepository,
    user_id: str,
    account_id: str,
    roles: Iterable[str] = (UserAccountRole.USER.value,),
    now: Optional[datetime] = None,
) -> UserAccount:
    req = UserAccountCreateRequest(
        user_id=user_id, account_id=account_id, roles=list(roles)
    )
    return await memberships.create(internal_claims(), req, now)
