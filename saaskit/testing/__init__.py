"""
Test harness hooks: reloj fijo, claims, factories y store en memoria.
"""

from .claims import account_claims, admin_claims, internal_claims, user_claims
from .clock import DEFAULT_NOW, FixedClock
from .factories import (
    DEFAULT_PASSWORD,
    account_create_request,
    mock_account,
    mock_user,
    mock_user_account,
    signup_request,
    user_create_request,
)
from .fake_store import FakeStore

__all__ = [
    "FixedClock",
    "DEFAULT_NOW",
    "FakeStore",
    "internal_claims",
    "account_claims",
    "admin_claims",
    "user_claims",
    "DEFAULT_PASSWORD",
    "account_create_request",
    "user_create_request",
    "signup_request",
    "mock_account",
    "mock_user",
    "mock_user_account",
]
