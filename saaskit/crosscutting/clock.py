"""
Name: Clock helpers

Responsibilities:
  - Normalize the caller supplied `now` (UTC, millisecond resolution)
  - Provide the production wall clock

Notes:
  - A zero/None `now` means "use server time"
  - Naive datetimes are treated as UTC
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

# Instante "cero": el caller no pasó timestamp y se usa la hora del servidor.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return truncate_ms(datetime.now(timezone.utc))


def truncate_ms(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def is_zero(value: datetime | None) -> bool:
    if value is None:
        return True
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value == ZERO_TIME


def normalize_now(now: datetime | None) -> datetime:
    """UTC + truncado a milisegundos; None/cero => hora del servidor."""
    if is_zero(now):
        return SystemClock().now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return truncate_ms(now.astimezone(timezone.utc))
