from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

ACCOUNTS_CACHE = "accounts"
SYMBOLS_CACHE = "symbols"
EXCHANGE_RATE_CACHE = "exchange-rate"
CACHE_DOCUMENT_TYPES = (ACCOUNTS_CACHE, SYMBOLS_CACHE, EXCHANGE_RATE_CACHE)


def utc_now() -> datetime:
	"""Return the current UTC timestamp."""
	return datetime.now(timezone.utc)


def coerce_utc_datetime(value: datetime) -> datetime:
	"""Normalize persisted datetimes so naive SQLite values compare safely."""
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)

	return value.astimezone(timezone.utc)


class BrokerageCredential(SQLModel, table=True):
	owner: str = Field(primary_key=True, max_length=64)
	access_token: str
	refresh_token: str
	expiry: datetime = Field(nullable=False)
	api_server: str = Field(max_length=255)
	active: bool = Field(default=True, index=True)


class DailyBalance(SQLModel, table=True):
	day: date = Field(primary_key=True)
	balance: float = Field(default=0)
	updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class CacheDocument(SQLModel, table=True):
	type: str = Field(primary_key=True, max_length=32)
	payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
	updated_at: datetime = Field(default_factory=utc_now, nullable=False)
