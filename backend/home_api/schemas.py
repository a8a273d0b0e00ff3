from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, TypeAdapter
from pydantic.alias_generators import to_camel

from home_api.models import coerce_utc_datetime


def _serialize_utc(value: datetime) -> str:
	return coerce_utc_datetime(value).isoformat().replace("+00:00", "Z")


UtcDatetime = Annotated[datetime, PlainSerializer(_serialize_utc, return_type=str, when_used="json")]


class QuestradePayload(BaseModel):
	"""Base for camelCase payloads returned by the Questrade REST API."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RefreshTokenGrant(BaseModel):
	model_config = ConfigDict(extra="ignore")

	access_token: str
	refresh_token: str
	api_server: str
	expires_in: int
	token_type: str = "Bearer"


class BrokerageAccount(QuestradePayload):
	number: str
	type: str


class CombinedBalance(QuestradePayload):
	currency: str
	total_equity: float


class Position(QuestradePayload):
	symbol: str
	symbol_id: int
	open_quantity: float = 0


class Quote(QuestradePayload):
	symbol: str
	symbol_id: int
	last_trade_price: Optional[float] = None
	open_price: Optional[float] = None


class SymbolDetail(QuestradePayload):
	symbol_id: int
	description: str = ""
	prev_day_close_price: Optional[float] = None


class ApiResponse(BaseModel):
	"""Base for response bodies; the dashboard frontend reads camelCase keys."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountBalance(ApiResponse):
	account_number: str
	account_type: str
	owner: str
	balance: float


class SymbolPerformance(ApiResponse):
	symbol: str
	symbol_id: int
	description: str
	day_change_percent: float


class AccountsCache(BaseModel):
	type: Literal["accounts"] = "accounts"
	accounts: list[AccountBalance] = Field(default_factory=list)
	updated_at: Optional[UtcDatetime] = None


class SymbolsCache(BaseModel):
	type: Literal["symbols"] = "symbols"
	symbols: list[SymbolPerformance] = Field(default_factory=list)
	updated_at: Optional[UtcDatetime] = None


class ExchangeRateCache(BaseModel):
	type: Literal["exchange-rate"] = "exchange-rate"
	usd_to_cad: float
	updated_at: Optional[UtcDatetime] = None


CacheDocumentPayload = Annotated[
	Union[AccountsCache, SymbolsCache, ExchangeRateCache],
	Field(discriminator="type"),
]
cache_document_adapter: TypeAdapter[CacheDocumentPayload] = TypeAdapter(CacheDocumentPayload)


class HistoryPoint(ApiResponse):
	date: str
	value: float


class TotalPortfolio(ApiResponse):
	amount: float
	change_percent: float
	history: list[HistoryPoint]


class ExchangeRateRead(ApiResponse):
	usd_to_cad: float
	updated_at: UtcDatetime


class DashboardResponse(ApiResponse):
	total_portfolio: TotalPortfolio
	accounts: list[AccountBalance]
	symbols: list[SymbolPerformance]
	exchange_rate: ExchangeRateRead
	last_updated: UtcDatetime


class ForcedBalanceRead(ApiResponse):
	amount: float
