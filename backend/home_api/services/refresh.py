from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
import logging
from typing import Protocol

from home_api.models import BrokerageCredential
from home_api.schemas import (
	AccountBalance,
	AccountsCache,
	BrokerageAccount,
	ExchangeRateCache,
	Position,
	Quote,
	SymbolDetail,
	SymbolPerformance,
	SymbolsCache,
)
from home_api.services.balance_store import BalanceStore
from home_api.services.balances import get_aggregate_balance
from home_api.services.credentials import CredentialStore
from home_api.services.notifications import Notifier

logger = logging.getLogger(__name__)


class Brokerage(Protocol):
	async def list_accounts(self, credential: BrokerageCredential) -> list[BrokerageAccount]: ...

	async def get_account_numbers(self, credential: BrokerageCredential) -> list[str]: ...

	async def get_account_balance(self, credential: BrokerageCredential, account_number: str) -> float: ...

	async def get_positions(self, credential: BrokerageCredential, account_number: str) -> list[Position]: ...

	async def get_quotes(self, credential: BrokerageCredential, symbol_ids: list[int]) -> list[Quote]: ...

	async def get_symbol_details(
		self,
		credential: BrokerageCredential,
		symbol_ids: list[int],
	) -> list[SymbolDetail]: ...


class RateProvider(Protocol):
	async def fetch_rate(self, from_currency: str, to_currency: str) -> float: ...


def format_amount(amount: float) -> str:
	return f"${amount:,.2f}"


def calculate_day_change_percent(
	last_trade_price: float | None,
	open_price: float | None,
	previous_close: float | None,
) -> float:
	"""Percent move against the previous close, or the open when no close is known."""
	base_price = previous_close if previous_close is not None else open_price
	if base_price is None or base_price <= 0 or last_trade_price is None:
		return 0.0

	return round(((last_trade_price - base_price) / base_price) * 100, 2)


def collect_open_symbols(positions: Iterable[Position]) -> dict[int, Position]:
	"""Keep the first open position seen for each symbol id."""
	symbols: dict[int, Position] = {}
	for position in positions:
		if position.open_quantity > 0 and position.symbol_id not in symbols:
			symbols[position.symbol_id] = position
	return symbols


def build_symbol_performance(
	quotes: Iterable[Quote],
	details: Iterable[SymbolDetail],
) -> list[SymbolPerformance]:
	details_by_id = {detail.symbol_id: detail for detail in details}
	performance: list[SymbolPerformance] = []

	for quote in quotes:
		detail = details_by_id.get(quote.symbol_id)
		performance.append(
			SymbolPerformance(
				symbol=quote.symbol,
				symbol_id=quote.symbol_id,
				description=detail.description if detail else "",
				day_change_percent=calculate_day_change_percent(
					quote.last_trade_price,
					quote.open_price,
					detail.prev_day_close_price if detail else None,
				),
			),
		)

	return performance


class InvestmentRefresher:
	"""Recompute balances from Questrade and rewrite the dashboard caches."""

	def __init__(
		self,
		store: BalanceStore,
		credentials: CredentialStore,
		brokerage: Brokerage,
		rates: RateProvider,
		notifier: Notifier,
	) -> None:
		self.store = store
		self.credentials = credentials
		self.brokerage = brokerage
		self.rates = rates
		self.notifier = notifier

	async def fetch_aggregate_balance(self) -> float:
		credentials = await self.credentials.list_active_credentials()
		return await get_aggregate_balance(self.brokerage, credentials)

	async def refresh_balance(self) -> None:
		"""Scheduled entry point; never raises."""
		try:
			total = await self.fetch_aggregate_balance()
			logger.info("Fetched Questrade balance: %s", format_amount(total))
			if total > 0:
				self.store.upsert_daily_snapshot(total)
		except Exception as exc:
			self._report_failure("Error updating Questrade balance", exc)

		await self._run_guarded("accounts cache", self.refresh_accounts_cache)
		await self._run_guarded("symbols cache", self.refresh_symbols_cache)
		await self._run_guarded("exchange rate cache", self.refresh_exchange_rate_cache)

	async def _run_guarded(self, label: str, refresh: Callable[[], Awaitable[object]]) -> None:
		try:
			await refresh()
		except Exception as exc:
			self._report_failure(f"Error updating {label}", exc)

	def _report_failure(self, message: str, exc: Exception) -> None:
		logger.exception("%s.", message)
		self.notifier.notify(f"{message}: {exc.__class__.__name__}")

	async def refresh_accounts_cache(self) -> AccountsCache:
		balances: list[AccountBalance] = []
		for credential in await self.credentials.list_active_credentials():
			for account in await self.brokerage.list_accounts(credential):
				balance = await self.brokerage.get_account_balance(credential, account.number)
				balances.append(
					AccountBalance(
						account_number=account.number,
						account_type=account.type,
						owner=credential.owner,
						balance=balance,
					),
				)

		cache = self.store.write_singleton(AccountsCache(accounts=balances))
		logger.info("Updated accounts cache with %s accounts.", len(balances))
		return cache

	async def refresh_symbols_cache(self) -> SymbolsCache | None:
		positions: list[Position] = []
		for credential in await self.credentials.list_active_credentials():
			for account in await self.brokerage.list_accounts(credential):
				positions.extend(await self.brokerage.get_positions(credential, account.number))

		open_symbols = collect_open_symbols(positions)
		symbols: list[SymbolPerformance] = []
		if open_symbols:
			# Position collection can outlive a token, so re-read before the market calls.
			fresh_credentials = await self.credentials.list_active_credentials()
			if not fresh_credentials:
				logger.info("No credentials available for market data call.")
				return None

			representative = fresh_credentials[0]
			symbol_ids = list(open_symbols)
			quotes, details = await asyncio.gather(
				self.brokerage.get_quotes(representative, symbol_ids),
				self.brokerage.get_symbol_details(representative, symbol_ids),
			)
			symbols = build_symbol_performance(quotes, details)

		cache = self.store.write_singleton(SymbolsCache(symbols=symbols))
		logger.info("Updated symbols cache with %s symbols.", len(symbols))
		return cache

	async def refresh_exchange_rate_cache(self) -> ExchangeRateCache:
		usd_to_cad = await self.rates.fetch_rate("USD", "CAD")
		cache = self.store.write_singleton(ExchangeRateCache(usd_to_cad=usd_to_cad))
		logger.info("Updated exchange rate cache: 1 USD = %s CAD", usd_to_cad)
		return cache
