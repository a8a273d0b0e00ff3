from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
import logging

from home_api.models import ACCOUNTS_CACHE, EXCHANGE_RATE_CACHE, SYMBOLS_CACHE
from home_api.schemas import (
	AccountsCache,
	CacheDocumentPayload,
	DashboardResponse,
	ExchangeRateCache,
	ExchangeRateRead,
	SymbolsCache,
	TotalPortfolio,
)
from home_api.services.balance_store import BalanceStore
from home_api.services.refresh import InvestmentRefresher

DEFAULT_HISTORY_DAYS = 365
logger = logging.getLogger(__name__)


def calculate_change_percent(latest: float, yesterday: float | None) -> float:
	if not yesterday or yesterday <= 0:
		return 0.0

	return round(((latest - yesterday) / yesterday) * 100, 2)


def calculate_balance_ratio(latest: float, yesterday: float | None) -> float:
	if not yesterday or yesterday <= 0:
		return 0.0

	return latest / yesterday


def _yesterday_balance(store: BalanceStore) -> float | None:
	snapshot = store.get_snapshot_for_date(store.today() - timedelta(days=1))
	if snapshot is None:
		logger.info("No balance snapshot stored for yesterday.")
		return None
	return snapshot.balance


async def get_current_balance(refresher: InvestmentRefresher) -> float:
	"""Return today's balance, recomputing it when the stored one is stale."""
	store = refresher.store
	snapshot = store.get_today_snapshot_if_fresh()
	if snapshot is not None:
		return snapshot.balance

	total = await refresher.fetch_aggregate_balance()
	if total > 0:
		store.upsert_daily_snapshot(total)
		return total

	return store.get_latest_snapshot().balance


async def get_forced_balance(refresher: InvestmentRefresher) -> float:
	return await refresher.fetch_aggregate_balance()


def get_balance_ratio(store: BalanceStore) -> float:
	latest = store.get_latest_snapshot().balance
	yesterday = _yesterday_balance(store)
	logger.info("Latest balance %s, yesterday %s.", latest, yesterday)
	return calculate_balance_ratio(latest, yesterday)


async def _read_or_populate(
	store: BalanceStore,
	document_type: str,
	populate: Callable[[], Awaitable[object]],
) -> CacheDocumentPayload | None:
	document = store.read_singleton(document_type)
	if document is not None:
		return document

	try:
		await populate()
	except Exception:
		logger.exception("Populating the missing %s cache failed.", document_type)

	return store.read_singleton(document_type)


async def build_dashboard(
	refresher: InvestmentRefresher,
	history_days: int = DEFAULT_HISTORY_DAYS,
) -> DashboardResponse:
	"""Compose the dashboard from stored data, filling absent caches once."""
	store = refresher.store
	latest_balance = store.get_latest_snapshot().balance
	change_percent = calculate_change_percent(latest_balance, _yesterday_balance(store))
	history = store.get_historical_snapshots(history_days)

	accounts_cache = await _read_or_populate(store, ACCOUNTS_CACHE, refresher.refresh_accounts_cache)
	symbols_cache = await _read_or_populate(store, SYMBOLS_CACHE, refresher.refresh_symbols_cache)
	exchange_rate_cache = await _read_or_populate(
		store,
		EXCHANGE_RATE_CACHE,
		refresher.refresh_exchange_rate_cache,
	)

	now = store.now()
	accounts = accounts_cache.accounts if isinstance(accounts_cache, AccountsCache) else []
	symbols = symbols_cache.symbols if isinstance(symbols_cache, SymbolsCache) else []
	cache_stamps = [
		cache.updated_at
		for cache in (symbols_cache, accounts_cache)
		if cache is not None and cache.updated_at is not None
	]

	if isinstance(exchange_rate_cache, ExchangeRateCache):
		exchange_rate = ExchangeRateRead(
			usd_to_cad=exchange_rate_cache.usd_to_cad,
			updated_at=exchange_rate_cache.updated_at or now,
		)
	else:
		exchange_rate = ExchangeRateRead(usd_to_cad=0, updated_at=now)

	return DashboardResponse(
		total_portfolio=TotalPortfolio(
			amount=latest_balance,
			change_percent=change_percent,
			history=history,
		),
		accounts=accounts,
		symbols=symbols,
		exchange_rate=exchange_rate,
		last_updated=max(cache_stamps, default=now),
	)
