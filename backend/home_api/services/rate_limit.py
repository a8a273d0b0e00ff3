from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
from time import monotonic
from typing import Protocol, TypeVar

ResultValue = TypeVar("ResultValue")
logger = logging.getLogger(__name__)


class CallQueue(Protocol):
	async def schedule(self, call: Callable[[], Awaitable[ResultValue]]) -> ResultValue: ...


class RequestQueue:
	"""Run calls one at a time, in arrival order, with a minimum gap between dispatches."""

	def __init__(
		self,
		name: str,
		min_interval_seconds: float,
		now: Callable[[], float] | None = None,
		sleep: Callable[[float], Awaitable[object]] | None = None,
	) -> None:
		self.name = name
		self.min_interval_seconds = min_interval_seconds
		self._now = now or monotonic
		self._sleep = sleep or asyncio.sleep
		self._lock = asyncio.Lock()
		self._last_dispatch: float | None = None
		self.dispatched = 0

	async def schedule(self, call: Callable[[], Awaitable[ResultValue]]) -> ResultValue:
		async with self._lock:
			if self._last_dispatch is not None:
				delay_seconds = self._last_dispatch + self.min_interval_seconds - self._now()
				if delay_seconds > 0:
					await self._sleep(delay_seconds)

			self._last_dispatch = self._now()
			self.dispatched += 1
			return await call()


def _account_queue() -> RequestQueue:
	return RequestQueue("account", 0.120)


def _market_queue() -> RequestQueue:
	return RequestQueue("market", 0.050)


@dataclass(slots=True)
class BrokerageQueues:
	"""Process-wide admission queues shared by every brokerage call site."""

	account: CallQueue = field(default_factory=_account_queue)
	market: CallQueue = field(default_factory=_market_queue)

	@classmethod
	def from_intervals(cls, account_interval_ms: int, market_interval_ms: int) -> BrokerageQueues:
		logger.debug(
			"Brokerage queues spaced at %sms (account) and %sms (market).",
			account_interval_ms,
			market_interval_ms,
		)
		return cls(
			account=RequestQueue("account", account_interval_ms / 1000),
			market=RequestQueue("market", market_interval_ms / 1000),
		)
