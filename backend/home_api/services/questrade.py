from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Any

import httpx

from home_api.errors import AggregationDefect, UpstreamApiError, UpstreamAuthError
from home_api.models import BrokerageCredential
from home_api.schemas import (
	BrokerageAccount,
	CombinedBalance,
	Position,
	Quote,
	RefreshTokenGrant,
	SymbolDetail,
)
from home_api.services.rate_limit import BrokerageQueues, CallQueue

BALANCE_CURRENCY = "CAD"
logger = logging.getLogger(__name__)


def _join_ids(symbol_ids: Iterable[int]) -> str:
	return ",".join(str(symbol_id) for symbol_id in symbol_ids)


class QuestradeClient:
	"""Questrade REST calls, each admitted through the matching brokerage queue."""

	QUESTRADE_TOKEN_URL = "https://login.questrade.com/oauth2/token"
	ACCOUNTS_PATH = "v1/accounts"

	def __init__(
		self,
		queues: BrokerageQueues | None = None,
		token_url: str | None = None,
		timeout: float = 10.0,
		transport: httpx.AsyncBaseTransport | None = None,
	) -> None:
		self.queues = queues or BrokerageQueues()
		self.token_url = token_url or self.QUESTRADE_TOKEN_URL
		self.timeout = timeout
		self.transport = transport

	async def _send(
		self,
		queue: CallQueue,
		url: str,
		params: dict[str, str] | None = None,
		headers: dict[str, str] | None = None,
	) -> httpx.Response:
		async def dispatch() -> httpx.Response:
			async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
				return await client.get(url, params=params, headers=headers)

		try:
			return await queue.schedule(dispatch)
		except httpx.HTTPError as exc:
			logger.warning("Questrade request to %s failed: %s", url, exc)
			raise UpstreamApiError(url, None, str(exc)) from exc

	async def _get(
		self,
		credential: BrokerageCredential,
		path: str,
		queue: CallQueue,
		params: dict[str, str] | None = None,
	) -> dict[str, Any]:
		url = f"{credential.api_server}{path}"
		response = await self._send(
			queue,
			url,
			params=params,
			headers={"Authorization": f"Bearer {credential.access_token}"},
		)
		if not response.is_success:
			logger.warning(
				"Questrade GET %s for %s returned %s.",
				url,
				credential.owner,
				response.status_code,
			)
			raise UpstreamApiError(url, response.status_code, response.text)

		return response.json()

	async def exchange_refresh_token(self, refresh_token: str) -> RefreshTokenGrant:
		"""Trade a refresh token for a new access grant."""
		response = await self._send(
			self.queues.account,
			self.token_url,
			params={"grant_type": "refresh_token", "refresh_token": refresh_token},
		)
		if not response.is_success:
			logger.warning("Questrade token exchange returned %s.", response.status_code)
			raise UpstreamAuthError(response.status_code)

		return RefreshTokenGrant.model_validate(response.json())

	async def list_accounts(self, credential: BrokerageCredential) -> list[BrokerageAccount]:
		payload = await self._get(credential, self.ACCOUNTS_PATH, self.queues.account)
		return [BrokerageAccount.model_validate(item) for item in payload.get("accounts", [])]

	async def get_account_numbers(self, credential: BrokerageCredential) -> list[str]:
		return [account.number for account in await self.list_accounts(credential)]

	async def get_account_balance(self, credential: BrokerageCredential, account_number: str) -> float:
		"""Return the CAD total equity reported for one account."""
		payload = await self._get(
			credential,
			f"{self.ACCOUNTS_PATH}/{account_number}/balances",
			self.queues.account,
		)
		for item in payload.get("combinedBalances", []):
			balance = CombinedBalance.model_validate(item)
			if balance.currency == BALANCE_CURRENCY:
				return balance.total_equity

		raise AggregationDefect(
			f"Account {account_number} has no {BALANCE_CURRENCY} combined balance.",
		)

	async def get_positions(self, credential: BrokerageCredential, account_number: str) -> list[Position]:
		payload = await self._get(
			credential,
			f"{self.ACCOUNTS_PATH}/{account_number}/positions",
			self.queues.account,
		)
		return [Position.model_validate(item) for item in payload.get("positions", [])]

	async def get_quotes(self, credential: BrokerageCredential, symbol_ids: list[int]) -> list[Quote]:
		if not symbol_ids:
			return []

		payload = await self._get(
			credential,
			"v1/markets/quotes",
			self.queues.market,
			params={"ids": _join_ids(symbol_ids)},
		)
		return [Quote.model_validate(item) for item in payload.get("quotes", [])]

	async def get_symbol_details(
		self,
		credential: BrokerageCredential,
		symbol_ids: list[int],
	) -> list[SymbolDetail]:
		if not symbol_ids:
			return []

		payload = await self._get(
			credential,
			"v1/symbols",
			self.queues.market,
			params={"ids": _join_ids(symbol_ids)},
		)
		return [SymbolDetail.model_validate(item) for item in payload.get("symbols", [])]
