import asyncio
import json

import httpx
import pytest

from home_api.errors import AggregationDefect, UpstreamApiError, UpstreamAuthError
from home_api.services.questrade import QuestradeClient
from home_api.services.rate_limit import BrokerageQueues

from fakes import RecordingQueue, make_credential


def _build_client(handler) -> tuple[QuestradeClient, BrokerageQueues, list[httpx.Request]]:
	requests: list[httpx.Request] = []

	def record(request: httpx.Request) -> httpx.Response:
		requests.append(request)
		return handler(request)

	queues = BrokerageQueues(account=RecordingQueue("account"), market=RecordingQueue("market"))
	client = QuestradeClient(
		queues=queues,
		token_url="https://login.example.com/oauth2/token",
		transport=httpx.MockTransport(record),
	)
	return client, queues, requests


def test_get_account_numbers_sends_bearer_token_through_account_queue() -> None:
	client, queues, requests = _build_client(
		lambda request: httpx.Response(
			200,
			json={"accounts": [{"number": "111", "type": "TFSA"}, {"number": "222", "type": "RRSP"}]},
		),
	)

	numbers = asyncio.run(client.get_account_numbers(make_credential()))

	assert numbers == ["111", "222"]
	assert str(requests[0].url) == "https://api01.iq.questrade.com/v1/accounts"
	assert requests[0].headers["Authorization"] == "Bearer chris-access"
	assert queues.account.dispatched == 1
	assert queues.market.dispatched == 0


def test_get_account_balance_returns_cad_total_equity() -> None:
	client, _, requests = _build_client(
		lambda request: httpx.Response(
			200,
			json={
				"combinedBalances": [
					{"currency": "USD", "totalEquity": 22000.0},
					{"currency": "CAD", "totalEquity": 30000.5},
				],
			},
		),
	)

	balance = asyncio.run(client.get_account_balance(make_credential(), "111"))

	assert balance == 30000.5
	assert requests[0].url.path == "/v1/accounts/111/balances"


def test_get_account_balance_without_cad_entry_is_a_defect() -> None:
	client, _, _ = _build_client(
		lambda request: httpx.Response(
			200,
			json={"combinedBalances": [{"currency": "USD", "totalEquity": 22000.0}]},
		),
	)

	with pytest.raises(AggregationDefect, match="no CAD"):
		asyncio.run(client.get_account_balance(make_credential(), "111"))


def test_non_success_response_raises_upstream_api_error() -> None:
	client, _, _ = _build_client(lambda request: httpx.Response(429, text="Too many requests"))

	with pytest.raises(UpstreamApiError) as exc_info:
		asyncio.run(client.get_account_numbers(make_credential()))

	assert exc_info.value.status == 429
	assert exc_info.value.body == "Too many requests"
	assert exc_info.value.url == "https://api01.iq.questrade.com/v1/accounts"
	assert "chris-access" not in str(exc_info.value)
	assert str(exc_info.value) == "GET https://api01.iq.questrade.com/v1/accounts failed with status 429."


def test_transport_failure_raises_upstream_api_error_without_status() -> None:
	def handler(request: httpx.Request) -> httpx.Response:
		raise httpx.ConnectError("connection refused", request=request)

	client, _, _ = _build_client(handler)

	with pytest.raises(UpstreamApiError) as exc_info:
		asyncio.run(client.get_positions(make_credential(), "111"))

	assert exc_info.value.status is None


def test_quotes_and_symbols_go_through_market_queue() -> None:
	def handler(request: httpx.Request) -> httpx.Response:
		if request.url.path == "/v1/markets/quotes":
			return httpx.Response(
				200,
				json={"quotes": [{"symbol": "AAPL", "symbolId": 1, "lastTradePrice": 120.5, "openPrice": 119.0}]},
			)
		return httpx.Response(
			200,
			json={"symbols": [{"symbolId": 1, "description": "Apple Inc.", "prevDayClosePrice": 118.0}]},
		)

	client, queues, requests = _build_client(handler)
	credential = make_credential()

	quotes = asyncio.run(client.get_quotes(credential, [1, 2]))
	details = asyncio.run(client.get_symbol_details(credential, [1, 2]))

	assert quotes[0].last_trade_price == 120.5
	assert quotes[0].open_price == 119.0
	assert details[0].description == "Apple Inc."
	assert details[0].prev_day_close_price == 118.0
	assert [request.url.params["ids"] for request in requests] == ["1,2", "1,2"]
	assert queues.market.dispatched == 2
	assert queues.account.dispatched == 0


def test_empty_symbol_id_lists_skip_the_request() -> None:
	client, queues, requests = _build_client(lambda request: httpx.Response(500))

	assert asyncio.run(client.get_quotes(make_credential(), [])) == []
	assert asyncio.run(client.get_symbol_details(make_credential(), [])) == []
	assert requests == []
	assert queues.market.dispatched == 0


def test_get_positions_parses_open_quantity() -> None:
	client, _, _ = _build_client(
		lambda request: httpx.Response(
			200,
			json={
				"positions": [
					{"symbol": "AAPL", "symbolId": 1, "openQuantity": 10, "currentMarketValue": 1205},
					{"symbol": "MSFT", "symbolId": 2, "openQuantity": 0},
				],
			},
		),
	)

	positions = asyncio.run(client.get_positions(make_credential(), "111"))

	assert [(position.symbol_id, position.open_quantity) for position in positions] == [(1, 10), (2, 0)]


def test_exchange_refresh_token_returns_grant() -> None:
	client, queues, requests = _build_client(
		lambda request: httpx.Response(
			200,
			content=json.dumps(
				{
					"access_token": "new-access",
					"api_server": "https://api07.iq.questrade.com/",
					"expires_in": 1800,
					"refresh_token": "new-refresh",
					"token_type": "Bearer",
				},
			),
		),
	)

	grant = asyncio.run(client.exchange_refresh_token("old-refresh"))

	assert grant.access_token == "new-access"
	assert grant.api_server == "https://api07.iq.questrade.com/"
	assert requests[0].url.params["grant_type"] == "refresh_token"
	assert requests[0].url.params["refresh_token"] == "old-refresh"
	assert queues.account.dispatched == 1


def test_exchange_refresh_token_failure_raises_auth_error() -> None:
	client, _, _ = _build_client(lambda request: httpx.Response(400, text="Bad Request"))

	with pytest.raises(UpstreamAuthError) as exc_info:
		asyncio.run(client.exchange_refresh_token("old-refresh"))

	assert exc_info.value.status == 400
