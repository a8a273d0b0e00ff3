from __future__ import annotations

import logging

import httpx

from home_api.errors import AggregationDefect, UpstreamApiError

logger = logging.getLogger(__name__)


class FrankfurterRateProvider:
	FRANKFURTER_URL = "https://api.frankfurter.dev/v1/latest"

	def __init__(
		self,
		url: str | None = None,
		timeout: float = 10.0,
		transport: httpx.AsyncBaseTransport | None = None,
	) -> None:
		self.url = url or self.FRANKFURTER_URL
		self.timeout = timeout
		self.transport = transport

	async def fetch_rate(self, from_currency: str, to_currency: str) -> float:
		"""Fetch a conversion rate using Frankfurter's ECB-backed feed."""
		from_code = from_currency.strip().upper()
		to_code = to_currency.strip().upper()
		try:
			async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
				response = await client.get(
					self.url,
					params={"base": from_code, "symbols": to_code},
				)
				response.raise_for_status()
				payload = response.json()
		except httpx.HTTPStatusError as exc:
			logger.warning("FX provider returned %s for %s/%s.", exc.response.status_code, from_code, to_code)
			raise UpstreamApiError(self.url, exc.response.status_code, exc.response.text) from exc
		except httpx.HTTPError as exc:
			logger.warning("FX provider request failed for %s/%s: %s", from_code, to_code, exc)
			raise UpstreamApiError(self.url, None, str(exc)) from exc

		rate = payload.get("rates", {}).get(to_code)
		if rate in (None, 0):
			raise AggregationDefect(f"No FX rate returned for {from_code}/{to_code}.")

		return float(rate)
