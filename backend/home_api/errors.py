from __future__ import annotations


class HomeApiError(RuntimeError):
	"""Base class for failures raised by the investment balance subsystem."""


class UpstreamAuthError(HomeApiError):
	"""Raised when the brokerage refuses to exchange a refresh token."""

	def __init__(self, status: int | None, owner: str | None = None) -> None:
		self.status = status
		self.owner = owner
		target = f" for {owner}" if owner else ""
		super().__init__(f"Token refresh failed{target} with status {status}.")


class UpstreamApiError(HomeApiError):
	"""Raised when a brokerage or exchange-rate call returns a non-success response.

	The response body is kept on ``body`` only; the message carries URL and status
	so logged tracebacks never echo upstream payloads.
	"""

	def __init__(self, url: str, status: int | None, body: str = "") -> None:
		self.url = url
		self.status = status
		self.body = body
		super().__init__(f"GET {url} failed with status {status}.")


class CacheReadError(HomeApiError):
	"""Raised when stored balances, credentials or cache documents cannot be read."""


class CacheWriteError(HomeApiError):
	"""Raised when stored balances, credentials or cache documents cannot be written."""


class AggregationDefect(HomeApiError):
	"""Raised when an upstream payload lacks data the aggregation relies on."""
