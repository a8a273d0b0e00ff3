from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from home_api.settings import Settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
	def notify(self, message: str) -> None: ...


class TelegramNotifier:
	"""Send one-way Telegram messages without ever blocking or failing the caller."""

	TELEGRAM_API_URL = "https://api.telegram.org"

	def __init__(
		self,
		bot_token: str | None = None,
		chat_id: str | None = None,
		timeout: float = 10.0,
		transport: httpx.AsyncBaseTransport | None = None,
	) -> None:
		self.bot_token = bot_token
		self.chat_id = chat_id
		self.timeout = timeout
		self.transport = transport
		self._pending: set[asyncio.Task[None]] = set()

	@classmethod
	def from_settings(cls, settings: Settings) -> TelegramNotifier:
		return cls(
			bot_token=settings.telegram_bot_token_value(),
			chat_id=settings.telegram_chat_id_value(),
			timeout=settings.http_timeout_seconds,
		)

	@property
	def enabled(self) -> bool:
		return bool(self.bot_token and self.chat_id)

	def notify(self, message: str) -> None:
		if not self.enabled:
			logger.debug("Telegram notifications disabled; dropping message: %s", message)
			return

		try:
			task = asyncio.get_running_loop().create_task(self._send(message))
		except RuntimeError:
			logger.warning("No running event loop; dropping notification: %s", message)
			return

		self._pending.add(task)
		task.add_done_callback(self._pending.discard)

	async def _send(self, message: str) -> None:
		url = f"{self.TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage"
		try:
			async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
				response = await client.post(url, json={"chat_id": self.chat_id, "text": message})
				response.raise_for_status()
		except httpx.HTTPError as exc:
			logger.warning("Telegram notification failed: %s", exc.__class__.__name__)

	async def drain(self) -> None:
		"""Wait for in-flight notifications; used on shutdown."""
		if self._pending:
			await asyncio.gather(*self._pending, return_exceptions=True)
