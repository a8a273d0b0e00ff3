from __future__ import annotations

from datetime import timedelta
import logging
from typing import Protocol

from home_api.errors import UpstreamAuthError
from home_api.models import BrokerageCredential, coerce_utc_datetime
from home_api.schemas import RefreshTokenGrant
from home_api.services.balance_store import BalanceStore

EXPIRY_SAFETY_MARGIN = timedelta(seconds=30)
logger = logging.getLogger(__name__)


class TokenExchanger(Protocol):
	async def exchange_refresh_token(self, refresh_token: str) -> RefreshTokenGrant: ...


class CredentialStore:
	def __init__(self, store: BalanceStore, exchanger: TokenExchanger) -> None:
		self.store = store
		self.exchanger = exchanger

	async def list_active_credentials(self) -> list[BrokerageCredential]:
		"""Return every active credential, refreshing and persisting the expired ones.

		A failed token exchange aborts the whole call so callers never see a
		mix of usable and unusable credentials.
		"""
		credentials = self.store.list_active_credentials()
		refreshed: list[BrokerageCredential] = []

		for credential in credentials:
			if coerce_utc_datetime(credential.expiry) > self.store.now():
				refreshed.append(credential)
				continue

			refreshed.append(await self._refresh(credential))

		return refreshed

	async def _refresh(self, credential: BrokerageCredential) -> BrokerageCredential:
		logger.info("Refreshing expired Questrade token for %s.", credential.owner)
		try:
			grant = await self.exchanger.exchange_refresh_token(credential.refresh_token)
		except UpstreamAuthError as exc:
			exc.owner = credential.owner
			logger.warning("Questrade token refresh for %s failed with status %s.", credential.owner, exc.status)
			raise

		credential.access_token = grant.access_token
		credential.refresh_token = grant.refresh_token
		credential.api_server = grant.api_server
		credential.expiry = self.store.now() + _usable_lifetime(grant.expires_in)
		return self.store.save_credential(credential)


def _usable_lifetime(expires_in: int) -> timedelta:
	# Short-lived grants keep half their lifetime so the expiry stays in the future.
	lifetime = timedelta(seconds=expires_in)
	return max(lifetime - EXPIRY_SAFETY_MARGIN, lifetime / 2)
