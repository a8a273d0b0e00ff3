from __future__ import annotations

import asyncio
from typing import Protocol

from home_api.models import BrokerageCredential


class BalanceSource(Protocol):
	async def get_account_numbers(self, credential: BrokerageCredential) -> list[str]: ...

	async def get_account_balance(self, credential: BrokerageCredential, account_number: str) -> float: ...


async def get_total_balance(brokerage: BalanceSource, credential: BrokerageCredential) -> float:
	"""Sum the CAD balances of every account one owner holds."""
	account_numbers = await brokerage.get_account_numbers(credential)
	balances = await asyncio.gather(
		*(brokerage.get_account_balance(credential, number) for number in account_numbers),
	)
	return sum(balances, 0.0)


async def get_aggregate_balance(
	brokerage: BalanceSource,
	credentials: list[BrokerageCredential],
) -> float:
	"""Sum balances across owners; any failing owner fails the whole pass."""
	totals = await asyncio.gather(
		*(get_total_balance(brokerage, credential) for credential in credentials),
	)
	return sum(totals, 0.0)
