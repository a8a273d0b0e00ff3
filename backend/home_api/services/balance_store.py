from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from home_api.errors import CacheReadError, CacheWriteError
from home_api.models import (
	CACHE_DOCUMENT_TYPES,
	BrokerageCredential,
	CacheDocument,
	DailyBalance,
	coerce_utc_datetime,
	utc_now,
)
from home_api.schemas import CacheDocumentPayload, HistoryPoint, cache_document_adapter

DEFAULT_FRESHNESS = timedelta(minutes=15)
logger = logging.getLogger(__name__)


class BalanceStore:
	"""Daily balance snapshots, singleton cache documents and stored credentials.

	Snapshot days are UTC calendar days. Every write commits immediately; a
	failed write rolls the session back and raises ``CacheWriteError``.
	"""

	def __init__(
		self,
		session: Session,
		freshness: timedelta = DEFAULT_FRESHNESS,
		now: Callable[[], datetime] | None = None,
	) -> None:
		self.session = session
		self.freshness = freshness
		self._now = now or utc_now

	def now(self) -> datetime:
		return coerce_utc_datetime(self._now())

	def today(self) -> date:
		return self.now().date()

	def _commit(self, action: str) -> None:
		try:
			self.session.commit()
		except SQLAlchemyError as exc:
			self.session.rollback()
			raise CacheWriteError(f"Could not {action}.") from exc

	def get_latest_snapshot(self) -> DailyBalance:
		try:
			latest = self.session.exec(
				select(DailyBalance).order_by(DailyBalance.day.desc()).limit(1),
			).first()
		except SQLAlchemyError as exc:
			raise CacheReadError("Could not load the latest balance snapshot.") from exc

		if latest is None:
			return DailyBalance(day=self.today(), balance=0, updated_at=self.now())
		return latest

	def get_snapshot_for_date(self, day: date) -> DailyBalance | None:
		try:
			return self.session.get(DailyBalance, day)
		except SQLAlchemyError as exc:
			raise CacheReadError(f"Could not load the balance snapshot for {day}.") from exc

	def get_today_snapshot_if_fresh(self) -> DailyBalance | None:
		snapshot = self.get_snapshot_for_date(self.today())
		if snapshot is None:
			return None

		if self.now() - coerce_utc_datetime(snapshot.updated_at) > self.freshness:
			return None
		return snapshot

	def upsert_daily_snapshot(self, balance: float) -> DailyBalance:
		today = self.today()
		snapshot = self.get_snapshot_for_date(today)
		if snapshot is None:
			snapshot = DailyBalance(day=today)

		snapshot.balance = balance
		snapshot.updated_at = self.now()
		self.session.add(snapshot)
		self._commit(f"store the balance snapshot for {today}")
		self.session.refresh(snapshot)
		return snapshot

	def get_historical_snapshots(self, days: int) -> list[HistoryPoint]:
		cutoff = self.today() - timedelta(days=days)
		try:
			snapshots = self.session.exec(
				select(DailyBalance)
				.where(DailyBalance.day >= cutoff)
				.order_by(DailyBalance.day.asc()),
			).all()
		except SQLAlchemyError as exc:
			raise CacheReadError("Could not load balance history.") from exc

		return [
			HistoryPoint(date=snapshot.day.isoformat(), value=snapshot.balance)
			for snapshot in snapshots
		]

	def read_singleton(self, document_type: str) -> CacheDocumentPayload | None:
		if document_type not in CACHE_DOCUMENT_TYPES:
			raise ValueError(f"Unsupported cache document type: {document_type}")

		try:
			record = self.session.get(CacheDocument, document_type)
		except SQLAlchemyError as exc:
			raise CacheReadError(f"Could not load the {document_type} cache.") from exc

		if record is None:
			return None

		try:
			return cache_document_adapter.validate_python(
				{
					**record.payload,
					"type": record.type,
					"updated_at": coerce_utc_datetime(record.updated_at),
				},
			)
		except ValidationError as exc:
			raise CacheReadError(f"Stored {document_type} cache is malformed.") from exc

	def write_singleton(self, document: CacheDocumentPayload) -> CacheDocumentPayload:
		"""Replace the cache document of the same type and stamp ``updated_at``."""
		try:
			record = self.session.get(CacheDocument, document.type)
		except SQLAlchemyError as exc:
			raise CacheReadError(f"Could not load the {document.type} cache.") from exc

		updated_at = self.now()
		if record is None:
			record = CacheDocument(type=document.type)
		else:
			# Readers compare stamps, so successive writes never reuse one.
			previous = coerce_utc_datetime(record.updated_at)
			if updated_at <= previous:
				updated_at = previous + timedelta(microseconds=1)

		record.payload = document.model_dump(mode="json", exclude={"type", "updated_at"})
		record.updated_at = updated_at
		self.session.add(record)
		self._commit(f"store the {document.type} cache")
		return document.model_copy(update={"updated_at": updated_at})

	def list_active_credentials(self) -> list[BrokerageCredential]:
		try:
			return list(
				self.session.exec(
					select(BrokerageCredential)
					.where(BrokerageCredential.active == True)  # noqa: E712
					.order_by(BrokerageCredential.owner),
				),
			)
		except SQLAlchemyError as exc:
			raise CacheReadError("Could not load brokerage credentials.") from exc

	def save_credential(self, credential: BrokerageCredential) -> BrokerageCredential:
		try:
			stored = self.session.merge(credential)
		except SQLAlchemyError as exc:
			self.session.rollback()
			raise CacheWriteError(f"Could not store the credential for {credential.owner}.") from exc

		self._commit(f"store the credential for {credential.owner}")
		return stored
