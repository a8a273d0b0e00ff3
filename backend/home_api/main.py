from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
import logging
from typing import Annotated

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session

from home_api.database import engine, get_session, init_db
from home_api.schemas import DashboardResponse, ForcedBalanceRead
from home_api.security import verify_api_token
from home_api.services.balance_store import BalanceStore
from home_api.services.credentials import CredentialStore
from home_api.services.dashboard import (
	build_dashboard,
	get_balance_ratio,
	get_current_balance,
	get_forced_balance,
)
from home_api.services.exchange_rate import FrankfurterRateProvider
from home_api.services.notifications import TelegramNotifier
from home_api.services.questrade import QuestradeClient
from home_api.services.rate_limit import BrokerageQueues
from home_api.services.refresh import InvestmentRefresher
from home_api.services.scheduler import build_refresh_scheduler, log_next_run
from home_api.settings import get_settings

SessionDependency = Annotated[Session, Depends(get_session)]
TokenDependency = Annotated[None, Depends(verify_api_token)]
settings = get_settings()
brokerage_queues = BrokerageQueues.from_intervals(
	settings.account_queue_interval_ms,
	settings.market_queue_interval_ms,
)
questrade_client = QuestradeClient(
	queues=brokerage_queues,
	token_url=settings.questrade_token_url,
	timeout=settings.http_timeout_seconds,
)
rate_provider = FrankfurterRateProvider(
	url=settings.exchange_rate_url,
	timeout=settings.http_timeout_seconds,
)
notifier = TelegramNotifier.from_settings(settings)
logger = logging.getLogger(__name__)

refresh_scheduler: AsyncIOScheduler | None = None


def build_refresher(session: Session) -> InvestmentRefresher:
	store = BalanceStore(
		session,
		freshness=timedelta(minutes=settings.snapshot_freshness_minutes),
	)
	return InvestmentRefresher(
		store=store,
		credentials=CredentialStore(store, questrade_client),
		brokerage=questrade_client,
		rates=rate_provider,
		notifier=notifier,
	)


def get_refresher(session: SessionDependency) -> InvestmentRefresher:
	return build_refresher(session)


RefresherDependency = Annotated[InvestmentRefresher, Depends(get_refresher)]


async def run_scheduled_refresh() -> None:
	try:
		with Session(engine) as session:
			await build_refresher(session).refresh_balance()
	except Exception:
		logger.exception("Scheduled investment refresh failed.")


@asynccontextmanager
async def lifespan(_: FastAPI):
	global refresh_scheduler
	settings.validate_runtime()
	init_db()

	if settings.refresh_enabled:
		refresh_scheduler = build_refresh_scheduler(settings, run_scheduled_refresh)
		refresh_scheduler.start()
		log_next_run(refresh_scheduler)

	try:
		yield
	finally:
		if refresh_scheduler is not None:
			refresh_scheduler.shutdown(wait=False)
			refresh_scheduler = None
		await notifier.drain()


app = FastAPI(
	title="Home API",
	version="0.1.0",
	lifespan=lifespan,
)

app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins(),
	allow_credentials=False,
	allow_methods=["GET", "OPTIONS"],
	allow_headers=["Authorization", "Content-Type", "X-API-Key"],
)


@app.get("/investments/auth")
def investments_auth(_: TokenDependency) -> Response:
	return Response(status_code=200)


@app.get("/investments/balance", response_model=float)
async def get_balance(_: TokenDependency, refresher: RefresherDependency) -> float:
	try:
		return await get_current_balance(refresher)
	except Exception as exc:
		logger.exception("Error getting investment balance.")
		raise HTTPException(status_code=500) from exc


@app.get("/investments/balance/force", response_model=ForcedBalanceRead)
async def force_balance(_: TokenDependency, refresher: RefresherDependency) -> ForcedBalanceRead:
	try:
		return ForcedBalanceRead(amount=await get_forced_balance(refresher))
	except Exception as exc:
		logger.exception("Error forcing investment balance refresh.")
		raise HTTPException(status_code=500) from exc


@app.get("/investments/balance/percentage-change", response_model=float)
async def get_percentage_change(_: TokenDependency, refresher: RefresherDependency) -> float:
	try:
		return get_balance_ratio(refresher.store)
	except Exception as exc:
		logger.exception("Error getting investment percentage change.")
		raise HTTPException(status_code=500) from exc


@app.get("/investments/dashboard", response_model=DashboardResponse)
async def get_dashboard(_: TokenDependency, refresher: RefresherDependency) -> DashboardResponse:
	try:
		return await build_dashboard(refresher, history_days=settings.history_days)
	except Exception as exc:
		logger.exception("Error getting dashboard data.")
		raise HTTPException(status_code=500) from exc
