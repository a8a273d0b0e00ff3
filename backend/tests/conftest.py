from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlmodel import SQLModel, Session, create_engine

import home_api.models  # noqa: F401
from home_api.services.balance_store import BalanceStore

from fakes import Clock


@pytest.fixture
def session(tmp_path: Path) -> Iterator[Session]:
	engine = create_engine(
		f"sqlite:///{tmp_path / 'home-api-test.db'}",
		connect_args={"check_same_thread": False},
	)
	SQLModel.metadata.create_all(engine)

	with Session(engine) as db_session:
		yield db_session


@pytest.fixture
def clock() -> Clock:
	return Clock()


@pytest.fixture
def store(session: Session, clock: Clock) -> BalanceStore:
	return BalanceStore(session, now=clock)
