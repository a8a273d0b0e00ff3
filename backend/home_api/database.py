from collections.abc import Generator
from pathlib import Path

from sqlmodel import Session, SQLModel, create_engine

from home_api.settings import get_settings

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DATABASE_NAME = "home_api.db"


def resolve_database_url(configured_url: str | None) -> str:
	"""Use the configured URL, or a SQLite file under ``backend/data``."""
	if configured_url:
		return configured_url

	DATA_DIR.mkdir(parents=True, exist_ok=True)
	return f"sqlite:///{DATA_DIR / DEFAULT_DATABASE_NAME}"


def engine_options(database_url: str) -> dict[str, object]:
	if database_url.startswith("sqlite"):
		# The scheduler and request handlers share one engine across threads.
		return {"connect_args": {"check_same_thread": False}}
	return {"pool_pre_ping": True}


DATABASE_URL = resolve_database_url(get_settings().database_url)
engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))


def init_db() -> None:
	"""Create the credential, snapshot and cache tables."""
	SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
	with Session(engine) as session:
		yield session
