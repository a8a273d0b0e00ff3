from functools import lru_cache
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# Home Assistant's default frontend port.
LOCAL_ORIGINS = ("http://localhost:8123", "http://127.0.0.1:8123")


def _secret_value(secret: SecretStr | None) -> str | None:
	if secret is None:
		return None

	value = secret.get_secret_value().strip()
	return value or None


def _origin_of(value: str) -> str:
	parsed = urlparse(value.strip())
	if parsed.scheme not in {"http", "https"} or not parsed.netloc:
		raise ValueError(f"Invalid origin: {value!r}")
	return f"{parsed.scheme}://{parsed.netloc}"


class Settings(BaseSettings):
	"""Home API configuration, read from ``HOME_API_*`` variables or ``.env``."""

	model_config = SettingsConfigDict(
		env_file=".env",
		env_prefix="HOME_API_",
		extra="ignore",
	)

	app_env: str = "development"
	api_token: SecretStr | None = None
	allowed_origins: str | None = None

	database_url: str | None = None

	questrade_token_url: str = "https://login.questrade.com/oauth2/token"
	exchange_rate_url: str = "https://api.frankfurter.dev/v1/latest"
	http_timeout_seconds: float = 10.0
	account_queue_interval_ms: int = 120
	market_queue_interval_ms: int = 50

	snapshot_freshness_minutes: int = 15
	history_days: int = 365

	refresh_enabled: bool = True
	refresh_cron: str = "*/5 7-16 * * *"
	timezone: str = "America/Edmonton"

	telegram_bot_token: SecretStr | None = None
	telegram_chat_id: str | None = None

	@property
	def is_production(self) -> bool:
		return self.app_env.strip().lower() == "production"

	@property
	def require_api_token(self) -> bool:
		return self.api_token_value() is not None

	def api_token_value(self) -> str | None:
		return _secret_value(self.api_token)

	def telegram_bot_token_value(self) -> str | None:
		return _secret_value(self.telegram_bot_token)

	def telegram_chat_id_value(self) -> str | None:
		return (self.telegram_chat_id or "").strip() or None

	def cors_origins(self) -> list[str]:
		"""Configured origins, else the local Home Assistant frontend outside production."""
		configured = [
			_origin_of(item)
			for item in (self.allowed_origins or "").split(",")
			if item.strip()
		]
		if configured or self.is_production:
			return configured
		return list(LOCAL_ORIGINS)

	def is_allowed_origin(self, origin: str) -> bool:
		try:
			return _origin_of(origin) in self.cors_origins()
		except ValueError:
			return False

	def zone(self) -> ZoneInfo:
		return ZoneInfo(self.timezone)

	def validate_runtime(self) -> None:
		if self.is_production and not self.require_api_token:
			raise ValueError("Production mode requires HOME_API_API_TOKEN.")

		if (self.telegram_bot_token_value() is None) != (self.telegram_chat_id_value() is None):
			raise ValueError(
				"HOME_API_TELEGRAM_BOT_TOKEN and HOME_API_TELEGRAM_CHAT_ID must be set together.",
			)

		try:
			zone = self.zone()
		except (ZoneInfoNotFoundError, ValueError) as exc:
			raise ValueError(f"Unknown HOME_API_TIMEZONE: {self.timezone!r}") from exc

		try:
			CronTrigger.from_crontab(self.refresh_cron, timezone=zone)
		except ValueError as exc:
			raise ValueError(f"Invalid HOME_API_REFRESH_CRON: {self.refresh_cron!r}") from exc


@lru_cache
def get_settings() -> Settings:
	return Settings()
