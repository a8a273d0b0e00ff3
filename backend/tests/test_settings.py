from collections.abc import Iterator

import pytest

from home_api.settings import get_settings


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
	for env_name in (
		"HOME_API_ALLOWED_ORIGINS",
		"HOME_API_API_TOKEN",
		"HOME_API_APP_ENV",
		"HOME_API_REFRESH_CRON",
		"HOME_API_TELEGRAM_BOT_TOKEN",
		"HOME_API_TELEGRAM_CHAT_ID",
		"HOME_API_TIMEZONE",
	):
		monkeypatch.delenv(env_name, raising=False)

	get_settings.cache_clear()
	yield
	get_settings.cache_clear()


def test_settings_default_to_local_development() -> None:
	settings = get_settings()

	assert settings.is_production is False
	assert settings.require_api_token is False
	assert settings.cors_origins() == ["http://localhost:8123", "http://127.0.0.1:8123"]
	assert settings.refresh_cron == "*/5 7-16 * * *"
	assert settings.timezone == "America/Edmonton"
	settings.validate_runtime()


def test_settings_normalize_configured_origins(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_APP_ENV", "production")
	monkeypatch.setenv("HOME_API_API_TOKEN", "secret-token")
	monkeypatch.setenv("HOME_API_ALLOWED_ORIGINS", "https://home.example.com/, https://ha.example.com")
	settings = get_settings()

	assert settings.cors_origins() == ["https://home.example.com", "https://ha.example.com"]
	assert settings.is_allowed_origin("https://home.example.com") is True
	assert settings.is_allowed_origin("https://evil.example.com") is False
	assert settings.is_allowed_origin("not a url") is False


def test_production_without_origins_allows_none(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_APP_ENV", "production")
	monkeypatch.setenv("HOME_API_API_TOKEN", "secret-token")

	assert get_settings().cors_origins() == []


def test_validate_runtime_requires_token_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_APP_ENV", "production")

	with pytest.raises(ValueError, match="HOME_API_API_TOKEN"):
		get_settings().validate_runtime()


def test_blank_token_counts_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_API_TOKEN", "   ")

	assert get_settings().api_token_value() is None


def test_validate_runtime_requires_complete_telegram_config(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_TELEGRAM_BOT_TOKEN", "bot-token")

	with pytest.raises(ValueError, match="must be set together"):
		get_settings().validate_runtime()


def test_validate_runtime_rejects_unknown_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_TIMEZONE", "Mars/Olympus_Mons")

	with pytest.raises(ValueError, match="HOME_API_TIMEZONE"):
		get_settings().validate_runtime()


def test_validate_runtime_rejects_invalid_cron(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setenv("HOME_API_REFRESH_CRON", "every five minutes")

	with pytest.raises(ValueError, match="HOME_API_REFRESH_CRON"):
		get_settings().validate_runtime()
