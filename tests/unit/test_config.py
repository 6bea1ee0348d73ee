"""Tests for application configuration."""

from src.config import Settings


class TestSettings:
    def test_default_settings(self):
        settings = Settings()
        assert settings.app_name == "aml-pattern-engine"
        assert settings.port == 8000
        assert settings.fraud_service_url == ""

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("APP_NAME", "test-app")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("COLLABORATOR_TIMEOUT_SECONDS", "0.1")
        settings = Settings()
        assert settings.app_name == "test-app"
        assert settings.port == 9000
        assert settings.debug is True
        assert settings.collaborator_timeout_seconds == 0.1

    def test_database_url_default(self):
        settings = Settings()
        assert "postgresql+asyncpg" in settings.database_url

    def test_redis_url(self):
        settings = Settings()
        assert settings.redis_url.startswith("redis://")
