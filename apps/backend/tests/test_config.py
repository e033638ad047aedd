"""Unit tests for settings loading."""

import pytest

from app.config import Settings, load_settings
from app.errors import ConfigError


class TestLoadSettings:
    def test_defaults(self, monkeypatch) -> None:
        for name in ("NANO_BANANA_API_KEY", "APP_ENV", "LOG_LEVEL", "TASK_PENDING_TTL", "FRONTEND_URL"):
            monkeypatch.delenv(name, raising=False)
        s = load_settings()
        assert s.api_key == ""
        assert s.app_env == "development"
        assert s.task_pending_ttl == 900.0
        assert s.allowed_origins == ("http://localhost:5173", "http://127.0.0.1:5173")

    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("NANO_BANANA_API_KEY", " secret ")
        monkeypatch.setenv("NANO_BANANA_BASE_URL", "https://provider.test/v1/")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("TASK_RETENTION", "60")
        s = load_settings()
        assert s.api_key == "secret"
        assert s.provider_base_url == "https://provider.test/v1"
        assert s.log_level == "DEBUG"
        assert s.task_retention == 60.0

    @pytest.mark.parametrize("name,value", [
        ("APP_ENV", "staging"),
        ("LOG_LEVEL", "LOUD"),
        ("NANO_BANANA_TIMEOUT", "soon"),
        ("TASK_PENDING_TTL", "-5"),
    ])
    def test_invalid_values(self, monkeypatch, name, value) -> None:
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            load_settings()

    def test_production_hides_details(self) -> None:
        assert not Settings(app_env="production").expose_error_details
        assert Settings(app_env="testing").expose_error_details
