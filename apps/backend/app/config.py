from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple
import os

from app.errors import ConfigError

APP_ENVS = ("development", "testing", "production")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    provider_base_url: str = "https://api.kie.ai/api/v1"
    provider_timeout: float = 30.0
    callback_url: str = "http://localhost:8000/api/callback"
    app_env: str = "development"
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:5173"
    database_path: str = "assets/nano_banana.db"
    upload_dir: str = "assets/uploads"
    public_base_url: str = "http://localhost:8000"
    task_pending_ttl: float = 900.0
    task_retention: float = 3600.0
    enhance_webhook_url: str = ""
    enhance_timeout: float = 30.0

    @property
    def allowed_origins(self) -> Tuple[str, ...]:
        origins = [self.frontend_url]
        if "localhost" in self.frontend_url:
            origins.append(self.frontend_url.replace("localhost", "127.0.0.1"))
        return tuple(origins)

    @property
    def expose_error_details(self) -> bool:
        return self.app_env != "production"


def _env(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"Invalid {name}: {raw!r} is not a number")
    if value <= 0:
        raise ConfigError(f"Invalid {name}: must be greater than zero")
    return value


def load_settings() -> Settings:
    """Read settings from the environment (after load_dotenv in main)."""
    app_env = _env("APP_ENV", "development").lower()
    if app_env not in APP_ENVS:
        raise ConfigError(f"Invalid APP_ENV: {app_env}. Must be one of: {', '.join(APP_ENVS)}")

    log_level = _env("LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Invalid LOG_LEVEL: {log_level}. Must be one of: {', '.join(LOG_LEVELS)}")

    return Settings(
        api_key=_env("NANO_BANANA_API_KEY", ""),
        provider_base_url=_env("NANO_BANANA_BASE_URL", Settings.provider_base_url).rstrip("/"),
        provider_timeout=_env_float("NANO_BANANA_TIMEOUT", Settings.provider_timeout),
        callback_url=_env("NANO_BANANA_CALLBACK_URL", Settings.callback_url),
        app_env=app_env,
        log_level=log_level,
        frontend_url=_env("FRONTEND_URL", Settings.frontend_url).rstrip("/"),
        database_path=_env("DATABASE_PATH", Settings.database_path),
        upload_dir=_env("UPLOAD_DIR", Settings.upload_dir),
        public_base_url=_env("PUBLIC_BASE_URL", Settings.public_base_url).rstrip("/"),
        task_pending_ttl=_env_float("TASK_PENDING_TTL", Settings.task_pending_ttl),
        task_retention=_env_float("TASK_RETENTION", Settings.task_retention),
        enhance_webhook_url=_env("ENHANCE_WEBHOOK_URL", ""),
        enhance_timeout=_env_float("ENHANCE_TIMEOUT", Settings.enhance_timeout),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
