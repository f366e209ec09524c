from typing import List

from fastapi import Request
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "Session Bridge"
    ENVIRONMENT: str = ""  # local, dev, prod (from .env)

    # CORS for API consumers (from .env, comma-separated)
    BACKEND_CORS_ORIGINS: List[str] = []

    # Logging & Sentry
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # Remote backend (from .env)
    BACKEND_URL: str = ""
    BACKEND_TIMEOUT_SECONDS: float = 10.0

    # Auth proxy & cookies
    AUTH_PROXY_PATH: str = "/api/auth"
    AUTH_COOKIE_MAX_AGE_SECONDS: int | None = None  # None -> session cookies
    AUTH_COOKIE_SAMESITE: str = "lax"  # lax, strict, none
    AUTH_VERBOSE: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()


def get_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was built with."""
    return getattr(request.app.state, "settings", settings)
