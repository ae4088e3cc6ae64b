"""
assoc_portal.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single settings object shared by the backend, the session layer and the API.
    """

    model_config = SettingsConfigDict(env_prefix="ASSOC_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "assoc-portal"
    log_level: str = "INFO"
    # "console" renders human-readable lines for local runs.
    log_format: Literal["json", "console"] = "json"

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    # Used to build links sent out of band (password recovery).
    public_base_url: str = "http://localhost:8080"
    session_cookie_name: str = "assoc_sid"
    # Portal clients unused for this long are closed and dropped.
    portal_client_idle_seconds: float = Field(default=3600.0, gt=0.0)

    # Auth (tokens issued by the local backend)
    jwt_alg: str = "HS256"
    jwt_issuer: str = "assoc-portal"
    jwt_audience: str = "authenticated"
    jwt_secret: str = Field(default="dev-secret-change-me-before-deploying", repr=False)
    access_token_ttl_minutes: int = Field(default=60, ge=1)
    recovery_token_ttl_minutes: int = Field(default=30, ge=1)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./assoc.db"

    # Sign-up behavior of the local backend
    auto_confirm_signups: bool = True
    profile_trigger_delay_seconds: float = Field(default=0.0, ge=0.0)

    # Profile hydration
    profile_fetch_attempts: int = Field(default=3, ge=1)
    profile_retry_delay_seconds: float = Field(default=1.0, ge=0.0)
    # Upper bound on how long sign-in waits for the session store to catch up.
    session_settle_timeout_seconds: float = Field(default=5.0, gt=0.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Hydration defaults (3 attempts, 1s apart) bound the wait for a freshly created
# profile row to roughly two seconds.
