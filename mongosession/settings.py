from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SESSION_", env_file=".env", extra="ignore")

    # Service
    SERVICE_NAME: str = "session-service"
    PORT: int = 8040
    LOG_LEVEL: str = "INFO"

    # MongoDB
    # The database is taken from the URI path; MONGO_DB is used when the URI has none.
    MONGO_URI: str = "mongodb://localhost:27017/sessions"
    MONGO_DB: str = "sessions"
    COLLECTION: str = "session"
    SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Session lifecycle
    PROVIDER_NAME: str = "mongodb"
    MAX_LIFETIME_SECONDS: int = Field(default=3600, ge=1)
    GC_INTERVAL_SECONDS: int = Field(default=3600, ge=1)

    # "lenient" swallows failures in exists/count/gc/release, "strict" raises them
    ERROR_POLICY: Literal["lenient", "strict"] = "lenient"


settings = Settings()
