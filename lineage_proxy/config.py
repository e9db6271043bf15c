from pathlib import Path
from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_EVENT_SIZE: int = 1048576
    LOG_JSON: bool = True
    # Storage backend: "filesystem", "object-store", "database" or "memory"
    STORAGE_BACKEND: Literal["filesystem", "object-store", "database", "memory"] = "filesystem"
    # Counter coordination: "lock-file", "external-kv", "none" or "memory"
    COORDINATION: Literal["lock-file", "external-kv", "none", "memory"] = "lock-file"
    STORAGE_DIR: Path = Path("data/lineage")
    COUNTER_PATH: Path | None = None  # defaults to STORAGE_DIR/counter.txt
    LOCK_TIMEOUT_SECONDS: float = 5.0
    LOCK_STALE_SECONDS: float = 10.0
    IDENTIFIER_WIDTH: int = 3
    # External key-value store (coordination: external-kv)
    REDIS_URL: AnyUrl | None = None
    COUNTER_KEY: str = "openlineage-counter"
    # Object storage (backend: object-store)
    OBJECT_STORE_URL: str | None = None
    OBJECT_STORE_TOKEN: str = ""
    # Relational storage (backend: database), any SQLAlchemy URL
    DATABASE_URL: str | None = None
    # Optional forwarding of committed events
    WEBHOOK_URL: str | None = None
    WEBHOOK_TOKEN: str = ""

    @property
    def counter_path(self) -> Path:
        return self.COUNTER_PATH or self.STORAGE_DIR / "counter.txt"

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
