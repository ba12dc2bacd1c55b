from __future__ import annotations

from pydantic import BaseModel
import os


class Settings(BaseModel):
    APP_NAME: str = "pokersync"

    # Remote service
    API_BASE_URL: str = "http://localhost:8080"
    RPC_PACKAGE: str = "esteemed.v1"
    REQUEST_TIMEOUT_SEC: float = 10.0

    # Stream reconnect
    RETRY_FLOOR_MS: int = 1000
    RETRY_CAP_MS: int = 30000

    # Local persistence: "memory" | "file" | "redis"
    STORAGE_BACKEND: str = "file"
    STORAGE_DIR: str = "~/.pokersync"
    REDIS_URL: str = "redis://localhost:6379/0"
    STORAGE_PREFIX: str = "esteemed"

    # Dev
    LOG_LEVEL: str = "INFO"


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "pokersync"),
        API_BASE_URL=os.getenv("API_BASE_URL", "http://localhost:8080"),
        RPC_PACKAGE=os.getenv("RPC_PACKAGE", "esteemed.v1"),
        REQUEST_TIMEOUT_SEC=float(os.getenv("REQUEST_TIMEOUT_SEC", "10")),
        RETRY_FLOOR_MS=int(os.getenv("RETRY_FLOOR_MS", "1000")),
        RETRY_CAP_MS=int(os.getenv("RETRY_CAP_MS", "30000")),
        STORAGE_BACKEND=os.getenv("STORAGE_BACKEND", "file").lower(),
        STORAGE_DIR=os.getenv("STORAGE_DIR", "~/.pokersync"),
        REDIS_URL=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        STORAGE_PREFIX=os.getenv("STORAGE_PREFIX", "esteemed"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )
