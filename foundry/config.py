from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

PACKAGE_DIR = Path(__file__).parent


def _resolve_home() -> Path:
    override = os.getenv("FOUNDRY_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return PACKAGE_DIR / "data"


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name, "").strip()
    return Path(value).expanduser() if value else default


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=_resolve_home)
    database_path: Path = Field(
        default_factory=lambda: _env_path("FOUNDRY_DB_PATH", _resolve_home() / "foundry.db")
    )
    log_dir: Path = Field(default_factory=lambda: _env_path("FOUNDRY_LOG_DIR", _resolve_home() / "logs"))
    log_level: str = Field(default_factory=lambda: os.getenv("FOUNDRY_LOG_LEVEL", "INFO").upper())

    llm_provider: str = Field(default_factory=lambda: os.getenv("LLM_PROVIDER", "anthropic"))
    llm_model: str = Field(default_factory=lambda: os.getenv("LLM_MODEL", ""))

    host: str = Field(default_factory=lambda: os.getenv("FOUNDRY_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("FOUNDRY_PORT", "8002")))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
