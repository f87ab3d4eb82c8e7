from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    date_cache_capacity: int = 100
    store_cache_ttl_seconds: float = 30.0
    instance_window_days: int = 14
    generation_window_days: int = 30
    max_instances: int = 10


load_env()

SETTINGS = Settings(
    database_url=os.getenv("DATABASE_URL", "").strip() or "sqlite:///taskcat.db",
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    date_cache_capacity=int(os.getenv("DATE_CACHE_CAPACITY", "100")),
    store_cache_ttl_seconds=float(os.getenv("STORE_CACHE_TTL_SECONDS", "30")),
    instance_window_days=int(os.getenv("INSTANCE_WINDOW_DAYS", "14")),
    generation_window_days=int(os.getenv("GENERATION_WINDOW_DAYS", "30")),
    max_instances=int(os.getenv("MAX_INSTANCES", "10")),
)
