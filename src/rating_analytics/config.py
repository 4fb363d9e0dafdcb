import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "RATING_ANALYTICS_"


@dataclass
class Settings:
    db_path: Path = Path("ratings.db")
    out_dir: Path = Path("report")
    cache_ttl_seconds: int = 3600
    log_level: str = "INFO"


def _env(name: str) -> str:
    return os.getenv(ENV_PREFIX + name, "").strip()


def load_settings() -> Settings:
    s = Settings()
    if _env("DB_PATH"):
        s.db_path = Path(_env("DB_PATH"))
    if _env("OUT_DIR"):
        s.out_dir = Path(_env("OUT_DIR"))
    if _env("CACHE_TTL"):
        s.cache_ttl_seconds = int(_env("CACHE_TTL"))
    if _env("LOG_LEVEL"):
        s.log_level = _env("LOG_LEVEL").upper()
    return s
