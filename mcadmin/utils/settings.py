"""Runtime settings sourced from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Settings:
    model_config_dir: Path
    connections_file: Path
    database_url: Optional[str]
    log_level: str
    default_page_size: int
    max_page_size: int
    widget_template_dir: Optional[Path]


def _int_env(name: str, default: int) -> int:
    """Return a positive integer from the environment or ``default``."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _optional_path(name: str) -> Optional[Path]:
    raw = (os.getenv(name) or "").strip()
    return Path(raw) if raw else None


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return the cached settings built from the current environment."""
    config_dir = Path(os.getenv("MODEL_CONFIG_DIR", "config/models"))
    connections_file = _optional_path("DB_CONNECTIONS_FILE") or config_dir / "connections.json"
    return Settings(
        model_config_dir=config_dir,
        connections_file=connections_file,
        database_url=os.getenv("DATABASE_URL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        default_page_size=_int_env("DEFAULT_PAGE_SIZE", 20),
        max_page_size=_int_env("MAX_PAGE_SIZE", 500),
        widget_template_dir=_optional_path("WIDGET_TEMPLATE_DIR"),
    )


def refresh_settings_cache() -> None:
    """Invalidate cached settings (useful for tests)."""
    get_settings.cache_clear()
