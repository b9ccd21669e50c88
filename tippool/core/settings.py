from __future__ import annotations

import os
from pathlib import Path

import yaml

from tippool.core.schema import RoundingPolicy

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_TREND_LIMIT = 10


def _config_path() -> Path:
    env_path = os.getenv("TIP_POOL_CONFIG")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return CONFIG_DIR / "tip_pool.yaml"


def load_settings() -> dict:
    path = _config_path()
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}


def default_rounding(settings: dict | None = None) -> RoundingPolicy:
    settings = load_settings() if settings is None else settings
    return RoundingPolicy(**(settings.get("rounding") or {}))


def trend_limit(settings: dict | None = None) -> int:
    settings = load_settings() if settings is None else settings
    history = settings.get("history") or {}
    return int(history.get("trend_limit", DEFAULT_TREND_LIMIT))
