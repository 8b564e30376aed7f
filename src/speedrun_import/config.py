from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError

DEFAULT_API = {
    "base_url": "https://www.speedrun.com/api/v1",
    "timeout_seconds": 15,
    "max_concurrency": 5,
    "rate_limit_per_sec": 1,
    "log_every_requests": 50,
}


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def region(self) -> str:
        return self.raw.get("region", "us-east-1")

    @property
    def api(self) -> Dict[str, Any]:
        return {**DEFAULT_API, **(self.raw.get("api") or {})}

    @property
    def source(self) -> Dict[str, Any]:
        return self.raw["source"]

    @property
    def store(self) -> Dict[str, str]:
        tables = {
            "runs_table": "leaderboard_entries",
            "players_table": "players",
            "categories_table": "categories",
            "platforms_table": "platforms",
            "levels_table": "levels",
        }
        tables.update(self.raw.get("store") or {})
        return tables

    @property
    def reports(self) -> Dict[str, Any]:
        return self.raw.get("reports") or {}

    @property
    def import_settings(self) -> Dict[str, Any]:
        return {"limit": 500, "page_size": 200, **(self.raw.get("import") or {})}


def load_config(path: str = "config.yaml") -> Config:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
    source = raw.get("source") or {}
    if not source.get("game_abbreviation"):
        raise ConfigurationError("source.game_abbreviation is required")
    page_size = (raw.get("import") or {}).get("page_size", 200)
    if not 1 <= int(page_size) <= 200:
        raise ConfigurationError("import.page_size must be between 1 and 200")
    return Config(raw)


def get_api_key() -> Optional[str]:
    """The SRC read API works anonymously; a key only raises rate limits."""
    return os.getenv("SRC_API_KEY") or None
