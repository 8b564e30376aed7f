"""Pure normalization helpers shared by the mapper, translator and deduplicator."""

from __future__ import annotations

import math
import re
from typing import Any, Optional

SOLO = "solo"
CO_OP = "co-op"
RUN_TYPES = (SOLO, CO_OP)

REGULAR = "regular"
INDIVIDUAL_LEVEL = "individual-level"
COMMUNITY_GOLDS = "community-golds"
LEADERBOARD_TYPES = (REGULAR, INDIVIDUAL_LEVEL, COMMUNITY_GOLDS)

UNKNOWN_PLAYER = "Unknown"

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


def clean(value: Any) -> str:
    """Stringify and trim; None becomes the empty string."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_name(value: Any) -> str:
    """Case-insensitive comparison form used for taxonomy and player matching."""
    return clean(value).lower()


def iso_duration_to_time(duration: Optional[str]) -> Optional[str]:
    """Convert an ISO-8601 duration such as ``PT1H23M45.678S`` to ``HH:MM:SS``.

    Fractional seconds are truncated. Returns None when the value is missing or
    carries no time component at all.
    """
    if not duration:
        return None
    match = _ISO_DURATION.match(duration.strip())
    if not match or not any(match.group(g) for g in ("days", "hours", "minutes", "seconds")):
        return None
    hours = int(match.group("days") or 0) * 24 + int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = int(float(match.group("seconds") or 0))
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def seconds_to_time(total: Optional[float]) -> Optional[str]:
    if total is None:
        return None
    try:
        total = float(total)
    except (TypeError, ValueError):
        return None
    if math.isnan(total) or total <= 0:
        return None
    whole = int(total)
    hours, rem = divmod(whole, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def date_part(value: Optional[str]) -> str:
    """``2024-03-01T12:00:00Z`` -> ``2024-03-01``."""
    return clean(value).split("T", 1)[0]


def normalize_run_type(value: Any) -> str:
    v = normalize_name(value)
    if v in ("co-op", "coop"):
        return CO_OP
    return SOLO


def normalize_leaderboard_type(value: Any) -> str:
    v = normalize_name(value)
    if v in ("individual-level", "individuallevel"):
        return INDIVIDUAL_LEVEL
    if v in ("community-golds", "communitygolds"):
        return COMMUNITY_GOLDS
    return REGULAR
