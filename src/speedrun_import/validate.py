from __future__ import annotations

import re
from typing import List

from .models import LocalRun
from .normalize import CO_OP, COMMUNITY_GOLDS, INDIVIDUAL_LEVEL, LEADERBOARD_TYPES, RUN_TYPES, clean

TIME_RE = re.compile(r"^\d{1,2}:\d{2}:\d{2}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_run(run: LocalRun) -> List[str]:
    """Every rule the run breaks, in a stable order. Empty means importable."""
    errors: List[str] = []

    if not clean(run.player_name):
        errors.append("missing player name")

    time = clean(run.time)
    if not time:
        errors.append("missing time")
    elif not TIME_RE.match(time):
        errors.append(f'invalid time format "{run.time}" (expected HH:MM:SS)')

    date = clean(run.date)
    if not date:
        errors.append("missing date")
    elif not DATE_RE.match(date):
        errors.append(f'invalid date format "{run.date}" (expected YYYY-MM-DD)')

    # No safe default exists for an unknown category.
    if not clean(run.category):
        errors.append(f'category "{run.src_category_name or "Unknown"}" not found on leaderboards')

    if not clean(run.platform) and not clean(run.src_platform_name):
        errors.append("missing platform")

    if run.run_type not in RUN_TYPES:
        errors.append(f'invalid run type "{run.run_type}"')

    if run.leaderboard_type not in LEADERBOARD_TYPES:
        errors.append(f'invalid leaderboard type "{run.leaderboard_type}"')

    if run.leaderboard_type in (INDIVIDUAL_LEVEL, COMMUNITY_GOLDS):
        if not clean(run.level) and not clean(run.src_level_name):
            errors.append("missing level for individual level run")

    if run.run_type == CO_OP and not clean(run.player2_name):
        errors.append("missing player 2 name for co-op run")

    return errors
