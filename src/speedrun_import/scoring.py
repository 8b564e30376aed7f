"""Leaderboard points for a ranked run.

Used by the leaderboard side of the site when runs are verified or re-ranked; the
importer never scores a run itself since imported runs start unverified.
"""

from __future__ import annotations

import math
from typing import Dict, Optional

from .normalize import CO_OP, COMMUNITY_GOLDS, INDIVIDUAL_LEVEL

BASE_POINTS = 10
RANK_BONUS: Dict[int, int] = {1: 50, 2: 30, 3: 20}


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def score(rank: Optional[int], run_type: str, leaderboard_type: str, obsolete: bool = False) -> int:
    points: float = BASE_POINTS
    if not obsolete and rank is not None:
        points += RANK_BONUS.get(rank, 0)
    if leaderboard_type in (INDIVIDUAL_LEVEL, COMMUNITY_GOLDS):
        points *= 0.5
    if run_type == CO_OP:
        points *= 0.5
    return _round_half_away(points)
