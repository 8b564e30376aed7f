from __future__ import annotations

from typing import Iterable, Optional, Set

from .models import LocalRun
from .normalize import CO_OP, REGULAR, SOLO, clean, normalize_name


def _key(player1: str, player2: str, run: LocalRun) -> str:
    return "|".join(
        [
            player1,
            player2,
            clean(run.category),
            clean(run.platform),
            run.run_type or SOLO,
            clean(run.time),
            run.leaderboard_type or REGULAR,
            clean(run.level),
        ]
    )


def identity_key(run: LocalRun) -> str:
    """player1|player2|category|platform|runType|time|leaderboardType|level"""
    return _key(normalize_name(run.player_name), normalize_name(run.player2_name), run)


def swapped_identity_key(run: LocalRun) -> Optional[str]:
    """Key with the two players exchanged; only meaningful for co-op runs."""
    player2 = normalize_name(run.player2_name)
    if run.run_type != CO_OP or not player2:
        return None
    return _key(player2, normalize_name(run.player_name), run)


class DedupIndex:
    """Identity keys known for this batch: seeded from the store, grown as runs import."""

    def __init__(self) -> None:
        self._keys: Set[str] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    @classmethod
    def from_stored(cls, runs: Iterable[LocalRun]) -> "DedupIndex":
        # Only verified runs seed content keys; unreviewed imports are caught by srcRunId.
        index = cls()
        for run in runs:
            if run.verified:
                index.add(run)
        return index

    def add(self, run: LocalRun) -> None:
        self._keys.add(identity_key(run))
        swapped = swapped_identity_key(run)
        if swapped:
            self._keys.add(swapped)

    def is_duplicate(self, run: LocalRun) -> bool:
        if identity_key(run) in self._keys:
            return True
        swapped = swapped_identity_key(run)
        return swapped is not None and swapped in self._keys
