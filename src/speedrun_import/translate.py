from __future__ import annotations

import logging
from typing import Optional, Tuple

from .logging_utils import get_logger, log_json
from .models import Embedded, ExternalPlayer, ExternalRun, LocalRun, NameCaches, ref_name
from .normalize import (
    CO_OP,
    INDIVIDUAL_LEVEL,
    REGULAR,
    SOLO,
    UNKNOWN_PLAYER,
    clean,
    date_part,
    iso_duration_to_time,
    normalize_name,
    seconds_to_time,
)
from .speedruncom import ExternalSource
from .taxonomy import TaxonomyMapping

UNKNOWN_PLATFORM = "Unknown Platform (from SRC)"
IMPORTED_PLAYER_ID = "imported"


async def _player_name(
    player: ExternalPlayer,
    source: Optional[ExternalSource],
    caches: NameCaches,
    logger: logging.Logger,
) -> str:
    if player.name:
        return player.name
    if not player.id:
        return ""
    if player.id in caches.players:
        return caches.players[player.id]
    name = ""
    if source is not None:
        try:
            name = clean(await source.fetch_player_name(player.id))
        except Exception as exc:
            log_json(logger, "player_lookup_failed", level="warning", player_id=player.id, error=str(exc))
    caches.players[player.id] = name
    return name


async def _platform_name(
    run: ExternalRun,
    mapping: TaxonomyMapping,
    source: Optional[ExternalSource],
    caches: NameCaches,
    logger: logging.Logger,
) -> str:
    ref = run.platform
    if ref is None or not ref.id:
        return ""
    name = ref_name(ref) or mapping.src_platform_id_to_name.get(ref.id, "")
    if name:
        return name
    if ref.id in caches.platforms:
        return caches.platforms[ref.id]
    if source is not None:
        try:
            name = clean(await source.fetch_platform_name(ref.id))
        except Exception as exc:
            log_json(logger, "platform_lookup_failed", level="warning", platform_id=ref.id, error=str(exc))
    caches.platforms[ref.id] = name
    return name


def _resolve_category(run: ExternalRun, mapping: TaxonomyMapping) -> Tuple[str, str]:
    ref = run.category
    if ref is None:
        return "", ""
    name = ref_name(ref) or mapping.src_category_id_to_name.get(ref.id, "")
    local_id = mapping.category_mapping.get(ref.id, "")
    if not local_id and name:
        local_id = mapping.category_name_mapping.get(normalize_name(name), "")
    return local_id, name


def _resolve_level(run: ExternalRun, mapping: TaxonomyMapping) -> Tuple[str, str]:
    ref = run.level
    if ref is None:
        return "", ""
    name = ref_name(ref) or mapping.src_level_id_to_name.get(ref.id, "")
    return mapping.level_mapping.get(ref.id, ""), name


def _leaderboard_type(run: ExternalRun) -> str:
    # SRC category types: per-game is full game, per-level is an individual level.
    category_type = run.category.type if isinstance(run.category, Embedded) else None
    if category_type == "per-level":
        return INDIVIDUAL_LEVEL
    if category_type == "per-game":
        return REGULAR
    if run.level is not None and run.level.id:
        return INDIVIDUAL_LEVEL
    return REGULAR


def _run_time(run: ExternalRun) -> str:
    return iso_duration_to_time(run.primary_time) or seconds_to_time(run.primary_seconds) or ""


async def translate_run(
    run: ExternalRun,
    mapping: TaxonomyMapping,
    source: Optional[ExternalSource] = None,
    caches: Optional[NameCaches] = None,
    logger: Optional[logging.Logger] = None,
) -> LocalRun:
    """Build the unvalidated local record for one SRC run.

    Taxonomy fields resolve through the ID mapping, then the name mapping; anything
    left unresolved keeps an empty local ID and carries the SRC name instead.
    """
    logger = logger or get_logger()
    caches = caches if caches is not None else NameCaches()

    run_type = CO_OP if len(run.players) > 1 else SOLO
    player1 = await _player_name(run.players[0], source, caches, logger) if run.players else ""
    player2: Optional[str] = None
    if run_type == CO_OP:
        player2 = await _player_name(run.players[1], source, caches, logger) or UNKNOWN_PLAYER

    category_id, category_name = _resolve_category(run, mapping)
    level_id, level_name = _resolve_level(run, mapping)

    platform_id = ""
    platform_name = await _platform_name(run, mapping, source, caches, logger)
    if run.platform is not None and run.platform.id:
        platform_id = mapping.platform_mapping.get(run.platform.id, "")
        if not platform_id and platform_name:
            platform_id = mapping.platform_name_mapping.get(normalize_name(platform_name), "")
        if not platform_id and not platform_name:
            platform_name = UNKNOWN_PLATFORM

    return LocalRun(
        player_id=IMPORTED_PLAYER_ID,
        player_name=clean(player1) or UNKNOWN_PLAYER,
        player2_name=(clean(player2) or UNKNOWN_PLAYER) if run_type == CO_OP else None,
        category=category_id,
        platform=platform_id,
        level=level_id or None,
        run_type=run_type,
        leaderboard_type=_leaderboard_type(run),
        time=_run_time(run),
        date=date_part(run.date) or date_part(run.submitted),
        video_url=run.video_url,
        comment=run.comment,
        verified=False,
        imported_from_src=True,
        src_run_id=run.id,
        src_category_name=category_name or None,
        src_platform_name=platform_name or None,
        src_level_name=level_name or None,
    )
