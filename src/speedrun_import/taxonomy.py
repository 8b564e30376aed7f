"""External -> local taxonomy mapping for one import batch.

Categories, platforms and levels are matched by trimmed, case-insensitive name.
Anything that does not match stays importable under its foreign name; nothing is
ever created locally.
"""

from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ConfigurationError, FetchError, MappingWarning
from .logging_utils import get_logger, log_json
from .models import Embedded, ExternalRun, LocalRun, NameCaches, TaxonomyItem, pick_name
from .normalize import clean, normalize_leaderboard_type, normalize_name
from .speedruncom import ExternalSource
from .store import LocalStore


@dataclass
class TaxonomyMapping:
    # SRC id -> local id, only where a local item matched by name
    category_mapping: Dict[str, str] = field(default_factory=dict)
    platform_mapping: Dict[str, str] = field(default_factory=dict)
    level_mapping: Dict[str, str] = field(default_factory=dict)
    # normalized SRC name -> local id
    category_name_mapping: Dict[str, str] = field(default_factory=dict)
    platform_name_mapping: Dict[str, str] = field(default_factory=dict)
    # SRC id -> SRC name, kept whether or not a local match exists
    src_platform_id_to_name: Dict[str, str] = field(default_factory=dict)
    src_category_id_to_name: Dict[str, str] = field(default_factory=dict)
    src_level_id_to_name: Dict[str, str] = field(default_factory=dict)


def _index_by_name(items: Iterable[TaxonomyItem]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for item in items:
        key = normalize_name(item.name)
        if key and key not in index:
            index[key] = item.id
    return index


def _warn(logger: logging.Logger, event: str, message: str, **extra: Any) -> None:
    log_json(logger, event, level="warning", **extra)
    warnings.warn(message, MappingWarning, stacklevel=3)


async def _local(fn, what: str) -> List[TaxonomyItem]:
    try:
        return await asyncio.to_thread(fn)
    except Exception as exc:
        raise FetchError(f"could not load local {what}: {exc}") from exc


async def _remote(coro, what: str) -> List[Dict[str, Any]]:
    try:
        return await coro
    except FetchError:
        raise
    except Exception as exc:
        raise FetchError(f"could not load SRC {what}: {exc}") from exc


async def _backfill_platform_names(
    platform_ids: Sequence[str],
    source: ExternalSource,
    caches: NameCaches,
    logger: logging.Logger,
) -> None:
    async def _one(platform_id: str) -> None:
        try:
            name = await source.fetch_platform_name(platform_id)
        except Exception as exc:
            caches.platforms[platform_id] = ""
            _warn(
                logger,
                "platform_lookup_failed",
                f"platform {platform_id} could not be resolved: {exc}",
                platform_id=platform_id,
                error=str(exc),
            )
            return
        caches.platforms[platform_id] = clean(name)

    await asyncio.gather(*(_one(pid) for pid in platform_ids))


async def build_mappings(
    runs: Sequence[ExternalRun],
    store: LocalStore,
    source: ExternalSource,
    caches: Optional[NameCaches] = None,
    game_id: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> TaxonomyMapping:
    logger = logger or get_logger()
    caches = caches if caches is not None else NameCaches()
    if game_id is None:
        game_id = await source.resolve_game_id()
        if not game_id:
            raise ConfigurationError("could not resolve the game on speedrun.com")

    (
        local_categories,
        local_platforms,
        local_levels,
        src_categories,
        src_levels,
    ) = await asyncio.gather(
        _local(store.list_categories, "categories"),
        _local(store.list_platforms, "platforms"),
        _local(store.list_levels, "levels"),
        _remote(source.list_categories(game_id), "categories"),
        _remote(source.list_levels(game_id), "levels"),
    )

    mapping = TaxonomyMapping()
    categories_by_name = _index_by_name(local_categories)
    platforms_by_name = _index_by_name(local_platforms)
    levels_by_name = _index_by_name(local_levels)

    # Only platforms this batch actually uses; embedded names are taken as-is.
    to_fetch: List[str] = []
    for run in runs:
        ref = run.platform
        if ref is None or not ref.id:
            continue
        if isinstance(ref, Embedded) and ref.name:
            caches.platforms.setdefault(ref.id, ref.name)
        elif ref.id not in caches.platforms and ref.id not in to_fetch:
            to_fetch.append(ref.id)
    if to_fetch:
        await _backfill_platform_names(to_fetch, source, caches, logger)

    used_platform_ids = {run.platform.id for run in runs if run.platform is not None and run.platform.id}
    for platform_id in sorted(used_platform_ids):
        name = caches.platforms.get(platform_id, "")
        if not name:
            log_json(logger, "platform_without_name", level="warning", platform_id=platform_id)
            continue
        mapping.src_platform_id_to_name[platform_id] = name
        local_id = platforms_by_name.get(normalize_name(name))
        if local_id:
            mapping.platform_mapping[platform_id] = local_id
            mapping.platform_name_mapping[normalize_name(name)] = local_id
        else:
            log_json(logger, "platform_unmapped", platform_id=platform_id, name=name)

    for cat in src_categories:
        cat_id, name = clean(cat.get("id")), pick_name(cat)
        if not cat_id or not name:
            continue
        mapping.src_category_id_to_name[cat_id] = name
        local_id = categories_by_name.get(normalize_name(name))
        if local_id:
            mapping.category_mapping[cat_id] = local_id
            mapping.category_name_mapping[normalize_name(name)] = local_id

    for level in src_levels:
        level_id, name = clean(level.get("id")), pick_name(level)
        if not level_id or not name:
            continue
        mapping.src_level_id_to_name[level_id] = name
        local_id = levels_by_name.get(normalize_name(name))
        if local_id:
            mapping.level_mapping[level_id] = local_id

    # Runs may reference categories/levels the game listing no longer returns.
    for run in runs:
        for ref, cache in ((run.category, mapping.src_category_id_to_name), (run.level, mapping.src_level_id_to_name)):
            if isinstance(ref, Embedded) and ref.name:
                cache.setdefault(ref.id, ref.name)

    log_json(
        logger,
        "taxonomy_mapped",
        runs=len(runs),
        categories_mapped=len(mapping.category_mapping),
        platforms_mapped=len(mapping.platform_mapping),
        platforms_named=len(mapping.src_platform_id_to_name),
        levels_mapped=len(mapping.level_mapping),
    )
    return mapping


# ---------------------------------------------------------------------------
# Re-resolving stored imported runs
# ---------------------------------------------------------------------------

def resolve_foreign_names(
    run: LocalRun,
    categories: Sequence[TaxonomyItem],
    platforms: Sequence[TaxonomyItem],
    levels: Sequence[TaxonomyItem] = (),
) -> Dict[str, str]:
    """Fill a stored run's empty local IDs from its foreign names.

    Used after an admin adds the missing category/platform/level locally. Stale IDs
    that no longer exist are dropped first; a category only counts when its
    leaderboard type matches the run's. Returns the changed fields only.
    """
    lb_type = normalize_leaderboard_type(run.leaderboard_type)
    updates: Dict[str, str] = {}

    category = clean(run.category)
    by_id = {c.id: c for c in categories}
    if category and (
        category not in by_id or normalize_leaderboard_type(by_id[category].leaderboard_type) != lb_type
    ):
        category = ""
    if not category and run.src_category_name:
        wanted = normalize_name(run.src_category_name)
        for cat in categories:
            if normalize_leaderboard_type(cat.leaderboard_type) == lb_type and normalize_name(cat.name) == wanted:
                category = cat.id
                break
    if category != clean(run.category):
        updates["category"] = category

    platform = clean(run.platform)
    if platform and platform not in {p.id for p in platforms}:
        platform = ""
    if not platform and run.src_platform_name:
        platform = _index_by_name(platforms).get(normalize_name(run.src_platform_name), "")
    if platform != clean(run.platform):
        updates["platform"] = platform

    level = clean(run.level)
    if level and levels and level not in {lv.id for lv in levels}:
        level = ""
    if not level and run.src_level_name:
        level = _index_by_name(levels).get(normalize_name(run.src_level_name), "")
    if level != clean(run.level):
        updates["level"] = level

    return updates


def _label(local_id: Optional[str], items: Sequence[TaxonomyItem], foreign: Optional[str], unknown: str) -> str:
    local_id = clean(local_id)
    if local_id:
        for item in items:
            if item.id == local_id:
                return item.name
    if foreign:
        return foreign
    return local_id or unknown


def category_label(run: LocalRun, categories: Sequence[TaxonomyItem]) -> str:
    return _label(run.category, categories, run.src_category_name, "Unknown Category")


def platform_label(run: LocalRun, platforms: Sequence[TaxonomyItem]) -> str:
    return _label(run.platform, platforms, run.src_platform_name, "Unknown Platform")


def level_label(run: LocalRun, levels: Sequence[TaxonomyItem]) -> str:
    return _label(run.level, levels, run.src_level_name, "Unknown Level")
