from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import TranslationError
from .normalize import REGULAR, SOLO, clean, normalize_leaderboard_type, normalize_run_type


# ---------------------------------------------------------------------------
# External (speedrun.com) shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ById:
    id: str


@dataclass(frozen=True)
class Embedded:
    id: str
    name: str = ""
    type: Optional[str] = None


ExternalRef = Union[ById, Embedded]


def pick_name(data: Dict[str, Any]) -> str:
    name = clean(data.get("name")) if isinstance(data.get("name"), str) else ""
    if name:
        return name
    names = data.get("names")
    if isinstance(names, dict):
        intl = names.get("international")
        if isinstance(intl, str) and intl.strip():
            return intl.strip()
        for value in names.values():
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


def parse_ref(value: Any, run_id: str) -> Optional[ExternalRef]:
    """Turn a bare ID or an embedded ``{"data": ...}`` object into an ExternalRef."""
    if value is None:
        return None
    if isinstance(value, str):
        ref_id = value.strip()
        return ById(ref_id) if ref_id else None
    if isinstance(value, dict) and "data" in value:
        data = value["data"]
        if isinstance(data, list):
            if not data:
                return None
            data = data[0]
        if not isinstance(data, dict):
            raise TranslationError(run_id, f"unparseable embedded reference {value!r}")
        ref_id = clean(data.get("id"))
        if not ref_id:
            raise TranslationError(run_id, "embedded reference has no id")
        ref_type = data.get("type") if isinstance(data.get("type"), str) else None
        return Embedded(ref_id, pick_name(data), ref_type)
    if isinstance(value, dict) and "id" in value:
        # Some responses inline the resource without the data wrapper.
        ref_id = clean(value.get("id"))
        if ref_id:
            return Embedded(ref_id, pick_name(value), value.get("type"))
    raise TranslationError(run_id, f"unparseable reference {value!r}")


def ref_id(ref: Optional[ExternalRef]) -> str:
    return ref.id if ref is not None else ""


def ref_name(ref: Optional[ExternalRef]) -> str:
    return ref.name if isinstance(ref, Embedded) else ""


@dataclass(frozen=True)
class ExternalPlayer:
    rel: str
    id: str = ""
    name: str = ""

    @property
    def is_guest(self) -> bool:
        return self.rel == "guest"

    @classmethod
    def from_api(cls, raw: Any) -> "ExternalPlayer":
        if not isinstance(raw, dict):
            return cls(rel="unknown")
        rel = clean(raw.get("rel")) or "user"
        player_id = clean(raw.get("id"))
        # Embedded players are full user resources; older payloads wrap them in "data".
        data = raw.get("data")
        if isinstance(data, dict):
            player_id = player_id or clean(data.get("id"))
        name = pick_name(raw)
        if not name and isinstance(data, dict):
            name = pick_name(data)
        return cls(rel=rel, id=player_id, name=name)


def _section(raw: Dict[str, Any], key: str, run_id: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise TranslationError(run_id, f"unparseable {key} {value!r}")
    return value


@dataclass(frozen=True)
class ExternalRun:
    id: str
    category: Optional[ExternalRef]
    players: Tuple[ExternalPlayer, ...] = ()
    level: Optional[ExternalRef] = None
    platform: Optional[ExternalRef] = None
    primary_time: Optional[str] = None
    primary_seconds: Optional[float] = None
    date: Optional[str] = None
    submitted: Optional[str] = None
    video_url: Optional[str] = None
    comment: Optional[str] = None
    weblink: Optional[str] = None
    emulated: bool = False
    region: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ExternalRun":
        run_id = clean(raw.get("id"))
        if not run_id:
            raise TranslationError("<unknown>", "run has no id")
        players_raw = raw.get("players") or []
        if isinstance(players_raw, dict):
            players_raw = players_raw.get("data") or []
        if not isinstance(players_raw, list):
            raise TranslationError(run_id, f"unparseable players {players_raw!r}")
        times = _section(raw, "times", run_id)
        system = _section(raw, "system", run_id)
        videos = raw.get("videos") or {}
        links = (videos.get("links") or []) if isinstance(videos, dict) else []
        if not isinstance(links, list):
            links = []
        video_url = None
        if links and isinstance(links[0], dict):
            video_url = clean(links[0].get("uri")) or None
        return cls(
            id=run_id,
            category=parse_ref(raw.get("category"), run_id),
            players=tuple(ExternalPlayer.from_api(p) for p in players_raw),
            level=parse_ref(raw.get("level"), run_id),
            platform=parse_ref(system.get("platform"), run_id),
            primary_time=times.get("primary"),
            primary_seconds=times.get("primary_t"),
            date=raw.get("date"),
            submitted=raw.get("submitted"),
            video_url=video_url,
            comment=clean(raw.get("comment")) or None,
            weblink=raw.get("weblink"),
            emulated=bool(system.get("emulated", False)),
            region=system.get("region"),
        )


# ---------------------------------------------------------------------------
# Local shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaxonomyItem:
    id: str
    name: str
    order: Optional[int] = None
    leaderboard_type: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TaxonomyItem":
        order = doc.get("order")
        return cls(
            id=clean(doc.get("id")),
            name=clean(doc.get("name")),
            order=int(order) if order is not None else None,
            leaderboard_type=doc.get("leaderboardType"),
        )


# Local attribute name -> store document key
_DOCUMENT_FIELDS = (
    ("id", "id"),
    ("player_id", "playerId"),
    ("player_name", "playerName"),
    ("player2_name", "player2Name"),
    ("category", "category"),
    ("platform", "platform"),
    ("level", "level"),
    ("run_type", "runType"),
    ("leaderboard_type", "leaderboardType"),
    ("time", "time"),
    ("date", "date"),
    ("video_url", "videoUrl"),
    ("comment", "comment"),
    ("verified", "verified"),
    ("imported_from_src", "importedFromSRC"),
    ("src_run_id", "srcRunId"),
    ("src_category_name", "srcCategoryName"),
    ("src_platform_name", "srcPlatformName"),
    ("src_level_name", "srcLevelName"),
)


@dataclass
class LocalRun:
    player_name: str
    category: str = ""
    platform: str = ""
    time: str = ""
    date: str = ""
    run_type: str = SOLO
    leaderboard_type: str = REGULAR
    player2_name: Optional[str] = None
    level: Optional[str] = None
    player_id: str = "imported"
    video_url: Optional[str] = None
    comment: Optional[str] = None
    verified: bool = False
    imported_from_src: bool = False
    src_run_id: Optional[str] = None
    src_category_name: Optional[str] = None
    src_platform_name: Optional[str] = None
    src_level_name: Optional[str] = None
    id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Store shape; None-valued optional fields are omitted."""
        doc: Dict[str, Any] = {}
        for attr, key in _DOCUMENT_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            doc[key] = value
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LocalRun":
        kwargs = {attr: doc[key] for attr, key in _DOCUMENT_FIELDS if key in doc}
        kwargs.setdefault("player_name", "")
        kwargs["verified"] = bool(kwargs.get("verified", False))
        kwargs["imported_from_src"] = bool(kwargs.get("imported_from_src", False))
        # Older manual entries may carry "coop" or no run type at all.
        kwargs["run_type"] = normalize_run_type(kwargs.get("run_type"))
        kwargs["leaderboard_type"] = normalize_leaderboard_type(kwargs.get("leaderboard_type"))
        return cls(**kwargs)


@dataclass(frozen=True)
class ImportProgress:
    total: int
    imported: int
    skipped: int


@dataclass(frozen=True)
class ImportResult:
    imported: int = 0
    skipped: int = 0
    unmatched_players: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    errors: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        imported: int,
        skipped: int,
        unmatched_players: Dict[str, Dict[str, str]],
        errors: List[str],
    ) -> "ImportResult":
        frozen = {k: MappingProxyType(dict(v)) for k, v in unmatched_players.items()}
        return cls(imported, skipped, MappingProxyType(frozen), tuple(errors))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "unmatched_players": {k: dict(v) for k, v in self.unmatched_players.items()},
            "errors": list(self.errors),
        }


@dataclass
class NameCaches:
    """Per-batch external ID -> display name caches; one fetch per ID per batch."""

    players: Dict[str, str] = field(default_factory=dict)
    platforms: Dict[str, str] = field(default_factory=dict)
