from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union

from .api_client import ApiClient, ApiConfig
from .config import Config, get_api_key
from .dedupe import DedupIndex
from .errors import (
    ConfigurationError,
    DuplicateSkip,
    FetchError,
    PersistenceError,
    RecordError,
    TranslationError,
    ValidationError,
)
from .logging_utils import get_logger, log_json
from .models import ExternalRun, ImportProgress, ImportResult, LocalRun, NameCaches
from .normalize import clean
from .s3_io import S3IO, make_part_key, new_import_id
from .speedruncom import ExternalSource, SpeedrunComSource
from .store import DynamoStore, LocalStore, PlayerIndex
from .taxonomy import TaxonomyMapping, build_mappings
from .translate import translate_run
from .validate import validate_run

ProgressCallback = Callable[[ImportProgress], None]


class Stage(enum.Enum):
    INIT = "init"
    RESOLVE_SOURCE = "resolve_source"
    BUILD_MAPPINGS = "build_mappings"
    LOAD_EXISTING_KEYS = "load_existing_keys"
    PER_RECORD = "per_record"
    DONE = "done"


@dataclass
class ReportSettings:
    s3: S3IO
    meta_prefix: str = "meta"
    deadletter_prefix: str = "deadletter"


@dataclass
class ImportSession:
    """Everything one batch mutates. A new session is created per run_import call."""

    import_id: str = field(default_factory=new_import_id)
    caches: NameCaches = field(default_factory=NameCaches)
    dedup: DedupIndex = field(default_factory=DedupIndex)
    known_src_run_ids: Set[str] = field(default_factory=set)
    # Loaded on the first import of the batch
    players: Optional[PlayerIndex] = None
    stage: Stage = Stage.INIT
    total: int = 0
    imported: int = 0
    skipped: int = 0
    unmatched_players: Dict[str, Dict[str, str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def result(self) -> ImportResult:
        return ImportResult.build(self.imported, self.skipped, self.unmatched_players, self.errors)


class Importer:
    def __init__(
        self,
        source: ExternalSource,
        store: LocalStore,
        logger=None,
        limit: int = 500,
        reports: Optional[ReportSettings] = None,
    ) -> None:
        self.source = source
        self.store = store
        self.logger = logger or get_logger()
        self.limit = limit
        self.reports = reports
        self._api: Optional[ApiClient] = None

    @classmethod
    def from_config(cls, config: Config, logger=None) -> "Importer":
        logger = logger or get_logger()
        api = ApiClient(ApiConfig(**config.api), get_api_key())
        api.set_logger(logger)
        settings = config.import_settings
        source = SpeedrunComSource(
            api,
            game_abbreviation=config.source["game_abbreviation"],
            game_name=config.source.get("game_name"),
            page_size=int(settings["page_size"]),
        )
        store = DynamoStore(config.region, config.store)
        reports = None
        if config.reports.get("bucket"):
            reports = ReportSettings(
                s3=S3IO(config.reports["bucket"], config.region),
                meta_prefix=config.reports.get("meta_prefix", "meta"),
                deadletter_prefix=config.reports.get("deadletter_prefix", "deadletter"),
            )
        importer = cls(source, store, logger=logger, limit=int(settings["limit"]), reports=reports)
        importer._api = api
        return importer

    async def close(self) -> None:
        if self._api is not None:
            await self._api.close()

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def run_import(self, progress_callback: Optional[ProgressCallback] = None) -> ImportResult:
        session = ImportSession()
        log_json(self.logger, "import_started", import_id=session.import_id, limit=self.limit)
        try:
            await self._run(session, progress_callback)
        finally:
            self._enter(session, Stage.DONE)
            self._write_reports(session)
        result = session.result()
        log_json(
            self.logger,
            "import_finished",
            import_id=session.import_id,
            total=session.total,
            imported=result.imported,
            skipped=result.skipped,
            errors=len(result.errors),
            unmatched_players=len(result.unmatched_players),
        )
        return result

    async def _run(self, session: ImportSession, progress_callback: Optional[ProgressCallback]) -> None:
        self._enter(session, Stage.RESOLVE_SOURCE)
        try:
            game_id = await self.source.resolve_game_id()
        except Exception as exc:
            return self._abort(session, f"Failed to resolve game: {exc}")
        if not game_id:
            return self._abort(session, "Could not find the game on speedrun.com")
        try:
            raw_runs = await self.source.list_runs(game_id, self.limit)
        except Exception as exc:
            return self._abort(session, f"Failed to fetch runs: {exc}")
        if not raw_runs:
            return self._abort(session, "No runs found to import")
        session.total = len(raw_runs)
        parsed = [_parse(raw) for raw in raw_runs]

        self._enter(session, Stage.BUILD_MAPPINGS)
        try:
            mapping = await build_mappings(
                [p for p in parsed if isinstance(p, ExternalRun)],
                self.store,
                self.source,
                caches=session.caches,
                game_id=game_id,
                logger=self.logger,
            )
        except Exception as exc:
            return self._abort(session, f"Failed to create mappings: {exc}")

        self._enter(session, Stage.LOAD_EXISTING_KEYS)
        try:
            existing = await asyncio.to_thread(self.store.list_runs_for_duplicate_check)
        except Exception as exc:
            return self._abort(session, f"Failed to fetch existing runs: {exc}")
        session.known_src_run_ids = {clean(r.src_run_id) for r in existing if clean(r.src_run_id)}
        session.dedup = DedupIndex.from_stored(existing)
        log_json(
            self.logger,
            "existing_keys_loaded",
            runs=len(existing),
            src_run_ids=len(session.known_src_run_ids),
            identity_keys=len(session.dedup),
        )

        self._enter(session, Stage.PER_RECORD)
        self._progress(session, progress_callback)
        for raw, item in zip(raw_runs, parsed):
            run_id = item.id if isinstance(item, ExternalRun) else _raw_id(raw)
            try:
                await self._process(session, run_id, item, mapping)
            except DuplicateSkip as exc:
                session.skipped += 1
                log_json(self.logger, "run_skipped", run_id=run_id, reason=exc.message)
            except RecordError as exc:
                self._record_failure(session, run_id, str(exc), raw)
            except Exception as exc:
                self.logger.exception("run_failed", extra={"extra": {"run_id": run_id}})
                self._record_failure(session, run_id, f"Run {run_id}: {exc}", raw)
            self._progress(session, progress_callback)

    async def _process(
        self,
        session: ImportSession,
        run_id: str,
        item: Union[ExternalRun, TranslationError],
        mapping: TaxonomyMapping,
    ) -> None:
        if run_id in session.known_src_run_ids:
            raise DuplicateSkip(run_id, "already imported")
        if isinstance(item, TranslationError):
            raise item

        try:
            local = await translate_run(item, mapping, self.source, session.caches, self.logger)
        except RecordError:
            raise
        except Exception as exc:
            raise TranslationError(run_id, f"mapping failed: {exc}") from exc

        violations = validate_run(local)
        if violations:
            raise ValidationError(run_id, violations)

        if session.dedup.is_duplicate(local):
            raise DuplicateSkip(run_id, "duplicate of an existing run")

        unmatched = await self._unmatched_players(session, local)

        try:
            new_id = await asyncio.to_thread(self.store.add_run, local)
        except Exception as exc:
            raise PersistenceError(run_id, str(exc)) from exc
        if not new_id:
            raise PersistenceError(run_id, "failed to save to database")

        if unmatched:
            session.unmatched_players[new_id] = unmatched
        session.dedup.add(local)
        session.known_src_run_ids.add(run_id)
        session.imported += 1
        log_json(self.logger, "run_imported", run_id=run_id, local_id=new_id)

    async def _unmatched_players(self, session: ImportSession, run: LocalRun) -> Dict[str, str]:
        """Names with no local player account. Informational only."""
        if session.players is None:
            try:
                session.players = await asyncio.to_thread(self.store.load_player_index)
            except Exception as exc:
                log_json(self.logger, "player_index_failed", level="warning", error=str(exc))
                session.players = PlayerIndex()
        unmatched: Dict[str, str] = {}
        names = [("player1", run.player_name)]
        if run.player2_name:
            names.append(("player2", run.player2_name))
        for slot, name in names:
            if not session.players.get_by_display_name(name):
                unmatched[slot] = name
        return unmatched

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, session: ImportSession, stage: Stage) -> None:
        session.stage = stage
        log_json(self.logger, "import_stage", import_id=session.import_id, stage=stage.value)

    def _abort(self, session: ImportSession, message: str) -> None:
        session.errors.append(message)
        log_json(self.logger, "import_aborted", level="error", stage=session.stage.value, error=message)

    def _record_failure(self, session: ImportSession, run_id: str, message: str, raw: Dict[str, Any]) -> None:
        session.skipped += 1
        session.errors.append(message)
        session.rejected.append({"run_id": run_id, "reason": message, "record": raw})
        log_json(self.logger, "run_rejected", level="warning", run_id=run_id, reason=message)

    def _progress(self, session: ImportSession, progress_callback: Optional[ProgressCallback]) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(ImportProgress(session.total, session.imported, session.skipped))
        except Exception:
            self.logger.exception("progress_callback_failed")

    def _write_reports(self, session: ImportSession) -> None:
        if self.reports is None:
            return
        summary = {
            "import_id": session.import_id,
            "started_at": session.started_at,
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "total": session.total,
            **session.result().to_dict(),
        }
        try:
            key = make_part_key(self.reports.meta_prefix, f"import_id={session.import_id}.json")
            self.reports.s3.put_json(key, summary)
            for rej in session.rejected:
                self.reports.s3.put_rejected(
                    self.reports.deadletter_prefix, session.import_id, rej["run_id"], rej["reason"], rej["record"]
                )
        except Exception as exc:
            log_json(self.logger, "report_write_failed", level="warning", import_id=session.import_id, error=str(exc))

    # ------------------------------------------------------------------
    # Single run preview
    # ------------------------------------------------------------------

    async def preview_run(self, run_id: str) -> Dict[str, Any]:
        """Translate and validate one SRC run without writing anything."""
        fetch = getattr(self.source, "fetch_run", None)
        if fetch is None:
            raise ConfigurationError("source cannot fetch single runs")
        run = await fetch(run_id)
        if run is None:
            raise FetchError(f"run {run_id} not found on speedrun.com")
        caches = NameCaches()
        mapping = await build_mappings([run], self.store, self.source, caches=caches, logger=self.logger)
        local = await translate_run(run, mapping, self.source, caches, self.logger)
        return {"run": local.to_document(), "violations": validate_run(local)}


def _raw_id(raw: Any) -> str:
    if isinstance(raw, dict):
        return clean(raw.get("id")) or "<unknown>"
    return "<unknown>"


def _parse(raw: Any) -> Union[ExternalRun, TranslationError]:
    if not isinstance(raw, dict):
        return TranslationError("<unknown>", f"unparseable run {raw!r}")
    try:
        return ExternalRun.from_api(raw)
    except TranslationError as exc:
        return exc
    except Exception as exc:
        return TranslationError(_raw_id(raw), f"unparseable run: {exc}")
