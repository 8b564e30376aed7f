from __future__ import annotations

from typing import List


class SpeedrunImportError(Exception):
    """Base class for every error raised by the importer."""


class ConfigurationError(SpeedrunImportError):
    """The batch cannot start: bad config or the source game cannot be resolved."""


class FetchError(SpeedrunImportError):
    """The external source or the local store could not be reached."""


class MappingWarning(UserWarning):
    """A single taxonomy item could not be resolved; the run falls back to its foreign name."""


class RecordError(SpeedrunImportError):
    """Per-record failure. Caught at the record boundary, never fatal to the batch."""

    def __init__(self, run_id: str, message: str) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.message = message

    def __str__(self) -> str:
        return f"Run {self.run_id}: {self.message}"


class TranslationError(RecordError):
    pass


class ValidationError(RecordError):
    def __init__(self, run_id: str, violations: List[str]) -> None:
        super().__init__(run_id, ", ".join(violations))
        self.violations = list(violations)


class PersistenceError(RecordError):
    pass


class DuplicateSkip(RecordError):
    """Not an error: the run already exists and is counted as skipped."""
