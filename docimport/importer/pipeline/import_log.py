"""Per-line outcome log of a CSV import job."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from docimport.importer.metrics import record_row
from docimport.models.importer.schema import ImportLogStatus

from .errors import ImportRowError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportLogEntry:
    """Immutable record of the terminal outcome of one CSV line."""

    line: int
    status: ImportLogStatus
    message: str
    localized_message: str
    params: tuple[object, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "line": self.line,
            "status": self.status.value,
            "message": self.message,
            "localized_message": self.localized_message,
            "params": [str(param) for param in self.params],
        }


class ImportLogAccumulator:
    """
    Append-only, order-preserving sequence of log entries owned by one job.

    Only the engine processing the job appends; everyone else reads through
    ``snapshot`` which returns a point-in-time copy.
    """

    def __init__(self) -> None:
        self._entries: list[ImportLogEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: ImportLogEntry) -> ImportLogEntry:
        self._entries.append(entry)
        record_row(entry.status.value)
        return entry

    def success(self, line: int, message: str, localized_message: str) -> ImportLogEntry:
        return self.append(ImportLogEntry(line, ImportLogStatus.SUCCESS, message, localized_message))

    def skipped(self, line: int, message: str, localized_message: str) -> ImportLogEntry:
        return self.append(ImportLogEntry(line, ImportLogStatus.SKIPPED, message, localized_message))

    def error(self, line: int, message_template: str, localized_message: str, *params: object) -> ImportLogEntry:
        message = message_template % params if params else message_template
        logger.error("Line %d: %s", line, message)
        return self.append(ImportLogEntry(line, ImportLogStatus.ERROR, message, localized_message, tuple(params)))

    def row_error(self, line: int, exc: ImportRowError) -> ImportLogEntry:
        return self.error(line, exc.message_template, exc.localized_message, *exc.params)

    def snapshot(self, *statuses: ImportLogStatus) -> tuple[ImportLogEntry, ...]:
        if not statuses:
            return tuple(self._entries)
        wanted = set(statuses)
        return tuple(entry for entry in self._entries if entry.status in wanted)


@dataclass(frozen=True)
class ImportResult:
    """Line counts by outcome for a finished import."""

    total_line_count: int
    success_line_count: int
    skipped_line_count: int
    error_line_count: int

    @classmethod
    def from_import_logs(cls, entries: Iterable[ImportLogEntry]) -> "ImportResult":
        counts: Counter[ImportLogStatus] = Counter(entry.status for entry in entries)
        return cls(
            total_line_count=sum(counts.values()),
            success_line_count=counts[ImportLogStatus.SUCCESS],
            skipped_line_count=counts[ImportLogStatus.SKIPPED],
            error_line_count=counts[ImportLogStatus.ERROR],
        )

    @classmethod
    def from_counts(cls, payload: dict | None) -> "ImportResult":
        payload = payload or {}
        return cls(
            total_line_count=int(payload.get("total", 0)),
            success_line_count=int(payload.get("success", 0)),
            skipped_line_count=int(payload.get("skipped", 0)),
            error_line_count=int(payload.get("error", 0)),
        )

    def as_counts(self) -> dict[str, int]:
        return {
            "total": self.total_line_count,
            "success": self.success_line_count,
            "skipped": self.skipped_line_count,
            "error": self.error_line_count,
        }
