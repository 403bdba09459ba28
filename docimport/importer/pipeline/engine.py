"""
Row-processing engine for CSV document imports.

The engine reads the header once, walks the data rows in file order and
records exactly one log entry per row. Row-level failures never abort the
job; only a failure reading the source stream ends it early.
"""

from __future__ import annotations

import csv
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Iterator, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docimport.importer.schema_catalog import SchemaCatalog

from .batch import BatchCoordinator
from .converters import FieldConverter
from .document_factory import DocumentFactory, DocumentRef, get_document_factory
from .errors import DocumentStoreError, ImportRowError, root_message, unwrap_exception
from .import_log import ImportLogAccumulator, ImportLogEntry, ImportResult
from .naming import NamingStrategy, get_naming_strategy
from .options import ImporterOptions, ImporterSettings
from .row_mapper import HeaderLayout, MappedRow, RowMapper

logger = logging.getLogger(__name__)

STREAM_ERRORS = (csv.Error, OSError, UnicodeDecodeError)
STORE_ERRORS = (DocumentStoreError, SQLAlchemyError)

EMPTY_FILE = ("No header line, empty file?", "label.csv.importer.emptyFile")
EMPTY_LINE = ("Empty line", "label.csv.importer.emptyLine")
DOCUMENT_CREATED = ("Document created", "label.csv.importer.documentCreated")
DOCUMENT_UPDATED = ("Document updated", "label.csv.importer.documentUpdated")
DOCUMENT_EXISTS = ("Document already exists", "label.csv.importer.documentAlreadyExists")
UNABLE_TO_CREATE = ("Unable to create document: %s", "label.csv.importer.unableToCreate")
UNABLE_TO_UPDATE = ("Unable to update document: %s", "label.csv.importer.unableToUpdate")
ERROR_DURING_IMPORT = ("Error while doing the import: %s", "label.csv.importer.errorDuringImport")


@dataclass(frozen=True)
class ImportId:
    """Stable identity of an import job."""

    value: str

    @classmethod
    def create(cls, repository: str, parent_path: str, source_filename: str, started_at: datetime) -> "ImportId":
        seed = "|".join((repository, parent_path, source_filename, started_at.isoformat()))
        return cls(hashlib.sha256(seed.encode("utf-8")).hexdigest())

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ImportJob:
    """
    One submitted CSV file and everything needed to process it.

    The job owns its log; callers read it through ``get_import_logs``.
    """

    import_id: ImportId
    repository: str
    parent_path: str
    source_path: Path
    source_filename: str
    options: ImporterOptions
    started_at: datetime
    username: str | None = None
    log: ImportLogAccumulator = field(default_factory=ImportLogAccumulator, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        *,
        parent_path: str,
        source_path: str | Path,
        options: ImporterOptions,
        repository: str = "default",
        source_filename: str | None = None,
        username: str | None = None,
        started_at: datetime | None = None,
    ) -> "ImportJob":
        source_path = Path(source_path)
        source_filename = source_filename or source_path.name
        started_at = started_at or datetime.now(timezone.utc)
        return cls(
            import_id=ImportId.create(repository, parent_path, source_filename, started_at),
            repository=repository,
            parent_path=parent_path,
            source_path=source_path,
            source_filename=source_filename,
            options=options,
            started_at=started_at,
            username=username,
        )

    @property
    def title(self) -> str:
        return f"CSV import in '{self.parent_path}'"

    def open_source(self) -> IO[str]:
        return self.source_path.open("r", encoding="utf-8-sig", newline="")

    def get_import_logs(self, *statuses) -> tuple[ImportLogEntry, ...]:
        return self.log.snapshot(*statuses)

    def get_import_result(self) -> ImportResult:
        return ImportResult.from_import_logs(self.log.snapshot())


class ImportEngine:
    """
    Drive one import job against a document store session.

    ``document_factory`` and ``naming_strategy`` default to the strategies
    named in the job options.
    """

    def __init__(
        self,
        session: Session,
        catalog: SchemaCatalog,
        settings: ImporterSettings,
        *,
        document_factory: DocumentFactory | None = None,
        naming_strategy: NamingStrategy | None = None,
    ) -> None:
        self.session = session
        self.catalog = catalog
        self.settings = settings
        self.document_factory = document_factory
        self.naming_strategy = naming_strategy

    def run(self, job: ImportJob) -> ImportResult:
        logger.info("Importing CSV file: %s", job.source_filename)
        try:
            handle = job.open_source()
        except STREAM_ERRORS as exc:
            self._log_stream_error(job, exc)
            return job.get_import_result()
        with handle:
            completed = self.import_rows(job, csv.reader(handle))
        if completed:
            logger.info("Done importing CSV file: %s", job.source_filename)
        return job.get_import_result()

    def import_rows(self, job: ImportJob, rows: Iterator[Sequence[str]]) -> bool:
        """
        Process already-lexed rows; the first row is the header.

        Only failures raised while reading ``rows`` count as stream failures:
        they close the current window with a commit, add one line-0 entry and
        return False. Anything raised while processing a row rolls the window
        back and propagates.
        """

        try:
            header = next(rows, None)
        except STREAM_ERRORS as exc:
            self._log_stream_error(job, exc)
            return False
        if header is None:
            job.log.error(0, *EMPTY_FILE)
            return True

        layout = HeaderLayout.from_header(header)
        mapper = self._build_row_mapper(job.options)
        factory = self.document_factory or get_document_factory(job.options.document_factory, self.session)
        batch = BatchCoordinator(self.session, job.options.batch_size)

        stream_error: BaseException | None = None
        line_number = 0
        try:
            while True:
                try:
                    cells = next(rows, None)
                except STREAM_ERRORS as exc:
                    stream_error = exc
                    break
                if cells is None:
                    break
                line_number += 1
                if not cells:
                    job.log.skipped(line_number, *EMPTY_LINE)
                    continue
                if self.import_line(job, mapper, factory, layout, line_number, cells):
                    batch.record_success()
        except BaseException:
            batch.finish(failed=True)
            raise
        batch.finish()

        if stream_error is not None:
            self._log_stream_error(job, stream_error)
            return False
        return True

    def _log_stream_error(self, job: ImportJob, exc: BaseException) -> None:
        job.log.error(0, *ERROR_DURING_IMPORT, root_message(exc))
        logger.debug("Stream failure while importing %s", job.source_filename, exc_info=exc)

    def import_line(
        self,
        job: ImportJob,
        mapper: RowMapper,
        factory: DocumentFactory,
        layout: HeaderLayout,
        line_number: int,
        cells: Sequence[str],
    ) -> bool:
        """Process one data row; returns True when a document was created or updated."""

        try:
            row = mapper.map_row(layout, cells)
        except ImportRowError as exc:
            job.log.row_error(line_number, exc)
            return False

        try:
            exists = factory.exists(job.parent_path, row.name, row.doc_type, row.properties)
        except STORE_ERRORS as exc:
            self._log_store_error(
                job, line_number, ImportRowError.message_template, ImportRowError.localized_message, exc
            )
            return False

        if exists:
            return self._update_document(job, factory, line_number, row)
        return self._create_document(job, factory, line_number, row)

    def _create_document(self, job: ImportJob, factory: DocumentFactory, line_number: int, row: MappedRow) -> bool:
        try:
            factory.create_document(job.parent_path, row.name, row.doc_type, row.properties)
        except STORE_ERRORS as exc:
            self._log_store_error(job, line_number, *UNABLE_TO_CREATE, exc)
            return False
        job.log.success(line_number, *DOCUMENT_CREATED)
        return True

    def _update_document(self, job: ImportJob, factory: DocumentFactory, line_number: int, row: MappedRow) -> bool:
        if not job.options.update_existing:
            job.log.skipped(line_number, *DOCUMENT_EXISTS)
            return False
        ref = DocumentRef(parent_path=job.parent_path, name=row.name, doc_type=row.doc_type)
        try:
            factory.update_document(ref, row.properties)
        except STORE_ERRORS as exc:
            self._log_store_error(job, line_number, *UNABLE_TO_UPDATE, exc)
            return False
        job.log.success(line_number, *DOCUMENT_UPDATED)
        return True

    def _log_store_error(
        self, job: ImportJob, line_number: int, message: str, localized_message: str, exc: BaseException
    ) -> None:
        root = unwrap_exception(exc)
        job.log.error(line_number, message, localized_message, root_message(exc))
        logger.debug("Store failure on line %d", line_number, exc_info=root)

    def _build_row_mapper(self, options: ImporterOptions) -> RowMapper:
        converter = FieldConverter(
            date_format=options.date_format,
            list_separator_regex=options.list_separator_regex,
            blobs_folder=self.settings.blobs_folder,
        )
        naming_strategy = self.naming_strategy or get_naming_strategy(options.naming_strategy)
        return RowMapper(self.catalog, converter, naming_strategy, default_type=options.default_type)
