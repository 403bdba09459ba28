"""
Service layer around CSV import runs.

``launch_import`` records an ``ImportRun`` and either queues it on the
importer worker or executes it inline. ``execute_run`` drives the engine and
persists the job's log so it can be queried after the job is gone.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from docimport.importer.celery_app import get_celery_app
from docimport.importer.metrics import record_run_duration
from docimport.importer.notifications import send_import_result_email
from docimport.importer.registry import validate_strategy_keys
from docimport.importer.schema_catalog import get_active_schema_catalog
from docimport.importer.utils import cleanup_upload
from docimport.models import db
from docimport.models.importer.schema import ImportLogRecord, ImportLogStatus, ImportRun, ImportRunStatus
from docimport.utils.importer import is_worker_enabled

from .engine import ImportEngine, ImportId, ImportJob
from .import_log import ImportLogEntry, ImportResult
from .options import ImporterOptions, ImporterSettings

IMPORT_TASK_NAME = "importer.pipeline.import_documents"


@dataclass(frozen=True)
class ImportLogFilters:
    """Status filter applied when reading a run's log."""

    statuses: tuple[ImportLogStatus, ...] = field(default_factory=tuple)

    @classmethod
    def coerce(cls, statuses: Iterable[str | ImportLogStatus] | None = None) -> "ImportLogFilters":
        resolved: list[ImportLogStatus] = []
        for value in statuses or ():
            if value is None or value == "":
                continue
            status = _coerce_status(value)
            if status not in resolved:
                resolved.append(status)
        return cls(statuses=tuple(resolved))


class CSVImportService:
    """Facade for launching CSV imports and reading their outcome."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session or db.session

    # ---------------------------------------------------------------------
    # Launching and executing
    # ---------------------------------------------------------------------

    def launch_import(
        self,
        *,
        parent_path: str,
        source_path: str | Path,
        options: ImporterOptions | Mapping[str, Any] | None = None,
        username: str | None = None,
        email: str | None = None,
        source_filename: str | None = None,
        inline: bool = False,
        keep_file: bool = True,
    ) -> str:
        """
        Register an import of ``source_path`` under ``parent_path``.

        Runs inline when requested or when the worker is disabled; otherwise
        the run is queued on Celery. Returns the run's import key.
        """

        app = current_app._get_current_object()
        resolved_options = self.resolve_options(options)
        settings = ImporterSettings.from_app(app)
        source_path = Path(source_path)
        source_filename = source_filename or source_path.name
        created_at = datetime.now(timezone.utc)
        import_id = ImportId.create(settings.repository, parent_path, source_filename, created_at)

        run = ImportRun(
            import_key=str(import_id),
            repository=settings.repository,
            parent_path=parent_path,
            source_filename=source_filename,
            status=ImportRunStatus.PENDING,
            username=username,
            notify_email=email,
            options_json=resolved_options.as_dict(),
            counts_json={},
            ingest_params_json={"file_path": str(source_path), "keep_file": keep_file},
        )
        self.session.add(run)
        self.session.commit()
        run_id = run.id

        if inline or not is_worker_enabled(app):
            self.execute_run(run_id)
            return str(import_id)

        celery_app = get_celery_app(app)
        try:
            if celery_app is None:
                raise RuntimeError("Importer Celery app is unavailable.")
            async_result = celery_app.send_task(IMPORT_TASK_NAME, kwargs={"run_id": run_id})
        except Exception as exc:
            self._mark_failed(run_id, exc)
            raise

        app.logger.info(
            "Import run queued",
            extra={
                "importer_run_id": run_id,
                "importer_import_key": str(import_id),
                "importer_task_id": async_result.id,
                "importer_parent_path": parent_path,
            },
        )
        return str(import_id)

    def execute_run(self, run_id: int) -> ImportResult:
        """Process a pending run to completion and persist its log."""

        run = self.session.get(ImportRun, run_id)
        if run is None:
            raise NoResultFound(f"Import run {run_id} not found.")

        app = current_app._get_current_object()
        settings = ImporterSettings.from_app(app)
        params = run.ingest_params_json or {}
        source_path = Path(params.get("file_path") or "")

        run.status = ImportRunStatus.RUNNING
        run.started_at = datetime.now(timezone.utc)
        self.session.commit()
        start_time = time.perf_counter()

        job = ImportJob(
            import_id=ImportId(run.import_key),
            repository=run.repository,
            parent_path=run.parent_path,
            source_path=source_path,
            source_filename=run.source_filename,
            options=ImporterOptions.coerce(run.options_json),
            started_at=run.started_at,
            username=run.username,
        )

        try:
            engine = ImportEngine(self.session, get_active_schema_catalog(), settings)
            result = engine.run(job)
            self._persist_logs(run_id, job)
            run = self.session.get(ImportRun, run_id)
            run.counts_json = result.as_counts()
            run.status = ImportRunStatus.SUCCEEDED
            run.finished_at = datetime.now(timezone.utc)
            self.session.commit()
        except BaseException as exc:
            self._mark_failed(run_id, exc, job=job)
            record_run_duration(status="failed", duration_seconds=time.perf_counter() - start_time)
            app.logger.exception(
                "Import run failed",
                extra={"importer_run_id": run_id, "importer_error": str(exc)},
            )
            raise
        finally:
            if not params.get("keep_file", True):
                cleanup_upload(source_path)

        record_run_duration(status="succeeded", duration_seconds=time.perf_counter() - start_time)
        app.logger.info(
            "Import run completed",
            extra={
                "importer_run_id": run_id,
                "importer_import_key": run.import_key,
                "importer_title": job.title,
                "importer_counts": result.as_counts(),
            },
        )

        if job.options.send_email:
            send_import_result_email(run, result, job.get_import_logs(), mail_to=settings.mail_to)
        return result

    def resolve_options(self, options: ImporterOptions | Mapping[str, Any] | None) -> ImporterOptions:
        """Merge user options over the application defaults and validate strategy keys."""

        if isinstance(options, ImporterOptions):
            resolved = options
        else:
            resolved = ImporterOptions.coerce(options, defaults=ImporterOptions.from_config(current_app.config))
        validate_strategy_keys(resolved)
        return resolved

    # ---------------------------------------------------------------------
    # Reading
    # ---------------------------------------------------------------------

    def get_run(self, import_key: str) -> ImportRun:
        run = self.session.execute(select(ImportRun).where(ImportRun.import_key == import_key)).scalar_one_or_none()
        if run is None:
            raise NoResultFound(f"Import {import_key} not found.")
        return run

    def get_import_logs(self, import_key: str, *statuses: str | ImportLogStatus) -> list[ImportLogEntry]:
        run = self.get_run(import_key)
        filters = ImportLogFilters.coerce(statuses)
        query = select(ImportLogRecord).where(ImportLogRecord.run_id == run.id)
        if filters.statuses:
            query = query.where(ImportLogRecord.status.in_(filters.statuses))
        records = self.session.execute(query.order_by(ImportLogRecord.sequence)).scalars()
        return [_entry_from_record(record) for record in records]

    def get_import_result(self, import_key: str) -> ImportResult:
        run = self.get_run(import_key)
        return ImportResult.from_counts(run.counts_json)

    def summarize(self, run: ImportRun) -> dict[str, Any]:
        duration_seconds: float | None = None
        if run.started_at and run.finished_at:
            duration_seconds = (run.finished_at - run.started_at).total_seconds()
        return {
            "import_key": run.import_key,
            "title": run.title,
            "repository": run.repository,
            "parent_path": run.parent_path,
            "source_filename": run.source_filename,
            "status": run.status.value if isinstance(run.status, ImportRunStatus) else str(run.status),
            "username": run.username,
            "started_at": run.started_at.isoformat() if run.started_at else None,
            "finished_at": run.finished_at.isoformat() if run.finished_at else None,
            "duration_seconds": duration_seconds,
            "options": run.options_json or {},
            "counts": ImportResult.from_counts(run.counts_json).as_counts(),
            "error_summary": run.error_summary,
        }

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _persist_logs(self, run_id: int, job: ImportJob) -> None:
        for sequence, entry in enumerate(job.get_import_logs(), start=1):
            self.session.add(
                ImportLogRecord(
                    run_id=run_id,
                    sequence=sequence,
                    line=entry.line,
                    status=entry.status,
                    message=entry.message,
                    localized_message=entry.localized_message,
                    params_json=[str(param) for param in entry.params],
                )
            )

    def _mark_failed(self, run_id: int, exc: BaseException, job: ImportJob | None = None) -> None:
        """
        Record the failure on the run.

        Rows committed before the failure stay in the store, so the entries the
        job logged so far are persisted alongside the FAILED status.
        """
        self.session.rollback()
        run = self.session.get(ImportRun, run_id)
        if run is None:
            return
        if job is not None:
            self._persist_logs(run_id, job)
            run.counts_json = job.get_import_result().as_counts()
        run.status = ImportRunStatus.FAILED
        run.error_summary = str(exc) or exc.__class__.__name__
        run.finished_at = datetime.now(timezone.utc)
        self.session.commit()


def _entry_from_record(record: ImportLogRecord) -> ImportLogEntry:
    return ImportLogEntry(
        line=record.line,
        status=record.status,
        message=record.message,
        localized_message=record.localized_message,
        params=tuple(record.params_json or ()),
    )


def _coerce_status(value: str | ImportLogStatus) -> ImportLogStatus:
    if isinstance(value, ImportLogStatus):
        return value
    normalized = str(value).strip().lower()
    try:
        return ImportLogStatus(normalized)
    except ValueError:
        raise ValueError(f"Unsupported status filter '{value}'.") from None


_default_service = CSVImportService()


def launch_import(**kwargs: Any) -> str:
    return _default_service.launch_import(**kwargs)


def get_import_logs(import_key: str, *statuses: str | ImportLogStatus) -> list[ImportLogEntry]:
    return _default_service.get_import_logs(import_key, *statuses)


def get_import_result(import_key: str) -> ImportResult:
    return _default_service.get_import_result(import_key)
