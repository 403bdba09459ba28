"""
Importer Celery tasks.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from docimport.importer.pipeline.run_service import CSVImportService


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="importer.pipeline.import_documents", bind=True)
def import_documents(self, *, run_id: int) -> dict[str, Any]:
    """
    Execute a queued CSV import run on the worker.

    Failures are recorded on the run by the service before being re-raised.
    """

    service = CSVImportService()
    current_app.logger.info(
        "Import run picked up by worker",
        extra={"importer_run_id": run_id, "importer_task_id": self.request.id},
    )
    result = service.execute_run(run_id)
    return {"run_id": run_id, "task_id": self.request.id, **result.as_counts()}
