"""
Importer blueprint endpoints: health checks, CSV upload and import results.
"""

from __future__ import annotations

import time
from http import HTTPStatus

from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import NoResultFound

from docimport.importer.pipeline.run_service import CSVImportService
from docimport.utils.importer import is_importer_enabled

from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .registry import StrategyDescriptor, get_document_factory_registry, get_naming_strategy_registry
from .utils import allowed_file, cleanup_upload, persist_upload

importer_blueprint = Blueprint("importer", __name__, url_prefix="/importer")

OPTION_FIELDS = (
    "batch_size",
    "date_format",
    "list_separator_regex",
    "update_existing",
    "send_email",
    "document_factory",
    "naming_strategy",
    "default_type",
)


def _serialize_strategy(descriptor: StrategyDescriptor) -> dict:
    return {
        "name": descriptor.name,
        "title": descriptor.title,
        "summary": descriptor.summary,
    }


@importer_blueprint.get("/health")
def importer_healthcheck():
    """
    Lightweight health endpoint proving the importer blueprint mounted correctly.
    """
    importer_state = current_app.extensions.get("importer", {})
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": importer_state.get("enabled", False),
                "repository": current_app.config.get("IMPORTER_REPOSITORY_NAME", "default"),
                "document_factories": [
                    _serialize_strategy(item) for item in get_document_factory_registry().values()
                ],
                "naming_strategies": [_serialize_strategy(item) for item in get_naming_strategy_registry().values()],
            }
        ),
        200,
    )


@importer_blueprint.get("/worker_health")
def importer_worker_health():
    """
    Validate importer worker availability via the heartbeat task.
    """
    importer_state = current_app.extensions.get("importer", {})
    enabled = importer_state.get("enabled", False)
    worker_enabled = importer_state.get("worker_enabled", False)
    timeout_seconds = float(request.args.get("timeout", 5))

    payload = {
        "importer_enabled": enabled,
        "worker_enabled": worker_enabled,
        "queue": DEFAULT_QUEUE_NAME,
        "timeout_seconds": timeout_seconds,
    }

    if not enabled:
        payload["status"] = "disabled"
        return jsonify(payload), 200

    if not worker_enabled:
        payload["status"] = "disabled"
        payload["message"] = "Worker flag disabled; start the worker or set IMPORTER_WORKER_ENABLED=true."
        return jsonify(payload), 200

    celery_app = get_celery_app(current_app)
    if celery_app is None:
        payload["status"] = "error"
        payload["error"] = "celery_app_unavailable"
        return jsonify(payload), 500

    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        payload["status"] = "error"
        payload["error"] = "heartbeat_task_missing"
        return jsonify(payload), 500

    result = task.apply_async()
    try:
        payload["status"] = "ok"
        payload["heartbeat"] = result.get(timeout=timeout_seconds)
        return jsonify(payload), 200
    except CeleryTimeoutError:
        payload["status"] = "timeout"
        return jsonify(payload), 504
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Importer worker health check failed.", exc_info=exc)
        payload["status"] = "error"
        payload["error"] = str(exc)
        return jsonify(payload), 500


_import_service = CSVImportService()


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _ensure_importer_enabled_api():
    if not is_importer_enabled(current_app):
        return _json_error("Importer is disabled.", HTTPStatus.NOT_FOUND)
    return None


def _split_csv(value: str | None):
    if value in (None, "", ()):
        return ()
    return tuple(token.strip() for token in value.split(",") if token.strip())


def _parse_options() -> dict[str, str]:
    form = request.form
    return {name: form[name] for name in OPTION_FIELDS if form.get(name) not in (None, "")}


@importer_blueprint.post("/imports")
def importer_launch_import():
    """
    Accept a multipart CSV upload and launch its import.

    Form fields: ``file``, ``parent_path``, optional ``username``/``email``,
    ``inline`` and any importer option (``batch_size``, ``date_format``...).
    """
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return _json_error("A CSV file is required.", HTTPStatus.BAD_REQUEST)
    if not allowed_file(upload.filename):
        return _json_error("Only .csv uploads are supported.", HTTPStatus.BAD_REQUEST)

    parent_path = (request.form.get("parent_path") or "").strip()
    if not parent_path:
        return _json_error("parent_path is required.", HTTPStatus.BAD_REQUEST)

    try:
        options = _import_service.resolve_options(_parse_options())
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    stored_path, original_name = persist_upload(upload, current_app)
    inline = request.form.get("inline", "").strip().lower() in {"1", "true", "yes", "on"}
    start_time = time.perf_counter()
    try:
        import_key = _import_service.launch_import(
            parent_path=parent_path,
            source_path=stored_path,
            options=options,
            username=request.form.get("username") or None,
            email=request.form.get("email") or None,
            source_filename=original_name,
            inline=inline,
            keep_file=False,
        )
    except Exception as exc:
        current_app.logger.exception("Importer launch failed.", exc_info=exc)
        cleanup_upload(stored_path)
        return _json_error(f"Failed to launch import: {exc}", HTTPStatus.INTERNAL_SERVER_ERROR)

    payload = _import_service.summarize(_import_service.get_run(import_key))
    current_app.logger.info(
        "Importer upload accepted",
        extra={
            "importer_import_key": import_key,
            "importer_source_filename": original_name,
            "importer_status": payload["status"],
            "importer_response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
        },
    )
    return jsonify(payload), HTTPStatus.ACCEPTED


@importer_blueprint.get("/imports/<import_key>")
def importer_import_detail(import_key: str):
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        run = _import_service.get_run(import_key)
    except NoResultFound:
        return _json_error(f"Import {import_key} not found.", HTTPStatus.NOT_FOUND)
    return jsonify(_import_service.summarize(run)), HTTPStatus.OK


@importer_blueprint.get("/imports/<import_key>/logs")
def importer_import_logs(import_key: str):
    """Return the per-line log, optionally filtered with ``?status=error,skipped``."""
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    statuses = _split_csv(request.args.get("status"))
    try:
        entries = _import_service.get_import_logs(import_key, *statuses)
    except NoResultFound:
        return _json_error(f"Import {import_key} not found.", HTTPStatus.NOT_FOUND)
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    return (
        jsonify(
            {
                "import_key": import_key,
                "statuses": list(statuses),
                "total": len(entries),
                "entries": [entry.as_dict() for entry in entries],
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.get("/imports/<import_key>/result")
def importer_import_result(import_key: str):
    enabled_response = _ensure_importer_enabled_api()
    if enabled_response:
        return enabled_response

    try:
        result = _import_service.get_import_result(import_key)
    except NoResultFound:
        return _json_error(f"Import {import_key} not found.", HTTPStatus.NOT_FOUND)
    return jsonify({"import_key": import_key, **result.as_counts()}), HTTPStatus.OK
