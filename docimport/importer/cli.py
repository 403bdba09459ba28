"""
``flask importer`` commands: launch CSV imports, read their logs and manage
the worker.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo
from sqlalchemy.exc import NoResultFound

from docimport.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from docimport.importer.pipeline.run_service import CSVImportService
from docimport.importer.registry import get_document_factory_registry, get_naming_strategy_registry
from docimport.importer.utils import cleanup_upload, resolve_upload_directory
from docimport.models.importer.schema import ImportLogStatus
from docimport.utils.importer import is_importer_enabled

STATUS_CHOICES = tuple(status.value for status in ImportLogStatus)


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    CSV document importer commands.

    Lists the available strategies when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        click.echo("Document factories:")
        for descriptor in get_document_factory_registry().values():
            click.echo(f"  - {descriptor.name}: {descriptor.title}")
        click.echo("Naming strategies:")
        for descriptor in get_naming_strategy_registry().values():
            click.echo(f"  - {descriptor.name}: {descriptor.title}")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _collect_options(**raw) -> dict[str, object]:
    return {key: value for key, value in raw.items() if value is not None}


@importer_cli.command("run")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="CSV file to import.",
)
@click.option("--parent-path", required=True, help="Folder path the documents are created under.")
@click.option("--batch-size", type=int, help="Commit every N successful rows.")
@click.option("--date-format", help="strptime pattern for date fields (default %m/%d/%Y).")
@click.option("--list-separator", "list_separator_regex", help="Regex splitting list cells (default \\|).")
@click.option("--update-existing/--no-update-existing", default=None, help="Update documents that already exist.")
@click.option("--send-email", is_flag=True, default=None, help="E-mail the result when the import finishes.")
@click.option("--document-factory", help="Document factory strategy key.")
@click.option("--naming-strategy", help="Naming strategy used when the CSV has no name column.")
@click.option("--default-type", help="Document type used when the CSV has no type column.")
@click.option("--username", help="Operator recorded on the run.")
@click.option("--email", help="Address notified when --send-email is set.")
@click.option(
    "--inline/--no-inline",
    default=False,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
@click.pass_context
def importer_run(
    ctx,
    file_path: Path,
    parent_path: str,
    batch_size: Optional[int],
    date_format: Optional[str],
    list_separator_regex: Optional[str],
    update_existing: Optional[bool],
    send_email: Optional[bool],
    document_factory: Optional[str],
    naming_strategy: Optional[str],
    default_type: Optional[str],
    username: Optional[str],
    email: Optional[str],
    inline: bool,
):
    """Import a CSV file into the document store."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    service = CSVImportService()

    with app.app_context():
        try:
            options = service.resolve_options(
                _collect_options(
                    batch_size=batch_size,
                    date_format=date_format,
                    list_separator_regex=list_separator_regex,
                    update_existing=update_existing,
                    send_email=send_email,
                    document_factory=document_factory,
                    naming_strategy=naming_strategy,
                    default_type=default_type,
                )
            )
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc

        try:
            import_key = service.launch_import(
                parent_path=parent_path,
                source_path=file_path.resolve(),
                options=options,
                username=username,
                email=email,
                inline=inline,
            )
        except Exception as exc:
            raise click.ClickException(f"Import of {file_path.name} failed: {exc}") from exc

        payload = service.summarize(service.get_run(import_key))

    app.logger.info(
        "Import launched via CLI",
        extra={"importer_import_key": import_key, "importer_status": payload["status"], "importer_inline": inline},
    )
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@importer_cli.command("logs")
@click.argument("import_key")
@click.option(
    "--status",
    "statuses",
    multiple=True,
    type=click.Choice(STATUS_CHOICES, case_sensitive=False),
    help="Only show entries with this status (repeatable).",
)
@click.option("--json", "as_json", is_flag=True, help="Emit entries as JSON.")
@click.pass_context
def importer_logs(ctx, import_key: str, statuses: tuple[str, ...], as_json: bool):
    """Show the per-line log of an import."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    with app.app_context():
        try:
            entries = CSVImportService().get_import_logs(import_key, *statuses)
        except NoResultFound as exc:
            raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps([entry.as_dict() for entry in entries], indent=2))
        return
    if not entries:
        click.echo("No log entries.")
        return
    for entry in entries:
        click.echo(f"{entry.line:>6}  {entry.status.value.upper():<8} {entry.message}")


@importer_cli.command("result")
@click.argument("import_key")
@click.pass_context
def importer_result(ctx, import_key: str):
    """Print the line counts of an import."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    with app.app_context():
        try:
            result = CSVImportService().get_import_result(import_key)
        except NoResultFound as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(result.as_counts(), sort_keys=True))


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Imports run inline until the flag is enabled.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list to consume.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """
    Start the Celery worker in the current process.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """
    Validate worker connectivity by executing the heartbeat task.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc

    click.echo(json.dumps(payload, indent=2))


@importer_cli.command("cleanup-uploads")
@click.option(
    "--max-age-hours",
    default=72,
    show_default=True,
    type=int,
    help="Remove importer uploads older than the specified number of hours.",
)
@click.pass_context
def importer_cleanup_uploads(ctx, max_age_hours: int):
    """
    Delete stale importer upload files from the configured storage directory.
    """

    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    uploads_dir = resolve_upload_directory(app)

    cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
    removed = 0
    with app.app_context():
        for path in uploads_dir.iterdir():
            if not path.is_file():
                continue
            try:
                modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
            except FileNotFoundError:  # pragma: no cover - race condition
                continue
            if modified < cutoff:
                cleanup_upload(path)
                removed += 1

    click.echo(f"Removed {removed} upload file(s) older than {max_age_hours} hours from {uploads_dir}.")
