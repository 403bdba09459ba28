"""
CSV document importer package.

Registers the importer blueprint, CLI and Celery worker when the importer is
enabled, and stays out of the way when it is not.
"""

from __future__ import annotations

from flask import Flask

from docimport.utils.importer import is_importer_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .pipeline.run_service import CSVImportService, ImportLogFilters
from .registry import get_document_factory_registry, get_naming_strategy_registry
from .views import importer_blueprint

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
    "CSVImportService",
    "ImportLogFilters",
]


def _ensure_extension_state(app: Flask) -> dict:
    state = app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "celery_app": None,
            "document_factories": (),
            "naming_strategies": (),
        },
    )
    return state


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount importer blueprint and CLI based on configuration.

    Records importer state inside ``app.extensions['importer']`` for reuse by
    the CLI, the task wiring and other helpers.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "worker_enabled": bool(app.config.get("IMPORTER_WORKER_ENABLED", False)),
        }
    )

    if not enabled:
        state["document_factories"] = ()
        state["naming_strategies"] = ()
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    state["document_factories"] = tuple(get_document_factory_registry())
    state["naming_strategies"] = tuple(get_naming_strategy_registry())
    ensure_celery_app(app, state)

    if importer_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(importer_blueprint)
    elif importer_blueprint.name not in app.blueprints:
        app.logger.warning(
            "Importer blueprint registration skipped because the app has already handled its first request."
        )
    _set_cli(app, enabled=True)

    app.logger.info(
        "Importer enabled (repository=%s, document factories: %s)",
        app.config.get("IMPORTER_REPOSITORY_NAME", "default"),
        ", ".join(state["document_factories"]),
    )
