# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from docimport.importer import init_importer  # noqa: E402
from docimport.models import db  # noqa: E402
from docimport.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

_CONFIG_BY_ENV = {
    "production": (ProductionConfig, ProductionMonitoringConfig),
    "testing": (TestingConfig, TestingMonitoringConfig),
    "development": (DevelopmentConfig, DevelopmentMonitoringConfig),
}


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        # pysqlite's implicit transaction handling breaks SAVEPOINT; the engine "begin" hook emits BEGIN instead.
        dbapi_connection.isolation_level = None
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)

    return _configure_sqlite_connection


def _begin_sqlite_transaction(conn):  # pragma: no cover - instrumentation
    conn.exec_driver_sql("BEGIN")


def _configure_sqlite_engine(app: Flask) -> None:
    engine = db.engine
    if not engine.url.drivername.startswith("sqlite"):
        return
    if getattr(engine, "_sqlite_pragmas_configured", False):
        return
    pragma_hook = _configure_sqlite_connection_factory(enable_foreign_keys=True)
    event.listen(engine, "connect", pragma_hook)
    event.listen(engine, "begin", _begin_sqlite_transaction)
    engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(413)
    def upload_too_large(error):
        limit = app.config.get("IMPORTER_MAX_UPLOAD_MB")
        return jsonify({"error": f"Upload exceeds the {limit} MB limit."}), 413

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error."}), 500


def create_app(config_object=None, monitoring_object=None, overrides=None) -> Flask:
    """
    Build the Flask application.

    Configuration is chosen from ``FLASK_ENV`` unless ``config_object`` is
    given; ``overrides`` is applied last.
    """
    flask_env = os.environ.get("FLASK_ENV", "development")
    default_config, default_monitoring = _CONFIG_BY_ENV.get(flask_env, _CONFIG_BY_ENV["development"])

    flask_app = Flask(__name__)
    flask_app.config.from_object(config_object or default_config)
    flask_app.config.from_object(monitoring_object or default_monitoring)
    if overrides:
        flask_app.config.update(overrides)

    db.init_app(flask_app)
    setup_logging(flask_app)

    with flask_app.app_context():
        _configure_sqlite_engine(flask_app)
        # Create the database tables only if not in testing mode
        if not flask_app.config.get("TESTING", False):
            db.create_all()

    init_importer(flask_app)
    _register_error_handlers(flask_app)
    return flask_app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
