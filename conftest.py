# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app to prevent database corruption
# This ensures app.py uses TestingConfig when imported
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from config.monitoring import TestingMonitoringConfig  # noqa: E402
from docimport.models import db  # noqa: E402


@pytest.fixture(scope="function")
def app(tmp_path):
    """Create and configure a test Flask application on an isolated database"""
    temp_db = tmp_path / "docimport_test.db"
    blobs_folder = tmp_path / "blobs"
    blobs_folder.mkdir()

    flask_app = create_app(
        TestingConfig,
        TestingMonitoringConfig,
        overrides={
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db.as_posix()}",
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "DEBUG": True,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            "LOG_LEVEL": "DEBUG",
            "IMPORTER_ENABLED": True,
            "IMPORTER_WORKER_ENABLED": False,
            "IMPORTER_BLOBS_FOLDER": str(blobs_folder),
            "IMPORTER_UPLOAD_DIR": str(tmp_path / "uploads"),
            "IMPORTER_MAIL_TO": (),
            "CELERY_SQLITE_PATH": str(tmp_path / "celery.sqlite"),
            "CELERY_CONFIG": {"task_always_eager": True, "task_eager_propagates": True},
            "MAIL_SERVER": None,
        },
    )

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()
