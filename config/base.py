# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=1):
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except ValueError:
        return default
    return number if number >= minimum else default


def _parse_address_list(value):
    """
    Parse a comma-separated e-mail list while keeping order and removing duplicates.

    Returns:
        tuple[str, ...]: Normalized addresses.
    """
    if not value:
        return ()

    seen = set()
    addresses = []
    for raw_item in value.split(","):
        item = raw_item.strip()
        if not item or item.lower() in seen:
            continue
        seen.add(item.lower())
        addresses.append(item)
    return tuple(addresses)


_CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.dirname(_CONFIG_DIR)


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if not SECRET_KEY:
        SECRET_KEY = "dev-secret-key-change-in-production"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Importer configuration
    IMPORTER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_ENABLED"), default=True)
    IMPORTER_WORKER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_WORKER_ENABLED"), default=False)
    IMPORTER_REPOSITORY_NAME = os.environ.get("IMPORTER_REPOSITORY_NAME", "default")
    IMPORTER_SCHEMA_PATH = os.environ.get(
        "IMPORTER_SCHEMA_PATH",
        os.path.join(_CONFIG_DIR, "doctypes.yaml"),
    )
    IMPORTER_BLOBS_FOLDER = os.environ.get("IMPORTER_BLOBS_FOLDER")
    IMPORTER_DEFAULT_DOCUMENT_TYPE = os.environ.get("IMPORTER_DEFAULT_DOCUMENT_TYPE", "File")
    IMPORTER_BATCH_SIZE = _coerce_int(os.environ.get("IMPORTER_BATCH_SIZE"), 50)
    IMPORTER_DATE_FORMAT = os.environ.get("IMPORTER_DATE_FORMAT", "%m/%d/%Y")
    IMPORTER_LIST_SEPARATOR_REGEX = os.environ.get("IMPORTER_LIST_SEPARATOR_REGEX", r"\|")
    IMPORTER_MAIL_TO = _parse_address_list(os.environ.get("IMPORTER_MAIL_TO", ""))
    IMPORTER_UPLOAD_DIR = os.environ.get("IMPORTER_UPLOAD_DIR")
    IMPORTER_MAX_UPLOAD_MB = _coerce_int(os.environ.get("IMPORTER_MAX_UPLOAD_MB"), 25)
    MAX_CONTENT_LENGTH = IMPORTER_MAX_UPLOAD_MB * 1024 * 1024
    IMPORTER_TASK_TIME_LIMIT = _coerce_int(os.environ.get("IMPORTER_TASK_TIME_LIMIT"), 60 * 60)
    IMPORTER_TASK_SOFT_TIME_LIMIT = _coerce_int(os.environ.get("IMPORTER_TASK_SOFT_TIME_LIMIT"), 55 * 60)

    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")


class DevelopmentConfig(Config):
    DEBUG = True
    # Use instance folder for database to avoid conflicts
    instance_path = os.path.join(_PROJECT_ROOT, "instance")
    os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path_normalized = os.path.join(instance_path, "docimport_dev.db").replace("\\", "/")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{db_path_normalized}")
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    IMPORTER_ENABLED = True
    IMPORTER_WORKER_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
