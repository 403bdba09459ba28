import json
from typing import Any, Dict

from flask import Flask
from sqlalchemy import select

from docimport.importer import get_celery_app, init_importer
from docimport.importer.celery_app import DEFAULT_QUEUE_NAME
from docimport.importer.pipeline.engine import ImportId
from docimport.importer.pipeline.run_service import IMPORT_TASK_NAME
from docimport.models import Document, db
from docimport.models.importer.schema import ImportRun, ImportRunStatus

EAGER = {"task_always_eager": True, "task_eager_propagates": True}


def build_importer_app(tmp_path, **overrides) -> Flask:
    """
    Construct a minimal Flask app with the importer enabled for worker tests.
    """
    instance_dir = tmp_path / "instance"
    instance_dir.mkdir(exist_ok=True)
    app = Flask(__name__, instance_path=str(instance_dir))
    app.config.update(
        SECRET_KEY="test-secret",
        TESTING=True,
        IMPORTER_ENABLED=True,
    )
    app.config.update(overrides)
    init_importer(app)
    return app


def test_celery_defaults_to_sqlite_transport(tmp_path):
    sqlite_path = tmp_path / "instance" / "custom.sqlite"

    app = build_importer_app(tmp_path, CELERY_SQLITE_PATH=str(sqlite_path), CELERY_CONFIG=EAGER)

    celery_app = get_celery_app(app)
    assert celery_app is not None
    assert celery_app.conf.broker_url.startswith("sqla+sqlite:///")
    assert sqlite_path.name in celery_app.conf.broker_url
    assert celery_app.conf.result_backend.startswith("db+sqlite:///")
    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME
    assert celery_app.conf.worker_prefetch_multiplier == 1
    assert IMPORT_TASK_NAME in celery_app.tasks


def test_celery_config_accepts_json_string(tmp_path):
    app = build_importer_app(tmp_path, CELERY_CONFIG=json.dumps({"task_time_limit": 42}))

    assert get_celery_app(app).conf.task_time_limit == 42


def test_worker_ping_cli(tmp_path):
    app = build_importer_app(tmp_path, IMPORTER_WORKER_ENABLED=True, CELERY_CONFIG=EAGER)

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer", "worker", "ping"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "ok"
    assert "timestamp" in payload
    assert "worker_hostname" in payload


def test_worker_run_invokes_celery(tmp_path, monkeypatch):
    app = build_importer_app(tmp_path, IMPORTER_WORKER_ENABLED=True, CELERY_CONFIG=EAGER)
    celery_app = get_celery_app(app)
    assert celery_app is not None

    calls: Dict[str, Any] = {}

    def fake_worker_main(argv=None):
        calls["argv"] = argv

    monkeypatch.setattr(celery_app, "worker_main", fake_worker_main)

    runner = app.test_cli_runner()
    result = runner.invoke(
        args=[
            "importer",
            "worker",
            "run",
            "--loglevel",
            "debug",
            "--concurrency",
            "2",
            "--pool",
            "solo",
            "--queues",
            "imports",
        ]
    )

    assert result.exit_code == 0, result.output
    assert calls["argv"] == [
        "worker",
        "--loglevel",
        "debug",
        "-Q",
        "imports",
        "--concurrency",
        "2",
        "--pool",
        "solo",
    ]


def test_worker_health_endpoint_states(tmp_path):
    app = build_importer_app(tmp_path)
    client = app.test_client()

    disabled_resp = client.get("/importer/worker_health")
    assert disabled_resp.status_code == 200
    disabled_payload = disabled_resp.get_json()
    assert disabled_payload["status"] == "disabled"
    assert disabled_payload["worker_enabled"] is False

    eager_app = build_importer_app(tmp_path, IMPORTER_WORKER_ENABLED=True, CELERY_CONFIG=EAGER)
    eager_client = eager_app.test_client()
    ok_resp = eager_client.get("/importer/worker_health")
    assert ok_resp.status_code == 200
    ok_payload = ok_resp.get_json()
    assert ok_payload["status"] == "ok"
    assert ok_payload["heartbeat"]["status"] == "ok"


def test_import_task_executes_pending_run(app, tmp_path):
    csv_path = tmp_path / "plans.csv"
    csv_path.write_text("name,dc:title\nplan-1,Ground floor\nplan-2,First floor\n", encoding="utf-8")
    run = ImportRun(
        import_key=str(ImportId("worker-run")),
        repository="default",
        parent_path="/archive",
        source_filename="plans.csv",
        status=ImportRunStatus.PENDING,
        options_json={"batch_size": 1},
        counts_json={},
        ingest_params_json={"file_path": str(csv_path), "keep_file": True},
    )
    db.session.add(run)
    db.session.commit()
    run_id = run.id

    task = get_celery_app(app).tasks[IMPORT_TASK_NAME]
    outcome = task.apply(kwargs={"run_id": run_id}).get()

    assert outcome["run_id"] == run_id
    assert outcome["success"] == 2
    db.session.expire_all()
    assert db.session.get(ImportRun, run_id).status is ImportRunStatus.SUCCEEDED
    assert len(db.session.execute(select(Document)).scalars().all()) == 2
