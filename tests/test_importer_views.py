import io
from http import HTTPStatus
from unittest.mock import Mock, patch

from sqlalchemy import select

from docimport.importer.utils import resolve_upload_directory
from docimport.models import Document, db
from docimport.models.importer.schema import ImportRun, ImportRunStatus

CSV_BYTES = (
    b"name,type,dc:title,dc:issued\n"
    b"plan-1,File,Ground floor,10/01/2010\n"
    b"\n"
    b"plan-2,File,First floor,10012010\n"
)


def _upload(client, **form):
    data = {"file": (io.BytesIO(CSV_BYTES), "plans.csv"), "parent_path": "/archive", "inline": "true"}
    data.update(form)
    return client.post("/importer/imports", data=data, content_type="multipart/form-data")


def test_health_lists_strategies(client):
    response = client.get("/importer/health")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["enabled"] is True
    assert [item["name"] for item in payload["document_factories"]] == ["default", "property_match"]
    assert [item["name"] for item in payload["naming_strategies"]] == ["building", "none"]


def test_upload_runs_inline_and_reports(app, client):
    response = _upload(client, username="archivist")

    assert response.status_code == HTTPStatus.ACCEPTED
    payload = response.get_json()
    assert payload["status"] == "succeeded"
    assert payload["source_filename"] == "plans.csv"
    assert payload["counts"] == {"total": 3, "success": 1, "skipped": 1, "error": 1}

    # The stored upload is removed once the run finished.
    assert list(resolve_upload_directory(app).iterdir()) == []
    assert [document.name for document in db.session.execute(select(Document)).scalars()] == ["plan-1"]

    detail = client.get(f"/importer/imports/{payload['import_key']}")
    assert detail.status_code == HTTPStatus.OK
    assert detail.get_json()["username"] == "archivist"

    result = client.get(f"/importer/imports/{payload['import_key']}/result")
    assert result.get_json() == {
        "import_key": payload["import_key"],
        "total": 3,
        "success": 1,
        "skipped": 1,
        "error": 1,
    }


def test_logs_endpoint_filters_by_status(client):
    import_key = _upload(client).get_json()["import_key"]

    response = client.get(f"/importer/imports/{import_key}/logs?status=error,skipped")

    assert response.status_code == HTTPStatus.OK
    payload = response.get_json()
    assert payload["total"] == 2
    assert [(entry["line"], entry["status"]) for entry in payload["entries"]] == [(2, "skipped"), (3, "error")]
    assert payload["entries"][1]["message"] == "Unable to convert field 'dc:issued' with value '10012010'"

    unfiltered = client.get(f"/importer/imports/{import_key}/logs").get_json()
    assert unfiltered["total"] == 3


def test_logs_endpoint_rejects_unknown_status(client):
    import_key = _upload(client).get_json()["import_key"]

    response = client.get(f"/importer/imports/{import_key}/logs?status=failed")

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert "Unsupported status filter" in response.get_json()["error"]


def test_unknown_import_returns_404(client):
    assert client.get("/importer/imports/missing").status_code == HTTPStatus.NOT_FOUND
    assert client.get("/importer/imports/missing/logs").status_code == HTTPStatus.NOT_FOUND
    assert client.get("/importer/imports/missing/result").status_code == HTTPStatus.NOT_FOUND


def test_upload_validation(client):
    missing_file = client.post("/importer/imports", data={"parent_path": "/archive"}, content_type="multipart/form-data")
    assert missing_file.status_code == HTTPStatus.BAD_REQUEST

    wrong_extension = client.post(
        "/importer/imports",
        data={"file": (io.BytesIO(CSV_BYTES), "plans.xlsx"), "parent_path": "/archive"},
        content_type="multipart/form-data",
    )
    assert wrong_extension.status_code == HTTPStatus.BAD_REQUEST

    missing_parent = _upload(client, parent_path=" ")
    assert missing_parent.status_code == HTTPStatus.BAD_REQUEST

    bad_option = _upload(client, batch_size="zero")
    assert bad_option.status_code == HTTPStatus.BAD_REQUEST
    assert "batch_size" in bad_option.get_json()["error"]


def test_upload_queues_when_worker_enabled(app, client):
    app.config["IMPORTER_WORKER_ENABLED"] = True
    async_result = Mock()
    async_result.id = "celery-task-123"
    celery_app = Mock()
    celery_app.send_task.return_value = async_result

    with patch("docimport.importer.pipeline.run_service.get_celery_app", return_value=celery_app):
        response = _upload(client, inline="")

    assert response.status_code == HTTPStatus.ACCEPTED
    assert response.get_json()["status"] == "pending"
    run = db.session.execute(select(ImportRun)).scalar_one()
    assert run.status is ImportRunStatus.PENDING
    assert run.ingest_params_json["keep_file"] is False


def test_api_disabled_when_flag_off(app, client):
    app.config["IMPORTER_ENABLED"] = False

    response = client.get("/importer/imports/anything")

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.get_json() == {"error": "Importer is disabled."}
