from pathlib import Path

import pytest

from docimport.importer.pipeline.options import DEFAULT_OPTIONS, ImporterOptions, ImporterSettings
from docimport.importer.registry import validate_strategy_keys


def test_defaults():
    assert DEFAULT_OPTIONS.batch_size == 50
    assert DEFAULT_OPTIONS.date_format == "%m/%d/%Y"
    assert DEFAULT_OPTIONS.list_separator_regex == r"\|"
    assert DEFAULT_OPTIONS.update_existing is True
    assert DEFAULT_OPTIONS.send_email is False
    assert DEFAULT_OPTIONS.document_factory == "default"
    assert DEFAULT_OPTIONS.naming_strategy == "building"


def test_coerce_form_values():
    options = ImporterOptions.coerce(
        {
            "batch_size": "10",
            "date_format": " %Y-%m-%d ",
            "update_existing": "false",
            "send_email": "on",
            "naming_strategy": "none",
            "unknown": "ignored",
        }
    )

    assert options.batch_size == 10
    assert options.date_format == "%Y-%m-%d"
    assert options.update_existing is False
    assert options.send_email is True
    assert options.naming_strategy == "none"


def test_coerce_falls_back_to_defaults():
    defaults = ImporterOptions(batch_size=5, default_type="Note")

    options = ImporterOptions.coerce({"batch_size": ""}, defaults=defaults)

    assert options.batch_size == 5
    assert options.default_type == "Note"


@pytest.mark.parametrize(
    "payload",
    [{"batch_size": "0"}, {"batch_size": "many"}, {"list_separator_regex": "("}],
)
def test_coerce_rejects_invalid_values(payload):
    with pytest.raises(ValueError):
        ImporterOptions.coerce(payload)


def test_options_round_trip_through_json_dict():
    options = ImporterOptions(batch_size=7, update_existing=False)
    assert ImporterOptions.coerce(options.as_dict()) == options


def test_from_config_and_settings(app):
    app.config.update(
        IMPORTER_BATCH_SIZE=25,
        IMPORTER_DATE_FORMAT="%d.%m.%Y",
        IMPORTER_REPOSITORY_NAME="archives",
        IMPORTER_MAIL_TO="ops@example.org, ,archive@example.org",
    )

    options = ImporterOptions.from_config(app.config)
    settings = ImporterSettings.from_app(app)

    assert options.batch_size == 25
    assert options.date_format == "%d.%m.%Y"
    assert settings.repository == "archives"
    assert settings.mail_to == ("ops@example.org", "archive@example.org")
    assert settings.blobs_folder == Path(app.config["IMPORTER_BLOBS_FOLDER"])


def test_validate_strategy_keys():
    validate_strategy_keys(ImporterOptions(document_factory="property_match", naming_strategy="none"))

    with pytest.raises(ValueError) as excinfo:
        validate_strategy_keys(ImporterOptions(document_factory="remote_store", naming_strategy="sequential"))
    assert "Unknown document factory 'remote_store'" in str(excinfo.value)
    assert "Unknown naming strategy 'sequential'" in str(excinfo.value)
