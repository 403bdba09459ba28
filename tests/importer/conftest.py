from __future__ import annotations

import csv
from pathlib import Path

import pytest

from docimport.importer.pipeline.converters import FieldConverter
from docimport.importer.pipeline.engine import ImportEngine, ImportJob
from docimport.importer.pipeline.naming import BuildingNamingStrategy
from docimport.importer.pipeline.options import ImporterOptions, ImporterSettings
from docimport.importer.pipeline.row_mapper import RowMapper
from docimport.importer.schema_catalog import load_schema_catalog
from docimport.models import db


@pytest.fixture
def catalog(app):
    return load_schema_catalog(app.config["IMPORTER_SCHEMA_PATH"])


@pytest.fixture
def blobs_folder(app) -> Path:
    return Path(app.config["IMPORTER_BLOBS_FOLDER"])


@pytest.fixture
def settings(app) -> ImporterSettings:
    return ImporterSettings.from_app(app)


@pytest.fixture
def converter(blobs_folder) -> FieldConverter:
    return FieldConverter(date_format="%m/%d/%Y", list_separator_regex=r"\|", blobs_folder=blobs_folder)


@pytest.fixture
def row_mapper(catalog, converter) -> RowMapper:
    return RowMapper(catalog, converter, BuildingNamingStrategy(), default_type="File")


@pytest.fixture
def write_csv(tmp_path):
    """Write rows (header first) to a CSV file and return its path."""

    def _write(rows, *, filename: str = "import.csv") -> Path:
        path = tmp_path / filename
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            for row in rows:
                writer.writerow(row)
        return path

    return _write


@pytest.fixture
def make_job():
    def _make(source_path: Path, *, parent_path: str = "/workspaces/archive", **options) -> ImportJob:
        return ImportJob.create(
            parent_path=parent_path,
            source_path=source_path,
            options=ImporterOptions.coerce(options),
            username="archivist",
        )

    return _make


@pytest.fixture
def engine(catalog, settings) -> ImportEngine:
    return ImportEngine(db.session, catalog, settings)
