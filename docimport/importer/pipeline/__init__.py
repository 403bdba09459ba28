"""Importer pipeline: row mapping, document creation and the import engine."""

from __future__ import annotations

from .batch import BatchCoordinator
from .converters import BlobReference, FieldConverter
from .document_factory import DocumentFactory, DocumentRef, PathDocumentFactory, PropertyMatchDocumentFactory
from .engine import ImportEngine, ImportId, ImportJob
from .errors import DocumentStoreError, ImportRowError, unwrap_exception
from .import_log import ImportLogAccumulator, ImportLogEntry, ImportResult
from .naming import BuildingNamingStrategy, NamingStrategy, NoDerivedNameStrategy
from .options import ImporterOptions, ImporterSettings
from .row_mapper import HeaderLayout, MappedRow, RowMapper

__all__ = [
    "BatchCoordinator",
    "BlobReference",
    "BuildingNamingStrategy",
    "DocumentFactory",
    "DocumentRef",
    "DocumentStoreError",
    "FieldConverter",
    "HeaderLayout",
    "ImportEngine",
    "ImportId",
    "ImportJob",
    "ImportLogAccumulator",
    "ImportLogEntry",
    "ImportResult",
    "ImportRowError",
    "ImporterOptions",
    "ImporterSettings",
    "MappedRow",
    "NamingStrategy",
    "NoDerivedNameStrategy",
    "PathDocumentFactory",
    "PropertyMatchDocumentFactory",
    "RowMapper",
    "unwrap_exception",
]
