"""
Importer-specific SQLAlchemy models: runs and their persisted line logs.
"""

from .schema import ImportLogRecord, ImportLogStatus, ImportRun, ImportRunStatus

__all__ = [
    "ImportLogRecord",
    "ImportLogStatus",
    "ImportRun",
    "ImportRunStatus",
]
