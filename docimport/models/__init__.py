# docimport/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .document import Document
from .importer import ImportLogRecord, ImportLogStatus, ImportRun, ImportRunStatus

__all__ = [
    "db",
    "BaseModel",
    "Document",
    "ImportRun",
    "ImportRunStatus",
    "ImportLogRecord",
    "ImportLogStatus",
]
