"""
SQLAlchemy models backing CSV import runs and their per-line logs.

An ``ImportRun`` is created when an import is launched and is updated as the
worker moves it through its lifecycle. ``ImportLogRecord`` rows are the durable
copy of the job's in-memory log and are written once the engine finishes.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ImportLogStatus(str, enum.Enum):
    """Terminal outcome of a single CSV line."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class ImportRun(BaseModel):
    """Metadata describing a single CSV import execution."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    import_key: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True, index=True)
    repository: Mapped[str] = mapped_column(db.String(100), nullable=False, default="default")
    parent_path: Mapped[str] = mapped_column(db.String(1024), nullable=False)
    source_filename: Mapped[str] = mapped_column(db.String(255), nullable=False)
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    username: Mapped[str | None] = mapped_column(db.String(150), nullable=True)
    notify_email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    options_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    ingest_params_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Stored parameters for retry support (file_path, keep_file)",
    )

    log_records = relationship(
        "ImportLogRecord",
        back_populates="import_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ImportLogRecord.sequence",
    )

    __table_args__ = (Index("idx_import_runs_parent_status", "parent_path", "status"),)

    @property
    def title(self) -> str:
        return f"CSV import in '{self.parent_path}'"

    def __repr__(self):
        return f"<ImportRun {self.import_key} {self.status.value}>"


class ImportLogRecord(BaseModel):
    """Persisted outcome of one CSV line for a run."""

    __tablename__ = "import_log_records"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("import_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(db.Integer, nullable=False)
    line: Mapped[int] = mapped_column(db.Integer, nullable=False)
    status: Mapped[ImportLogStatus] = mapped_column(
        Enum(ImportLogStatus, name="import_log_status_enum"),
        nullable=False,
        index=True,
    )
    message: Mapped[str] = mapped_column(db.Text, nullable=False)
    localized_message: Mapped[str] = mapped_column(db.String(255), nullable=False)
    params_json: Mapped[list | None] = mapped_column(db.JSON, nullable=True)

    import_run = relationship("ImportRun", back_populates="log_records")

    __table_args__ = (
        UniqueConstraint("run_id", "sequence", name="uq_import_log_records_run_sequence"),
        Index("idx_import_log_records_run_status", "run_id", "status"),
    )
