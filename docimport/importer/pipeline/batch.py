"""Transaction window management for CSV imports."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from docimport.importer.metrics import record_batch_boundary

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """
    Commit the session every ``batch_size`` successful rows.

    Only successful creates and updates advance the counter. ``finish`` closes
    the last window (commit, or rollback when the job failed); the session
    autobegins a fresh transaction on its next use.
    """

    def __init__(self, session: Session, batch_size: int) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        self.session = session
        self.batch_size = batch_size
        self.success_count = 0
        self.window_size = 0
        self.commit_points: list[int] = []

    def record_success(self) -> bool:
        """Count one successful row; returns True when a window was committed."""

        self.success_count += 1
        self.window_size += 1
        if self.success_count % self.batch_size == 0:
            self.commit()
            self.commit_points.append(self.success_count)
            return True
        return False

    def commit(self) -> None:
        self.session.commit()
        logger.debug("Committed import window of %d row(s)", self.window_size)
        self.window_size = 0
        record_batch_boundary("commit")

    def rollback(self) -> None:
        self.session.rollback()
        logger.warning("Rolled back import window of %d row(s)", self.window_size)
        self.window_size = 0
        record_batch_boundary("rollback")

    def finish(self, *, failed: bool = False) -> None:
        if failed:
            self.rollback()
        else:
            self.commit()
