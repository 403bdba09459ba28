from unittest.mock import Mock

import pytest

from docimport.importer.pipeline.batch import BatchCoordinator


def test_commits_on_every_nth_success():
    session = Mock()
    batch = BatchCoordinator(session, batch_size=3)

    committed = [batch.record_success() for _ in range(7)]

    assert committed == [False, False, True, False, False, True, False]
    assert batch.commit_points == [3, 6]
    assert session.commit.call_count == 2
    assert batch.window_size == 1


def test_finish_commits_trailing_window():
    session = Mock()
    batch = BatchCoordinator(session, batch_size=10)
    batch.record_success()

    batch.finish()

    session.commit.assert_called_once_with()
    session.rollback.assert_not_called()
    assert batch.window_size == 0


def test_finish_after_failure_rolls_back():
    session = Mock()
    batch = BatchCoordinator(session, batch_size=2)
    batch.record_success()
    batch.record_success()
    batch.record_success()

    batch.finish(failed=True)

    assert session.commit.call_count == 1
    session.rollback.assert_called_once_with()
    assert batch.commit_points == [2]


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchCoordinator(Mock(), batch_size=0)
