"""
Unit tests for the compensation log.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from salesdesk.exceptions import CompensationFailedError, InsufficientStockError
from salesdesk.services.compensation import CompensationLog


def _locked():
    return OperationalError('UPDATE product', {}, Exception('database is locked'))


@pytest.fixture
def db():
    return MagicMock()


class TestCompensationLog:
    """Tests for ordered undo with retries and escalation."""

    def test_runs_actions_newest_first(self, db):
        calls = []
        log = CompensationLog(db, 'edit', backoff_base=0)
        log.record('first', lambda: calls.append('first'))
        log.record('second', lambda: calls.append('second'))

        log.compensate(RuntimeError('boom'))

        assert calls == ['second', 'first']
        assert len(log) == 0

    def test_empty_log_is_noop(self, db):
        CompensationLog(db, 'create').compensate(RuntimeError('boom'))
        db.rollback.assert_not_called()

    def test_retries_transient_errors(self, db):
        """A locked row is retried until the action goes through."""
        action = MagicMock(side_effect=[_locked(), None])
        log = CompensationLog(db, 'cancel', attempts=3, backoff_base=0)
        log.record('re-debit', action)

        log.compensate(RuntimeError('boom'))

        assert action.call_count == 2
        db.rollback.assert_called_once()

    def test_business_errors_are_not_retried(self, db):
        original = RuntimeError('status write failed')
        failure = InsufficientStockError('"Widget"', 3, 0)
        action = MagicMock(side_effect=failure)
        log = CompensationLog(db, 'cancel', attempts=3, backoff_base=0)
        log.record('re-debit', action)

        with pytest.raises(CompensationFailedError) as exc_info:
            log.compensate(original)

        assert action.call_count == 1
        assert exc_info.value.original_error is original
        assert exc_info.value.compensation_errors == [failure]
        assert exc_info.value.__cause__ is original
        assert exc_info.value.status_code == 500

    def test_exhausted_retries_escalate(self, db):
        action = MagicMock(side_effect=_locked())
        log = CompensationLog(db, 'edit', attempts=2, backoff_base=0)
        log.record('reverse debit', action)

        with pytest.raises(CompensationFailedError) as exc_info:
            log.compensate(RuntimeError('boom'))

        assert action.call_count == 2
        assert isinstance(exc_info.value.compensation_errors[0], OperationalError)

    def test_later_actions_still_run_after_a_failure(self, db):
        """One failing undo does not stop the others."""
        survivor = MagicMock()
        log = CompensationLog(db, 'edit', backoff_base=0)
        log.record('older', survivor)
        log.record('newer', MagicMock(side_effect=ValueError('nope')))

        with pytest.raises(CompensationFailedError):
            log.compensate(RuntimeError('boom'))

        survivor.assert_called_once()

    def test_deadline_exceeded(self, db):
        action = MagicMock()
        log = CompensationLog(db, 'delete', timeout=0, backoff_base=0)
        log.record('re-debit', action)

        with pytest.raises(CompensationFailedError) as exc_info:
            log.compensate(RuntimeError('boom'))

        action.assert_not_called()
        assert isinstance(exc_info.value.compensation_errors[0], TimeoutError)

    def test_failure_is_logged_as_incident(self, db, caplog):
        log = CompensationLog(db, 'create', backoff_base=0)
        log.record('delete sale 1', MagicMock(side_effect=ValueError('nope')))

        with pytest.raises(CompensationFailedError):
            log.compensate(RuntimeError('boom'))

        incidents = [r for r in caplog.records if r.levelname == 'CRITICAL']
        assert len(incidents) == 1
        assert '[INCIDENT]' in incidents[0].getMessage()
