"""
Compensating actions for multi-step sales operations.

Each step that commits a write registers the write that undoes it. When a
later step fails, the registered actions run in reverse order under a bounded
deadline. If any of them cannot be applied the operation is escalated as
CompensationFailedError and logged as an incident.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from salesdesk.exceptions import CompensationFailedError
from salesdesk.utils.metrics import sales_compensation_failures_total

logger = logging.getLogger(__name__)

# Only infrastructure hiccups are worth retrying; business rule failures are final
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


@dataclass
class CompensatingAction:
    description: str
    apply: Callable[[], Any]


class CompensationLog:
    """Ordered record of undo actions for one logical operation."""

    def __init__(self, session, operation: str, timeout: float = 5.0, attempts: int = 3,
                 backoff_base: float = 0.05):
        self.session = session
        self.operation = operation
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.backoff_base = backoff_base
        self._actions: List[CompensatingAction] = []

    def __len__(self):
        return len(self._actions)

    def record(self, description: str, apply: Callable[[], Any]) -> None:
        """Register the write that undoes a step that just committed."""
        self._actions.append(CompensatingAction(description, apply))

    def compensate(self, original_error: BaseException) -> None:
        """
        Undo every recorded step, newest first.

        Returns normally when all actions were applied; the caller then
        re-raises ``original_error``.

        Raises:
            CompensationFailedError: If any action could not be applied before
                the deadline.
        """
        if not self._actions:
            return

        logger.warning(
            f"[SALES] {self.operation} failed ({original_error}); "
            f"running {len(self._actions)} compensating action(s)"
        )
        deadline = time.monotonic() + self.timeout
        failures = []

        for action in reversed(self._actions):
            error = self._run(action, deadline)
            if error is not None:
                failures.append(error)

        self._actions.clear()

        if failures:
            sales_compensation_failures_total.labels(operation=self.operation).inc()
            logger.critical(
                f"[INCIDENT] Compensation for {self.operation} failed; manual stock reconciliation "
                f"required. Original error: {original_error!r}. Compensation errors: "
                f"{[repr(e) for e in failures]}"
            )
            raise CompensationFailedError(self.operation, original_error, failures) from original_error

    def _run(self, action: CompensatingAction, deadline: float):
        last_error = None
        for attempt in range(1, self.attempts + 1):
            if time.monotonic() >= deadline:
                return last_error or TimeoutError(
                    f"compensation deadline exceeded before '{action.description}'"
                )
            try:
                action.apply()
                logger.info(f"[SALES] Compensated: {action.description}")
                return None
            except RETRYABLE_ERRORS as e:
                self.session.rollback()
                last_error = e
                logger.warning(
                    f"[SALES] Compensation '{action.description}' attempt {attempt}/{self.attempts} failed: {e}"
                )
                time.sleep(min(self.backoff_base * (2 ** (attempt - 1)), max(0.0, deadline - time.monotonic())))
            except Exception as e:
                self.session.rollback()
                logger.error(f"[SALES] Compensation '{action.description}' failed: {e}")
                return e
        return last_error
