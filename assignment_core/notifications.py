"""Outbound assignment notifications.

Delivery (email, push, SMS) lives outside this package. The coordinator only
needs somewhere to announce lifecycle events; the default writes them to the
log.
"""

from __future__ import annotations

import logging

from .models import ShiftAssignment

logger = logging.getLogger(__name__)


class Notifier:
    """Receives assignment lifecycle events. Subclasses deliver them somewhere."""

    def assignment_created(self, assignment: ShiftAssignment) -> None:
        raise NotImplementedError

    def guard_responded(self, assignment: ShiftAssignment) -> None:
        raise NotImplementedError

    def guard_declined(self, assignment: ShiftAssignment) -> None:
        raise NotImplementedError

    def assignment_cancelled(self, assignment: ShiftAssignment, reason: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def assignment_created(self, assignment: ShiftAssignment) -> None:
        logger.info(
            "Assignment %s created: guard %s offered shift %s",
            assignment.id,
            assignment.guard_id,
            assignment.shift_id,
        )

    def guard_responded(self, assignment: ShiftAssignment) -> None:
        logger.info(
            "Guard %s responded '%s' to assignment %s",
            assignment.guard_id,
            assignment.guard_response,
            assignment.id,
        )

    def guard_declined(self, assignment: ShiftAssignment) -> None:
        logger.info("Guard %s declined shift %s; shift reopened", assignment.guard_id, assignment.shift_id)

    def assignment_cancelled(self, assignment: ShiftAssignment, reason: str) -> None:
        logger.info("Assignment %s cancelled: %s", assignment.id, reason)
