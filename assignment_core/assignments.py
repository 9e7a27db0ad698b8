"""Assignment lifecycle: create, respond, cancel, batch.

Status machine::

    pending -> accepted | declined | expired | cancelled
    accepted, declined -> cancelled

``expired`` and ``cancelled`` are terminal. ``confirmed`` is set downstream
and only read here.
"""

from __future__ import annotations

import json
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .conflicts import ConflictDetector
from .eligibility import EligibilityScorer
from .models import (
    ACCEPTED,
    ACTIVE_ASSIGNMENT_STATUSES,
    ASSIGNMENT_METHODS,
    ASSIGNMENT_STATUSES,
    CANCELLED,
    CRITICAL,
    DECLINED,
    ERROR,
    EXPIRED,
    GUARD_RESPONSES,
    PENDING,
    AssignmentCreateData,
    BatchAssignmentRequest,
    BatchAssignmentResult,
    BatchItemResult,
    GuardResponseData,
    ShiftAssignment,
)
from .notifications import LoggingNotifier, Notifier
from .results import (
    ASSIGNMENT_EXISTS,
    ASSIGNMENT_NOT_FOUND,
    BATCH_OPERATION_FAILED,
    CONFLICT_OVERRIDE_REQUIRED,
    DATABASE_ERROR,
    GUARD_NOT_ELIGIBLE,
    INVALID_ASSIGNMENT_STATUS,
    RESPONSE_DEADLINE_PASSED,
    SERVICE_ERROR,
    SHIFT_NOT_FOUND,
    VALIDATION_ERROR,
    ServiceResult,
)
from .scoring import DEFAULT_SCORING, ScoringConfig
from .store import AssignmentStore, StoreError, UniqueViolationError
from .time_utils import now_utc

logger = logging.getLogger(__name__)


def new_assignment_id() -> str:
    return str(uuid.uuid4())


def new_batch_id(at: datetime) -> str:
    return f"batch_{int(at.timestamp() * 1000)}_{secrets.token_hex(5)[:9]}"


def batch_status(successful: int, failed: int) -> str:
    if failed == 0:
        return "completed"
    if successful > 0:
        return "partially_completed"
    return "failed"


class AssignmentCoordinator:
    def __init__(
        self,
        store: AssignmentStore,
        scorer: EligibilityScorer | None = None,
        detector: ConflictDetector | None = None,
        notifier: Notifier | None = None,
        scoring: ScoringConfig = DEFAULT_SCORING,
        now_fn: Callable[[], datetime] = now_utc,
        id_fn: Callable[[], str] = new_assignment_id,
    ):
        self.store = store
        self.scoring = scoring
        self.now_fn = now_fn
        self.id_fn = id_fn
        self.detector = detector or ConflictDetector(store, scoring=scoring, now_fn=now_fn)
        self.scorer = scorer or EligibilityScorer(store, detector=self.detector, scoring=scoring, now_fn=now_fn)
        self.notifier = notifier or LoggingNotifier()

    # ---- create -----------------------------------------------------------

    def create_assignment(
        self,
        data: AssignmentCreateData,
        assigned_by: str,
        notify: bool = True,
    ) -> ServiceResult[ShiftAssignment]:
        if data.assignment_method not in ASSIGNMENT_METHODS:
            return ServiceResult.fail(
                VALIDATION_ERROR,
                f"Unknown assignment method: {data.assignment_method}",
                allowed=sorted(ASSIGNMENT_METHODS),
            )

        try:
            shift = self.store.get_shift(data.shift_id)
            existing = self.store.find_active_assignment(data.shift_id) if shift else None
        except StoreError as exc:
            logger.exception("Assignment pre-checks failed for shift %s", data.shift_id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to load shift", cause=str(exc))

        if shift is None:
            return ServiceResult.fail(SHIFT_NOT_FOUND, "Shift not found", shift_id=data.shift_id)
        if existing is not None:
            return ServiceResult.fail(
                ASSIGNMENT_EXISTS,
                "Shift already has an assignment",
                existing_assignment_id=existing.id,
            )

        eligibility = self.scorer.check_eligibility(data.guard_id, shift)
        if eligibility.disqualifications or (not eligibility.eligible and not data.override_conflicts):
            return ServiceResult.fail(
                GUARD_NOT_ELIGIBLE,
                "Guard is not eligible for this shift",
                reasons=eligibility.reasons,
                disqualifications=eligibility.disqualifications,
                conflicts=eligibility.conflicts,
            )

        report = self.detector.detect_conflicts(data.guard_id, shift, data.override_conflicts)
        if any(c.severity == CRITICAL for c in report.conflicts):
            return ServiceResult.fail(
                GUARD_NOT_ELIGIBLE,
                "Critical conflicts cannot be overridden",
                conflicts=report.conflicts,
            )

        blocking = [c for c in report.conflicts if c.severity == ERROR]
        if not report.can_proceed:
            return ServiceResult.fail(
                CONFLICT_OVERRIDE_REQUIRED,
                "Assignment conflicts require an override",
                conflicts=report.conflicts,
                resolution_suggestions=report.resolution_suggestions,
            )
        if data.override_conflicts and any(not c.can_override for c in blocking):
            return ServiceResult.fail(
                GUARD_NOT_ELIGIBLE,
                "Some conflicts cannot be overridden",
                conflicts=[c for c in blocking if not c.can_override],
            )
        if data.override_conflicts and report.requires_override and not data.override_reason:
            return ServiceResult.fail(
                CONFLICT_OVERRIDE_REQUIRED,
                "Override reason is required when overriding conflicts",
                conflicts=report.conflicts,
            )

        now = self.now_fn()
        overridden = data.override_conflicts and report.has_conflicts
        justified = overridden and bool(data.override_reason)
        assignment = ShiftAssignment(
            id=self.id_fn(),
            shift_id=shift.id,
            guard_id=data.guard_id,
            assignment_status=PENDING,
            assigned_by=assigned_by,
            assigned_at=now,
            assignment_method=data.assignment_method,
            eligibility_score=eligibility.eligibility_score,
            conflict_overridden=overridden,
            override_reason=data.override_reason if justified else None,
            override_by=assigned_by if justified else None,
            override_at=now if justified else None,
            assignment_notes=data.assignment_notes,
            manager_notes=data.manager_notes,
            created_at=now,
            updated_at=now,
        )

        try:
            created = self.store.insert_assignment(assignment)
        except UniqueViolationError:
            logger.warning("Concurrent assignment detected for shift %s", shift.id)
            return ServiceResult.fail(ASSIGNMENT_EXISTS, "Shift already has an assignment", shift_id=shift.id)
        except StoreError as exc:
            logger.exception("Failed to insert assignment for shift %s", shift.id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to create assignment", cause=str(exc))

        try:
            self.store.set_shift_guard(shift.id, data.guard_id)
        except StoreError as exc:
            logger.exception("Failed to update shift %s; rolling back assignment %s", shift.id, created.id)
            self._compensate(created.id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to update shift assignment", cause=str(exc))

        logger.info(
            "Assigned guard %s to shift %s (assignment %s, overridden=%s)",
            data.guard_id,
            shift.id,
            created.id,
            overridden,
        )
        if notify:
            self._notify("assignment_created", created)
        return ServiceResult.ok(created)

    # ---- respond ----------------------------------------------------------

    def handle_guard_response(self, assignment_id: str, response: GuardResponseData) -> ServiceResult[ShiftAssignment]:
        if response.response not in GUARD_RESPONSES:
            return ServiceResult.fail(
                VALIDATION_ERROR,
                f"Unknown guard response: {response.response}",
                allowed=sorted(GUARD_RESPONSES),
            )

        try:
            assignment = self.store.get_assignment(assignment_id)
        except StoreError as exc:
            logger.exception("Assignment lookup failed for %s", assignment_id)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to handle guard response", cause=str(exc))
        if assignment is None:
            return ServiceResult.fail(ASSIGNMENT_NOT_FOUND, "Assignment not found", assignment_id=assignment_id)
        if assignment.assignment_status != PENDING:
            return ServiceResult.fail(
                INVALID_ASSIGNMENT_STATUS,
                f"Cannot respond to assignment with status: {assignment.assignment_status}",
                status=assignment.assignment_status,
            )

        now = self.now_fn()
        deadline = assignment.assigned_at + timedelta(hours=self.scoring.response_deadline_hours)
        if now > deadline:
            try:
                self.store.update_assignment(assignment_id, assignment_status=EXPIRED, updated_at=now)
            except StoreError:
                logger.exception("Failed to mark assignment %s expired", assignment_id)
            else:
                self._release_shift(assignment)
            logger.info("Assignment %s expired; deadline was %s", assignment_id, deadline.isoformat())
            return ServiceResult.fail(
                RESPONSE_DEADLINE_PASSED,
                "Response deadline has passed, assignment marked as expired",
                deadline=deadline.isoformat(),
            )

        status = DECLINED if response.response == "decline" else ACCEPTED
        notes = response.notes
        if response.response == "conditional":
            notes = json.dumps({"notes": response.notes, "conditional_details": response.conditional_details or {}})

        try:
            updated = self.store.update_assignment(
                assignment_id,
                assignment_status=status,
                guard_response=response.response,
                guard_responded_at=now,
                guard_response_notes=notes,
                updated_at=now,
            )
        except StoreError as exc:
            logger.exception("Failed to record response for assignment %s", assignment_id)
            return ServiceResult.fail(
                DATABASE_ERROR,
                "Failed to update assignment with guard response",
                cause=str(exc),
            )

        if status == DECLINED:
            self._release_shift(assignment)
            self._notify("guard_declined", updated)
        self._notify("guard_responded", updated)
        return ServiceResult.ok(updated)

    # ---- cancel -----------------------------------------------------------

    def cancel_assignment(self, assignment_id: str, cancelled_by: str, reason: str) -> ServiceResult[ShiftAssignment]:
        try:
            assignment = self.store.get_assignment(assignment_id)
        except StoreError as exc:
            logger.exception("Assignment lookup failed for %s", assignment_id)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to cancel assignment", cause=str(exc))
        if assignment is None:
            return ServiceResult.fail(ASSIGNMENT_NOT_FOUND, "Assignment not found", assignment_id=assignment_id)
        if assignment.assignment_status in (EXPIRED, CANCELLED):
            return ServiceResult.fail(
                INVALID_ASSIGNMENT_STATUS,
                f"Cannot cancel assignment with status: {assignment.assignment_status}",
                status=assignment.assignment_status,
            )

        notes = f"{assignment.manager_notes or ''}\n\nCancelled: {reason}".strip()
        try:
            updated = self.store.update_assignment(
                assignment_id,
                assignment_status=CANCELLED,
                manager_notes=notes,
                updated_at=self.now_fn(),
            )
        except StoreError as exc:
            logger.exception("Failed to cancel assignment %s", assignment_id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to cancel assignment", cause=str(exc))

        self._release_shift(assignment)
        logger.info("Assignment %s cancelled by %s", assignment_id, cancelled_by)
        self._notify("assignment_cancelled", updated, reason)
        return ServiceResult.ok(updated)

    # ---- queries ----------------------------------------------------------

    def get_assignment(self, assignment_id: str) -> ServiceResult[dict[str, Any]]:
        """The assignment with its shift and a short guard summary."""
        try:
            assignment = self.store.get_assignment(assignment_id)
            if assignment is None:
                return ServiceResult.fail(ASSIGNMENT_NOT_FOUND, "Assignment not found", assignment_id=assignment_id)
            shift = self.store.get_shift(assignment.shift_id)
            guard = self.store.get_guard(assignment.guard_id)
        except StoreError as exc:
            logger.exception("Failed to load assignment %s", assignment_id)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to get assignment details", cause=str(exc))

        guard_summary = None
        if guard is not None:
            guard_summary = {
                "id": guard.id,
                "first_name": guard.first_name,
                "last_name": guard.last_name,
                "profile_status": guard.profile_status,
            }
        return ServiceResult.ok({"assignment": assignment, "shift": shift, "guard": guard_summary})

    def get_guard_assignments(
        self,
        guard_id: str,
        statuses: list[str] | None = None,
        date_range: tuple[datetime, datetime] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ServiceResult[dict[str, Any]]:
        unknown = [s for s in statuses or [] if s not in ASSIGNMENT_STATUSES]
        if unknown:
            return ServiceResult.fail(VALIDATION_ERROR, "Unknown assignment status", statuses=unknown)

        assigned_from, assigned_to = date_range if date_range else (None, None)
        try:
            rows, total = self.store.list_guard_assignments(
                guard_id,
                statuses=statuses or None,
                assigned_from=assigned_from,
                assigned_to=assigned_to,
                limit=limit,
                offset=offset,
            )
        except StoreError as exc:
            logger.exception("Failed to list assignments for guard %s", guard_id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to get guard assignments", cause=str(exc))
        return ServiceResult.ok({"assignments": rows, "total": total})

    # ---- batch ------------------------------------------------------------

    def create_batch_assignments(
        self,
        request: BatchAssignmentRequest,
        assigned_by: str,
    ) -> ServiceResult[BatchAssignmentResult]:
        started = self.now_fn()
        result = BatchAssignmentResult(
            batch_id=new_batch_id(started),
            total_assignments=len(request.assignments),
            started_at=started,
        )

        for item in request.assignments:
            try:
                outcome = self.create_assignment(item, assigned_by, notify=request.notify_guards)
            except Exception:
                logger.exception("Batch %s: unexpected failure for shift %s", result.batch_id, item.shift_id)
                outcome = ServiceResult.fail(BATCH_OPERATION_FAILED, "Processing error occurred")

            if outcome.success:
                result.successful_assignments += 1
                result.assignments.append(BatchItemResult(assignment=item, success=True, assignment_id=outcome.data.id))
                continue

            result.failed_assignments += 1
            result.assignments.append(
                BatchItemResult(
                    assignment=item,
                    success=False,
                    error=outcome.error.message,
                    error_code=outcome.error.code,
                    conflicts=outcome.error.details.get("conflicts"),
                )
            )
            if not request.allow_partial_success:
                logger.info("Batch %s stopped at first failure (shift %s)", result.batch_id, item.shift_id)
                break

        result.completed_at = self.now_fn()
        result.status = batch_status(result.successful_assignments, result.failed_assignments)
        logger.info(
            "Batch %s %s: %d succeeded, %d failed of %d",
            result.batch_id,
            result.status,
            result.successful_assignments,
            result.failed_assignments,
            result.total_assignments,
        )
        return ServiceResult.ok(result)

    # ---- helpers ----------------------------------------------------------

    def _compensate(self, assignment_id: str) -> None:
        try:
            self.store.delete_assignment(assignment_id)
        except StoreError:
            logger.exception("Compensating delete failed for assignment %s", assignment_id)

    def _release_shift(self, assignment: ShiftAssignment) -> None:
        """Clear the shift's assigned guard if it still points at this assignment."""
        if assignment.assignment_status not in ACTIVE_ASSIGNMENT_STATUSES:
            return
        try:
            shift = self.store.get_shift(assignment.shift_id)
            if shift is None or shift.assigned_guard_id != assignment.guard_id:
                return
            self.store.set_shift_guard(assignment.shift_id, None)
        except StoreError:
            logger.exception("Failed to clear assigned guard on shift %s", assignment.shift_id)

    def _notify(self, event: str, assignment: ShiftAssignment, *args: Any) -> None:
        try:
            getattr(self.notifier, event)(assignment, *args)
        except Exception:
            logger.exception("Notifier failed on %s for assignment %s", event, assignment.id)
