"""Scheduling conflict detection for a guard/shift pair.

Five independent sub-checks (time overlap, availability, certification,
location/travel, workload) each contribute conflicts. A sub-check that fails
is logged and contributes nothing; the others still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .models import (
    AVAILABILITY_CONFLICT,
    CERTIFICATION_MISSING,
    CRITICAL,
    CONFIRMED,
    EMERGENCY_ONLY,
    ERROR,
    LOCATION_CONFLICT,
    TIME_OVERLAP,
    UNAVAILABLE,
    WARNING,
    WORKING_ASSIGNMENT_STATUSES,
    AssignmentConflict,
    ConflictDetails,
    ConflictReport,
    GuardProfile,
    Location,
    Shift,
)
from .results import SHIFT_NOT_FOUND, SERVICE_ERROR, ServiceResult
from .scoring import DEFAULT_SCORING, ScoringConfig
from .store import AssignmentStore, StoreError
from .time_utils import (
    day_window,
    duration_hours,
    euclidean_distance,
    now_utc,
    overlap_fraction,
    week_window,
)

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]

RESOLUTION_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "time": (
        "Consider adjusting shift timing to avoid overlaps",
        "Check if existing assignment can be reassigned",
    ),
    "availability": (
        "Verify guard availability or mark as emergency assignment",
        "Contact guard to confirm availability",
    ),
    "certification": (
        "Assign guard with required certifications",
        "Consider expedited certification process if close to completion",
    ),
    "location": (
        "Consider travel time and transportation arrangements",
        "Look for guards with closer proximity",
    ),
    "workload": (
        "Redistribute hours to guards with lighter schedules",
    ),
}


def location_distance(a: Location | None, b: Location | None) -> float | None:
    """Euclidean distance between two locations, or None if either lacks coordinates."""
    if a is None or b is None or a.coordinates is None or b.coordinates is None:
        return None
    return euclidean_distance(a.coordinates.lat, a.coordinates.lng, b.coordinates.lat, b.coordinates.lng)


def active_certifications(guard: GuardProfile, at: datetime) -> list[str]:
    """Certification types that are active and unexpired at ``at``."""
    return [name for name, record in guard.certifications.items() if record.is_active(at)]


def travel_time(origin: Location | None, destination: Location | None, scoring: ScoringConfig) -> timedelta:
    distance = location_distance(origin, destination)
    if distance is None:
        return timedelta(minutes=scoring.default_travel_minutes)
    minutes = max(scoring.min_travel_minutes, distance * scoring.travel_minutes_per_unit)
    return timedelta(minutes=minutes)


def summarize_conflicts(
    conflicts: list[AssignmentConflict],
    override_requested: bool,
) -> tuple[bool, bool]:
    """Return ``(can_proceed, requires_override)`` for a conflict list."""
    has_critical = any(c.severity == CRITICAL for c in conflicts)
    has_error = any(c.severity == ERROR for c in conflicts)
    any_overridable = any(c.can_override for c in conflicts)
    can_proceed = not has_critical and (not has_error or override_requested)
    requires_override = has_error and any_overridable
    return can_proceed, requires_override


class ConflictDetector:
    def __init__(
        self,
        store: AssignmentStore,
        scoring: ScoringConfig = DEFAULT_SCORING,
        now_fn: NowFn = now_utc,
    ):
        self.store = store
        self.scoring = scoring
        self.now_fn = now_fn

    # ---- public API -------------------------------------------------------

    def detect_conflicts(self, guard_id: str, shift: Shift, override_requested: bool = False) -> ConflictReport:
        checks: list[tuple[str, Callable[[str, Shift], list[AssignmentConflict]]]] = [
            ("time", self.detect_time_conflicts),
            ("availability", self.detect_availability_conflicts),
            ("certification", self.detect_certification_conflicts),
            ("location", self.detect_location_conflicts),
            ("workload", self.detect_workload_conflicts),
        ]

        conflicts: list[AssignmentConflict] = []
        suggestions: list[str] = []
        for category, check in checks:
            found = self._run_check(category, check, guard_id, shift)
            conflicts.extend(found)
            if found:
                suggestions.extend(RESOLUTION_SUGGESTIONS[category])

        can_proceed, requires_override = summarize_conflicts(conflicts, override_requested)
        return ConflictReport(
            conflicts=conflicts,
            can_proceed=can_proceed,
            requires_override=requires_override,
            resolution_suggestions=suggestions,
        )

    def detect_assignment_conflicts(
        self,
        guard_id: str,
        shift_id: str,
        override_requested: bool = False,
    ) -> ServiceResult[ConflictReport]:
        try:
            shift = self.store.get_shift(shift_id)
        except StoreError as exc:
            logger.exception("Shift lookup failed for %s", shift_id)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to detect assignment conflicts", cause=str(exc))
        if shift is None:
            return ServiceResult.fail(SHIFT_NOT_FOUND, "Shift not found", shift_id=shift_id)
        return ServiceResult.ok(self.detect_conflicts(guard_id, shift, override_requested))

    def batch_conflict_detection(self, pairs: list[tuple[str, str]]) -> ServiceResult[list[dict[str, Any]]]:
        results: list[dict[str, Any]] = []
        for guard_id, shift_id in pairs:
            outcome = self.detect_assignment_conflicts(guard_id, shift_id)
            report = outcome.data
            results.append(
                {
                    "guard_id": guard_id,
                    "shift_id": shift_id,
                    "conflicts": report.conflicts if report else [],
                    "can_assign": report.can_proceed if report else False,
                }
            )
        return ServiceResult.ok(results)

    # ---- sub-checks -------------------------------------------------------

    def _run_check(
        self,
        category: str,
        check: Callable[[str, Shift], list[AssignmentConflict]],
        guard_id: str,
        shift: Shift,
    ) -> list[AssignmentConflict]:
        try:
            return check(guard_id, shift)
        except (StoreError, KeyError, TypeError, ValueError):
            logger.exception("Conflict check '%s' failed for guard %s, shift %s", category, guard_id, shift.id)
            return []

    def detect_time_conflicts(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        conflicts: list[AssignmentConflict] = []
        for held in self.store.detect_assignment_conflicts(guard_id, shift.start, shift.end):
            other = held.shift
            if other.id == shift.id:
                continue
            fraction = overlap_fraction(other.start, other.end, shift.start, shift.end)
            if fraction <= 0:
                continue
            if fraction > self.scoring.overlap_critical_fraction:
                severity = CRITICAL
            elif fraction > self.scoring.overlap_error_fraction:
                severity = ERROR
            else:
                severity = WARNING
            conflicts.append(
                AssignmentConflict(
                    conflict_type=TIME_OVERLAP,
                    severity=severity,
                    message=f'Time overlap with "{other.title}" ({round(fraction * 100)}% overlap)',
                    can_override=(
                        held.assignment_status != CONFIRMED
                        and fraction < self.scoring.overlap_critical_fraction
                    ),
                    override_required=True,
                    details=ConflictDetails(
                        shift_id=other.id,
                        shift_title=other.title,
                        time_range=(other.start, other.end),
                        conflicting_assignment_id=held.assignment_id,
                        overlap_fraction=round(fraction, 4),
                    ),
                )
            )
        return conflicts

    def detect_availability_conflicts(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        conflicts: list[AssignmentConflict] = []

        for _window in self.store.list_availability(guard_id, shift.start, shift.end, UNAVAILABLE):
            conflicts.append(
                AssignmentConflict(
                    conflict_type=AVAILABILITY_CONFLICT,
                    severity=ERROR,
                    message="Guard marked as unavailable during shift time",
                    can_override=True,
                    override_required=True,
                    details=ConflictDetails(availability_type=UNAVAILABLE),
                )
            )

        emergency = self.store.list_availability(guard_id, shift.start, shift.end, EMERGENCY_ONLY)
        if emergency and shift.priority < self.scoring.emergency_priority:
            conflicts.append(
                AssignmentConflict(
                    conflict_type=AVAILABILITY_CONFLICT,
                    severity=WARNING,
                    message="Guard available for emergency shifts only",
                    can_override=True,
                    override_required=False,
                    details=ConflictDetails(availability_type=EMERGENCY_ONLY),
                )
            )
        return conflicts

    def detect_certification_conflicts(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        guard = self.store.get_guard(guard_id)
        if guard is None:
            return [
                AssignmentConflict(
                    conflict_type=CERTIFICATION_MISSING,
                    severity=CRITICAL,
                    message="Guard profile not found",
                    can_override=False,
                    override_required=False,
                )
            ]

        now = self.now_fn()
        required = list(shift.required_certifications)
        active = set(active_certifications(guard, now))
        missing = [cert for cert in required if cert not in active]
        conflicts: list[AssignmentConflict] = []

        critical_missing = [c for c in missing if c in self.scoring.critical_certifications]
        if critical_missing:
            conflicts.append(
                AssignmentConflict(
                    conflict_type=CERTIFICATION_MISSING,
                    severity=CRITICAL,
                    message=f"Missing critical certifications: {', '.join(critical_missing)}",
                    can_override=False,
                    override_required=False,
                    details=ConflictDetails(missing_certifications=critical_missing),
                )
            )

        other_missing = [c for c in missing if c not in self.scoring.critical_certifications]
        if other_missing:
            conflicts.append(
                AssignmentConflict(
                    conflict_type=CERTIFICATION_MISSING,
                    severity=ERROR,
                    message=f"Missing certifications: {', '.join(other_missing)}",
                    can_override=True,
                    override_required=True,
                    details=ConflictDetails(missing_certifications=other_missing),
                )
            )

        horizon = now + timedelta(days=self.scoring.certification_expiry_warning_days)
        expiring = [
            cert
            for cert in required
            if cert in active and guard.certifications[cert].expiry_date <= horizon
        ]
        if expiring:
            conflicts.append(
                AssignmentConflict(
                    conflict_type=CERTIFICATION_MISSING,
                    severity=WARNING,
                    message=f"Certifications expiring soon: {', '.join(expiring)}",
                    can_override=True,
                    override_required=False,
                    details=ConflictDetails(missing_certifications=expiring),
                )
            )
        return conflicts

    def detect_location_conflicts(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        guard = self.store.get_guard(guard_id)
        if guard is None:
            return []
        distance = location_distance(guard.location, shift.location)
        if distance is None:
            return []

        conflicts: list[AssignmentConflict] = []
        if distance > self.scoring.distance_very_far:
            message = "Guard location is very far from shift site"
        elif distance > self.scoring.distance_far:
            message = "Guard location requires significant travel time"
        else:
            message = ""
        if message:
            conflicts.append(
                AssignmentConflict(
                    conflict_type=LOCATION_CONFLICT,
                    severity=WARNING,
                    message=message,
                    can_override=True,
                    override_required=False,
                    details=ConflictDetails(distance=round(distance, 4)),
                )
            )

        conflicts.extend(self.check_consecutive_shift_travel(guard_id, shift))
        return conflicts

    def check_consecutive_shift_travel(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        buffer = timedelta(hours=self.scoring.travel_buffer_hours)
        nearby = self.store.list_guard_schedule(
            guard_id,
            shift.start - buffer,
            shift.end + buffer,
            WORKING_ASSIGNMENT_STATUSES,
        )

        conflicts: list[AssignmentConflict] = []
        for held in nearby:
            other = held.shift
            if other.id == shift.id:
                continue
            if shift.start - buffer <= other.end <= shift.start:
                gap = shift.start - other.end
                needed = travel_time(other.location, shift.location, self.scoring)
                message = f'Insufficient travel time from previous shift "{other.title}"'
            elif shift.end <= other.start <= shift.end + buffer:
                gap = other.start - shift.end
                needed = travel_time(shift.location, other.location, self.scoring)
                message = f'Insufficient travel time to next shift "{other.title}"'
            else:
                continue
            if needed > gap:
                conflicts.append(
                    AssignmentConflict(
                        conflict_type=LOCATION_CONFLICT,
                        severity=WARNING,
                        message=message,
                        can_override=True,
                        override_required=False,
                        details=ConflictDetails(
                            shift_id=other.id,
                            shift_title=other.title,
                            conflicting_assignment_id=held.assignment_id,
                        ),
                    )
                )
        return conflicts

    def detect_workload_conflicts(self, guard_id: str, shift: Shift) -> list[AssignmentConflict]:
        conflicts: list[AssignmentConflict] = []
        shift_hours = duration_hours(shift.start, shift.end)

        day_start, day_end = day_window(shift.start)
        daily = shift_hours + self._scheduled_hours(guard_id, shift, day_start, day_end)
        if daily > self.scoring.daily_hours_error:
            conflicts.append(
                self._workload_conflict(
                    ERROR,
                    f"Daily hour limit exceeded ({round(daily)} hours > {self.scoring.daily_hours_error:g} hours limit)",
                    daily,
                )
            )
        elif daily > self.scoring.daily_hours_warning:
            conflicts.append(self._workload_conflict(WARNING, f"High daily workload ({round(daily)} hours)", daily))

        week_start, week_end = week_window(shift.start)
        weekly = shift_hours + self._scheduled_hours(guard_id, shift, week_start, week_end)
        if weekly > self.scoring.weekly_hours_error:
            conflicts.append(
                self._workload_conflict(
                    ERROR,
                    f"Weekly hour limit exceeded ({round(weekly)} hours > {self.scoring.weekly_hours_error:g} hours limit)",
                    weekly,
                )
            )
        elif weekly > self.scoring.weekly_hours_warning:
            conflicts.append(self._workload_conflict(WARNING, f"High weekly workload ({round(weekly)} hours)", weekly))

        return conflicts

    def _scheduled_hours(self, guard_id: str, shift: Shift, start: datetime, end: datetime) -> float:
        held = self.store.list_guard_schedule(guard_id, start, end, WORKING_ASSIGNMENT_STATUSES)
        return sum(h.shift.hours for h in held if h.shift.id != shift.id)

    @staticmethod
    def _workload_conflict(severity: str, message: str, hours: float) -> AssignmentConflict:
        return AssignmentConflict(
            conflict_type=TIME_OVERLAP,
            severity=severity,
            message=message,
            can_override=True,
            override_required=severity == ERROR,
            details=ConflictDetails(hours=round(hours, 2)),
        )
