"""Tests for ConflictDetector sub-checks and the aggregate decision."""

from datetime import timedelta

import pytest

from assignment_core.conflicts import ConflictDetector, summarize_conflicts
from assignment_core.models import (
    AVAILABILITY_CONFLICT,
    CERTIFICATION_MISSING,
    CRITICAL,
    ERROR,
    LOCATION_CONFLICT,
    TIME_OVERLAP,
    WARNING,
    AssignmentConflict,
)
from assignment_core.results import SHIFT_NOT_FOUND
from assignment_core.store import StoreError

from conftest import NOW, at


@pytest.fixture
def detector(store, clock):
    return ConflictDetector(store, now_fn=clock)


def _of_type(report, conflict_type):
    return [c for c in report.conflicts if c.conflict_type == conflict_type]


def _overlaps(report):
    """Time overlap conflicts proper; workload conflicts share the type."""
    return [c for c in _of_type(report, TIME_OVERLAP) if c.message.startswith("Time overlap")]


class TestCleanAssignment:
    def test_no_conflicts(self, detector, make_guard, make_shift):
        make_guard()
        shift = make_shift()
        report = detector.detect_conflicts("guard-1", shift)
        assert report.conflicts == []
        assert report.can_proceed is True
        assert report.requires_override is False
        assert report.resolution_suggestions == []


class TestTimeOverlap:
    def test_abutting_shift_is_not_an_overlap(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 0), 8)
        report = detector.detect_conflicts("guard-1", make_shift(start=at(6, 8)))
        assert _overlaps(report) == []

    def test_one_second_overlap_is_at_least_a_warning(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 0, 0, 1), 8)
        overlaps = _overlaps(detector.detect_conflicts("guard-1", make_shift()))
        assert len(overlaps) == 1
        assert overlaps[0].severity == WARNING
        assert overlaps[0].can_override is True

    def test_full_overlap_is_critical(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        held = hold_shift("guard-1", at(6, 8), 8)
        report = detector.detect_conflicts("guard-1", make_shift(), override_requested=True)
        overlap = _overlaps(report)[0]
        assert overlap.severity == CRITICAL
        assert overlap.can_override is False
        assert overlap.details.conflicting_assignment_id == held.id
        assert report.can_proceed is False

    def test_sixty_percent_overlap_is_error(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 11, 12), 8)
        overlap = _overlaps(detector.detect_conflicts("guard-1", make_shift()))[0]
        assert overlap.severity == ERROR
        assert overlap.can_override is True
        assert overlap.details.overlap_fraction == pytest.approx(0.6)

    def test_confirmed_assignment_cannot_be_overridden(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 11, 12), 8, status="confirmed")
        overlap = _overlaps(detector.detect_conflicts("guard-1", make_shift()))[0]
        assert overlap.severity == ERROR
        assert overlap.can_override is False

    def test_pending_assignments_do_not_block(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 8), 8, status="pending")
        assert _overlaps(detector.detect_conflicts("guard-1", make_shift())) == []


class TestAvailability:
    def test_unavailable_window_requires_override(self, detector, make_guard, make_shift, add_window):
        make_guard()
        add_window("guard-1", at(6, 10), at(6, 12), "unavailable")
        shift = make_shift()

        report = detector.detect_conflicts("guard-1", shift)
        conflict = _of_type(report, AVAILABILITY_CONFLICT)[0]
        assert conflict.severity == ERROR
        assert conflict.can_override is True
        assert report.can_proceed is False
        assert report.requires_override is True

        overridden = detector.detect_conflicts("guard-1", shift, override_requested=True)
        assert overridden.can_proceed is True

    def test_emergency_only_warns_for_routine_shift(self, detector, make_guard, make_shift, add_window):
        make_guard()
        add_window("guard-1", at(6, 6), at(6, 18), "emergency_only")
        conflict = _of_type(detector.detect_conflicts("guard-1", make_shift(priority=3)), AVAILABILITY_CONFLICT)[0]
        assert conflict.severity == WARNING
        assert conflict.override_required is False

    def test_emergency_only_is_fine_for_urgent_shift(self, detector, make_guard, make_shift, add_window):
        make_guard()
        add_window("guard-1", at(6, 6), at(6, 18), "emergency_only")
        report = detector.detect_conflicts("guard-1", make_shift(priority=5))
        assert _of_type(report, AVAILABILITY_CONFLICT) == []

    def test_window_outside_shift_is_ignored(self, detector, make_guard, make_shift, add_window):
        make_guard()
        add_window("guard-1", at(6, 16), at(6, 20), "unavailable")
        assert _of_type(detector.detect_conflicts("guard-1", make_shift()), AVAILABILITY_CONFLICT) == []


class TestCertifications:
    def test_missing_tops_is_critical(self, detector, make_guard, make_shift):
        make_guard(certs=("Basic_Security",))
        report = detector.detect_conflicts("guard-1", make_shift(certs=("Basic_Security", "TOPS")))
        conflict = _of_type(report, CERTIFICATION_MISSING)[0]
        assert conflict.severity == CRITICAL
        assert conflict.can_override is False
        assert conflict.details.missing_certifications == ["TOPS"]
        assert report.can_proceed is False

    def test_missing_other_certification_is_overridable_error(self, detector, make_guard, make_shift):
        make_guard(certs=("Basic_Security",))
        report = detector.detect_conflicts("guard-1", make_shift(certs=("Basic_Security", "CPR")))
        conflict = _of_type(report, CERTIFICATION_MISSING)[0]
        assert conflict.severity == ERROR
        assert conflict.can_override is True
        assert conflict.override_required is True

    def test_expired_certification_counts_as_missing(self, detector, make_guard, make_shift):
        make_guard(certs=("Basic_Security",), expiry=NOW - timedelta(days=1))
        conflict = _of_type(detector.detect_conflicts("guard-1", make_shift()), CERTIFICATION_MISSING)[0]
        assert conflict.severity == CRITICAL

    def test_expiring_soon_is_a_warning(self, detector, make_guard, make_shift):
        make_guard(expiry=NOW + timedelta(days=10))
        conflict = _of_type(detector.detect_conflicts("guard-1", make_shift()), CERTIFICATION_MISSING)[0]
        assert conflict.severity == WARNING
        assert "expiring soon" in conflict.message

    def test_unknown_guard_is_critical(self, detector, make_shift):
        conflict = _of_type(detector.detect_conflicts("ghost", make_shift()), CERTIFICATION_MISSING)[0]
        assert conflict.severity == CRITICAL
        assert conflict.message == "Guard profile not found"


class TestLocation:
    def test_very_far_guard(self, detector, make_guard, make_shift):
        make_guard(lat=41.5)
        conflict = _of_type(detector.detect_conflicts("guard-1", make_shift()), LOCATION_CONFLICT)[0]
        assert conflict.severity == WARNING
        assert "very far" in conflict.message
        assert conflict.details.distance == pytest.approx(1.5)

    def test_far_guard(self, detector, make_guard, make_shift):
        make_guard(lat=40.7)
        conflict = _of_type(detector.detect_conflicts("guard-1", make_shift()), LOCATION_CONFLICT)[0]
        assert "significant travel" in conflict.message

    def test_missing_coordinates_skip_distance(self, detector, make_guard, make_shift):
        make_guard(lat=None, lng=None)
        assert _of_type(detector.detect_conflicts("guard-1", make_shift()), LOCATION_CONFLICT) == []

    def test_tight_gap_after_previous_shift(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        # previous shift ends 20 minutes before, 0.5 units away (30 minutes travel)
        hold_shift("guard-1", at(6, 3, 40), 4, lat=40.5)
        report = detector.detect_conflicts("guard-1", make_shift())
        travel = [c for c in _of_type(report, LOCATION_CONFLICT) if "previous shift" in c.message]
        assert len(travel) == 1
        assert travel[0].severity == WARNING

    def test_enough_gap_before_next_shift(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 17), 4, lat=40.1)
        report = detector.detect_conflicts("guard-1", make_shift())
        assert [c for c in _of_type(report, LOCATION_CONFLICT) if "next shift" in c.message] == []


class TestWorkload:
    def test_thirteen_hour_day_is_overridable_error(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 0), 11)
        report = detector.detect_conflicts("guard-1", make_shift(start=at(6, 14), hours=2))
        daily = [c for c in _of_type(report, TIME_OVERLAP) if "Daily" in c.message]
        assert len(daily) == 1
        assert daily[0].severity == ERROR
        assert daily[0].can_override is True
        assert daily[0].details.hours == pytest.approx(13)

    def test_eleven_hour_day_is_warning(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        hold_shift("guard-1", at(6, 0), 3)
        report = detector.detect_conflicts("guard-1", make_shift(start=at(6, 10), hours=8))
        workload = [c for c in report.conflicts if "daily workload" in c.message]
        assert [c.severity for c in workload] == [WARNING]

    def test_weekly_limit(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        for day in (2, 3, 4, 5, 7):
            hold_shift("guard-1", at(day, 0), 11)
        report = detector.detect_conflicts("guard-1", make_shift())
        weekly = [c for c in report.conflicts if "Weekly" in c.message]
        assert len(weekly) == 1
        assert weekly[0].severity == ERROR

    def test_week_starts_on_sunday(self, detector, make_guard, make_shift, hold_shift):
        make_guard()
        # Saturday Mar 1 belongs to the previous week
        for day in (1, 3, 4, 5, 7):
            hold_shift("guard-1", at(day, 0), 11)
        report = detector.detect_conflicts("guard-1", make_shift())
        weekly = [c for c in report.conflicts if "weekly" in c.message.lower()]
        assert [c.severity for c in weekly] == [WARNING]


class TestDegradedChecks:
    def test_failed_sub_check_contributes_nothing(self, detector, store, make_guard, make_shift, monkeypatch):
        make_guard(certs=())

        def broken(*args, **kwargs):
            raise StoreError("availability table unavailable")

        monkeypatch.setattr(store, "list_availability", broken)
        report = detector.detect_conflicts("guard-1", make_shift())
        assert _of_type(report, AVAILABILITY_CONFLICT) == []
        assert _of_type(report, CERTIFICATION_MISSING)[0].severity == CRITICAL


class TestByIds:
    def test_unknown_shift(self, detector):
        result = detector.detect_assignment_conflicts("guard-1", "nope")
        assert result.success is False
        assert result.error_code == SHIFT_NOT_FOUND

    def test_batch_detection(self, detector, make_guard, make_shift):
        make_guard("guard-1")
        make_guard("guard-2", certs=())
        make_shift()
        result = detector.batch_conflict_detection([("guard-1", "shift-1"), ("guard-2", "shift-1"), ("guard-1", "x")])
        assert result.success
        assert [row["can_assign"] for row in result.data] == [True, False, False]


class TestSummarize:
    def _conflict(self, severity, can_override=True):
        return AssignmentConflict(TIME_OVERLAP, severity, "m", can_override, severity == ERROR)

    def test_warnings_only(self):
        assert summarize_conflicts([self._conflict(WARNING)], False) == (True, False)

    def test_error_needs_override(self):
        assert summarize_conflicts([self._conflict(ERROR)], False) == (False, True)
        assert summarize_conflicts([self._conflict(ERROR)], True) == (True, True)

    def test_critical_never_proceeds(self):
        assert summarize_conflicts([self._conflict(CRITICAL, False)], True) == (False, False)
