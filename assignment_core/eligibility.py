"""Guard eligibility scoring for a single shift.

The eligibility score is a bounded weighted sum (status, certifications,
conflicts, availability) plus proximity and performance bonuses. Hard
failures are recorded as ``disqualifications``; they make a guard ineligible
but scoring continues so the caller still sees every factor.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from .conflicts import ConflictDetector, active_certifications, location_distance
from .models import (
    AVAILABLE,
    CRITICAL,
    EMERGENCY_ONLY,
    PREFERRED,
    AvailabilityMatch,
    CertificationMatch,
    GuardEligibilityResult,
    GuardProfile,
    Location,
    PerformanceMetrics,
    Shift,
)
from .results import SERVICE_ERROR, SHIFT_NOT_FOUND, DATABASE_ERROR, ServiceResult
from .scoring import DEFAULT_SCORING, ScoringConfig
from .store import AssignmentStore, StoreError
from .time_utils import merged_coverage_seconds, now_utc

logger = logging.getLogger(__name__)

COVERAGE_TYPES = frozenset({AVAILABLE, PREFERRED})


def performance_score(metrics: PerformanceMetrics | None, scoring: ScoringConfig = DEFAULT_SCORING) -> float:
    """Composite reliability score in [0, 1]; absent metrics take neutral defaults."""
    metrics = metrics or PerformanceMetrics()

    def pick(value: float | None, default: float) -> float:
        return default if value is None else float(value)

    on_time = pick(metrics.on_time_rate, scoring.default_on_time_rate)
    completion = pick(metrics.completion_rate, scoring.default_completion_rate)
    rating = pick(metrics.client_rating, scoring.default_client_rating)
    incidents = pick(metrics.incident_rate, scoring.default_incident_rate)

    score = (
        on_time * scoring.perf_on_time_weight
        + completion * scoring.perf_completion_weight
        + (rating / 5) * scoring.perf_rating_weight
        + (1 - incidents) * scoring.perf_incident_weight
    )
    return max(0.0, min(1.0, score))


def proximity_score(
    guard_location: Location | None,
    shift_location: Location | None,
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """Tiered closeness score; thresholds mirror the conflict detector's."""
    distance = location_distance(guard_location, shift_location)
    if distance is None:
        return scoring.proximity_score_unknown
    if distance < scoring.proximity_close_distance:
        return scoring.proximity_score_close
    if distance < scoring.proximity_near_distance:
        return scoring.proximity_score_near
    if distance < scoring.distance_far:
        return scoring.proximity_score_moderate
    if distance < scoring.distance_very_far:
        return scoring.proximity_score_far
    return scoring.proximity_score_very_far


def certification_match(
    guard: GuardProfile,
    required: Iterable[str],
    at: datetime,
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> CertificationMatch:
    required = list(required)
    available = active_certifications(guard, at)
    available_set = set(available)
    matched = [cert for cert in required if cert in available_set]
    missing = [cert for cert in required if cert not in available_set]
    critical_missing = [cert for cert in missing if cert in scoring.critical_certifications]
    return CertificationMatch(
        required=required,
        available=available,
        matched=matched,
        missing=missing,
        match_percentage=(len(matched) / len(required)) if required else 1.0,
        critical_missing=critical_missing,
    )


class EligibilityScorer:
    def __init__(
        self,
        store: AssignmentStore,
        detector: ConflictDetector | None = None,
        scoring: ScoringConfig = DEFAULT_SCORING,
        now_fn: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.scoring = scoring
        self.now_fn = now_fn
        self.detector = detector or ConflictDetector(store, scoring=scoring, now_fn=now_fn)

    def check_eligibility(self, guard_id: str, shift: Shift) -> GuardEligibilityResult:
        cfg = self.scoring
        try:
            guard = self.store.get_guard(guard_id)
        except StoreError:
            logger.exception("Guard lookup failed for %s", guard_id)
            return GuardEligibilityResult(
                guard_id=guard_id,
                eligible=False,
                eligibility_score=0.0,
                reasons=["Error checking eligibility"],
                disqualifications=["lookup_failed"],
            )

        if guard is None:
            return GuardEligibilityResult(
                guard_id=guard_id,
                eligible=False,
                eligibility_score=0.0,
                reasons=["Guard profile not found."],
                disqualifications=["profile_not_found"],
            )

        reasons: list[str] = []
        disqualifications: list[str] = []
        score = 0.0

        # Status
        if guard.profile_status != "approved":
            disqualifications.append("profile_not_approved")
            reasons.append("Guard profile not approved")
        elif not guard.is_schedulable:
            disqualifications.append("not_schedulable")
            reasons.append("Guard not available for scheduling")
        else:
            score += cfg.status_weight
            reasons.append("Guard status approved and schedulable")

        # Certifications
        cert_match = certification_match(guard, shift.required_certifications, self.now_fn(), cfg)
        if not cert_match.missing:
            score += cfg.certification_weight
            reasons.append("All required certifications met")
        elif cert_match.critical_missing:
            disqualifications.append("critical_certification_missing")
            reasons.append(f"Missing critical certifications: {', '.join(cert_match.critical_missing)}")
        else:
            score += cfg.certification_weight * cert_match.match_percentage
            reasons.append(f"Partial certification match: {round(cert_match.match_percentage * 100)}%")

        # Conflicts
        report = self.detector.detect_conflicts(guard_id, shift)
        if not report.conflicts:
            score += cfg.conflict_weight
            reasons.append("No scheduling conflicts")
        elif any(c.severity == CRITICAL for c in report.conflicts):
            disqualifications.append("critical_conflict")
            reasons.append("Critical scheduling conflicts detected")
        else:
            score += cfg.conflict_partial_credit
            reasons.append("Minor scheduling conflicts detected")

        # Availability
        avail_match = self.availability_match(guard_id, shift)
        if avail_match is not None and avail_match.overlap_percentage >= cfg.availability_excellent_overlap:
            score += cfg.availability_weight
            reasons.append("Excellent availability match")
        elif avail_match is not None and avail_match.overlap_percentage >= cfg.availability_good_overlap:
            score += cfg.availability_good_credit
            reasons.append("Good availability match")
        elif avail_match is not None and avail_match.emergency_only:
            score += cfg.availability_emergency_credit
            reasons.append("Available for emergency only")
        else:
            reasons.append("Limited availability match")

        # Proximity bonus
        proximity = proximity_score(guard.location, shift.location, cfg)
        distance = location_distance(guard.location, shift.location)
        if distance is not None and distance < cfg.proximity_close_distance:
            score = min(1.0, score + cfg.proximity_close_bonus)
            reasons.append("Excellent location proximity")
        elif distance is not None and distance < cfg.proximity_near_distance:
            score = min(1.0, score + cfg.proximity_near_bonus)
            reasons.append("Good location proximity")

        # Performance bonus
        performance = performance_score(guard.performance, cfg)
        if performance > cfg.performance_bonus_threshold:
            score = min(1.0, score + cfg.performance_bonus)
            reasons.append("Excellent performance history")

        score = round(max(0.0, min(1.0, score)), 2)
        if not disqualifications and score <= cfg.eligibility_threshold:
            reasons.append("Eligibility score below minimum threshold")

        return GuardEligibilityResult(
            guard_id=guard_id,
            eligible=not disqualifications and score > cfg.eligibility_threshold,
            eligibility_score=score,
            reasons=reasons,
            conflicts=report.conflicts,
            certification_match=cert_match,
            availability_match=avail_match,
            proximity_score=proximity,
            performance_score=round(performance, 4),
            disqualifications=disqualifications,
        )

    def availability_match(self, guard_id: str, shift: Shift) -> AvailabilityMatch | None:
        """Coverage of the shift by the guard's windows; None if the lookup failed."""
        try:
            windows = self.store.list_availability(guard_id, shift.start, shift.end)
        except StoreError:
            logger.exception("Availability lookup failed for guard %s", guard_id)
            return None

        covering = [(w.start, w.end) for w in windows if w.availability_type in COVERAGE_TYPES]
        total = (shift.end - shift.start).total_seconds()
        covered = merged_coverage_seconds(shift.start, shift.end, covering)
        preferred = any(w.availability_type == PREFERRED for w in windows)
        emergency = any(w.availability_type == EMERGENCY_ONLY for w in windows)
        return AvailabilityMatch(
            requested_window=(shift.start, shift.end),
            availability_windows=windows,
            overlap_percentage=min(1.0, covered / total) if total > 0 else 0.0,
            preferred_match=preferred,
            emergency_only=emergency and not preferred,
        )

    # ---- shift-level queries ----------------------------------------------

    def evaluate_guards(self, shift: Shift) -> list[GuardEligibilityResult]:
        """Eligibility of every schedulable guard, in store order."""
        return [self.check_eligibility(guard.id, shift) for guard in self.store.list_schedulable_guards()]

    def get_eligible_guards(self, shift_id: str) -> ServiceResult[list[GuardEligibilityResult]]:
        shift, failure = self._load_shift(shift_id)
        if failure is not None:
            return failure
        try:
            results = self.evaluate_guards(shift)
        except StoreError as exc:
            logger.exception("Failed to fetch guards for shift %s", shift_id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to fetch guards", cause=str(exc))
        results.sort(key=lambda r: r.eligibility_score, reverse=True)
        return ServiceResult.ok(results)

    def bulk_eligibility_check(
        self,
        guard_ids: list[str],
        shift_ids: list[str],
    ) -> ServiceResult[list[dict[str, Any]]]:
        try:
            shifts = self.store.list_shifts(shift_ids)
        except StoreError as exc:
            logger.exception("Bulk eligibility shift lookup failed")
            return ServiceResult.fail(SERVICE_ERROR, "Failed to perform bulk eligibility check", cause=str(exc))
        if not shifts:
            return ServiceResult.fail(SHIFT_NOT_FOUND, "No shifts found", shift_ids=list(shift_ids))

        rows = [
            {"guard_id": guard_id, "shift_id": shift.id, "eligibility": self.check_eligibility(guard_id, shift)}
            for guard_id in guard_ids
            for shift in shifts
        ]
        return ServiceResult.ok(rows)

    def get_eligibility_summary(self, shift_id: str) -> ServiceResult[dict[str, int]]:
        outcome = self.get_eligible_guards(shift_id)
        if not outcome.success:
            return ServiceResult(success=False, error=outcome.error)

        results = outcome.data or []
        total = len(results)
        eligible = sum(1 for r in results if r.eligible)
        highly_qualified = sum(1 for r in results if r.eligibility_score >= 0.8)
        needs_override = sum(
            1 for r in results if not r.eligible and any(c.can_override for c in r.conflicts)
        )
        return ServiceResult.ok(
            {
                "total_guards": total,
                "eligible_guards": eligible,
                "highly_qualified": highly_qualified,
                "needs_override": needs_override,
                "unavailable": total - eligible - needs_override,
            }
        )

    def _load_shift(self, shift_id: str) -> tuple[Shift | None, ServiceResult | None]:
        try:
            shift = self.store.get_shift(shift_id)
        except StoreError as exc:
            logger.exception("Shift lookup failed for %s", shift_id)
            return None, ServiceResult.fail(SERVICE_ERROR, "Failed to load shift", cause=str(exc))
        if shift is None:
            return None, ServiceResult.fail(SHIFT_NOT_FOUND, "Shift not found", shift_id=shift_id)
        return shift, None
