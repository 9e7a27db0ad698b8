"""Ranked guard matching for a shift.

Builds on eligibility: every guard that clears (or nearly clears) the
eligibility bar is re-scored with match-specific weights, annotated with
strengths, concerns and recommendations, and ranked.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .eligibility import EligibilityScorer
from .models import (
    CRITICAL,
    ERROR,
    AssignmentConflict,
    GuardEligibilityResult,
    GuardMatchResult,
    SchedulingPreferences,
    Shift,
)
from .results import DATABASE_ERROR, SERVICE_ERROR, SHIFT_NOT_FOUND, ServiceResult
from .scoring import DEFAULT_SCORING, ScoringConfig
from .store import AssignmentStore, StoreError
from .time_utils import duration_hours, is_weekend, now_utc

logger = logging.getLogger(__name__)


def preference_score(
    prefs: SchedulingPreferences | None,
    shift: Shift,
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> float:
    score = scoring.preference_base
    if prefs is None:
        return score

    industry = shift.client.industry_type
    if industry and industry in prefs.preferred_shift_types:
        score += scoring.preference_shift_type_bonus

    location_id = shift.location.location_id
    if location_id and location_id in prefs.preferred_locations:
        score += scoring.preference_location_bonus

    if prefs.preferred_hours is not None:
        if prefs.preferred_hours.start <= shift.start.hour <= prefs.preferred_hours.end:
            score += scoring.preference_hours_bonus

    if prefs.weekend_availability is not None:
        if is_weekend(shift.start) == prefs.weekend_availability:
            score += scoring.preference_weekend_bonus
        else:
            score -= scoring.preference_weekend_penalty

    if prefs.preferred_shift_duration:
        diff = abs(duration_hours(shift.start, shift.end) - prefs.preferred_shift_duration)
        if diff <= 1:
            score += scoring.preference_duration_close_bonus
        elif diff <= 2:
            score += scoring.preference_duration_near_bonus

    return max(0.0, min(1.0, score))


def determine_confidence(
    match_score: float,
    conflicts: list[AssignmentConflict],
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> str:
    critical = sum(1 for c in conflicts if c.severity == CRITICAL)
    errors = sum(1 for c in conflicts if c.severity == ERROR)
    if critical:
        return "low"
    if match_score >= scoring.high_confidence_threshold and errors == 0:
        return "high"
    if match_score >= scoring.medium_confidence_threshold and errors <= 1:
        return "medium"
    return "low"


def determine_recommended_action(
    match_score: float,
    confidence: str,
    conflicts: list[AssignmentConflict],
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> str:
    if any(c.severity == CRITICAL for c in conflicts):
        return "not_recommended"
    errors = sum(1 for c in conflicts if c.severity == ERROR)
    if confidence == "high" and match_score >= scoring.auto_assign_threshold and errors == 0:
        return "auto_assign"
    if match_score >= scoring.review_threshold:
        return "manager_review"
    return "not_recommended"


def analyze_match_quality(
    eligibility: GuardEligibilityResult,
    scores: dict[str, float],
    shift: Shift,
    scoring: ScoringConfig = DEFAULT_SCORING,
) -> tuple[list[str], list[str], list[str]]:
    """Turn sub-scores into ``(strengths, concerns, recommendations)``."""
    strengths: list[str] = []
    concerns: list[str] = []
    recommendations: list[str] = []

    cert = scores["certification"]
    if cert >= scoring.strength_certification_exceeds:
        strengths.append("Exceeds certification requirements")
    elif cert >= scoring.strength_certification_meets:
        strengths.append("Meets all required certifications")
    elif cert >= scoring.concern_certification_gap:
        concerns.append("Missing some non-critical certifications")
        recommendations.append("Verify acceptable certification alternatives")
    else:
        concerns.append("Significant certification gaps")
        recommendations.append("Consider additional training or alternative guard")

    avail = scores["availability"]
    if avail >= scoring.strength_availability_excellent:
        strengths.append("Excellent availability match")
    elif avail >= scoring.strength_availability_good:
        strengths.append("Good availability overlap")
    else:
        concerns.append("Limited availability during shift hours")
        recommendations.append("Confirm guard availability before assignment")

    proximity = scores["proximity"]
    if proximity >= scoring.strength_proximity_close:
        strengths.append("Located close to assignment site")
    elif proximity <= scoring.concern_proximity_far:
        concerns.append("Long travel distance to assignment")
        recommendations.append("Consider travel time and compensation")

    performance = scores["performance"]
    if performance >= scoring.strength_performance_outstanding:
        strengths.append("Outstanding performance history")
    elif performance >= scoring.strength_performance_strong:
        strengths.append("Strong performance record")
    elif performance <= scoring.concern_performance_low:
        concerns.append("Below average performance history")
        recommendations.append("Review recent performance and consider mentoring")

    preference = scores["preference"]
    if preference >= scoring.strength_preference_aligned:
        strengths.append("Strong preference alignment")
    elif preference <= scoring.concern_preference_poor:
        concerns.append("Poor preference match")
        recommendations.append("Consider guard preferences in scheduling")

    if any(c.severity == CRITICAL for c in eligibility.conflicts):
        concerns.append("Critical assignment conflicts detected")
        recommendations.append("Resolve conflicts before proceeding")
    elif any(c.severity == ERROR for c in eligibility.conflicts):
        concerns.append("Assignment conflicts require override")
        recommendations.append("Review conflicts and provide justification for override")

    if shift.priority >= scoring.high_priority_level:
        recommendations.append("High priority shift - ensure rapid response capability")
    if len(shift.required_certifications) > scoring.complex_certification_count:
        recommendations.append("Complex certification requirements - double-check compliance")

    return strengths, concerns, recommendations


def rank_matches(matches: list[GuardMatchResult]) -> list[GuardMatchResult]:
    """Sort by match score (stable on ties) and assign 1-based rankings in place."""
    matches.sort(key=lambda m: m.match_score, reverse=True)
    for index, match in enumerate(matches, 1):
        match.ranking = index
    return matches


class MatchRanker:
    def __init__(
        self,
        store: AssignmentStore,
        scorer: EligibilityScorer | None = None,
        scoring: ScoringConfig = DEFAULT_SCORING,
        now_fn: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.scoring = scoring
        self.scorer = scorer or EligibilityScorer(store, scoring=scoring, now_fn=now_fn)

    def find_best_matches(self, shift_id: str, limit: int | None = 10) -> ServiceResult[list[GuardMatchResult]]:
        shift, failure = self._load_shift(shift_id)
        if failure is not None:
            return failure
        try:
            matches = self.rank_shift(shift)
        except StoreError as exc:
            logger.exception("Failed to fetch guards for matching shift %s", shift_id)
            return ServiceResult.fail(DATABASE_ERROR, "Failed to get eligible guards", cause=str(exc))

        logger.info("Ranked %d candidate guards for shift %s", len(matches), shift_id)
        if limit is not None:
            matches = matches[:limit]
        return ServiceResult.ok(matches)

    def rank_shift(self, shift: Shift) -> list[GuardMatchResult]:
        """Full ranked candidate pool for a shift; ranks cover every candidate."""
        matches = [
            self.calculate_match(eligibility, shift)
            for eligibility in self.scorer.evaluate_guards(shift)
            if eligibility.eligible or eligibility.eligibility_score > self.scoring.eligibility_threshold
        ]
        return rank_matches(matches)

    def calculate_match(self, eligibility: GuardEligibilityResult, shift: Shift) -> GuardMatchResult:
        cfg = self.scoring
        try:
            guard = self.store.get_guard(eligibility.guard_id)
        except StoreError:
            logger.exception("Error calculating match score for guard %s", eligibility.guard_id)
            return self._failed_match(eligibility)

        cert_score = 0.0
        cert_match = eligibility.certification_match
        if cert_match is not None:
            cert_score = cert_match.match_percentage
            if cert_score >= 1.0:
                surplus = len(cert_match.available) - len(cert_match.required)
                cert_score = min(cfg.max_component_score, 1.0 + surplus * cfg.surplus_certification_bonus)

        avail_match = eligibility.availability_match
        if avail_match is not None:
            avail_score = avail_match.overlap_percentage
            if avail_match.preferred_match:
                avail_score = min(cfg.max_component_score, avail_score + cfg.preferred_window_bonus)
            if avail_match.emergency_only and shift.priority < cfg.emergency_priority:
                avail_score *= cfg.emergency_only_penalty
        else:
            avail_score = cfg.default_availability_score

        proximity = eligibility.proximity_score or 0.0
        performance = eligibility.performance_score or 0.0
        preference = preference_score(guard.preferences if guard else None, shift, cfg)

        raw = (
            cert_score * cfg.match_certification_weight
            + avail_score * cfg.match_availability_weight
            + proximity * cfg.match_proximity_weight
            + performance * cfg.match_performance_weight
            + preference * cfg.match_preference_weight
        )
        match_score = round(max(0.0, min(cfg.max_component_score, raw)), 2)

        scores = {
            "certification": cert_score,
            "availability": avail_score,
            "proximity": proximity,
            "performance": performance,
            "preference": preference,
        }
        strengths, concerns, recommendations = analyze_match_quality(eligibility, scores, shift, self.scoring)
        confidence = determine_confidence(match_score, eligibility.conflicts, cfg)
        action = determine_recommended_action(match_score, confidence, eligibility.conflicts, cfg)

        return GuardMatchResult(
            guard_id=eligibility.guard_id,
            match_score=match_score,
            ranking=0,
            eligibility=eligibility,
            certification_score=round(cert_score, 4),
            availability_score=round(avail_score, 4),
            proximity_score=proximity,
            performance_score=performance,
            preference_score=round(preference, 4),
            strengths=strengths,
            concerns=concerns,
            recommendations=recommendations,
            confidence=confidence,
            recommended_action=action,
        )

    # ---- supplementary views ----------------------------------------------

    def get_match_improvement_recommendations(self, guard_id: str, shift_id: str) -> ServiceResult[dict[str, Any]]:
        shift, failure = self._load_shift(shift_id)
        if failure is not None:
            return failure

        eligibility = self.scorer.check_eligibility(guard_id, shift)
        match = self.calculate_match(eligibility, shift)

        areas: list[dict[str, Any]] = []
        if match.certification_score < self.scoring.improvement_certification_target:
            areas.append(
                {
                    "area": "Certifications",
                    "current_score": match.certification_score,
                    "suggestions": [
                        "Complete missing required certifications",
                        "Renew expiring certifications",
                        "Consider additional relevant certifications",
                    ],
                    "potential_improvement": 0.3,
                }
            )
        if match.availability_score < self.scoring.improvement_availability_target:
            areas.append(
                {
                    "area": "Availability",
                    "current_score": match.availability_score,
                    "suggestions": [
                        "Update availability preferences",
                        "Consider flexible scheduling options",
                        "Mark preferred time slots",
                    ],
                    "potential_improvement": 0.25,
                }
            )
        if match.performance_score < self.scoring.improvement_performance_target:
            areas.append(
                {
                    "area": "Performance",
                    "current_score": match.performance_score,
                    "suggestions": [
                        "Focus on punctuality and reliability",
                        "Complete additional training programs",
                        "Request performance feedback and coaching",
                    ],
                    "potential_improvement": 0.2,
                }
            )

        alternatives: list[str] = []
        ranked = self.find_best_matches(shift_id, limit=5)
        if ranked.success:
            alternatives = [
                m.guard_id
                for m in ranked.data or []
                if m.guard_id != guard_id and m.match_score > match.match_score
            ][:3]

        return ServiceResult.ok(
            {
                "current_score": match.match_score,
                "improvement_areas": areas,
                "alternative_guards": alternatives or None,
            }
        )

    def find_specialized_matches(self, shift_id: str, specializations: list[str]) -> ServiceResult[list[GuardMatchResult]]:
        outcome = self.find_best_matches(shift_id, limit=20)
        if not outcome.success:
            return outcome

        wanted = [s.lower() for s in specializations]

        def has_specialization(match: GuardMatchResult) -> bool:
            available = match.eligibility.certification_match.available if match.eligibility.certification_match else []
            available_lower = {a.lower() for a in available}
            return any(
                term in available_lower or any(term in reason.lower() for reason in match.eligibility.reasons)
                for term in wanted
            )

        specialized = [m for m in outcome.data or [] if has_specialization(m)]
        for match in specialized:
            boosted = min(1.0, match.match_score + self.scoring.specialization_boost)
            match.match_score = round(max(match.match_score, boosted), 2)
            match.strengths.append("Specialized expertise match")
        return ServiceResult.ok(rank_matches(specialized))

    def get_matching_analytics(self, shift_id: str) -> ServiceResult[dict[str, Any]]:
        outcome = self.find_best_matches(shift_id, limit=50)
        if not outcome.success:
            return ServiceResult(success=False, error=outcome.error)

        matches = outcome.data or []
        total = len(matches)
        eligible = sum(1 for m in matches if m.eligibility.eligible)
        high_quality = sum(1 for m in matches if m.match_score >= self.scoring.analytics_high_quality_score)
        average = round(sum(m.match_score for m in matches) / total, 2) if total else 0.0

        strength_counts = Counter(s for m in matches for s in m.strengths)
        concern_counts = Counter(c for m in matches for c in m.concerns)

        suggestions: list[str] = []
        if total and high_quality / total < self.scoring.analytics_low_quality_share:
            suggestions.append("Consider adjusting shift requirements or timing")
        if total and eligible / total < self.scoring.analytics_low_eligible_share:
            suggestions.append("Review certification requirements - may be too restrictive")
        for concern, _count in concern_counts.most_common(3):
            text = concern.lower()
            if "certification" in text:
                suggestions.append("Consider alternative certification paths or training programs")
            if "availability" in text:
                suggestions.append("Adjust shift timing to better match guard availability")
            if "performance" in text:
                suggestions.append("Implement guard performance improvement programs")

        return ServiceResult.ok(
            {
                "total_candidates": total,
                "eligible_candidates": eligible,
                "high_quality_matches": high_quality,
                "average_match_score": average,
                "top_reasons": [reason for reason, _ in strength_counts.most_common(5)],
                "improvement_suggestions": suggestions,
            }
        )

    # ---- helpers ----------------------------------------------------------

    def _load_shift(self, shift_id: str) -> tuple[Shift | None, ServiceResult | None]:
        try:
            shift = self.store.get_shift(shift_id)
        except StoreError as exc:
            logger.exception("Shift lookup failed for %s", shift_id)
            return None, ServiceResult.fail(SERVICE_ERROR, "Failed to find guard matches", cause=str(exc))
        if shift is None:
            return None, ServiceResult.fail(SHIFT_NOT_FOUND, "Shift not found", shift_id=shift_id)
        return shift, None

    @staticmethod
    def _failed_match(eligibility: GuardEligibilityResult) -> GuardMatchResult:
        return GuardMatchResult(
            guard_id=eligibility.guard_id,
            match_score=0.0,
            ranking=0,
            eligibility=eligibility,
            certification_score=0.0,
            availability_score=0.0,
            proximity_score=0.0,
            performance_score=0.0,
            preference_score=0.0,
            strengths=[],
            concerns=["Error calculating match score"],
            recommendations=["Review guard profile manually"],
            confidence="low",
            recommended_action="not_recommended",
        )
