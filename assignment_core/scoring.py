"""Weights and thresholds for eligibility, conflict and match scoring.

Everything tunable lives in :class:`ScoringConfig`. Services take a config
instance so alternative scoring profiles can be swapped in without touching
control flow; :data:`DEFAULT_SCORING` carries the production values.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any


@dataclass(frozen=True)
class ScoringConfig:
    # ---- certification ------------------------------------------------------
    critical_certifications: frozenset[str] = frozenset({"TOPS", "Basic_Security"})
    certification_expiry_warning_days: int = 30

    # ---- time overlap -------------------------------------------------------
    overlap_critical_fraction: float = 0.8
    overlap_error_fraction: float = 0.5

    # ---- availability -------------------------------------------------------
    emergency_priority: int = 5

    # ---- location -----------------------------------------------------------
    distance_very_far: float = 1.0
    distance_far: float = 0.5
    travel_buffer_hours: float = 2.0
    travel_minutes_per_unit: float = 60.0
    min_travel_minutes: float = 15.0
    default_travel_minutes: float = 30.0

    # ---- workload -----------------------------------------------------------
    daily_hours_error: float = 12.0
    daily_hours_warning: float = 10.0
    weekly_hours_error: float = 60.0
    weekly_hours_warning: float = 50.0

    # ---- eligibility --------------------------------------------------------
    status_weight: float = 0.25
    certification_weight: float = 0.35
    conflict_weight: float = 0.25
    conflict_partial_credit: float = 0.10
    availability_weight: float = 0.15
    availability_good_credit: float = 0.10
    availability_emergency_credit: float = 0.05
    availability_excellent_overlap: float = 0.8
    availability_good_overlap: float = 0.5
    proximity_close_distance: float = 0.1
    proximity_near_distance: float = 0.3
    proximity_close_bonus: float = 0.10
    proximity_near_bonus: float = 0.05
    proximity_score_close: float = 1.0
    proximity_score_near: float = 0.8
    proximity_score_moderate: float = 0.6
    proximity_score_far: float = 0.4
    proximity_score_very_far: float = 0.2
    proximity_score_unknown: float = 0.5
    performance_bonus: float = 0.05
    performance_bonus_threshold: float = 0.8
    eligibility_threshold: float = 0.3

    # ---- performance composite ---------------------------------------------
    perf_on_time_weight: float = 0.30
    perf_completion_weight: float = 0.25
    perf_rating_weight: float = 0.25
    perf_incident_weight: float = 0.20
    default_on_time_rate: float = 0.8
    default_completion_rate: float = 0.9
    default_client_rating: float = 4.0
    default_incident_rate: float = 0.05

    # ---- match ranking ------------------------------------------------------
    match_certification_weight: float = 0.30
    match_availability_weight: float = 0.25
    match_proximity_weight: float = 0.15
    match_performance_weight: float = 0.20
    match_preference_weight: float = 0.10
    surplus_certification_bonus: float = 0.05
    max_component_score: float = 1.2
    preferred_window_bonus: float = 0.3
    emergency_only_penalty: float = 0.7
    default_availability_score: float = 0.5
    auto_assign_threshold: float = 0.85
    high_confidence_threshold: float = 0.8
    medium_confidence_threshold: float = 0.6
    review_threshold: float = 0.5
    specialization_boost: float = 0.1

    # ---- match quality notes ----------------------------------------------
    strength_certification_exceeds: float = 1.0
    strength_certification_meets: float = 0.8
    concern_certification_gap: float = 0.6
    strength_availability_excellent: float = 0.8
    strength_availability_good: float = 0.5
    strength_proximity_close: float = 0.8
    concern_proximity_far: float = 0.3
    strength_performance_outstanding: float = 0.9
    strength_performance_strong: float = 0.7
    concern_performance_low: float = 0.5
    strength_preference_aligned: float = 0.7
    concern_preference_poor: float = 0.3
    high_priority_level: int = 4
    complex_certification_count: int = 3
    improvement_certification_target: float = 0.8
    improvement_availability_target: float = 0.7
    improvement_performance_target: float = 0.8
    analytics_high_quality_score: float = 0.8
    analytics_low_quality_share: float = 0.3
    analytics_low_eligible_share: float = 0.5

    # ---- preference ---------------------------------------------------------
    preference_base: float = 0.5
    preference_shift_type_bonus: float = 0.2
    preference_location_bonus: float = 0.3
    preference_hours_bonus: float = 0.2
    preference_weekend_bonus: float = 0.2
    preference_weekend_penalty: float = 0.2
    preference_duration_close_bonus: float = 0.1
    preference_duration_near_bonus: float = 0.05

    # ---- assignment workflow ------------------------------------------------
    response_deadline_hours: float = 24.0


DEFAULT_SCORING = ScoringConfig()


def scoring_from_dict(overrides: dict[str, Any] | None, base: ScoringConfig = DEFAULT_SCORING) -> ScoringConfig:
    """Build a config from ``base`` with keys of ``overrides`` replaced.

    Unknown keys raise ``ValueError`` so typos in a profile file do not
    silently fall back to defaults.
    """
    if not overrides:
        return base
    known = {f.name for f in fields(ScoringConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown scoring keys: {unknown}")

    values: dict[str, Any] = {}
    for key, value in overrides.items():
        if key == "critical_certifications":
            values[key] = frozenset(str(v) for v in value)
        elif key in (
            "certification_expiry_warning_days",
            "emergency_priority",
            "high_priority_level",
            "complex_certification_count",
        ):
            values[key] = int(value)
        else:
            values[key] = float(value)
    return replace(base, **values)
