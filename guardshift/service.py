"""Wires a store and scoring profile into the assignment engine.

Both surfaces (HTTP routes and MCP tools) call through
:class:`GuardShiftService`: it parses inbound payloads, delegates to the
engine components and shapes list responses (filtering, sorting, limits).
Every method returns a :class:`ServiceResult`; :func:`envelope` turns one
into the ``{success, data | error}`` JSON body.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from assignment_core.assignments import AssignmentCoordinator
from assignment_core.conflicts import ConflictDetector
from assignment_core.eligibility import EligibilityScorer
from assignment_core.io import SqliteStore, load_into_store, to_jsonable
from assignment_core.io.mapping import (
    assignment_create_from_dict,
    batch_request_from_dict,
    guard_response_from_dict,
)
from assignment_core.matching import MatchRanker
from assignment_core.notifications import Notifier
from assignment_core.results import SERVICE_ERROR, VALIDATION_ERROR, ServiceResult
from assignment_core.scoring import DEFAULT_SCORING, ScoringConfig
from assignment_core.store import AssignmentStore, StoreError
from assignment_core.time_utils import now_utc, parse_datetime

from .config import RuntimeConfig, get_scoring_profile

logger = logging.getLogger(__name__)

SORT_FIELDS = ("eligibility_score", "proximity_score", "performance_score")


def envelope(result: ServiceResult) -> dict[str, Any]:
    if result.success:
        return {"success": True, "data": to_jsonable(result.data)}
    return {"success": False, "error": to_jsonable(result.error.to_dict())}


class GuardShiftService:
    def __init__(
        self,
        store: AssignmentStore,
        scoring: ScoringConfig = DEFAULT_SCORING,
        notifier: Notifier | None = None,
        now_fn: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.scoring = scoring
        self.detector = ConflictDetector(store, scoring=scoring, now_fn=now_fn)
        self.scorer = EligibilityScorer(store, detector=self.detector, scoring=scoring, now_fn=now_fn)
        self.ranker = MatchRanker(store, scorer=self.scorer, scoring=scoring, now_fn=now_fn)
        self.coordinator = AssignmentCoordinator(
            store,
            scorer=self.scorer,
            detector=self.detector,
            notifier=notifier,
            scoring=scoring,
            now_fn=now_fn,
        )

    @classmethod
    def from_config(cls, cfg: RuntimeConfig) -> "GuardShiftService":
        scoring = get_scoring_profile(cfg.scoring_profile, cfg.profile_file)
        logger.info("Using scoring profile '%s' with store %s", cfg.scoring_profile, cfg.db_path)
        return cls(SqliteStore(cfg.db_path), scoring=scoring)

    # ---- shifts -----------------------------------------------------------

    def eligible_guards(
        self,
        shift_id: str,
        include_matching: bool = False,
        limit: int = 20,
        min_score: float = 0.0,
        sort_by: str = "eligibility_score",
    ) -> ServiceResult[dict[str, Any]]:
        if limit < 1:
            return ServiceResult.fail(VALIDATION_ERROR, "limit must be positive", limit=limit)

        if include_matching:
            outcome = self.ranker.find_best_matches(shift_id, limit)
            if not outcome.success:
                return outcome
            matches = outcome.data or []
            filtered = [m for m in matches if m.match_score >= min_score]
            return ServiceResult.ok(
                {
                    "shift_id": shift_id,
                    "total_matches": len(matches),
                    "filtered_matches": len(filtered),
                    "matches": filtered,
                    "matching_enabled": True,
                }
            )

        if sort_by not in SORT_FIELDS:
            return ServiceResult.fail(VALIDATION_ERROR, f"Unknown sort_by '{sort_by}'", allowed=list(SORT_FIELDS))
        outcome = self.scorer.get_eligible_guards(shift_id)
        if not outcome.success:
            return outcome
        results = list(outcome.data or [])
        results.sort(key=lambda r: getattr(r, sort_by) or 0.0, reverse=True)
        guards = [r for r in results if r.eligibility_score >= min_score][:limit]
        return ServiceResult.ok(
            {
                "shift_id": shift_id,
                "total_guards": len(results),
                "eligible_guards": sum(1 for g in guards if g.eligible),
                "filtered_guards": len(guards),
                "guards": guards,
                "sort_by": sort_by,
                "min_score": min_score,
            }
        )

    def check_guards(self, shift_id: str, guard_ids: list[str]) -> ServiceResult[dict[str, Any]]:
        """Eligibility of specific guards for one shift, in request order."""
        if not isinstance(guard_ids, list) or not guard_ids:
            return ServiceResult.fail(VALIDATION_ERROR, "guard_ids array is required")
        outcome = self.scorer.bulk_eligibility_check([str(g) for g in guard_ids], [shift_id])
        if not outcome.success:
            return outcome
        return ServiceResult.ok(
            {
                "shift_id": shift_id,
                "guard_count": len(guard_ids),
                "results": [{"guard_id": row["guard_id"], "eligibility": row["eligibility"]} for row in outcome.data],
            }
        )

    def detect_conflicts(self, shift_id: str, guard_id: str, override_requested: bool = False) -> ServiceResult:
        if not guard_id:
            return ServiceResult.fail(VALIDATION_ERROR, "guard_id is required")
        return self.detector.detect_assignment_conflicts(guard_id, shift_id, override_requested)

    def eligibility_summary(self, shift_id: str) -> ServiceResult:
        return self.scorer.get_eligibility_summary(shift_id)

    def matching_analytics(self, shift_id: str) -> ServiceResult:
        return self.ranker.get_matching_analytics(shift_id)

    def specialized_matches(self, shift_id: str, specializations: list[str]) -> ServiceResult:
        if not specializations:
            return ServiceResult.fail(VALIDATION_ERROR, "specializations must be a non-empty list")
        return self.ranker.find_specialized_matches(shift_id, specializations)

    def improvement_recommendations(self, guard_id: str, shift_id: str) -> ServiceResult:
        return self.ranker.get_match_improvement_recommendations(guard_id, shift_id)

    # ---- assignments ------------------------------------------------------

    def create_assignment(self, payload: dict[str, Any], assigned_by: str) -> ServiceResult:
        try:
            data = assignment_create_from_dict(payload)
        except (TypeError, ValueError) as exc:
            return ServiceResult.fail(VALIDATION_ERROR, str(exc))
        return self.coordinator.create_assignment(data, assigned_by)

    def respond(self, assignment_id: str, payload: dict[str, Any]) -> ServiceResult:
        try:
            response = guard_response_from_dict(payload)
        except (TypeError, ValueError) as exc:
            return ServiceResult.fail(VALIDATION_ERROR, str(exc))
        return self.coordinator.handle_guard_response(assignment_id, response)

    def cancel(self, assignment_id: str, cancelled_by: str, reason: str) -> ServiceResult:
        if not reason:
            return ServiceResult.fail(VALIDATION_ERROR, "reason is required")
        return self.coordinator.cancel_assignment(assignment_id, cancelled_by, reason)

    def get_assignment(self, assignment_id: str) -> ServiceResult:
        return self.coordinator.get_assignment(assignment_id)

    def guard_assignments(
        self,
        guard_id: str,
        statuses: list[str] | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ServiceResult:
        try:
            range_start = parse_datetime(start)
            range_end = parse_datetime(end)
        except ValueError as exc:
            return ServiceResult.fail(VALIDATION_ERROR, f"Invalid date: {exc}")
        if (range_start is None) != (range_end is None):
            return ServiceResult.fail(VALIDATION_ERROR, "start and end must be given together")
        date_range = (range_start, range_end) if range_start and range_end else None
        return self.coordinator.get_guard_assignments(guard_id, statuses, date_range, limit, offset)

    def create_batch(self, payload: dict[str, Any], assigned_by: str) -> ServiceResult:
        try:
            request = batch_request_from_dict(payload)
        except (TypeError, ValueError) as exc:
            return ServiceResult.fail(VALIDATION_ERROR, str(exc))
        return self.coordinator.create_batch_assignments(request, assigned_by)

    # ---- data -------------------------------------------------------------

    def import_dataset(self, path: str | Path) -> ServiceResult[dict[str, int]]:
        if not isinstance(self.store, SqliteStore):
            return ServiceResult.fail(SERVICE_ERROR, "Dataset import requires the SQLite store")
        try:
            counts = load_into_store(Path(path), self.store)
        except (FileNotFoundError, KeyError, ValueError) as exc:
            return ServiceResult.fail(VALIDATION_ERROR, str(exc), path=str(path))
        except StoreError as exc:
            logger.exception("Dataset import failed for %s", path)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to import dataset", cause=str(exc))
        return ServiceResult.ok(counts)

    def summarize_matches(self, shift_id: str, limit: int = 5) -> ServiceResult[dict[str, Any]]:
        """Ranked top matches plus an LLM-written briefing for the manager."""
        from .llm_summary import summarize_matches

        outcome = self.ranker.find_best_matches(shift_id, limit)
        if not outcome.success:
            return outcome
        matches = outcome.data or []
        try:
            shift = self.store.get_shift(shift_id)
            briefing = summarize_matches(shift, matches)
        except Exception as exc:
            logger.exception("Match briefing failed for shift %s", shift_id)
            return ServiceResult.fail(SERVICE_ERROR, "Failed to summarize matches", cause=str(exc))
        return ServiceResult.ok({"shift_id": shift_id, "briefing": briefing, "matches": matches})
