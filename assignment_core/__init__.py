"""Guard shift assignment engine: eligibility, conflicts, matching and lifecycle."""

from .assignments import AssignmentCoordinator
from .conflicts import ConflictDetector
from .eligibility import EligibilityScorer
from .matching import MatchRanker
from .notifications import LoggingNotifier, Notifier
from .results import ServiceError, ServiceResult
from .scoring import DEFAULT_SCORING, ScoringConfig, scoring_from_dict
from .store import AssignmentStore, RecordNotFoundError, StoreError, UniqueViolationError

__all__ = [
    "AssignmentCoordinator",
    "AssignmentStore",
    "ConflictDetector",
    "DEFAULT_SCORING",
    "EligibilityScorer",
    "LoggingNotifier",
    "MatchRanker",
    "Notifier",
    "RecordNotFoundError",
    "ScoringConfig",
    "ServiceError",
    "ServiceResult",
    "StoreError",
    "UniqueViolationError",
    "scoring_from_dict",
]
