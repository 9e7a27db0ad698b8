"""Domain model for shifts, guards, conflicts and assignments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Assignment status values
PENDING = "pending"
ACCEPTED = "accepted"
DECLINED = "declined"
EXPIRED = "expired"
CANCELLED = "cancelled"
CONFIRMED = "confirmed"

ASSIGNMENT_STATUSES = frozenset({PENDING, ACCEPTED, DECLINED, EXPIRED, CANCELLED, CONFIRMED})
# Statuses that hold the shift for the guard.
ACTIVE_ASSIGNMENT_STATUSES = frozenset({PENDING, ACCEPTED, CONFIRMED})
# Statuses that count against the guard's schedule.
WORKING_ASSIGNMENT_STATUSES = frozenset({ACCEPTED, CONFIRMED})
TERMINAL_ASSIGNMENT_STATUSES = frozenset({EXPIRED, CANCELLED})

GUARD_RESPONSES = frozenset({"accept", "decline", "conditional"})
ASSIGNMENT_METHODS = frozenset({"manual", "suggested", "batch", "auto"})

# Availability window types
AVAILABLE = "available"
UNAVAILABLE = "unavailable"
PREFERRED = "preferred"
EMERGENCY_ONLY = "emergency_only"

# Conflict types and severities
TIME_OVERLAP = "time_overlap"
AVAILABILITY_CONFLICT = "availability_conflict"
CERTIFICATION_MISSING = "certification_missing"
LOCATION_CONFLICT = "location_conflict"

CRITICAL = "critical"
ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass
class Location:
    coordinates: Coordinates | None = None
    location_id: str | None = None
    name: str = ""
    address: str = ""


@dataclass
class ClientInfo:
    client_name: str = ""
    industry_type: str | None = None
    site_name: str = ""


@dataclass
class Shift:
    id: str
    title: str
    start: datetime
    end: datetime
    required_certifications: list[str] = field(default_factory=list)
    priority: int = 3
    location: Location = field(default_factory=Location)
    client: ClientInfo = field(default_factory=ClientInfo)
    assigned_guard_id: str | None = None
    status: str = "open"

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600.0


@dataclass
class CertificationRecord:
    status: str
    expiry_date: datetime | None = None

    def is_active(self, at: datetime) -> bool:
        return self.status == "active" and self.expiry_date is not None and self.expiry_date > at


@dataclass
class PerformanceMetrics:
    on_time_rate: float | None = None
    completion_rate: float | None = None
    client_rating: float | None = None
    incident_rate: float | None = None


@dataclass
class HoursWindow:
    start: int
    end: int


@dataclass
class SchedulingPreferences:
    preferred_shift_types: list[str] = field(default_factory=list)
    preferred_locations: list[str] = field(default_factory=list)
    preferred_hours: HoursWindow | None = None
    preferred_shift_duration: float | None = None
    weekend_availability: bool | None = None


@dataclass
class AvailabilityWindow:
    id: str
    guard_id: str
    start: datetime
    end: datetime
    availability_type: str = AVAILABLE
    status: str = "active"
    priority: int = 3
    notes: str = ""


@dataclass
class GuardProfile:
    id: str
    first_name: str = ""
    last_name: str = ""
    profile_status: str = "pending"
    is_schedulable: bool = False
    certifications: dict[str, CertificationRecord] = field(default_factory=dict)
    location: Location = field(default_factory=Location)
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    preferences: SchedulingPreferences | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class ConflictDetails:
    shift_id: str | None = None
    shift_title: str | None = None
    time_range: tuple[datetime, datetime] | None = None
    conflicting_assignment_id: str | None = None
    missing_certifications: list[str] | None = None
    availability_type: str | None = None
    hours: float | None = None
    distance: float | None = None
    overlap_fraction: float | None = None


@dataclass
class AssignmentConflict:
    conflict_type: str
    severity: str
    message: str
    can_override: bool
    override_required: bool
    details: ConflictDetails = field(default_factory=ConflictDetails)


@dataclass
class ConflictReport:
    conflicts: list[AssignmentConflict]
    can_proceed: bool
    requires_override: bool
    resolution_suggestions: list[str]

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass
class CertificationMatch:
    required: list[str]
    available: list[str]
    matched: list[str]
    missing: list[str]
    match_percentage: float
    critical_missing: list[str]


@dataclass
class AvailabilityMatch:
    requested_window: tuple[datetime, datetime]
    availability_windows: list[AvailabilityWindow]
    overlap_percentage: float
    preferred_match: bool
    emergency_only: bool


@dataclass
class GuardEligibilityResult:
    guard_id: str
    eligible: bool
    eligibility_score: float
    reasons: list[str]
    conflicts: list[AssignmentConflict] = field(default_factory=list)
    certification_match: CertificationMatch | None = None
    availability_match: AvailabilityMatch | None = None
    proximity_score: float | None = None
    performance_score: float | None = None
    disqualifications: list[str] = field(default_factory=list)


@dataclass
class GuardMatchResult:
    guard_id: str
    match_score: float
    ranking: int
    eligibility: GuardEligibilityResult
    certification_score: float
    availability_score: float
    proximity_score: float
    performance_score: float
    preference_score: float
    strengths: list[str]
    concerns: list[str]
    recommendations: list[str]
    confidence: str
    recommended_action: str


@dataclass
class ShiftAssignment:
    id: str
    shift_id: str
    guard_id: str
    assignment_status: str
    assigned_by: str
    assigned_at: datetime
    assignment_method: str = "manual"
    guard_response: str | None = None
    guard_responded_at: datetime | None = None
    guard_response_notes: str | None = None
    eligibility_score: float | None = None
    conflict_overridden: bool = False
    override_reason: str | None = None
    override_by: str | None = None
    override_at: datetime | None = None
    assignment_notes: str | None = None
    manager_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class AssignmentCreateData:
    shift_id: str
    guard_id: str
    assignment_method: str = "manual"
    assignment_notes: str | None = None
    manager_notes: str | None = None
    override_conflicts: bool = False
    override_reason: str | None = None


@dataclass
class GuardResponseData:
    response: str
    notes: str | None = None
    conditional_details: dict[str, Any] | None = None


@dataclass
class BatchAssignmentRequest:
    assignments: list[AssignmentCreateData]
    allow_partial_success: bool = True
    notify_guards: bool = True


@dataclass
class BatchItemResult:
    assignment: AssignmentCreateData
    success: bool
    assignment_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    conflicts: list[AssignmentConflict] | None = None


@dataclass
class BatchAssignmentResult:
    batch_id: str
    total_assignments: int
    successful_assignments: int = 0
    failed_assignments: int = 0
    assignments: list[BatchItemResult] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    status: str = "processing"


@dataclass
class ScheduledShift:
    """A shift the guard already holds through an assignment."""

    assignment_id: str
    assignment_status: str
    shift: Shift
