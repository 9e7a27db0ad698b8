"""Row <-> domain mapping.

One function pair per entity. Rows are flat mappings as stored in the
``shifts``, ``guard_profiles``, ``guard_availability`` and
``shift_assignments`` tables; nested structures travel as JSON text (or as
already-decoded dicts when the row comes from a dataset file). Nothing
outside this module knows the column layout.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from assignment_core.models import (
    AvailabilityWindow,
    AssignmentCreateData,
    BatchAssignmentRequest,
    CertificationRecord,
    ClientInfo,
    Coordinates,
    GuardProfile,
    GuardResponseData,
    HoursWindow,
    Location,
    PerformanceMetrics,
    SchedulingPreferences,
    Shift,
    ShiftAssignment,
)
from assignment_core.time_utils import parse_datetime, to_iso

Row = Mapping[str, Any]


def _json_field(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _dumps(value: Any) -> str | None:
    return None if value is None else json.dumps(value, ensure_ascii=False)


def _required_datetime(row: Row, key: str) -> datetime:
    value = parse_datetime(row.get(key))
    if value is None:
        raise ValueError(f"missing {key}")
    return value


def _opt_float(value: Any) -> float | None:
    return None if value is None or value == "" else float(value)


# ---- nested structures ------------------------------------------------------


def location_from_dict(data: Mapping[str, Any] | None) -> Location:
    if not data:
        return Location()
    coordinates = None
    lat = data.get("lat", (data.get("coordinates") or {}).get("lat"))
    lng = data.get("lng", (data.get("coordinates") or {}).get("lng"))
    if lat is not None and lng is not None:
        coordinates = Coordinates(lat=float(lat), lng=float(lng))
    return Location(
        coordinates=coordinates,
        location_id=data.get("location_id"),
        name=data.get("name") or "",
        address=data.get("address") or "",
    )


def location_to_dict(location: Location) -> dict[str, Any]:
    coords = location.coordinates
    return {
        "lat": coords.lat if coords else None,
        "lng": coords.lng if coords else None,
        "location_id": location.location_id,
        "name": location.name,
        "address": location.address,
    }


def certifications_from_dict(data: Mapping[str, Any] | None) -> dict[str, CertificationRecord]:
    return {
        name: CertificationRecord(
            status=str(record.get("status", "inactive")),
            expiry_date=parse_datetime(record.get("expiry_date")),
        )
        for name, record in (data or {}).items()
    }


def preferences_from_dict(data: Mapping[str, Any] | None) -> SchedulingPreferences | None:
    if data is None:
        return None
    hours = data.get("preferred_hours")
    return SchedulingPreferences(
        preferred_shift_types=list(data.get("preferred_shift_types") or []),
        preferred_locations=list(data.get("preferred_locations") or []),
        preferred_hours=HoursWindow(start=int(hours["start"]), end=int(hours["end"])) if hours else None,
        preferred_shift_duration=_opt_float(data.get("preferred_shift_duration")),
        weekend_availability=data.get("weekend_availability"),
    )


# ---- entities ---------------------------------------------------------------


def shift_from_row(row: Row) -> Shift:
    client = _json_field(row.get("client"), {})
    return Shift(
        id=str(row["id"]),
        title=row.get("title") or "",
        start=_required_datetime(row, "start_time"),
        end=_required_datetime(row, "end_time"),
        required_certifications=list(_json_field(row.get("required_certifications"), [])),
        priority=int(row.get("priority") or 3),
        location=location_from_dict(_json_field(row.get("location"), None)),
        client=ClientInfo(
            client_name=client.get("client_name") or "",
            industry_type=client.get("industry_type"),
            site_name=client.get("site_name") or "",
        ),
        assigned_guard_id=row.get("assigned_guard_id"),
        status=row.get("status") or "open",
    )


def shift_to_row(shift: Shift) -> dict[str, Any]:
    return {
        "id": shift.id,
        "title": shift.title,
        "start_time": to_iso(shift.start),
        "end_time": to_iso(shift.end),
        "required_certifications": _dumps(shift.required_certifications),
        "priority": shift.priority,
        "location": _dumps(location_to_dict(shift.location)),
        "client": _dumps(dataclasses.asdict(shift.client)),
        "assigned_guard_id": shift.assigned_guard_id,
        "status": shift.status,
    }


def guard_from_row(row: Row) -> GuardProfile:
    performance = _json_field(row.get("performance_metrics"), {})
    return GuardProfile(
        id=str(row["id"]),
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        profile_status=row.get("profile_status") or "pending",
        is_schedulable=bool(row.get("is_schedulable")),
        certifications=certifications_from_dict(_json_field(row.get("certifications"), {})),
        location=location_from_dict(_json_field(row.get("location"), None)),
        performance=PerformanceMetrics(
            on_time_rate=_opt_float(performance.get("on_time_rate")),
            completion_rate=_opt_float(performance.get("completion_rate")),
            client_rating=_opt_float(performance.get("client_rating")),
            incident_rate=_opt_float(performance.get("incident_rate")),
        ),
        preferences=preferences_from_dict(_json_field(row.get("scheduling_preferences"), None)),
    )


def guard_to_row(guard: GuardProfile) -> dict[str, Any]:
    certifications = {
        name: {"status": record.status, "expiry_date": to_iso(record.expiry_date)}
        for name, record in guard.certifications.items()
    }
    return {
        "id": guard.id,
        "first_name": guard.first_name,
        "last_name": guard.last_name,
        "profile_status": guard.profile_status,
        "is_schedulable": int(guard.is_schedulable),
        "certifications": _dumps(certifications),
        "location": _dumps(location_to_dict(guard.location)),
        "performance_metrics": _dumps(dataclasses.asdict(guard.performance)),
        "scheduling_preferences": _dumps(dataclasses.asdict(guard.preferences) if guard.preferences else None),
    }


def availability_from_row(row: Row) -> AvailabilityWindow:
    return AvailabilityWindow(
        id=str(row["id"]),
        guard_id=str(row["guard_id"]),
        start=_required_datetime(row, "start_time"),
        end=_required_datetime(row, "end_time"),
        availability_type=row.get("availability_type") or "available",
        status=row.get("status") or "active",
        priority=int(row.get("priority") or 3),
        notes=row.get("notes") or "",
    )


def availability_to_row(window: AvailabilityWindow) -> dict[str, Any]:
    return {
        "id": window.id,
        "guard_id": window.guard_id,
        "start_time": to_iso(window.start),
        "end_time": to_iso(window.end),
        "availability_type": window.availability_type,
        "status": window.status,
        "priority": window.priority,
        "notes": window.notes,
    }


ASSIGNMENT_DATETIME_FIELDS = ("assigned_at", "guard_responded_at", "override_at", "created_at", "updated_at")


def assignment_from_row(row: Row) -> ShiftAssignment:
    score = row.get("eligibility_score")
    return ShiftAssignment(
        id=str(row["id"]),
        shift_id=str(row["shift_id"]),
        guard_id=str(row["guard_id"]),
        assignment_status=row["assignment_status"],
        assigned_by=row.get("assigned_by") or "",
        assigned_at=_required_datetime(row, "assigned_at"),
        assignment_method=row.get("assignment_method") or "manual",
        guard_response=row.get("guard_response"),
        guard_responded_at=parse_datetime(row.get("guard_responded_at")),
        guard_response_notes=row.get("guard_response_notes"),
        eligibility_score=None if score is None else float(score),
        conflict_overridden=bool(row.get("conflict_overridden")),
        override_reason=row.get("override_reason"),
        override_by=row.get("override_by"),
        override_at=parse_datetime(row.get("override_at")),
        assignment_notes=row.get("assignment_notes"),
        manager_notes=row.get("manager_notes"),
        created_at=parse_datetime(row.get("created_at")),
        updated_at=parse_datetime(row.get("updated_at")),
    )


def assignment_to_row(assignment: ShiftAssignment) -> dict[str, Any]:
    row = dataclasses.asdict(assignment)
    for key in ASSIGNMENT_DATETIME_FIELDS:
        row[key] = to_iso(row[key])
    row["conflict_overridden"] = int(assignment.conflict_overridden)
    return row


def assignment_changes_to_columns(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a partial update of ShiftAssignment fields into column values."""
    columns: dict[str, Any] = {}
    for key, value in changes.items():
        if key in ASSIGNMENT_DATETIME_FIELDS:
            value = to_iso(value)
        elif key == "conflict_overridden":
            value = int(bool(value))
        columns[key] = value
    return columns


# ---- inbound requests -------------------------------------------------------


def assignment_create_from_dict(data: Mapping[str, Any]) -> AssignmentCreateData:
    """Parse an assignment request body. Raises ValueError on missing ids."""
    if not isinstance(data, Mapping):
        raise ValueError("assignment request must be an object")
    shift_id = data.get("shift_id")
    guard_id = data.get("guard_id")
    if not shift_id or not guard_id:
        raise ValueError("shift_id and guard_id are required")
    return AssignmentCreateData(
        shift_id=str(shift_id),
        guard_id=str(guard_id),
        assignment_method=data.get("assignment_method") or "manual",
        assignment_notes=data.get("assignment_notes"),
        manager_notes=data.get("manager_notes"),
        override_conflicts=bool(data.get("override_conflicts", False)),
        override_reason=data.get("override_reason"),
    )


def guard_response_from_dict(data: Mapping[str, Any]) -> GuardResponseData:
    if not isinstance(data, Mapping):
        raise ValueError("response body must be an object")
    response = data.get("response")
    if not response:
        raise ValueError("response is required")
    details = data.get("conditional_details")
    if details is not None and not isinstance(details, Mapping):
        raise ValueError("conditional_details must be an object")
    return GuardResponseData(
        response=str(response),
        notes=data.get("notes"),
        conditional_details=dict(details) if details is not None else None,
    )


def batch_request_from_dict(data: Mapping[str, Any]) -> BatchAssignmentRequest:
    if not isinstance(data, Mapping):
        raise ValueError("batch request must be an object")
    items = data.get("assignments")
    if not isinstance(items, list) or not items:
        raise ValueError("assignments must be a non-empty list")
    return BatchAssignmentRequest(
        assignments=[assignment_create_from_dict(item) for item in items],
        allow_partial_success=bool(data.get("allow_partial_success", True)),
        notify_guards=bool(data.get("notify_guards", True)),
    )


# ---- outbound ---------------------------------------------------------------


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, datetimes and tuples into JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value
