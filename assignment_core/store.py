"""Persistence collaborator contract.

The engine never talks to a database directly. It is handed an
:class:`AssignmentStore`, whose every call is a blocking round trip that
either returns domain objects or raises :class:`StoreError`. Retries are the
caller's concern.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from .models import (
    AvailabilityWindow,
    GuardProfile,
    ScheduledShift,
    Shift,
    ShiftAssignment,
)


class StoreError(Exception):
    """Any failed round trip to the persistence layer."""


class UniqueViolationError(StoreError):
    """A uniqueness constraint rejected a write."""


class RecordNotFoundError(StoreError):
    """An update or delete targeted a row that does not exist."""


class AssignmentStore:
    """Table-like access to shifts, guard profiles, availability and assignments."""

    # ---- shifts -----------------------------------------------------------

    def get_shift(self, shift_id: str) -> Shift | None:
        raise NotImplementedError

    def list_shifts(self, shift_ids: Iterable[str]) -> list[Shift]:
        raise NotImplementedError

    def set_shift_guard(self, shift_id: str, guard_id: str | None) -> None:
        raise NotImplementedError

    # ---- guards -----------------------------------------------------------

    def get_guard(self, guard_id: str) -> GuardProfile | None:
        raise NotImplementedError

    def list_schedulable_guards(self) -> list[GuardProfile]:
        """Guards with profile_status 'approved' and is_schedulable set."""
        raise NotImplementedError

    def list_availability(
        self,
        guard_id: str,
        start: datetime,
        end: datetime,
        availability_type: str | None = None,
    ) -> list[AvailabilityWindow]:
        """Active availability windows of the guard intersecting [start, end)."""
        raise NotImplementedError

    # ---- schedule queries -------------------------------------------------

    def detect_assignment_conflicts(self, guard_id: str, start: datetime, end: datetime) -> list[ScheduledShift]:
        """Accepted/confirmed assignments whose shift intersects [start, end)."""
        raise NotImplementedError

    def list_guard_schedule(
        self,
        guard_id: str,
        window_start: datetime,
        window_end: datetime,
        statuses: Iterable[str],
    ) -> list[ScheduledShift]:
        """Assignments in ``statuses`` whose shift intersects the window."""
        raise NotImplementedError

    # ---- assignments ------------------------------------------------------

    def get_assignment(self, assignment_id: str) -> ShiftAssignment | None:
        raise NotImplementedError

    def find_active_assignment(self, shift_id: str) -> ShiftAssignment | None:
        raise NotImplementedError

    def insert_assignment(self, assignment: ShiftAssignment) -> ShiftAssignment:
        raise NotImplementedError

    def update_assignment(self, assignment_id: str, **changes: Any) -> ShiftAssignment:
        raise NotImplementedError

    def delete_assignment(self, assignment_id: str) -> None:
        raise NotImplementedError

    def list_guard_assignments(
        self,
        guard_id: str,
        *,
        statuses: Iterable[str] | None = None,
        assigned_from: datetime | None = None,
        assigned_to: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[ShiftAssignment], int]:
        """Assignments of a guard, newest first, with the unpaginated total."""
        raise NotImplementedError
