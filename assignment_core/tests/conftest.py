"""Shared fixtures: an in-memory SQLite store, a settable clock and entity builders."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from assignment_core.io import SqliteStore
from assignment_core.models import (
    AvailabilityWindow,
    CertificationRecord,
    ClientInfo,
    Coordinates,
    GuardProfile,
    Location,
    PerformanceMetrics,
    Shift,
    ShiftAssignment,
)

UTC = timezone.utc
# Wednesday
NOW = datetime(2025, 3, 5, 8, 0, tzinfo=UTC)
CERT_EXPIRY = datetime(2026, 1, 1, tzinfo=UTC)


def at(day: int, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2025, 3, day, hour, minute, second, tzinfo=UTC)


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    s = SqliteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def make_shift(store):
    def _make(
        shift_id: str = "shift-1",
        start: datetime = at(6, 8),
        hours: float = 8,
        certs: tuple[str, ...] = ("Basic_Security",),
        priority: int = 3,
        lat: float | None = 40.0,
        lng: float | None = -74.0,
        title: str | None = None,
        industry: str | None = None,
        location_id: str | None = "site-1",
        save: bool = True,
    ) -> Shift:
        coords = Coordinates(lat, lng) if lat is not None and lng is not None else None
        shift = Shift(
            id=shift_id,
            title=title or f"Patrol {shift_id}",
            start=start,
            end=start + timedelta(hours=hours),
            required_certifications=list(certs),
            priority=priority,
            location=Location(coordinates=coords, location_id=location_id, name="Main site"),
            client=ClientInfo(client_name="Acme", industry_type=industry, site_name="Acme HQ"),
        )
        if save:
            store.upsert_shift(shift)
        return shift

    return _make


@pytest.fixture
def make_guard(store):
    def _make(
        guard_id: str = "guard-1",
        certs: tuple[str, ...] = ("Basic_Security",),
        lat: float | None = 40.0,
        lng: float | None = -74.0,
        status: str = "approved",
        schedulable: bool = True,
        performance: PerformanceMetrics | None = None,
        preferences=None,
        expiry: datetime = CERT_EXPIRY,
    ) -> GuardProfile:
        coords = Coordinates(lat, lng) if lat is not None and lng is not None else None
        guard = GuardProfile(
            id=guard_id,
            first_name="Sam",
            last_name=guard_id.title(),
            profile_status=status,
            is_schedulable=schedulable,
            certifications={c: CertificationRecord(status="active", expiry_date=expiry) for c in certs},
            location=Location(coordinates=coords),
            performance=performance or PerformanceMetrics(),
            preferences=preferences,
        )
        store.upsert_guard(guard)
        return guard

    return _make


@pytest.fixture
def add_window(store):
    counter = {"n": 0}

    def _add(guard_id: str, start: datetime, end: datetime, availability_type: str = "available") -> AvailabilityWindow:
        counter["n"] += 1
        window = AvailabilityWindow(
            id=f"win-{counter['n']}",
            guard_id=guard_id,
            start=start,
            end=end,
            availability_type=availability_type,
        )
        store.upsert_availability(window)
        return window

    return _add


@pytest.fixture
def hold_shift(store, make_shift):
    """Give a guard an existing assignment on a new shift."""
    counter = {"n": 0}

    def _hold(
        guard_id: str,
        start: datetime,
        hours: float,
        status: str = "accepted",
        lat: float | None = 40.0,
        lng: float | None = -74.0,
    ) -> ShiftAssignment:
        counter["n"] += 1
        shift = make_shift(f"held-{counter['n']}", start=start, hours=hours, lat=lat, lng=lng)
        assignment = ShiftAssignment(
            id=f"held-assignment-{counter['n']}",
            shift_id=shift.id,
            guard_id=guard_id,
            assignment_status=status,
            assigned_by="seed",
            assigned_at=NOW - timedelta(days=3),
        )
        store.insert_assignment(assignment)
        return assignment

    return _hold
