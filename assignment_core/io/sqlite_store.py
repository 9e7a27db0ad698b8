"""SQLite implementation of the assignment store."""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from assignment_core.models import (
    ACTIVE_ASSIGNMENT_STATUSES,
    WORKING_ASSIGNMENT_STATUSES,
    AvailabilityWindow,
    GuardProfile,
    ScheduledShift,
    Shift,
    ShiftAssignment,
)
from assignment_core.store import AssignmentStore, RecordNotFoundError, StoreError, UniqueViolationError
from assignment_core.time_utils import ranges_overlap

from .mapping import (
    assignment_changes_to_columns,
    assignment_from_row,
    assignment_to_row,
    availability_from_row,
    availability_to_row,
    guard_from_row,
    guard_to_row,
    shift_from_row,
    shift_to_row,
)

logger = logging.getLogger(__name__)

_ACTIVE_SQL = ", ".join(f"'{s}'" for s in sorted(ACTIVE_ASSIGNMENT_STATUSES))

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS shifts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    required_certifications TEXT NOT NULL DEFAULT '[]',
    priority INTEGER NOT NULL DEFAULT 3,
    location TEXT,
    client TEXT,
    assigned_guard_id TEXT,
    status TEXT NOT NULL DEFAULT 'open'
);

CREATE TABLE IF NOT EXISTS guard_profiles (
    id TEXT PRIMARY KEY,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    profile_status TEXT NOT NULL DEFAULT 'pending',
    is_schedulable INTEGER NOT NULL DEFAULT 0,
    certifications TEXT NOT NULL DEFAULT '{{}}',
    location TEXT,
    performance_metrics TEXT,
    scheduling_preferences TEXT
);

CREATE TABLE IF NOT EXISTS guard_availability (
    id TEXT PRIMARY KEY,
    guard_id TEXT NOT NULL REFERENCES guard_profiles(id),
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    availability_type TEXT NOT NULL DEFAULT 'available',
    status TEXT NOT NULL DEFAULT 'active',
    priority INTEGER NOT NULL DEFAULT 3,
    notes TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS ix_availability_guard ON guard_availability(guard_id);

CREATE TABLE IF NOT EXISTS shift_assignments (
    id TEXT PRIMARY KEY,
    shift_id TEXT NOT NULL REFERENCES shifts(id),
    guard_id TEXT NOT NULL,
    assignment_status TEXT NOT NULL,
    assigned_by TEXT NOT NULL,
    assigned_at TEXT NOT NULL,
    assignment_method TEXT NOT NULL DEFAULT 'manual',
    guard_response TEXT,
    guard_responded_at TEXT,
    guard_response_notes TEXT,
    eligibility_score REAL,
    conflict_overridden INTEGER NOT NULL DEFAULT 0,
    override_reason TEXT,
    override_by TEXT,
    override_at TEXT,
    assignment_notes TEXT,
    manager_notes TEXT,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS ix_assignments_guard ON shift_assignments(guard_id);
CREATE UNIQUE INDEX IF NOT EXISTS ux_assignments_active_shift
    ON shift_assignments(shift_id)
    WHERE assignment_status IN ({_ACTIVE_SQL});
"""

ASSIGNMENT_COLUMNS = tuple(f.name for f in dataclasses.fields(ShiftAssignment))


class SqliteStore(AssignmentStore):
    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        with self._tx() as conn:
            conn.executescript(SCHEMA)
        logger.debug("Opened assignment store at %s", self.db_path)

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" in str(exc).upper():
                    raise UniqueViolationError(str(exc)) from exc
                raise StoreError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        with self._tx() as conn:
            return [dict(row) for row in conn.execute(sql, tuple(params)).fetchall()]

    def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> dict[str, Any] | None:
        with self._tx() as conn:
            row = conn.execute(sql, tuple(params)).fetchone()
        return dict(row) if row is not None else None

    # ---- loading ----------------------------------------------------------

    def _upsert(self, table: str, row: dict[str, Any]) -> None:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._tx() as conn:
            conn.execute(f"INSERT OR REPLACE INTO {table} ({columns}) VALUES ({placeholders})", tuple(row.values()))

    def upsert_shift(self, shift: Shift) -> None:
        self._upsert("shifts", shift_to_row(shift))

    def upsert_guard(self, guard: GuardProfile) -> None:
        self._upsert("guard_profiles", guard_to_row(guard))

    def upsert_availability(self, window: AvailabilityWindow) -> None:
        self._upsert("guard_availability", availability_to_row(window))

    # ---- shifts -----------------------------------------------------------

    def get_shift(self, shift_id: str) -> Shift | None:
        row = self._fetchone("SELECT * FROM shifts WHERE id = ?", (shift_id,))
        return shift_from_row(row) if row else None

    def list_shifts(self, shift_ids: Iterable[str]) -> list[Shift]:
        ids = list(shift_ids)
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._fetchall(f"SELECT * FROM shifts WHERE id IN ({placeholders})", ids)
        by_id = {row["id"]: shift_from_row(row) for row in rows}
        return [by_id[i] for i in ids if i in by_id]

    def set_shift_guard(self, shift_id: str, guard_id: str | None) -> None:
        with self._tx() as conn:
            cur = conn.execute("UPDATE shifts SET assigned_guard_id = ? WHERE id = ?", (guard_id, shift_id))
            if cur.rowcount == 0:
                raise RecordNotFoundError(f"shift {shift_id} not found")

    # ---- guards -----------------------------------------------------------

    def get_guard(self, guard_id: str) -> GuardProfile | None:
        row = self._fetchone("SELECT * FROM guard_profiles WHERE id = ?", (guard_id,))
        return guard_from_row(row) if row else None

    def list_schedulable_guards(self) -> list[GuardProfile]:
        rows = self._fetchall(
            "SELECT * FROM guard_profiles WHERE profile_status = 'approved' AND is_schedulable = 1 ORDER BY rowid"
        )
        return [guard_from_row(row) for row in rows]

    def list_availability(
        self,
        guard_id: str,
        start: datetime,
        end: datetime,
        availability_type: str | None = None,
    ) -> list[AvailabilityWindow]:
        sql = "SELECT * FROM guard_availability WHERE guard_id = ? AND status = 'active'"
        params: list[Any] = [guard_id]
        if availability_type is not None:
            sql += " AND availability_type = ?"
            params.append(availability_type)
        windows = [availability_from_row(row) for row in self._fetchall(sql + " ORDER BY rowid", params)]
        return [w for w in windows if ranges_overlap(w.start, w.end, start, end)]

    # ---- schedule queries -------------------------------------------------

    def _scheduled(self, guard_id: str, statuses: Iterable[str]) -> list[ScheduledShift]:
        wanted = sorted(set(statuses))
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        rows = self._fetchall(
            f"""
            SELECT a.id AS assignment_id, a.assignment_status AS assignment_status, s.*
            FROM shift_assignments a JOIN shifts s ON s.id = a.shift_id
            WHERE a.guard_id = ? AND a.assignment_status IN ({placeholders})
            ORDER BY s.start_time
            """,
            [guard_id, *wanted],
        )
        return [
            ScheduledShift(
                assignment_id=row["assignment_id"],
                assignment_status=row["assignment_status"],
                shift=shift_from_row(row),
            )
            for row in rows
        ]

    def detect_assignment_conflicts(self, guard_id: str, start: datetime, end: datetime) -> list[ScheduledShift]:
        return self.list_guard_schedule(guard_id, start, end, WORKING_ASSIGNMENT_STATUSES)

    def list_guard_schedule(
        self,
        guard_id: str,
        window_start: datetime,
        window_end: datetime,
        statuses: Iterable[str],
    ) -> list[ScheduledShift]:
        return [
            item
            for item in self._scheduled(guard_id, statuses)
            if ranges_overlap(item.shift.start, item.shift.end, window_start, window_end)
        ]

    # ---- assignments ------------------------------------------------------

    def get_assignment(self, assignment_id: str) -> ShiftAssignment | None:
        row = self._fetchone("SELECT * FROM shift_assignments WHERE id = ?", (assignment_id,))
        return assignment_from_row(row) if row else None

    def find_active_assignment(self, shift_id: str) -> ShiftAssignment | None:
        row = self._fetchone(
            f"SELECT * FROM shift_assignments WHERE shift_id = ? AND assignment_status IN ({_ACTIVE_SQL})",
            (shift_id,),
        )
        return assignment_from_row(row) if row else None

    def insert_assignment(self, assignment: ShiftAssignment) -> ShiftAssignment:
        row = assignment_to_row(assignment)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._tx() as conn:
            conn.execute(f"INSERT INTO shift_assignments ({columns}) VALUES ({placeholders})", tuple(row.values()))
        return assignment

    def update_assignment(self, assignment_id: str, **changes: Any) -> ShiftAssignment:
        unknown = set(changes) - set(ASSIGNMENT_COLUMNS)
        if unknown:
            raise StoreError(f"unknown assignment columns: {sorted(unknown)}")
        columns = assignment_changes_to_columns(changes)
        if columns:
            assignments = ", ".join(f"{name} = ?" for name in columns)
            with self._tx() as conn:
                cur = conn.execute(
                    f"UPDATE shift_assignments SET {assignments} WHERE id = ?",
                    (*columns.values(), assignment_id),
                )
                if cur.rowcount == 0:
                    raise RecordNotFoundError(f"assignment {assignment_id} not found")
        updated = self.get_assignment(assignment_id)
        if updated is None:
            raise RecordNotFoundError(f"assignment {assignment_id} not found")
        return updated

    def delete_assignment(self, assignment_id: str) -> None:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM shift_assignments WHERE id = ?", (assignment_id,))
            if cur.rowcount == 0:
                raise RecordNotFoundError(f"assignment {assignment_id} not found")

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
        sql = "SELECT * FROM shift_assignments WHERE guard_id = ?"
        params: list[Any] = [guard_id]
        wanted = sorted(set(statuses or []))
        if wanted:
            sql += f" AND assignment_status IN ({', '.join('?' for _ in wanted)})"
            params.extend(wanted)
        rows = [assignment_from_row(row) for row in self._fetchall(sql, params)]

        if assigned_from is not None:
            rows = [a for a in rows if a.assigned_at >= assigned_from]
        if assigned_to is not None:
            rows = [a for a in rows if a.assigned_at <= assigned_to]
        rows.sort(key=lambda a: a.assigned_at, reverse=True)

        total = len(rows)
        page = rows[offset:] if limit is None else rows[offset : offset + limit]
        return page, total
