"""Load a JSON dataset (shifts, guards, availability, assignments) into a store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from assignment_core.io.sqlite_store import SqliteStore

from .mapping import assignment_from_row, availability_from_row, guard_from_row, shift_from_row

logger = logging.getLogger(__name__)

DATASET_SECTIONS = ("shifts", "guards", "availability", "assignments")


def load_dataset(path: Path) -> dict[str, list[dict[str, Any]]]:
    """Read a dataset file.

    The file is a JSON object with any of the keys ``shifts``, ``guards``,
    ``availability`` and ``assignments``; each holds a list of row objects
    whose nested fields (location, certifications, ...) may be inline
    objects. Raises FileNotFoundError / ValueError on unreadable input.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict):
        raise ValueError("Dataset must be a JSON object")
    unknown = set(payload) - set(DATASET_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown dataset sections: {sorted(unknown)}. Available: {list(DATASET_SECTIONS)}")
    return {section: list(payload.get(section) or []) for section in DATASET_SECTIONS}


def import_dataset(store: SqliteStore, dataset: dict[str, list[dict[str, Any]]]) -> dict[str, int]:
    """Upsert every entity of a dataset into the store; returns per-section counts."""
    for row in dataset.get("shifts", []):
        store.upsert_shift(shift_from_row(row))
    for row in dataset.get("guards", []):
        store.upsert_guard(guard_from_row(row))
    for row in dataset.get("availability", []):
        store.upsert_availability(availability_from_row(row))
    for row in dataset.get("assignments", []):
        store.insert_assignment(assignment_from_row(row))

    counts = {section: len(dataset.get(section, [])) for section in DATASET_SECTIONS}
    logger.info(
        "Imported %d shifts, %d guards, %d availability windows, %d assignments",
        counts["shifts"],
        counts["guards"],
        counts["availability"],
        counts["assignments"],
    )
    return counts


def load_into_store(path: Path, store: SqliteStore) -> dict[str, int]:
    return import_dataset(store, load_dataset(path))
