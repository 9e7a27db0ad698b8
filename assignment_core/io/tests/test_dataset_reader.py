"""Dataset file -> SqliteStore import."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from assignment_core.io import SqliteStore, load_dataset, load_into_store

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "minimal"
DATASET = FIXTURES_DIR / "dataset.json"
UTC = timezone.utc


@pytest.fixture
def store():
    s = SqliteStore()
    yield s
    s.close()


@pytest.fixture
def loaded(store):
    counts = load_into_store(DATASET, store)
    return store, counts


class TestLoadDataset:
    def test_sections(self):
        dataset = load_dataset(DATASET)
        assert set(dataset) == {"shifts", "guards", "availability", "assignments"}
        assert len(dataset["shifts"]) == 2
        assert len(dataset["guards"]) == 3

    def test_missing_sections_default_empty(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"shifts": []}))
        assert load_dataset(path)["assignments"] == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_dataset(tmp_path / "nope.json")

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"employees": []}))
        with pytest.raises(ValueError, match="Unknown dataset sections"):
            load_dataset(path)

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            load_dataset(path)


class TestImport:
    def test_counts(self, loaded):
        _, counts = loaded
        assert counts == {"shifts": 2, "guards": 3, "availability": 2, "assignments": 1}

    def test_shift_fields(self, loaded):
        store, _ = loaded
        dock = store.get_shift("shift-dock")
        assert dock.start == datetime(2025, 3, 6, 22, 0, tzinfo=UTC)
        assert dock.hours == 8
        assert dock.required_certifications == ["Basic_Security", "CPR"]
        assert dock.priority == 4
        assert dock.location.location_id == "site-dock"
        assert dock.location.coordinates.lat == pytest.approx(40.70)
        assert dock.client.industry_type == "logistics"

    def test_flat_coordinates(self, loaded):
        store, _ = loaded
        mall = store.get_shift("shift-mall")
        assert mall.location.coordinates.lng == pytest.approx(-73.99)
        assert mall.priority == 3

    def test_guard_fields(self, loaded):
        store, _ = loaded
        ana = store.get_guard("guard-ana")
        assert ana.full_name == "Ana Lopez"
        assert ana.is_schedulable is True
        assert ana.certifications["CPR"].expiry_date == datetime(2025, 3, 20, tzinfo=UTC)
        assert ana.performance.client_rating == pytest.approx(4.8)
        assert ana.preferences.preferred_hours.start == 20
        assert ana.preferences.weekend_availability is False

    def test_sparse_guard(self, loaded):
        store, _ = loaded
        cho = store.get_guard("guard-cho")
        assert cho.certifications == {}
        assert cho.location.coordinates is None
        assert cho.performance.on_time_rate is None
        assert cho.preferences is None

    def test_only_schedulable_guards_listed(self, loaded):
        store, _ = loaded
        assert [g.id for g in store.list_schedulable_guards()] == ["guard-ana", "guard-ben"]

    def test_seed_assignment(self, loaded):
        store, _ = loaded
        seeded = store.get_assignment("assign-seed-1")
        assert seeded.assignment_status == "accepted"
        assert seeded.guard_responded_at == datetime(2025, 3, 3, 11, 30, tzinfo=UTC)
        assert store.find_active_assignment("shift-mall").id == "assign-seed-1"

    def test_reimport_upserts_entities(self, store, tmp_path):
        dataset = json.loads(DATASET.read_text())
        dataset["assignments"] = []
        path = tmp_path / "no_assignments.json"
        path.write_text(json.dumps(dataset))
        load_into_store(path, store)
        load_into_store(path, store)
        assert len(store.list_schedulable_guards()) == 2
