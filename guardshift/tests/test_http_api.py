"""HTTP routes: status mapping, envelopes and bearer auth."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.routing import Mount
from starlette.testclient import TestClient

from assignment_core.io import SqliteStore
from assignment_core.models import (
    CertificationRecord,
    Coordinates,
    GuardProfile,
    Location,
    Shift,
)
from assignment_core.results import ServiceResult
from guardshift.http_api import API_PREFIX, BearerAuth, build_routes, create_app, status_for
from guardshift.service import GuardShiftService

UTC = timezone.utc
NOW = datetime(2025, 3, 5, 8, 0, tzinfo=UTC)
SITE = Location(coordinates=Coordinates(40.0, -74.0), location_id="site-1")


def guard(guard_id, certs=("Basic_Security",)):
    return GuardProfile(
        id=guard_id,
        first_name="Lee",
        last_name=guard_id,
        profile_status="approved",
        is_schedulable=True,
        certifications={c: CertificationRecord("active", datetime(2026, 1, 1, tzinfo=UTC)) for c in certs},
        location=SITE,
    )


@pytest.fixture
def service():
    store = SqliteStore()
    for day in (6, 7):
        start = datetime(2025, 3, day, 8, 0, tzinfo=UTC)
        store.upsert_shift(
            Shift(
                id=f"shift-{day}",
                title=f"Lobby {day}",
                start=start,
                end=start + timedelta(hours=8),
                required_certifications=["Basic_Security"],
                location=SITE,
            )
        )
    store.upsert_guard(guard("guard-1"))
    store.upsert_guard(guard("guard-2"))
    store.upsert_guard(guard("rookie", certs=()))
    yield GuardShiftService(store, now_fn=lambda: NOW)
    store.close()


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def assignment_id(client):
    resp = client.post("/assignments", json={"shift_id": "shift-6", "guard_id": "guard-1"})
    assert resp.status_code == 201
    return resp.json()["data"]["id"]


class TestStatusMapping:
    @pytest.mark.parametrize(
        "code, status",
        [
            ("VALIDATION_ERROR", 400),
            ("UNAUTHORIZED", 401),
            ("SHIFT_NOT_FOUND", 404),
            ("ASSIGNMENT_NOT_FOUND", 404),
            ("ASSIGNMENT_EXISTS", 409),
            ("CONFLICT_OVERRIDE_REQUIRED", 409),
            ("INVALID_ASSIGNMENT_STATUS", 409),
            ("RESPONSE_DEADLINE_PASSED", 409),
            ("GUARD_NOT_ELIGIBLE", 422),
            ("DATABASE_ERROR", 500),
            ("SERVICE_ERROR", 500),
        ],
    )
    def test_codes(self, code, status):
        assert status_for(ServiceResult.fail(code, "x")) == status

    def test_success_status(self):
        assert status_for(ServiceResult.ok(None), 201) == 201


class TestAuth:
    def test_health_is_open(self, service):
        client = TestClient(create_app(service, api_key="s3cret"))
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.text == "ok"

    def test_missing_or_wrong_token(self, service):
        client = TestClient(create_app(service, api_key="s3cret"))
        assert client.get("/assignments/x").status_code == 401
        wrong = client.get("/assignments/x", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401
        assert wrong.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Missing or invalid bearer token", "details": {}},
        }

    def test_mounted_health_is_open(self, service):
        app = Starlette(
            routes=[Mount(API_PREFIX, routes=build_routes(service))],
            middleware=[Middleware(BearerAuth, api_key="s3cret")],
        )
        client = TestClient(app)
        assert client.get(f"{API_PREFIX}/health").status_code == 200
        assert client.get(f"{API_PREFIX}/shifts/shift-6/eligible-guards").status_code == 401

    def test_valid_token(self, service):
        client = TestClient(create_app(service, api_key="s3cret"))
        resp = client.get("/shifts/shift-6/eligible-guards", headers={"Authorization": "Bearer s3cret"})
        assert resp.status_code == 200


class TestShiftRoutes:
    def test_eligible_guards(self, client):
        body = client.get("/shifts/shift-6/eligible-guards").json()
        assert body["success"] is True
        data = body["data"]
        assert data["total_guards"] == 3
        assert data["eligible_guards"] == 2
        assert data["guards"][0]["eligibility_score"] >= data["guards"][-1]["eligibility_score"]

    def test_min_score_and_limit(self, client):
        data = client.get("/shifts/shift-6/eligible-guards?min_score=0.9&limit=1").json()["data"]
        assert data["filtered_guards"] == 1
        assert data["guards"][0]["eligibility_score"] >= 0.9

    def test_matching(self, client):
        data = client.get("/shifts/shift-6/eligible-guards?include_matching=true").json()["data"]
        assert data["matching_enabled"] is True
        assert [m["ranking"] for m in data["matches"]] == list(range(1, len(data["matches"]) + 1))

    def test_unknown_shift(self, client):
        resp = client.get("/shifts/nope/eligible-guards")
        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": {"code": "SHIFT_NOT_FOUND", "message": "Shift not found", "details": {"shift_id": "nope"}},
        }

    @pytest.mark.parametrize("query", ["sort_by=name", "limit=abc", "limit=0"])
    def test_bad_query(self, client, query):
        resp = client.get(f"/shifts/shift-6/eligible-guards?{query}")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_check_specific_guards(self, client):
        resp = client.post("/shifts/shift-6/eligible-guards", json={"guard_ids": ["rookie", "guard-2"]})
        data = resp.json()["data"]
        assert [r["guard_id"] for r in data["results"]] == ["rookie", "guard-2"]
        assert data["results"][0]["eligibility"]["eligible"] is False

    def test_check_requires_guard_ids(self, client):
        assert client.post("/shifts/shift-6/eligible-guards", json={}).status_code == 400

    def test_conflicts(self, client):
        resp = client.post("/shifts/shift-6/conflicts", json={"guard_id": "rookie"})
        data = resp.json()["data"]
        assert data["can_proceed"] is False
        assert data["conflicts"][0]["severity"] == "critical"

    def test_conflicts_require_guard(self, client):
        assert client.post("/shifts/shift-6/conflicts", json={}).status_code == 400


class TestAssignmentRoutes:
    def test_create_uses_header_actor(self, client):
        resp = client.post(
            "/assignments",
            json={"shift_id": "shift-6", "guard_id": "guard-1"},
            headers={"x-user-id": "manager-7"},
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["assigned_by"] == "manager-7"
        assert data["assignment_status"] == "pending"
        assert data["assigned_at"] == "2025-03-05T08:00:00+00:00"

    def test_duplicate(self, client, assignment_id):
        resp = client.post("/assignments", json={"shift_id": "shift-6", "guard_id": "guard-2"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ASSIGNMENT_EXISTS"

    def test_ineligible(self, client):
        resp = client.post("/assignments", json={"shift_id": "shift-6", "guard_id": "rookie"})
        assert resp.status_code == 422

    def test_malformed_bodies(self, client):
        assert client.post("/assignments", content=b"{not json", headers={"content-type": "application/json"}).status_code == 400
        assert client.post("/assignments", json=["shift-6"]).status_code == 400
        assert client.post("/assignments", json={"shift_id": "shift-6"}).status_code == 400

    def test_get(self, client, assignment_id):
        data = client.get(f"/assignments/{assignment_id}").json()["data"]
        assert data["shift"]["id"] == "shift-6"
        assert data["guard"]["id"] == "guard-1"
        assert client.get("/assignments/missing").status_code == 404

    def test_respond(self, client, assignment_id):
        resp = client.put(f"/assignments/{assignment_id}/response", json={"response": "accept"})
        assert resp.status_code == 200
        assert resp.json()["data"]["assignment_status"] == "accepted"
        again = client.put(f"/assignments/{assignment_id}/response", json={"response": "decline"})
        assert again.status_code == 409

    def test_respond_unknown_value(self, client, assignment_id):
        resp = client.put(f"/assignments/{assignment_id}/response", json={"response": "maybe"})
        assert resp.status_code == 400

    def test_cancel(self, client, assignment_id):
        assert client.post(f"/assignments/{assignment_id}/cancel", json={}).status_code == 400
        resp = client.post(f"/assignments/{assignment_id}/cancel", json={"reason": "Site closed", "cancelled_by": "m1"})
        assert resp.status_code == 200
        assert resp.json()["data"]["manager_notes"] == "Cancelled: Site closed"
        again = client.post(f"/assignments/{assignment_id}/cancel", json={"reason": "again"})
        assert again.status_code == 409

    def test_batch(self, client):
        resp = client.post(
            "/assignments/batch",
            json={
                "assignments": [
                    {"shift_id": "shift-6", "guard_id": "guard-1"},
                    {"shift_id": "shift-7", "guard_id": "rookie"},
                ],
            },
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "partially_completed"
        assert data["assignments"][1]["error_code"] == "GUARD_NOT_ELIGIBLE"

    def test_batch_requires_items(self, client):
        assert client.post("/assignments/batch", json={"assignments": []}).status_code == 400

    def test_guard_assignments(self, client, assignment_id):
        data = client.get("/guards/guard-1/assignments?status=pending,accepted").json()["data"]
        assert data["total"] == 1
        assert data["assignments"][0]["id"] == assignment_id
        assert client.get("/guards/guard-1/assignments?status=archived").status_code == 400
        assert client.get("/guards/guard-1/assignments?start=2025-03-01T00:00:00Z").status_code == 400
        assert client.get("/guards/guard-1/assignments?limit=x").status_code == 400
