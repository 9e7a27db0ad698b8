"""JSON HTTP routes over :class:`GuardShiftService`.

Every response body is the ``{success, data | error}`` envelope. Error codes
map to status codes: validation 400, missing bearer token 401, not found 404, duplicate / override /
status / deadline 409, ineligible guard 422, anything else 500.
"""

from __future__ import annotations

from typing import Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route

from assignment_core.results import (
    CONFLICT_CODES,
    GUARD_NOT_ELIGIBLE,
    NOT_FOUND_CODES,
    UNAUTHORIZED,
    VALIDATION_ERROR,
    ServiceResult,
)

from .service import GuardShiftService, envelope

API_PREFIX = "/api/v1"
UNPROTECTED_PATHS = frozenset({"/health", f"{API_PREFIX}/health"})


def status_for(result: ServiceResult, success_status: int = 200) -> int:
    if result.success:
        return success_status
    code = result.error_code
    if code == VALIDATION_ERROR:
        return 400
    if code == UNAUTHORIZED:
        return 401
    if code in NOT_FOUND_CODES:
        return 404
    if code in CONFLICT_CODES:
        return 409
    if code == GUARD_NOT_ELIGIBLE:
        return 422
    return 500


def respond(result: ServiceResult, success_status: int = 200) -> JSONResponse:
    return JSONResponse(envelope(result), status_code=status_for(result, success_status))


def bad_request(message: str) -> JSONResponse:
    return respond(ServiceResult.fail(VALIDATION_ERROR, message))


class BearerAuth(BaseHTTPMiddleware):
    def __init__(self, app, api_key: str):
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request, call_next):
        if request.url.path in UNPROTECTED_PATHS:
            return await call_next(request)
        auth = request.headers.get("authorization", "")
        if not auth.startswith("Bearer ") or auth[7:] != self.api_key:
            return respond(ServiceResult.fail(UNAUTHORIZED, "Missing or invalid bearer token"))
        return await call_next(request)


async def _json_body(request: Request) -> dict[str, Any]:
    body = await request.json()
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    return body


def _actor(request: Request, body: dict[str, Any], key: str) -> str:
    return str(body.get(key) or request.headers.get("x-user-id") or "api")


def _truthy(value: str | None) -> bool:
    return (value or "").lower() in ("1", "true", "yes")


def build_routes(service: GuardShiftService) -> list[Route]:
    async def health(request: Request) -> PlainTextResponse:
        return PlainTextResponse("ok")

    async def eligible_guards(request: Request) -> JSONResponse:
        params = request.query_params
        try:
            limit = int(params.get("limit", "20"))
            min_score = float(params.get("min_score", "0"))
        except ValueError:
            return bad_request("limit and min_score must be numeric")
        result = await run_in_threadpool(
            service.eligible_guards,
            request.path_params["shift_id"],
            include_matching=_truthy(params.get("include_matching")),
            limit=limit,
            min_score=min_score,
            sort_by=params.get("sort_by", "eligibility_score"),
        )
        return respond(result)

    async def check_guards(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(service.check_guards, request.path_params["shift_id"], body.get("guard_ids"))
        return respond(result)

    async def shift_conflicts(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(
            service.detect_conflicts,
            request.path_params["shift_id"],
            str(body.get("guard_id") or ""),
            bool(body.get("override_requested", False)),
        )
        return respond(result)

    async def create_assignment(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(service.create_assignment, body, _actor(request, body, "assigned_by"))
        return respond(result, success_status=201)

    async def create_batch(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(service.create_batch, body, _actor(request, body, "assigned_by"))
        return respond(result)

    async def get_assignment(request: Request) -> JSONResponse:
        result = await run_in_threadpool(service.get_assignment, request.path_params["assignment_id"])
        return respond(result)

    async def guard_response(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(service.respond, request.path_params["assignment_id"], body)
        return respond(result)

    async def cancel_assignment(request: Request) -> JSONResponse:
        try:
            body = await _json_body(request)
        except ValueError as exc:
            return bad_request(str(exc))
        result = await run_in_threadpool(
            service.cancel,
            request.path_params["assignment_id"],
            _actor(request, body, "cancelled_by"),
            str(body.get("reason") or ""),
        )
        return respond(result)

    async def guard_assignments(request: Request) -> JSONResponse:
        params = request.query_params
        statuses = [s for s in params.get("status", "").split(",") if s] or None
        try:
            limit = int(params["limit"]) if "limit" in params else None
            offset = int(params.get("offset", "0"))
        except ValueError:
            return bad_request("limit and offset must be integers")
        result = await run_in_threadpool(
            service.guard_assignments,
            request.path_params["guard_id"],
            statuses,
            params.get("start"),
            params.get("end"),
            limit,
            offset,
        )
        return respond(result)

    return [
        Route("/health", health, methods=["GET"]),
        Route("/shifts/{shift_id}/eligible-guards", eligible_guards, methods=["GET"]),
        Route("/shifts/{shift_id}/eligible-guards", check_guards, methods=["POST"]),
        Route("/shifts/{shift_id}/conflicts", shift_conflicts, methods=["POST"]),
        Route("/assignments", create_assignment, methods=["POST"]),
        Route("/assignments/batch", create_batch, methods=["POST"]),
        Route("/assignments/{assignment_id}", get_assignment, methods=["GET"]),
        Route("/assignments/{assignment_id}/response", guard_response, methods=["PUT"]),
        Route("/assignments/{assignment_id}/cancel", cancel_assignment, methods=["POST"]),
        Route("/guards/{guard_id}/assignments", guard_assignments, methods=["GET"]),
    ]


def create_app(service: GuardShiftService, api_key: str | None = None) -> Starlette:
    middleware = [Middleware(BearerAuth, api_key=api_key)] if api_key else []
    return Starlette(routes=build_routes(service), middleware=middleware)
