"""guardshift MCP server.

Exposes tools for guard eligibility, conflict detection, ranked matching and
the shift assignment lifecycle. In streamable-http mode the same process also
serves the JSON API under ``/api/v1``.
"""
from __future__ import annotations

import argparse
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import load_env, load_scoring_profiles, runtime_config
from .service import GuardShiftService, envelope

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "guardshift",
    host=os.getenv("HOST", "127.0.0.1"),
    port=int(os.getenv("PORT", "8000")),
    instructions=(
        "Shift assignment engine for security guard staffing. "
        "Scores guard eligibility, detects scheduling conflicts, ranks guards "
        "for a shift, and creates, answers and cancels shift assignments. "
        "Every tool returns a {success, data | error} envelope."
    ),
)

_ENV_FILE: str | None = None
_SERVICE: GuardShiftService | None = None


def _service() -> GuardShiftService:
    global _SERVICE
    if _SERVICE is None:
        load_env(_ENV_FILE or os.getenv("GUARDSHIFT_ENV_FILE"))
        _SERVICE = GuardShiftService.from_config(runtime_config())
    return _SERVICE


# -- Data --

@mcp.tool()
def import_dataset(path: str) -> dict[str, Any]:
    """Load shifts, guards, availability and assignments from a JSON dataset file."""
    return envelope(_service().import_dataset(path))


@mcp.tool()
def list_scoring_profiles() -> dict[str, Any]:
    """List scoring profiles with their descriptions and overridden keys."""
    cfg = runtime_config()
    profiles = load_scoring_profiles(cfg.profile_file)
    return {
        "active": cfg.scoring_profile,
        "profiles": {
            name: {
                "description": profile.get("description", ""),
                "overrides": sorted(profile.get("overrides", {})),
            }
            for name, profile in profiles.items()
        },
    }


# -- Eligibility and conflicts --

@mcp.tool()
def eligible_guards(
    shift_id: str,
    include_matching: bool = False,
    limit: int = 20,
    min_score: float = 0.0,
    sort_by: str = "eligibility_score",
) -> dict[str, Any]:
    """Guards eligible for a shift, or ranked matches when include_matching is set."""
    return envelope(_service().eligible_guards(shift_id, include_matching, limit, min_score, sort_by))


@mcp.tool()
def check_guards(shift_id: str, guard_ids: list[str]) -> dict[str, Any]:
    """Eligibility of specific guards for one shift."""
    return envelope(_service().check_guards(shift_id, guard_ids))


@mcp.tool()
def detect_conflicts(shift_id: str, guard_id: str, override_requested: bool = False) -> dict[str, Any]:
    """Scheduling conflicts for assigning a guard to a shift, with resolution suggestions."""
    return envelope(_service().detect_conflicts(shift_id, guard_id, override_requested))


@mcp.tool()
def eligibility_summary(shift_id: str) -> dict[str, Any]:
    """Counts of eligible, highly qualified and override-needing guards for a shift."""
    return envelope(_service().eligibility_summary(shift_id))


# -- Matching --

@mcp.tool()
def find_specialized_matches(shift_id: str, specializations: list[str]) -> dict[str, Any]:
    """Ranked matches restricted to guards holding any of the given specializations."""
    return envelope(_service().specialized_matches(shift_id, specializations))


@mcp.tool()
def match_improvements(guard_id: str, shift_id: str) -> dict[str, Any]:
    """What would raise a guard's match score for a shift, and better-scoring alternatives."""
    return envelope(_service().improvement_recommendations(guard_id, shift_id))


@mcp.tool()
def matching_analytics(shift_id: str) -> dict[str, Any]:
    """Candidate pool statistics and suggestions for a hard-to-fill shift."""
    return envelope(_service().matching_analytics(shift_id))


@mcp.tool()
def summarize_matches(shift_id: str, limit: int = 5) -> dict[str, Any]:
    """Top ranked matches plus a short written recommendation for the manager.

    Requires ANTHROPIC_API_KEY.
    """
    return envelope(_service().summarize_matches(shift_id, limit))


# -- Assignments --

@mcp.tool()
def create_assignment(
    shift_id: str,
    guard_id: str,
    assigned_by: str,
    assignment_method: str = "manual",
    override_conflicts: bool = False,
    override_reason: str | None = None,
    assignment_notes: str | None = None,
    manager_notes: str | None = None,
) -> dict[str, Any]:
    """Offer a shift to a guard. The assignment starts as pending."""
    payload = {
        "shift_id": shift_id,
        "guard_id": guard_id,
        "assignment_method": assignment_method,
        "override_conflicts": override_conflicts,
        "override_reason": override_reason,
        "assignment_notes": assignment_notes,
        "manager_notes": manager_notes,
    }
    return envelope(_service().create_assignment(payload, assigned_by))


@mcp.tool()
def respond_to_assignment(
    assignment_id: str,
    response: str,
    notes: str | None = None,
    conditional_details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Record a guard's accept / decline / conditional response to a pending assignment."""
    payload = {"response": response, "notes": notes, "conditional_details": conditional_details}
    return envelope(_service().respond(assignment_id, payload))


@mcp.tool()
def cancel_assignment(assignment_id: str, cancelled_by: str, reason: str) -> dict[str, Any]:
    """Cancel an assignment and reopen its shift."""
    return envelope(_service().cancel(assignment_id, cancelled_by, reason))


@mcp.tool()
def get_assignment(assignment_id: str) -> dict[str, Any]:
    """Load an assignment with its shift and guard summary."""
    return envelope(_service().get_assignment(assignment_id))


@mcp.tool()
def guard_assignments(
    guard_id: str,
    statuses: list[str] | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> dict[str, Any]:
    """A guard's assignments, newest first. start/end filter on assigned_at (ISO-8601)."""
    return envelope(_service().guard_assignments(guard_id, statuses, start, end, limit, offset))


@mcp.tool()
def create_batch_assignments(
    assignments: list[dict[str, Any]],
    assigned_by: str,
    allow_partial_success: bool = True,
) -> dict[str, Any]:
    """Create several assignments in order; stops at the first failure unless partial success is allowed."""
    payload = {"assignments": assignments, "allow_partial_success": allow_partial_success}
    return envelope(_service().create_batch(payload, assigned_by))


# -- Server entrypoints --

async def _run_http() -> None:
    import uvicorn
    from starlette.responses import PlainTextResponse
    from starlette.routing import Mount, Route

    from .http_api import API_PREFIX, BearerAuth, build_routes

    api_key = runtime_config().api_key
    starlette_app = mcp.streamable_http_app()

    if api_key:
        starlette_app.add_middleware(BearerAuth, api_key=api_key)

    starlette_app.routes.append(
        Route("/health", lambda r: PlainTextResponse("ok"))
    )
    starlette_app.routes.append(Mount(API_PREFIX, routes=build_routes(_service())))

    config = uvicorn.Config(
        starlette_app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
    )
    await uvicorn.Server(config).serve()


def main() -> None:
    global _ENV_FILE

    parser = argparse.ArgumentParser(description="Run guardshift MCP server")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument(
        "--transport",
        default=None,
        choices=["stdio", "sse", "streamable-http"],
        help="MCP transport (default: streamable-http when PORT is set, else stdio)",
    )
    args = parser.parse_args()
    _ENV_FILE = args.env_file
    load_env(_ENV_FILE)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    transport = args.transport
    if transport is None:
        transport = "streamable-http" if os.getenv("PORT") else "stdio"

    if transport == "streamable-http":
        import anyio
        anyio.run(_run_http)
    else:
        mcp.run(transport=transport)


if __name__ == "__main__":
    main()
