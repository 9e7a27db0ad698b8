"""Manager-facing briefing of a shift's ranked candidates, written by Claude.

The ranking itself is deterministic; this module only turns the top matches
into a short prose recommendation.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

from assignment_core.io import to_jsonable
from assignment_core.models import GuardMatchResult, Shift

logger = logging.getLogger(__name__)


CLIENT_TIMEOUT_SECONDS = 60.0
MAX_ATTEMPTS = 3
RETRYABLE_STATUS = frozenset({429, 529})

SYSTEM_PROMPT = (
    "You are helping a security staffing manager choose a guard for a shift. "
    "Candidates are already ranked by a deterministic matching engine; do not re-rank them. "
    "Write at most 6 sentences: who to offer the shift to first, why, and what to check "
    "before confirming (conflicts, overrides, travel). Mention guards by guard_id."
)


def _get_client():
    import anthropic

    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY not set")
    return anthropic.Anthropic(api_key=api_key, timeout=CLIENT_TIMEOUT_SECONDS, max_retries=0)


def _get_model() -> str:
    return os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")


def _call_llm(prompt: str, *, max_tokens: int = 1024) -> str:
    """Send one briefing request. Rate-limit and overload responses back off 2s, 4s."""
    import anthropic

    client = _get_client()
    model = _get_model()

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            message = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as exc:
            if exc.status_code not in RETRYABLE_STATUS or attempt == MAX_ATTEMPTS:
                raise
            wait = 2 ** attempt
            logger.warning(
                "Briefing request got %s (attempt %d/%d), retrying in %ds",
                exc.status_code,
                attempt,
                MAX_ATTEMPTS,
                wait,
            )
            time.sleep(wait)
            continue
        return "".join(block.text for block in message.content if getattr(block, "type", "") == "text")
    return ""


def _candidate_digest(match: GuardMatchResult) -> dict[str, Any]:
    return {
        "rank": match.ranking,
        "guard_id": match.guard_id,
        "match_score": match.match_score,
        "confidence": match.confidence,
        "recommended_action": match.recommended_action,
        "strengths": match.strengths,
        "concerns": match.concerns,
        "conflicts": [
            {"type": c.conflict_type, "severity": c.severity, "message": c.message}
            for c in match.eligibility.conflicts
        ],
    }


def build_prompt(shift: Shift, matches: list[GuardMatchResult]) -> str:
    shift_info = {
        "id": shift.id,
        "title": shift.title,
        "start": to_jsonable(shift.start),
        "end": to_jsonable(shift.end),
        "priority": shift.priority,
        "required_certifications": shift.required_certifications,
        "site": shift.client.site_name or shift.location.name,
    }
    return (
        f"Shift:\n{json.dumps(shift_info, indent=2)}\n\n"
        f"Ranked candidates:\n{json.dumps([_candidate_digest(m) for m in matches], indent=2)}\n"
    )


def summarize_matches(shift: Shift, matches: list[GuardMatchResult]) -> str:
    if not matches:
        return "No candidate guards cleared the eligibility bar for this shift."
    return _call_llm(build_prompt(shift, matches)).strip()
