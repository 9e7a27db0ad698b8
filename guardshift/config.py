from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from assignment_core.scoring import DEFAULT_SCORING, ScoringConfig, scoring_from_dict


@dataclass(frozen=True)
class RuntimeConfig:
    db_path: str
    scoring_profile: str
    profile_file: Path | None
    host: str
    port: int
    api_key: str | None


def load_env(dotenv_path: str | Path | None = None) -> None:
    path = Path(dotenv_path) if dotenv_path else None
    if path and path.exists():
        load_dotenv(path)
        return
    load_dotenv()


def runtime_config() -> RuntimeConfig:
    db_path = os.getenv("GUARDSHIFT_DB_PATH", "./guardshift.db").strip() or ":memory:"
    if db_path != ":memory:":
        db_file = Path(db_path).expanduser().resolve()
        db_file.parent.mkdir(parents=True, exist_ok=True)
        db_path = str(db_file)
    profile_file = os.getenv("GUARDSHIFT_PROFILE_FILE", "").strip()
    return RuntimeConfig(
        db_path=db_path,
        scoring_profile=os.getenv("GUARDSHIFT_SCORING_PROFILE", "default").strip() or "default",
        profile_file=Path(profile_file).expanduser() if profile_file else None,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        api_key=os.getenv("MCP_API_KEY") or None,
    )


def load_scoring_profiles(profile_file: Path | None = None) -> dict[str, Any]:
    if profile_file is None:
        profile_file = Path(__file__).resolve().parent.parent / "config" / "scoring_profiles.json"
    if not profile_file.exists():
        return {}
    with profile_file.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def get_scoring_profile(name: str, profile_file: Path | None = None) -> ScoringConfig:
    """Resolve a named profile into a ScoringConfig. ``default`` always exists."""
    profiles = load_scoring_profiles(profile_file)
    if name not in profiles:
        if name == "default":
            return DEFAULT_SCORING
        available = sorted(set(profiles) | {"default"})
        raise ValueError(f"Scoring profile '{name}' not found. Available: {available}")
    return scoring_from_dict(profiles[name].get("overrides"))
