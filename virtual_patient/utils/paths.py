"""virtual_patient.utils.paths

Locations of the files the app reads and writes outside the package: scenario
JSON under `scenarios/` and the session log under `data/`, both at the repo root.
Relative overrides (SCENARIO_PATH, SESSIONS_LOG_PATH) are taken from the repo root
rather than the working directory, so `streamlit run` works from anywhere.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from virtual_patient.utils.env import get_env

DEFAULT_SCENARIO = "scenarios/hypertension_follow_up.json"
DEFAULT_SESSIONS_LOG = "data/sessions.jsonl"


def project_root() -> Path:
    # .../virtual_patient/utils/paths.py -> parents: [utils, virtual_patient, <root>]
    return Path(__file__).resolve().parents[2]


def _from_root(path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else project_root() / p


def default_scenario_path() -> Path:
    return _from_root(DEFAULT_SCENARIO)


def resolve_scenario_path(scenario_path: Optional[str] = None) -> Path:
    """Absolute path of the scenario to load; empty means the bundled default."""
    return _from_root(scenario_path or DEFAULT_SCENARIO)


def sessions_log_path() -> Path:
    """Where completed sessions are appended (override with SESSIONS_LOG_PATH)."""
    return _from_root(get_env("SESSIONS_LOG_PATH") or DEFAULT_SESSIONS_LOG)
