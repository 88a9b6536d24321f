"""virtual_patient.utils.env

Environment loading + lightweight validation.

Entrypoints call `load_env()` once. The `.env` next to the working directory wins;
otherwise the one at the repository root is used, so `streamlit run` works from
anywhere. Blank values (as left by `.env.example`) count as unset.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

_REPO_DOTENV = Path(__file__).resolve().parents[2] / ".env"


def load_env(*, override: bool = False) -> bool:
    """Load variables from a `.env` file. Returns False when no file was found."""
    path = find_dotenv(usecwd=True) or (str(_REPO_DOTENV) if _REPO_DOTENV.exists() else "")
    if not path:
        return False
    return load_dotenv(path, override=override)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value


def require_env(name: str) -> str:
    v = get_env(name)
    if not v:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return v
