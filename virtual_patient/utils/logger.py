"""virtual_patient.utils.logger

Minimal logger setup used across the package.

One stream handler sits on the package logger; module loggers
(`get_logger(__name__)`) propagate to it. Level comes from LOG_LEVEL (default INFO).
"""

from __future__ import annotations

import logging

from virtual_patient.utils.env import get_env

PACKAGE_LOGGER = "virtual_patient"


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        # Avoid duplicate handlers in Streamlit reruns.
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        package.addHandler(handler)
        package.setLevel((get_env("LOG_LEVEL") or "INFO").upper())
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
