"""virtual_patient.state.session_store

Session state helpers.

This module intentionally keeps Streamlit-specific logic here so the rest of the
codebase can stay testable without Streamlit.
"""

from __future__ import annotations

from typing import Callable, Optional

import streamlit as st

from virtual_patient.session.scenario_session import ScenarioSession
from virtual_patient.state.session_keys import (
    COMPLETION_RESULT,
    CONFIRM_COMPLETE,
    LAST_EVALUATION,
    SCENARIO_SESSION,
)


def ensure_initialized() -> None:
    """Initialize expected session_state keys."""
    for k in (SCENARIO_SESSION, LAST_EVALUATION, COMPLETION_RESULT):
        if k not in st.session_state:
            st.session_state[k] = None
    if CONFIRM_COMPLETE not in st.session_state:
        st.session_state[CONFIRM_COMPLETE] = False


def get_session() -> Optional[ScenarioSession]:
    return st.session_state.get(SCENARIO_SESSION)


def get_or_create_session(factory: Callable[[], ScenarioSession]) -> ScenarioSession:
    session = get_session()
    if session is None:
        session = factory()
        st.session_state[SCENARIO_SESSION] = session
    return session


def clear_all() -> None:
    """Drop the current attempt and its evaluation outputs."""
    st.session_state[SCENARIO_SESSION] = None
    st.session_state[LAST_EVALUATION] = None
    st.session_state[COMPLETION_RESULT] = None
    st.session_state[CONFIRM_COMPLETE] = False
