"""virtual_patient.ui.app_shell

Streamlit shell: page setup + tabs.

Keep this module free of any provider-specific logic.
"""

from __future__ import annotations

from typing import Callable

import streamlit as st

from virtual_patient.session.scenario_session import ScenarioSession
from virtual_patient.state.session_store import clear_all, ensure_initialized, get_or_create_session
from virtual_patient.ui.chat_tab import render_chat_tab
from virtual_patient.ui.evaluation_tab import render_evaluation_tab


def _render_sidebar(session: ScenarioSession) -> None:
    with st.sidebar:
        st.header("Patient information")
        st.markdown(session.scenario.patient_info or "_No patient information for this scenario._")
        st.divider()
        if st.button("Restart scenario", disabled=session.conversation.busy):
            clear_all()
            st.rerun()


def render_app(*, session_factory: Callable[[], ScenarioSession]) -> None:
    ensure_initialized()

    session = get_or_create_session(session_factory)

    st.title(session.scenario.title)
    _render_sidebar(session)

    tab_chat, tab_eval = st.tabs(["Scenario", "Evaluation"])

    with tab_chat:
        render_chat_tab(session=session)

    with tab_eval:
        render_evaluation_tab(session=session)
