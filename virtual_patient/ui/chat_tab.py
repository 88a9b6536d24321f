"""virtual_patient.ui.chat_tab

Chat UI for the scenario: instructions, timer, text/voice channels, completion.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Tuple

import streamlit as st

from virtual_patient.patient_sim.prompts import blood_pressure_request
from virtual_patient.session.scenario_session import ScenarioSession
from virtual_patient.session.timer import format_elapsed
from virtual_patient.state.session_keys import COMPLETION_RESULT, CONFIRM_COMPLETE
from virtual_patient.state.turn_store import TurnStoreEvent
from virtual_patient.state.turns import Turn

_AVATARS: Dict[str, str] = {"user": "user", "assistant": "assistant"}
VOICE_HEARTBEAT_SECONDS = 1.0


def _render_turn(turn: Turn) -> None:
    if turn.role in _AVATARS:
        if turn.content:
            st.chat_message(_AVATARS[turn.role]).markdown(turn.content)
    elif turn.role == "tool-result":
        for result in turn.tool_results:
            with st.expander(f"Tool result: {result.tool_name}", expanded=False):
                st.code(json.dumps(result.payload, ensure_ascii=False, indent=2), language="json")


def _render_timer(session: ScenarioSession) -> None:
    timer = session.timer.state()
    col_t1, col_t2, col_t3 = st.columns([2, 1, 1])
    with col_t1:
        st.metric("Time", format_elapsed(timer.elapsed_seconds))
    with col_t2:
        if not timer.running:
            if st.button("Start timer", disabled=not session.begun):
                session.start_timer()
                st.rerun()
        elif timer.paused:
            if st.button("Resume timer"):
                session.timer.resume()
                st.rerun()
        elif st.button("Pause timer"):
            session.timer.pause()
            st.rerun()
    with col_t3:
        if st.button("Reset timer", disabled=not timer.running):
            session.timer.reset()
            st.rerun()


def _turn_renderer(session: ScenarioSession, chat_box: Any, *, roles: Tuple[str, ...]) -> Callable[[TurnStoreEvent], None]:
    """Store listener that (re-)renders turns of the given roles into the chat box."""
    placeholders: Dict[str, Any] = {}

    def on_change(event: TurnStoreEvent) -> None:
        turn = session.turns.get(event.turn_id)
        if turn.role not in roles or not turn.content:
            return
        if event.turn_id not in placeholders:
            with chat_box:
                placeholders[event.turn_id] = st.chat_message(_AVATARS[turn.role]).empty()
        placeholders[event.turn_id].markdown(turn.content)

    return on_change


def _send_streaming(session: ScenarioSession, chat_box: Any, text: str, *, blood_pressure: bool = False) -> None:
    """Run one turn, re-rendering the growing assistant turn on every store change."""
    unsubscribe = session.turns.subscribe(_turn_renderer(session, chat_box, roles=("assistant",)))
    try:
        with chat_box:
            st.chat_message("user").markdown(text)
        # A click reruns the script, which interrupts the stream at its next render.
        st.button("Stop generating", key="stop_generating", on_click=session.stop)
        asyncio.run(session.take_blood_pressure() if blood_pressure else session.send_text(text))
    finally:
        unsubscribe()


async def _pump_with_heartbeat(session: ScenarioSession, status: Any) -> None:
    # Connection and event pump must share one event loop.
    voice = asyncio.ensure_future(session.voice_session())
    try:
        while not voice.done():
            # Any Streamlit call lets a pending rerun ("End voice") interrupt here.
            status.caption(f"Voice conversation active. Time: {format_elapsed(session.timer.elapsed_seconds)}")
            await asyncio.wait({voice}, timeout=VOICE_HEARTBEAT_SECONDS)
        voice.result()
    finally:
        if not voice.done():
            voice.cancel()
        # voice_session ends the connection on its way out.
        await asyncio.gather(voice, return_exceptions=True)


def _run_voice(session: ScenarioSession, chat_box: Any) -> None:
    """Block on the voice sub-session, rendering spoken turns as they arrive."""
    unsubscribe = session.turns.subscribe(_turn_renderer(session, chat_box, roles=("user", "assistant")))
    try:
        st.button("End voice", key="end_voice_live")
        asyncio.run(_pump_with_heartbeat(session, st.empty()))
    finally:
        unsubscribe()


def _render_completion(session: ScenarioSession) -> None:
    if session.completion.is_completed:
        st.success("Scenario completed.")
        result = st.session_state.get(COMPLETION_RESULT)
        if result is not None and result.warning:
            st.warning(result.warning)
        return

    if not st.session_state.get(CONFIRM_COMPLETE):
        if st.button("Complete", disabled=session.conversation.busy):
            st.session_state[CONFIRM_COMPLETE] = True
            st.rerun()
        return

    st.warning("Are you sure you want to complete the scenario?")
    col_y, col_n = st.columns(2)
    with col_y:
        if st.button("Yes, complete"):
            result = asyncio.run(session.complete(confirm=lambda _prompt: True))
            st.session_state[COMPLETION_RESULT] = result
            st.session_state[CONFIRM_COMPLETE] = False
            st.rerun()
    with col_n:
        if st.button("Cancel"):
            st.session_state[CONFIRM_COMPLETE] = False
            st.rerun()


def render_chat_tab(*, session: ScenarioSession) -> None:
    if not session.begun:
        st.markdown(f"### {session.scenario.title}")
        st.markdown(session.scenario.description)
        if st.button("Begin scenario"):
            session.begin()
            st.rerun()
        return

    _render_timer(session)

    chat_box = st.container(height=520)
    with chat_box:
        for turn in session.turns.snapshot():
            _render_turn(turn)

    col_v1, col_v2 = st.columns(2)
    with col_v1:
        if session.mode == "text":
            if st.button("Switch to Voice", disabled=not session.can_submit_text):
                st.caption("Say goodbye to the patient, or press End voice, to return to text.")
                _run_voice(session, chat_box)
                st.rerun()
        # Left over from a run that stopped without hanging up.
        elif st.button("End voice"):
            asyncio.run(session.end_voice())
            st.rerun()
    with col_v2:
        if st.button("Take Blood Pressure", disabled=not session.can_submit_text):
            _send_streaming(session, chat_box, blood_pressure_request(session.scenario.patient_name), blood_pressure=True)
            st.rerun()

    if session.mode_switch.error_message:
        st.error(session.mode_switch.error_message)
    if session.conversation.last_error:
        st.error(session.conversation.last_error)

    # Disabled, not hidden, while the patient responds or voice is active.
    user_message = st.chat_input("Write a message...", disabled=not session.can_submit_text)
    if user_message:
        _send_streaming(session, chat_box, user_message)
        st.rerun()

    _render_completion(session)
