"""virtual_patient.ui.evaluation_tab

Evaluation UI.

Uses:
- Groq judge -> streamed JSON, rendered as it arrives
- Deterministic totals from the scenario rubric once the judge finishes

The trigger is one-shot: once pressed, the button stays disabled for this session.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import streamlit as st

from virtual_patient.evaluation.interfaces import EvaluationState
from virtual_patient.evaluation.schema import Evaluation
from virtual_patient.session.scenario_session import ScenarioSession
from virtual_patient.state.session_keys import LAST_EVALUATION


def _render_evaluation(evaluation: Evaluation) -> None:
    if evaluation.sections is None:
        st.info("Evaluating...")
        return

    for section in evaluation.sections:
        st.markdown(f"#### {section.title or ''}")
        if section.description:
            st.caption(section.description)
        for task in section.tasks or []:
            score = "…" if task.score is None else task.score
            total = "…" if task.total_points is None else task.total_points
            st.markdown(f"**{task.title or ''}**: {score} out of {total}")
            for item in task.feedback_items or []:
                st.write(f"- {item}")

    if evaluation.summary is not None:
        st.markdown("### Summary")
        if evaluation.is_scored:
            st.metric("Overall score", f"{evaluation.overall_score}/{evaluation.total_possible_score}")
        for line in evaluation.summary:
            st.write(f"- {line}")


async def _consume(session: ScenarioSession, placeholder: Any) -> None:
    async for partial in session.evaluate():
        with placeholder.container():
            _render_evaluation(partial)


def render_evaluation_tab(*, session: ScenarioSession) -> None:
    st.subheader("Evaluation")
    st.caption("Scores the full conversation against the scenario rubric. Can be run once per session.")

    has_user_turn = session.turns.has_user_turn()
    if not has_user_turn:
        st.info("Talk to the patient first. The evaluation needs at least one student message.")

    evaluator = session.evaluator
    placeholder = st.empty()

    if st.button("Evaluate", disabled=not (evaluator.can_evaluate and has_user_turn)):
        with st.spinner("Evaluating..."):
            asyncio.run(_consume(session, placeholder))
        st.session_state[LAST_EVALUATION] = evaluator.latest
        st.rerun()

    if evaluator.state == EvaluationState.IN_PROGRESS and evaluator.last_error:
        st.error(f"The evaluation did not finish: {evaluator.last_error}")

    latest = evaluator.latest or st.session_state.get(LAST_EVALUATION)
    if latest is None:
        return

    with placeholder.container():
        _render_evaluation(latest)

    if evaluator.state == EvaluationState.COMPLETE:
        with st.expander("Raw evaluation JSON", expanded=False):
            data = json.dumps(latest.to_wire(), ensure_ascii=False, indent=2)
            st.code(data, language="json")
            st.download_button(
                "Download evaluation JSON",
                data=data,
                file_name=f"{session.scenario.id}_evaluation.json",
                mime="application/json",
            )
