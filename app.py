"""Streamlit entrypoint.

Run:
    streamlit run app.py

Pick a scenario with SCENARIO_PATH (defaults to scenarios/hypertension_follow_up.json).
The heavy lifting lives in virtual_patient/* modules so you can swap providers.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root is on sys.path (helps when running Streamlit from elsewhere).
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from virtual_patient.utils.env import load_env

load_env()

import streamlit as st

from virtual_patient.evaluation.groq_judge import GroqEvaluationBackend
from virtual_patient.patient_sim.groq_patient_sim import GroqPatientSimulator
from virtual_patient.persistence.jsonl_saver import JsonlSessionSaver
from virtual_patient.scenarios.config import ScenarioConfig, load_scenario
from virtual_patient.session.scenario_session import ScenarioSession
from virtual_patient.ui.app_shell import render_app
from virtual_patient.utils.env import get_env, require_env
from virtual_patient.utils.logger import get_logger
from virtual_patient.utils.paths import resolve_scenario_path, sessions_log_path
from virtual_patient.voice.elevenlabs_agent import ElevenLabsVoiceAgent

log = get_logger(__name__)


def build_session(scenario: ScenarioConfig, *, groq_api_key: str) -> ScenarioSession:
    return ScenarioSession(
        scenario,
        streamer=GroqPatientSimulator(api_key=groq_api_key),
        evaluation_backend=GroqEvaluationBackend(api_key=groq_api_key),
        saver=JsonlSessionSaver(sessions_log_path(), scenario_title=scenario.title),
        voice_agent=ElevenLabsVoiceAgent(),
        on_complete=lambda: log.info("Scenario %s completed", scenario.id),
    )


def main() -> None:
    st.set_page_config(page_title="Virtual Patient", layout="wide")

    try:
        scenario = load_scenario(resolve_scenario_path(get_env("SCENARIO_PATH")))
    except (FileNotFoundError, ValueError) as e:
        st.error(f"Failed to load scenario: {e}")
        return

    try:
        groq_api_key = require_env("GROQ_API_KEY")
    except RuntimeError as e:
        st.error(f"{e}. Add it to your environment or .env file.")
        return

    render_app(session_factory=lambda: build_session(scenario, groq_api_key=groq_api_key))


if __name__ == "__main__":
    main()
