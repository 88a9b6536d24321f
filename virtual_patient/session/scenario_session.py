"""virtual_patient.session.scenario_session

One scenario attempt: the turn store plus the components that read and write it.

Everything a session needs (LLM streamer, judge backend, saver, voice agent) is
passed in by the caller, so no state is shared between sessions.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Dict, Optional

from virtual_patient.evaluation.evaluator import Evaluator
from virtual_patient.evaluation.interfaces import EvaluationBackend, EvaluationState
from virtual_patient.evaluation.schema import Evaluation
from virtual_patient.patient_sim.interfaces import PatientStreamer
from virtual_patient.patient_sim.prompts import (
    blood_pressure_request,
    build_system_prompt,
    normalize_starting_message,
    strip_stage_directions,
)
from virtual_patient.persistence.interfaces import SessionSaver
from virtual_patient.scenarios.config import ScenarioConfig
from virtual_patient.session.completion import CompletionGate, CompletionResult, CompletionState, Confirm
from virtual_patient.session.conversation import ConversationController
from virtual_patient.session.mode_switch import ModeSwitch
from virtual_patient.session.timer import SessionTimer
from virtual_patient.state.turn_store import TurnStore
from virtual_patient.state.turns import Turn
from virtual_patient.tools.dispatcher import ToolDispatcher
from virtual_patient.utils.logger import get_logger
from virtual_patient.voice.interfaces import VoiceAgent

log = get_logger(__name__)

TEXT_DISABLED_MESSAGE = "Text input is disabled while the voice conversation is active."


class ScenarioSession:
    def __init__(
        self,
        scenario: ScenarioConfig,
        *,
        streamer: PatientStreamer,
        evaluation_backend: EvaluationBackend,
        saver: SessionSaver,
        voice_agent: Optional[VoiceAgent] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        timer: Optional[SessionTimer] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.scenario = scenario
        self.turns = TurnStore()
        self.turns.append(Turn.text("assistant", normalize_starting_message(scenario.starting_message)))

        self.conversation = ConversationController(
            self.turns,
            streamer,
            dispatcher or ToolDispatcher(),
            system_prompt=build_system_prompt(scenario),
        )
        self.mode_switch = ModeSwitch(self.turns, voice_agent, is_busy=lambda: self.conversation.busy)
        self.timer = timer or SessionTimer()
        self.evaluator = Evaluator(evaluation_backend)
        self.completion = CompletionGate(saver, on_complete=on_complete)
        self.begun = False

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def begin(self) -> None:
        """Leave the instructions screen; the timer starts with the encounter."""
        if self.begun:
            return
        self.begun = True
        self.timer.start()
        log.info("Scenario %s begun", self.scenario.id)

    def start_timer(self) -> bool:
        if not self.begun:
            return False
        self.timer.start()
        return True

    @property
    def mode(self) -> str:
        return self.mode_switch.mode

    @property
    def evaluation_state(self) -> EvaluationState:
        return self.evaluator.state

    @property
    def completion_state(self) -> CompletionState:
        return self.completion.state

    @property
    def can_submit_text(self) -> bool:
        return self.mode_switch.text_enabled and not self.conversation.busy and not self.completion.is_completed

    # ----------------------------
    # Text channel
    # ----------------------------
    async def send_text(self, text: str) -> bool:
        if not self.mode_switch.text_enabled:
            self.conversation.last_error = TEXT_DISABLED_MESSAGE
            return False
        if self.completion.is_completed:
            return False
        return await self.conversation.send_user_message(text)

    async def take_blood_pressure(self) -> bool:
        """Shortcut button: the student's action prompts the patient to call the tool."""
        return await self.send_text(blood_pressure_request(self.scenario.patient_name))

    def stop(self) -> None:
        self.conversation.stop()

    # ----------------------------
    # Voice channel
    # ----------------------------
    def voice_variables(self) -> Dict[str, str]:
        return {
            "personaPrompt": self.scenario.persona_prompt,
            "startingMessage": strip_stage_directions(normalize_starting_message(self.scenario.starting_message)),
        }

    async def switch_to_voice(self) -> bool:
        return await self.mode_switch.request_voice(
            agent_id=self.scenario.voice_agent_id(),
            dynamic_variables=self.voice_variables(),
        )

    async def run_voice(self) -> None:
        """Map voice events into turns until the voice sub-session ends."""
        await self.mode_switch.pump()

    async def end_voice(self) -> None:
        await self.mode_switch.end_voice()

    async def voice_session(self) -> bool:
        """Switch to voice and pump its events on the current loop.

        If the pump is interrupted (cancelled, or a host rerun raised out of a turn
        listener), the connection is ended before the error propagates.
        Returns False when the switch was refused.
        """
        if not await self.switch_to_voice():
            return False
        try:
            await self.run_voice()
        finally:
            if self.mode == "voice":
                log.info("Voice pump interrupted; ending the connection")
                await self.end_voice()
        return True

    # ----------------------------
    # Evaluation + completion
    # ----------------------------
    def evaluate(self) -> AsyncIterator[Evaluation]:
        return self.evaluator.evaluate(self.turns.snapshot(), self.scenario)

    async def complete(self, *, confirm: Confirm) -> CompletionResult:
        result = await self.completion.complete(self.turns.snapshot(), self.timer.elapsed_seconds, confirm=confirm)
        if result.completed:
            self.timer.pause()
        return result
