from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

import pytest

from virtual_patient.errors import ExternalServiceError
from virtual_patient.patient_sim.interfaces import Done, StreamEvent
from virtual_patient.persistence.interfaces import SaveReceipt
from virtual_patient.scenarios.config import ScenarioConfig, load_scenario
from virtual_patient.state.turns import Turn
from virtual_patient.utils.paths import default_scenario_path
from virtual_patient.voice.interfaces import VoiceConnection

Script = List[Any]


class ScriptedStreamer:
    """Plays back one script per assistant stream.

    A script item is a StreamEvent, an Exception to raise, or a zero-argument
    callable run at that point (used to stop the controller mid-stream).
    """

    def __init__(self, scripts: List[Script]) -> None:
        self.scripts = list(scripts)
        self.calls: List[Sequence[Turn]] = []
        self.tools_seen: List[Any] = []

    async def stream_turn(
        self,
        prior_turns: Sequence[Turn],
        system_prompt: str,
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(prior_turns)
        self.tools_seen.append(tools)
        script = self.scripts.pop(0) if self.scripts else [Done()]
        for item in script:
            if isinstance(item, Exception):
                raise item
            if callable(item):
                result = item()
                if hasattr(result, "__await__"):
                    await result
                continue
            yield item


class FakeEvaluationBackend:
    def __init__(self, chunks: List[str], *, error: Optional[Exception] = None) -> None:
        self.chunks = chunks
        self.error = error
        self.calls = 0

    async def stream_evaluation(self, transcript: Sequence[Turn], scenario: ScenarioConfig) -> AsyncIterator[str]:
        self.calls += 1
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class FakeSaver:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.saved: List[Dict[str, Any]] = []

    async def save(self, transcript: List[Dict[str, Any]], elapsed_seconds: int) -> SaveReceipt:
        if self.fail:
            raise ExternalServiceError("session-save", "disk full")
        self.saved.append({"messages": transcript, "totalTime": elapsed_seconds})
        return SaveReceipt(success=True, saved_count=len(transcript))


class FakeVoiceAgent:
    def __init__(self, *, available: bool = True, microphone: bool = True, connect_error: Optional[Exception] = None) -> None:
        self.available = available
        self.microphone = microphone
        self.connect_error = connect_error
        self.mic_checks = 0
        self.connections: List[VoiceConnection] = []
        self.connect_args: List[Any] = []
        self.ended = 0

    async def check_microphone(self) -> bool:
        self.mic_checks += 1
        return self.microphone

    async def connect(self, agent_id: str, dynamic_variables: Dict[str, str]) -> VoiceConnection:
        self.connect_args.append((agent_id, dynamic_variables))
        if self.connect_error is not None:
            raise self.connect_error

        async def on_end() -> None:
            self.ended += 1

        connection = VoiceConnection(on_end=on_end)
        self.connections.append(connection)
        return connection


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def scenario() -> ScenarioConfig:
    return load_scenario(default_scenario_path())


@pytest.fixture
def streamer_factory() -> Callable[[List[Script]], ScriptedStreamer]:
    return ScriptedStreamer


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def voice_agent() -> FakeVoiceAgent:
    return FakeVoiceAgent()


@pytest.fixture
def saver() -> FakeSaver:
    return FakeSaver()
