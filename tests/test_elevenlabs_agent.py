from __future__ import annotations

import asyncio
import threading

import pytest

from virtual_patient.voice.elevenlabs_agent import ElevenLabsVoiceAgent
from virtual_patient.voice.interfaces import VoiceConnection, VoiceEvent


class _FakeConversation:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.release = threading.Event()

    def wait_for_session_end(self) -> str:
        self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return "conv-1"


@pytest.mark.asyncio
async def test_session_end_closes_the_event_stream() -> None:
    agent = ElevenLabsVoiceAgent(api_key="test")
    connection = VoiceConnection()
    conversation = _FakeConversation()
    conversation.release.set()

    await agent._watch(conversation, connection)

    events = [e async for e in connection.events()]
    assert events == [VoiceEvent("disconnected")]


@pytest.mark.asyncio
async def test_sdk_failure_is_reported_before_disconnect() -> None:
    agent = ElevenLabsVoiceAgent(api_key="test")
    connection = VoiceConnection()
    conversation = _FakeConversation(error=RuntimeError("websocket closed"))
    conversation.release.set()

    await agent._watch(conversation, connection)

    events = [e async for e in connection.events()]
    assert [e.kind for e in events] == ["error", "disconnected"]
    assert "websocket closed" in events[0].text


@pytest.mark.asyncio
async def test_watch_task_is_held_until_done() -> None:
    agent = ElevenLabsVoiceAgent(api_key="test")
    connection = VoiceConnection()
    conversation = _FakeConversation()

    task = agent._spawn_watch(conversation, connection)
    await asyncio.sleep(0)
    assert task in agent._watchers

    conversation.release.set()
    await task
    await asyncio.sleep(0)
    assert not agent._watchers
