"""virtual_patient.voice.elevenlabs_agent

ElevenLabs conversational-AI voice agent.

Notes:
- Requires `pip install "elevenlabs[pyaudio]"` (the `voice` extra) and ELEVENLABS_API_KEY
  for private agents.
- This module is optional. If the SDK isn't installed, `available=False` and the host
  keeps the session in text mode.
"""

from __future__ import annotations

import asyncio
import os
from typing import Dict, Optional, Set

from virtual_patient.errors import ExternalServiceError
from virtual_patient.utils.logger import get_logger
from virtual_patient.voice.interfaces import VoiceConnection, VoiceEvent

log = get_logger(__name__)


class ElevenLabsVoiceAgent:
    def __init__(self, *, api_key: Optional[str] = None) -> None:
        self._api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        self.available = True
        # Event loops keep only weak references to tasks.
        self._watchers: Set[asyncio.Task] = set()
        try:
            from elevenlabs.client import ElevenLabs  # noqa: F401
            from elevenlabs.conversational_ai.conversation import Conversation  # noqa: F401
        except Exception:
            self.available = False

    async def check_microphone(self) -> bool:
        return await asyncio.to_thread(self._probe_microphone)

    def _probe_microphone(self) -> bool:
        try:
            import pyaudio
        except ImportError:
            log.warning("pyaudio is not installed; voice input is unavailable")
            return False

        audio = pyaudio.PyAudio()
        try:
            audio.get_default_input_device_info()
            return True
        except OSError as e:
            log.warning("No usable microphone: %s", e)
            return False
        finally:
            audio.terminate()

    async def connect(self, agent_id: str, dynamic_variables: Dict[str, str]) -> VoiceConnection:
        if not self.available:
            raise ExternalServiceError("elevenlabs", "SDK not installed. Install with: pip install 'elevenlabs[pyaudio]'")

        from elevenlabs.client import ElevenLabs
        from elevenlabs.conversational_ai.conversation import Conversation, ConversationInitiationData
        from elevenlabs.conversational_ai.default_audio_interface import DefaultAudioInterface

        conversation: Optional[Conversation] = None

        async def _end() -> None:
            if conversation is None:
                return
            try:
                await asyncio.to_thread(conversation.end_session)
            except Exception as e:
                raise ExternalServiceError("elevenlabs", str(e)) from e

        connection = VoiceConnection(on_end=_end)

        def _on_agent(text: str) -> None:
            connection.post(VoiceEvent("message", text=text, source="ai"))

        def _on_user(text: str) -> None:
            connection.post(VoiceEvent("message", text=text, source="user"))

        try:
            conversation = Conversation(
                ElevenLabs(api_key=self._api_key),
                agent_id,
                requires_auth=bool(self._api_key),
                audio_interface=DefaultAudioInterface(),
                config=ConversationInitiationData(dynamic_variables=dynamic_variables),
                callback_agent_response=_on_agent,
                callback_user_transcript=_on_user,
            )
            await asyncio.to_thread(conversation.start_session)
        except Exception as e:
            # The SDK surfaces websocket, auth and audio-device failures with unrelated types.
            log.error("Failed to start voice session: %s", e)
            raise ExternalServiceError("elevenlabs", str(e)) from e

        log.info("Voice session started with agent %s", agent_id)
        connection.post(VoiceEvent("connected"))
        self._spawn_watch(conversation, connection)
        return connection

    def _spawn_watch(self, conversation, connection: VoiceConnection) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._watch(conversation, connection))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return task

    async def _watch(self, conversation, connection: VoiceConnection) -> None:
        """Wait for the SDK session to finish, then close the event stream."""
        try:
            conversation_id = await asyncio.to_thread(conversation.wait_for_session_end)
            log.info("Voice session %s ended", conversation_id)
        except Exception as e:
            log.error("Voice session failed: %s", e)
            connection.post(VoiceEvent("error", text=f"Voice conversation error: {e}"))
        connection.post(VoiceEvent("disconnected"))
