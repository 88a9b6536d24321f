"""virtual_patient.session.mode_switch

Text <-> voice arbitration for one session.

States: TEXT -> VOICE_CONNECTING -> VOICE_ACTIVE -> VOICE_ENDED -> TEXT.
Voice messages become ordinary user/assistant turns, so the evaluator cannot tell
which channel produced which turn.
"""

from __future__ import annotations

import enum
from typing import Callable, Dict, Optional

from virtual_patient.errors import ExternalServiceError
from virtual_patient.state.turn_store import TurnStore
from virtual_patient.state.turns import Turn
from virtual_patient.utils.logger import get_logger
from virtual_patient.voice.interfaces import VoiceAgent, VoiceConnection, VoiceEvent

log = get_logger(__name__)

MIC_DENIED_MESSAGE = "Please allow microphone access to use voice chat."
BUSY_MESSAGE = "Wait for the patient to finish responding before switching to voice."
UNAVAILABLE_MESSAGE = "Voice chat is not available on this host."

_SOURCE_TO_ROLE = {"user": "user", "ai": "assistant", "agent": "assistant"}


class Mode(str, enum.Enum):
    TEXT = "text"
    VOICE_CONNECTING = "voice_connecting"
    VOICE_ACTIVE = "voice_active"
    VOICE_ENDED = "voice_ended"


class ModeSwitch:
    def __init__(self, store: TurnStore, voice_agent: Optional[VoiceAgent], *, is_busy: Callable[[], bool]) -> None:
        self._store = store
        self._agent = voice_agent
        self._is_busy = is_busy
        self._connection: Optional[VoiceConnection] = None
        self._mic_permission: Optional[bool] = None  # checked once per session
        self.state = Mode.TEXT
        self.error_message = ""

    @property
    def mode(self) -> str:
        """`text` or `voice`; exactly one channel is active at a time."""
        return "text" if self.state == Mode.TEXT else "voice"

    @property
    def text_enabled(self) -> bool:
        return self.state == Mode.TEXT

    @property
    def voice_enabled(self) -> bool:
        return self.state == Mode.VOICE_ACTIVE

    async def request_voice(self, *, agent_id: Optional[str], dynamic_variables: Dict[str, str]) -> bool:
        """Try to enter voice mode. Returns False (with `error_message` set) when refused."""
        self.error_message = ""
        if self.state != Mode.TEXT:
            return False
        if self._is_busy():
            self.error_message = BUSY_MESSAGE
            return False
        if self._agent is None or not getattr(self._agent, "available", True) or not agent_id:
            self.error_message = UNAVAILABLE_MESSAGE
            return False

        if self._mic_permission is None:
            self._mic_permission = await self._agent.check_microphone()
        if not self._mic_permission:
            self.error_message = MIC_DENIED_MESSAGE
            return False

        self.state = Mode.VOICE_CONNECTING
        try:
            connection = await self._agent.connect(agent_id, dynamic_variables)
        except ExternalServiceError as e:
            log.warning("Voice connection failed: %s", e)
            self.state = Mode.TEXT
            self.error_message = "Failed to start voice conversation."
            return False

        self._connection = connection
        self.state = Mode.VOICE_ACTIVE
        log.info("Switched to voice mode")
        return True

    async def pump(self) -> None:
        """Consume voice events until the connection ends, mapping messages into turns."""
        connection = self._connection
        if connection is None:
            return
        async for event in connection.events():
            if connection is not self._connection:
                # Switched back to text; the old channel may not append anymore.
                return
            self._handle(event)
        if connection is self._connection:
            self._finish()

    def _handle(self, event: VoiceEvent) -> None:
        if event.kind == "message":
            if self.state != Mode.VOICE_ACTIVE or not event.text.strip():
                return
            role = _SOURCE_TO_ROLE.get(event.source)
            if role is None:
                log.warning("Dropping voice message from unknown source %r", event.source)
                return
            self._store.append(Turn.text(role, event.text))
        elif event.kind == "disconnected":
            self.state = Mode.VOICE_ENDED
        elif event.kind == "error":
            self.error_message = event.text or "Voice conversation error."
            log.warning("Voice error: %s", self.error_message)

    async def end_voice(self) -> None:
        """End the voice sub-session and return to text."""
        if self.state not in (Mode.VOICE_ACTIVE, Mode.VOICE_CONNECTING):
            return
        connection = self._connection
        self.state = Mode.VOICE_ENDED
        if connection is not None:
            try:
                await connection.end()
            except ExternalServiceError as e:
                self.error_message = "Failed to end voice conversation."
                log.warning("Ending voice session failed: %s", e)
        self._finish()

    def _finish(self) -> None:
        self._connection = None
        self.state = Mode.TEXT
        log.info("Switched to text mode")
