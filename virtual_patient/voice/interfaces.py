"""virtual_patient.voice.interfaces

Interfaces for voice-agent providers.

Voice SDKs call back on their own threads. `VoiceConnection` is the bridge: SDK
callbacks `post()` events thread-safely onto the session's event loop, and the
session consumes them with `async for`, so the turn store still has one writer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, Literal, Optional, Protocol

VoiceEventKind = Literal["connected", "message", "disconnected", "error"]


@dataclass(frozen=True)
class VoiceEvent:
    kind: VoiceEventKind
    text: str = ""
    source: str = ""  # "user" | "ai"


class VoiceConnection:
    def __init__(
        self,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_end: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[VoiceEvent] = asyncio.Queue()
        self._on_end = on_end
        self._ended = False

    def post(self, event: VoiceEvent) -> None:
        """Thread-safe: may be called from SDK callback threads."""
        if self._loop.is_closed():
            # The host run that owned this loop is gone; nobody is listening.
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def events(self) -> AsyncIterator[VoiceEvent]:
        """Yield events in arrival order; stops after the first `disconnected`."""
        while True:
            event = await self._queue.get()
            yield event
            if event.kind == "disconnected":
                return

    async def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        if self._on_end is not None:
            await self._on_end()
        self.post(VoiceEvent("disconnected"))


class VoiceAgent(Protocol):
    available: bool

    async def check_microphone(self) -> bool:
        """Return True when an input device can be opened."""
        ...

    async def connect(self, agent_id: str, dynamic_variables: Dict[str, str]) -> VoiceConnection:
        """Return once the agent acknowledged the connection.

        Raises `ExternalServiceError` when the session cannot be started.
        """
        ...
