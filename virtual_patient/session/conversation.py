"""virtual_patient.session.conversation

Text-channel turn loop: user turn -> streamed assistant turn -> tool results ->
continuation, with one writer at a time.

Sequencing rules kept here:
- a new user submission is refused while an assistant turn streams or tools are pending;
- the assistant turn that requested a tool is closed, the tool-result turn is appended,
  and only then does the continuation stream start;
- `stop()` takes effect at the next fragment boundary, keeping what was already shown.
"""

from __future__ import annotations

import enum
from typing import List, Optional

from virtual_patient.errors import ExternalServiceError, UnknownToolError
from virtual_patient.patient_sim.interfaces import Done, Fragment, PatientStreamer, ToolCallRequest
from virtual_patient.state.turn_store import TurnStore
from virtual_patient.state.turns import ToolCallPart, ToolResultPart, Turn, TurnId
from virtual_patient.tools.dispatcher import ToolDispatcher
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


class ConversationStatus(str, enum.Enum):
    READY = "ready"
    STREAMING = "streaming"
    AWAITING_TOOL = "awaiting_tool"


class ConversationController:
    def __init__(
        self,
        store: TurnStore,
        streamer: PatientStreamer,
        dispatcher: ToolDispatcher,
        *,
        system_prompt: str,
        max_tool_rounds: int = 3,
    ) -> None:
        self._store = store
        self._streamer = streamer
        self._dispatcher = dispatcher
        self._system_prompt = system_prompt
        self._max_tool_rounds = max_tool_rounds
        self._stop_requested = False
        self.status = ConversationStatus.READY
        self.last_error = ""

    @property
    def busy(self) -> bool:
        return self.status != ConversationStatus.READY

    def stop(self) -> None:
        """Ask the running stream to stop at the next fragment boundary."""
        if self.status == ConversationStatus.STREAMING:
            self._stop_requested = True

    async def send_user_message(self, text: str) -> bool:
        """Append a user turn and run the patient's reply. Returns False if the submission was refused."""
        if self.busy:
            log.info("Refusing submission while the patient is responding")
            return False
        if not text or not text.strip():
            return False

        self.last_error = ""
        self._store.append(Turn.text("user", text))
        await self._respond()
        return True

    async def _respond(self) -> None:
        self._stop_requested = False
        try:
            for _ in range(self._max_tool_rounds + 1):
                requests = await self._stream_once()
                if not requests or self._stop_requested:
                    return
                await self._resolve_tools(requests)
            log.warning("Stopped after %s tool rounds without a final answer", self._max_tool_rounds)
        finally:
            self.status = ConversationStatus.READY
            self._stop_requested = False

    async def _stream_once(self) -> List[ToolCallRequest]:
        self.status = ConversationStatus.STREAMING
        turn_id: Optional[TurnId] = None
        requests: List[ToolCallRequest] = []

        def open_turn() -> TurnId:
            # The assistant turn exists from its first fragment on.
            return self._store.append(Turn(role="assistant", streaming=True))

        stream = self._streamer.stream_turn(
            self._store.snapshot(),
            self._system_prompt,
            tools=self._dispatcher.definitions,
        )
        try:
            async for event in stream:
                if self._stop_requested:
                    break
                if isinstance(event, Fragment):
                    if not event.text:
                        continue
                    turn_id = turn_id or open_turn()
                    self._store.update_content(turn_id, event.text)
                elif isinstance(event, ToolCallRequest):
                    turn_id = turn_id or open_turn()
                    self._store.update_content(
                        turn_id,
                        ToolCallPart(tool_name=event.name, request_id=event.request_id, arguments=event.arguments),
                    )
                    requests.append(event)
                elif isinstance(event, Done):
                    break
        except ExternalServiceError as e:
            # Keep whatever arrived; the student may resubmit.
            self.last_error = "The patient did not finish responding. Please try sending your message again."
            log.error("Assistant turn stalled: %s", e)
            requests = []
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            if turn_id is not None:
                self._store.close(turn_id)
        return requests

    async def _resolve_tools(self, requests: List[ToolCallRequest]) -> None:
        self.status = ConversationStatus.AWAITING_TOOL
        for request in requests:
            if self._dispatcher.knows(request.name):
                payload = (await self._dispatcher.dispatch(request)).payload
            else:
                error = UnknownToolError(request.name)
                log.warning("%s", error)
                payload = {"error": str(error)}
            self._store.append(
                Turn(
                    role="tool-result",
                    parts=[ToolResultPart(tool_name=request.name, request_id=request.request_id, payload=payload)],
                )
            )
