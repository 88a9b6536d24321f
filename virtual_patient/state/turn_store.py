"""virtual_patient.state.turn_store

Ordered, append-only log of conversation turns for one session.

This module stays free of Streamlit so it can be tested on its own; the host keeps
the store object in `st.session_state` (see `session_store`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Tuple, Union

from virtual_patient.errors import InvariantViolation
from virtual_patient.state.turns import ContentPart, TextPart, Turn, TurnId
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class TurnStoreEvent:
    kind: str  # "append" | "update" | "close"
    turn_id: TurnId
    index: int


Listener = Callable[[TurnStoreEvent], None]
Fragment = Union[str, ContentPart]


class TurnStore:
    def __init__(self) -> None:
        self._turns: List[Turn] = []
        self._index: Dict[TurnId, int] = {}
        self._listeners: List[Listener] = []

    # ----------------------------
    # Writes
    # ----------------------------
    def append(self, turn: Turn) -> TurnId:
        """Append a turn. Turns appended with `streaming=True` stay open for `update_content`."""
        if turn.id in self._index:
            raise InvariantViolation(f"Turn {turn.id} was already appended")
        last = self._turns[-1] if self._turns else None
        if last is not None and last.streaming:
            raise InvariantViolation(f"Cannot append while turn {last.id} is still streaming")

        self._turns.append(turn)
        self._index[turn.id] = len(self._turns) - 1
        self._emit("append", turn.id)
        return turn.id

    def update_content(self, turn_id: TurnId, fragment: Fragment) -> None:
        """Grow the open assistant turn. Text extends the trailing text part."""
        turn = self._open_assistant_turn(turn_id)

        part = TextPart(fragment) if isinstance(fragment, str) else fragment
        if isinstance(part, TextPart) and turn.parts and isinstance(turn.parts[-1], TextPart):
            turn.parts[-1] = TextPart(turn.parts[-1].text + part.text)
        else:
            turn.parts.append(part)
        self._emit("update", turn_id)

    def close(self, turn_id: TurnId) -> None:
        """Freeze a streaming turn. Closing an already closed turn is a no-op."""
        idx = self._index.get(turn_id)
        if idx is None:
            raise InvariantViolation(f"Unknown turn: {turn_id}")
        turn = self._turns[idx]
        if not turn.streaming:
            return
        turn.streaming = False
        self._emit("close", turn_id)

    def _open_assistant_turn(self, turn_id: TurnId) -> Turn:
        idx = self._index.get(turn_id)
        if idx is None:
            raise InvariantViolation(f"Unknown turn: {turn_id}")
        turn = self._turns[idx]
        if idx != len(self._turns) - 1:
            raise InvariantViolation(f"Turn {turn_id} is not the most recent turn")
        if turn.role != "assistant":
            raise InvariantViolation(f"Turn {turn_id} has role {turn.role!r}; only assistant turns stream")
        if not turn.streaming:
            raise InvariantViolation(f"Turn {turn_id} is closed")
        return turn

    # ----------------------------
    # Reads
    # ----------------------------
    def snapshot(self) -> Tuple[Turn, ...]:
        """Ordered, detached copies for renderers, the evaluator and the completion gate."""
        return tuple(t.copy() for t in self._turns)

    def get(self, turn_id: TurnId) -> Turn:
        idx = self._index.get(turn_id)
        if idx is None:
            raise KeyError(turn_id)
        return self._turns[idx].copy()

    def has_user_turn(self) -> bool:
        return any(t.role == "user" for t in self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.snapshot())

    # ----------------------------
    # Change events
    # ----------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns the matching unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, turn_id: TurnId) -> None:
        event = TurnStoreEvent(kind=kind, turn_id=turn_id, index=self._index[turn_id])
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Turn store listener failed on %s event", kind)
