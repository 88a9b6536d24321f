from __future__ import annotations

from datetime import datetime, timezone

import pytest

from virtual_patient.errors import InvariantViolation
from virtual_patient.state.turn_store import TurnStore, TurnStoreEvent
from virtual_patient.state.turns import (
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Turn,
    normalize_content,
    turn_from_message,
)


def _streaming_assistant(store: TurnStore) -> str:
    return store.append(Turn(role="assistant", streaming=True))


def test_append_keeps_insertion_order_and_ids_stable() -> None:
    store = TurnStore()
    first = store.append(Turn.text("assistant", "Hello"))
    second = store.append(Turn.text("user", "Hi, what brings you in?"))

    ids = [t.id for t in store.snapshot()]
    assert ids == [first, second]
    assert [t.role for t in store] == ["assistant", "user"]
    assert len(store) == 2


def test_update_content_grows_trailing_text_part() -> None:
    store = TurnStore()
    store.append(Turn.text("user", "How are you?"))
    turn_id = _streaming_assistant(store)

    for fragment in ["I'm ", "a bit ", "tired."]:
        store.update_content(turn_id, fragment)
    store.close(turn_id)

    turn = store.get(turn_id)
    assert turn.content == "I'm a bit tired."
    assert turn.parts == [TextPart("I'm a bit tired.")]
    assert turn.streaming is False


def test_non_text_part_is_appended_after_text() -> None:
    store = TurnStore()
    turn_id = _streaming_assistant(store)
    store.update_content(turn_id, "Sure.")
    store.update_content(turn_id, ToolCallPart(tool_name="take_blood_pressure", request_id="call-1"))
    store.update_content(turn_id, " Go ahead.")

    parts = store.get(turn_id).parts
    assert [p.type for p in parts] == ["text", "tool-call", "text"]


def test_closed_turn_cannot_be_updated() -> None:
    store = TurnStore()
    turn_id = _streaming_assistant(store)
    store.update_content(turn_id, "Done")
    store.close(turn_id)

    with pytest.raises(InvariantViolation):
        store.update_content(turn_id, " more")
    assert store.get(turn_id).content == "Done"


def test_only_the_last_assistant_turn_streams() -> None:
    store = TurnStore()
    user_id = store.append(Turn(role="user", streaming=True))
    with pytest.raises(InvariantViolation):
        store.update_content(user_id, "typed")

    with pytest.raises(InvariantViolation):
        store.update_content("missing", "x")


def test_append_refused_while_last_turn_streams() -> None:
    store = TurnStore()
    _streaming_assistant(store)
    with pytest.raises(InvariantViolation):
        store.append(Turn.text("user", "interrupting"))


def test_duplicate_id_is_refused() -> None:
    store = TurnStore()
    turn = Turn.text("user", "hello")
    store.append(turn)
    with pytest.raises(InvariantViolation):
        store.append(turn)


def test_close_is_idempotent() -> None:
    store = TurnStore()
    events = []
    store.subscribe(events.append)
    turn_id = _streaming_assistant(store)
    store.close(turn_id)
    store.close(turn_id)

    assert [e.kind for e in events] == ["append", "close"]


def test_snapshot_is_detached() -> None:
    store = TurnStore()
    turn_id = _streaming_assistant(store)
    store.update_content(turn_id, "Hel")
    snap = store.snapshot()
    store.update_content(turn_id, "lo")

    assert snap[0].content == "Hel"
    assert store.get(turn_id).content == "Hello"


def test_subscribe_and_unsubscribe() -> None:
    store = TurnStore()
    events = []
    unsubscribe = store.subscribe(events.append)
    turn_id = _streaming_assistant(store)
    store.update_content(turn_id, "a")
    unsubscribe()
    store.update_content(turn_id, "b")

    assert events == [
        TurnStoreEvent(kind="append", turn_id=turn_id, index=0),
        TurnStoreEvent(kind="update", turn_id=turn_id, index=0),
    ]


def test_failing_listener_does_not_break_the_store() -> None:
    store = TurnStore()

    def broken(_event: TurnStoreEvent) -> None:
        raise RuntimeError("render failed")

    seen = []
    store.subscribe(broken)
    store.subscribe(seen.append)
    store.append(Turn.text("user", "hi"))

    assert len(store) == 1
    assert len(seen) == 1


def test_has_user_turn() -> None:
    store = TurnStore()
    store.append(Turn.text("assistant", "Hello"))
    assert not store.has_user_turn()
    store.append(Turn.text("user", "Hi"))
    assert store.has_user_turn()


def test_normalize_content_legacy_shapes() -> None:
    assert normalize_content(None) == []
    assert normalize_content("") == []
    assert normalize_content("plain") == [TextPart("plain")]

    parts = normalize_content(
        [
            {"type": "text", "text": "Let me check."},
            {"type": "tool-invocation", "toolName": "get_my_log_book", "toolCallId": "c1", "args": {}},
            {"type": "tool-result", "toolName": "get_my_log_book", "toolCallId": "c1", "result": [1, 2]},
        ]
    )
    assert parts == [
        TextPart("Let me check."),
        ToolCallPart(tool_name="get_my_log_book", request_id="c1", arguments={}),
        ToolResultPart(tool_name="get_my_log_book", request_id="c1", payload=[1, 2]),
    ]

    with pytest.raises(ValueError):
        normalize_content([{"type": "image"}])
    with pytest.raises(ValueError):
        normalize_content(42)


def test_turn_from_message_prefers_parts_and_maps_tool_role() -> None:
    turn = turn_from_message(
        {
            "id": "abc",
            "role": "tool",
            "content": "ignored",
            "parts": [{"type": "tool-result", "toolName": "take_blood_pressure", "requestId": "c9", "payload": {"reading": "145/75 mmHg"}}],
            "createdAt": "2024-05-01T10:00:00+00:00",
        }
    )
    assert turn.id == "abc"
    assert turn.role == "tool-result"
    assert turn.tool_results[0].payload == {"reading": "145/75 mmHg"}
    assert turn.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert turn.streaming is False


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(ValueError):
        Turn.text("narrator", "Once upon a time")


def test_dehydrate() -> None:
    turn = Turn(
        role="tool-result",
        parts=[ToolResultPart(tool_name="take_blood_pressure", request_id="c1", payload={"reading": "144/72 mmHg"})],
    )
    data = turn.dehydrate()

    assert data["id"] == turn.id
    assert data["role"] == "tool-result"
    assert "144/72 mmHg" in data["content"]
    assert data["parts"] == [
        {"type": "tool-result", "toolName": "take_blood_pressure", "requestId": "c1", "payload": {"reading": "144/72 mmHg"}}
    ]
    assert data["createdAt"] == turn.created_at.isoformat()
