"""virtual_patient.state.turns

Turn and content-part types.

Content is a tagged variant (`type` field) so renderers, the evaluator and the
persistence layer never guess whether a message is a plain string or a parts list.
Older shapes are converted once, in `normalize_content`.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Union

Role = Literal["user", "assistant", "system", "tool-result"]
ROLES = ("user", "assistant", "system", "tool-result")

TurnId = str


@dataclass(frozen=True)
class TextPart:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolCallPart:
    tool_name: str
    request_id: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    type: Literal["tool-call"] = "tool-call"


@dataclass(frozen=True)
class ToolResultPart:
    tool_name: str
    request_id: str
    payload: Any = None
    type: Literal["tool-result"] = "tool-result"


ContentPart = Union[TextPart, ToolCallPart, ToolResultPart]


def new_turn_id() -> TurnId:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Turn:
    """One message unit in a conversation.

    Only the TurnStore mutates `parts` (and only while `streaming` is True).
    """

    role: Role
    parts: List[ContentPart] = field(default_factory=list)
    id: TurnId = field(default_factory=new_turn_id)
    created_at: datetime = field(default_factory=utcnow)
    streaming: bool = False

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown turn role: {self.role!r}")

    @classmethod
    def text(cls, role: Role, text: str, **kwargs: Any) -> "Turn":
        return cls(role=role, parts=[TextPart(text)], **kwargs)

    @property
    def content(self) -> str:
        """Plain text of the turn (text parts concatenated in order)."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> List[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    def copy(self) -> "Turn":
        # Parts are frozen; copying the list is enough to detach the snapshot.
        return Turn(
            role=self.role,
            parts=list(self.parts),
            id=self.id,
            created_at=self.created_at,
            streaming=self.streaming,
        )

    def dehydrate(self) -> Dict[str, Any]:
        """JSON-ready copy handed to the persistence collaborator."""
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content or _describe_non_text(self),
            "parts": [_part_to_dict(p) for p in self.parts],
            "createdAt": self.created_at.isoformat(),
        }


def _describe_non_text(turn: Turn) -> str:
    chunks: List[str] = []
    for p in turn.tool_calls:
        chunks.append(f"[tool call {p.tool_name}]")
    for p in turn.tool_results:
        chunks.append(f"[tool {p.tool_name}] {json.dumps(p.payload, ensure_ascii=False, default=str)}")
    return " ".join(chunks)


def _part_to_dict(part: ContentPart) -> Dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": part.type, "text": part.text}
    if isinstance(part, ToolCallPart):
        return {"type": part.type, "toolName": part.tool_name, "requestId": part.request_id, "arguments": part.arguments}
    return {"type": part.type, "toolName": part.tool_name, "requestId": part.request_id, "payload": part.payload}


def _part_from_dict(raw: Dict[str, Any]) -> ContentPart:
    kind = raw.get("type", "text")
    if kind == "text":
        return TextPart(str(raw.get("text", "")))
    if kind in ("tool-call", "tool-invocation"):
        return ToolCallPart(
            tool_name=str(raw.get("toolName") or raw.get("tool_name") or ""),
            request_id=str(raw.get("requestId") or raw.get("toolCallId") or raw.get("request_id") or ""),
            arguments=dict(raw.get("arguments") or raw.get("args") or {}),
        )
    if kind == "tool-result":
        return ToolResultPart(
            tool_name=str(raw.get("toolName") or raw.get("tool_name") or ""),
            request_id=str(raw.get("requestId") or raw.get("toolCallId") or raw.get("request_id") or ""),
            payload=raw.get("payload", raw.get("result")),
        )
    raise ValueError(f"Unsupported content part type: {kind!r}")


def normalize_content(content: Any) -> List[ContentPart]:
    """Convert any legacy content shape into a list of content parts.

    Accepts:
      - a plain string (the old `{"role", "content": "..."}` messages)
      - a list of part dicts (`{"type": "text", "text": ...}`, tool parts)
      - a list of ContentPart objects
      - None (empty content)
    """
    if content is None:
        return []
    if isinstance(content, str):
        return [TextPart(content)] if content else []
    if isinstance(content, (TextPart, ToolCallPart, ToolResultPart)):
        return [content]
    if isinstance(content, list):
        parts: List[ContentPart] = []
        for item in content:
            if isinstance(item, (TextPart, ToolCallPart, ToolResultPart)):
                parts.append(item)
            elif isinstance(item, str):
                parts.append(TextPart(item))
            elif isinstance(item, dict):
                parts.append(_part_from_dict(item))
            else:
                raise ValueError(f"Unsupported content item: {item!r}")
        return parts
    raise ValueError(f"Unsupported content shape: {type(content).__name__}")


def turn_from_message(message: Dict[str, Any]) -> Turn:
    """Build a closed Turn from a legacy message dict.

    Both `content` and `parts` keys are honored; `parts` wins when both are present.
    """
    role = message.get("role", "user")
    if role == "tool":
        role = "tool-result"
    raw = message.get("parts") if message.get("parts") is not None else message.get("content")
    kwargs: Dict[str, Any] = {}
    if message.get("id"):
        kwargs["id"] = str(message["id"])
    created = message.get("createdAt") or message.get("created_at")
    if isinstance(created, datetime):
        kwargs["created_at"] = created
    elif isinstance(created, str):
        kwargs["created_at"] = datetime.fromisoformat(created)
    return Turn(role=role, parts=normalize_content(raw), **kwargs)

