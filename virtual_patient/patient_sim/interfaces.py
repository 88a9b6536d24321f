"""virtual_patient.patient_sim.interfaces

Interfaces for patient simulation providers.

The session core only sees `PatientStreamer`, so Groq can be swapped for another
backend (or a scripted fake in tests) without touching the controller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Union

from virtual_patient.state.turns import Turn


@dataclass(frozen=True)
class PatientSimConfig:
    model: str = "openai/gpt-oss-120b"
    temperature: float = 0.7
    max_completion_tokens: int = 2048
    top_p: float = 1.0
    reasoning_effort: Optional[str] = None


@dataclass(frozen=True)
class Fragment:
    text: str


@dataclass(frozen=True)
class ToolCallRequest:
    name: str
    request_id: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Done:
    finish_reason: Optional[str] = None


StreamEvent = Union[Fragment, ToolCallRequest, Done]


class PatientStreamer(Protocol):
    def stream_turn(
        self,
        prior_turns: Sequence[Turn],
        system_prompt: str,
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn as fragments and/or tool-call requests, ending with Done.

        Implementations raise `ExternalServiceError` on network/service failure.
        """
        ...
