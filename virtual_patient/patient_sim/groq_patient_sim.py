"""virtual_patient.patient_sim.groq_patient_sim

Groq-backed patient simulator.

A thin wrapper around streaming Groq Chat Completions. Tool-call deltas are
accumulated per index and emitted as one `ToolCallRequest` each once the model
finishes the call.
"""

from __future__ import annotations

import json
import os
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from groq import AsyncGroq, GroqError

from virtual_patient.errors import ExternalServiceError
from virtual_patient.patient_sim.interfaces import Done, Fragment, PatientSimConfig, StreamEvent, ToolCallRequest
from virtual_patient.patient_sim.prompts import turns_to_messages
from virtual_patient.state.turns import Turn
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


def _parse_arguments(raw: str) -> Dict[str, Any]:
    if not raw or raw.strip() in ("", "null"):
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("Tool call arguments are not valid JSON: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class _ToolCallBuffer:
    def __init__(self) -> None:
        self.id = ""
        self.name = ""
        self.arguments = ""

    def feed(self, delta: Any) -> None:
        if getattr(delta, "id", None):
            self.id = delta.id
        fn = getattr(delta, "function", None)
        if fn is not None:
            if getattr(fn, "name", None):
                self.name += fn.name
            if getattr(fn, "arguments", None):
                self.arguments += fn.arguments

    def to_request(self) -> ToolCallRequest:
        return ToolCallRequest(name=self.name, request_id=self.id, arguments=_parse_arguments(self.arguments))


class GroqPatientSimulator:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        config: PatientSimConfig = PatientSimConfig(),
        client_factory: Optional[Callable[[], AsyncGroq]] = None,
    ) -> None:
        self._api_key = api_key or os.getenv("GROQ_API_KEY")
        self.config = config
        # A client per turn: Streamlit drives each turn from a fresh event loop.
        self._client_factory = client_factory or (lambda: AsyncGroq(api_key=self._api_key))

    async def stream_turn(
        self,
        prior_turns: Sequence[Turn],
        system_prompt: str,
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        cfg = self.config
        kwargs: Dict[str, Any] = {
            "model": cfg.model,
            "messages": turns_to_messages(prior_turns, system_prompt),
            "temperature": cfg.temperature,
            "top_p": cfg.top_p,
            "max_completion_tokens": cfg.max_completion_tokens,
            "stream": True,
        }
        if cfg.reasoning_effort:
            kwargs["reasoning_effort"] = cfg.reasoning_effort
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        client = self._client_factory()
        pending: Dict[int, _ToolCallBuffer] = {}
        finish_reason: Optional[str] = None
        try:
            stream = await client.chat.completions.create(**kwargs)
            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    if delta is not None and delta.content:
                        yield Fragment(delta.content)
                    for tc in (getattr(delta, "tool_calls", None) or []):
                        pending.setdefault(tc.index, _ToolCallBuffer()).feed(tc)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
            finally:
                await stream.close()
        except GroqError as e:
            log.error("Patient stream failed: %s", e)
            raise ExternalServiceError("groq-chat", str(e)) from e
        finally:
            await client.close()

        for index in sorted(pending):
            yield pending[index].to_request()
        yield Done(finish_reason=finish_reason)
