"""
groq_judge.py

Calls Groq to grade a student's conversation against the scenario rubric, streaming
back JSON that matches `schema.build_evaluation_schema()`.

Depends on:
  - schema.py (build_response_format, rubric_outline)

Groq docs used by this file:
  - Chat Completions parameters: response_format (json_schema/json_object), seed, temperature, stream
  - Structured Outputs strict mode requirements (required fields + additionalProperties:false)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from groq import AsyncGroq, BadRequestError, GroqError

from virtual_patient.errors import ExternalServiceError
from virtual_patient.evaluation.schema import build_response_format, rubric_outline
from virtual_patient.scenarios.config import ScenarioConfig
from virtual_patient.state.turns import Turn
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


# ----------------------------
# Config
# ----------------------------
@dataclass(frozen=True)
class GroqJudgeConfig:
    model: str = "openai/gpt-oss-120b"
    temperature: float = 0.0
    seed: Optional[int] = 42
    max_completion_tokens: int = 4096
    strict_schema: bool = True  # try strict json_schema mode first
    stream: bool = True  # falls back to a single chunk when streaming is rejected


# ----------------------------
# Transcript formatting
# ----------------------------
def build_numbered_turns(transcript: Sequence[Turn]) -> List[Dict[str, Any]]:
    """
    Convert session turns to numbered turns for the judge.

    user -> student, assistant -> patient, tool-result -> tool (so the judge can see
    that a measurement really happened). System turns are left out.
    """
    turns: List[Dict[str, Any]] = []
    t = 1
    for turn in transcript:
        if turn.role == "user":
            role, content = "student", turn.content
        elif turn.role == "assistant":
            role, content = "patient", turn.content
        elif turn.role == "tool-result":
            role = "tool"
            content = " ".join(
                f"[tool {r.tool_name}] {json.dumps(r.payload, ensure_ascii=False, default=str)}" for r in turn.tool_results
            )
        else:
            continue
        if not content:
            continue
        turns.append({"turn": t, "role": role, "content": content})
        t += 1
    return turns


# ----------------------------
# Prompting
# ----------------------------
def build_messages(scenario: ScenarioConfig, transcript: Sequence[Turn]) -> List[Dict[str, str]]:
    """
    Builds the messages payload for the judge model.

    The user message is a JSON object containing the rubric, the numbered turns and the
    scenario context. Using JSON in the user message reduces ambiguity.
    """
    system = (
        "You are a strict pharmacy OSCE examiner grading a student's conversation with a simulated patient.\n"
        "Use ONLY the provided conversation turns as evidence. Do NOT assume unstated facts.\n"
        "Grade every rubric task in the order given, keeping section and task titles unchanged.\n"
        "A task's score must be between 0 and its totalPoints.\n"
        "Give concrete feedbackItems that cite what the student said or missed.\n"
        "Return only the JSON that matches the provided schema."
    )

    user_payload = {
        "scenario": {
            "title": scenario.title,
            "description": scenario.description,
            "patient": scenario.patient_name,
        },
        "evaluation_instructions": scenario.evaluation_prompt,
        "rubric": rubric_outline(scenario),
        "conversation_turns": build_numbered_turns(transcript),
    }

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": json.dumps(user_payload, ensure_ascii=False)},
    ]


# ----------------------------
# Calling Groq
# ----------------------------
class GroqEvaluationBackend:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        config: GroqJudgeConfig = GroqJudgeConfig(),
        client_factory: Optional[Callable[[], AsyncGroq]] = None,
    ) -> None:
        self._api_key = api_key or os.getenv("GROQ_API_KEY")
        self.config = config
        self._client_factory = client_factory or (lambda: AsyncGroq(api_key=self._api_key))

    async def stream_evaluation(self, transcript: Sequence[Turn], scenario: ScenarioConfig) -> AsyncIterator[str]:
        cfg = self.config
        messages = build_messages(scenario, transcript)

        # Prefer strict schema when supported; fall back to json_object mode (valid JSON,
        # not guaranteed schema adherence), then to a non-streamed call.
        attempts: List[Dict[str, Any]] = []
        if cfg.strict_schema:
            attempts.append({"response_format": build_response_format(strict=True), "stream": cfg.stream})
        attempts.append({"response_format": {"type": "json_object"}, "stream": cfg.stream})
        if cfg.stream:
            attempts.append({"response_format": {"type": "json_object"}, "stream": False})

        client = self._client_factory()
        try:
            for i, attempt in enumerate(attempts):
                yielded = False
                try:
                    async for chunk in self._call(client, messages, **attempt):
                        yielded = True
                        yield chunk
                    return
                except BadRequestError as e:
                    if yielded or i == len(attempts) - 1:
                        raise
                    log.warning("Judge rejected %s (stream=%s): %s", attempt["response_format"]["type"], attempt["stream"], e)
        except GroqError as e:
            log.error("Evaluation call failed: %s", e)
            raise ExternalServiceError("groq-evaluation", str(e)) from e
        finally:
            await client.close()

    async def _call(
        self,
        client: AsyncGroq,
        messages: List[Dict[str, str]],
        *,
        response_format: Dict[str, Any],
        stream: bool,
    ) -> AsyncIterator[str]:
        cfg = self.config
        resp = await client.chat.completions.create(
            model=cfg.model,
            messages=messages,
            temperature=cfg.temperature,
            seed=cfg.seed,
            response_format=response_format,
            max_completion_tokens=cfg.max_completion_tokens,
            stream=stream,
        )
        if not stream:
            yield resp.choices[0].message.content or ""
            return
        try:
            async for chunk in resp:
                if chunk.choices and chunk.choices[0].delta and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await resp.close()
