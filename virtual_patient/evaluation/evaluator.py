"""virtual_patient.evaluation.evaluator

One-shot evaluation of a finished transcript.

This is the single "integration point" the host should call. It owns the
not_started -> in_progress -> complete state, parses the judge's streamed JSON
into partial `Evaluation` objects, and applies deterministic totals at the end.
"""

from __future__ import annotations

import json
import re
from typing import AsyncIterator, Optional, Sequence

import pydantic_core
from pydantic import ValidationError

from virtual_patient.errors import EvaluationAlreadyStarted, ExternalServiceError, InvariantViolation
from virtual_patient.evaluation.interfaces import EvaluationBackend, EvaluationState
from virtual_patient.evaluation.schema import Evaluation
from virtual_patient.evaluation.scoring import finalize_evaluation
from virtual_patient.scenarios.config import ScenarioConfig
from virtual_patient.state.turns import Turn
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)

_ORDER = {EvaluationState.NOT_STARTED: 0, EvaluationState.IN_PROGRESS: 1, EvaluationState.COMPLETE: 2}

# A number at the very end of the buffer may still be growing ("1" -> "12").
_TRAILING_NUMBER = re.compile(r"-?[0-9][0-9.eE+\-]*\s*$")


def parse_partial(buffer: str) -> Optional[Evaluation]:
    """Best-effort parse of an incomplete JSON document into a partial Evaluation."""
    text = _TRAILING_NUMBER.sub("", buffer)
    if not text.strip():
        return None
    try:
        data = pydantic_core.from_json(text, allow_partial=True)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return Evaluation.model_validate(data)
    except ValidationError:
        return None


class Evaluator:
    def __init__(self, backend: EvaluationBackend) -> None:
        self._backend = backend
        self.state = EvaluationState.NOT_STARTED
        self.latest: Optional[Evaluation] = None
        self.last_error = ""

    @property
    def can_evaluate(self) -> bool:
        return self.state == EvaluationState.NOT_STARTED

    def _advance(self, new_state: EvaluationState) -> None:
        if _ORDER[new_state] <= _ORDER[self.state]:
            raise InvariantViolation(f"Evaluation state cannot go from {self.state.value} to {new_state.value}")
        self.state = new_state

    def evaluate(self, transcript: Sequence[Turn], scenario: ScenarioConfig) -> AsyncIterator[Evaluation]:
        """Start the evaluation and return the stream of partial results.

        The trigger is spent as soon as this is called, whether or not the stream is
        consumed. If the judge fails, the state stays `in_progress` and the stream
        simply ends without a complete result.
        """
        if not self.can_evaluate:
            raise EvaluationAlreadyStarted("This session has already been evaluated.")
        if not any(t.role == "user" for t in transcript):
            raise ValueError("Cannot evaluate a transcript without any student turns.")
        self._advance(EvaluationState.IN_PROGRESS)
        return self._run(tuple(transcript), scenario)

    async def _run(self, transcript: Sequence[Turn], scenario: ScenarioConfig) -> AsyncIterator[Evaluation]:
        buffer = ""
        try:
            async for chunk in self._backend.stream_evaluation(transcript, scenario):
                buffer += chunk
                partial = parse_partial(buffer)
                if partial is not None and partial != self.latest:
                    self.latest = partial
                    yield partial
        except ExternalServiceError as e:
            self.last_error = str(e)
            log.error("Evaluation stalled: %s", e)
            return

        try:
            final = Evaluation.model_validate(json.loads(buffer))
        except (json.JSONDecodeError, ValidationError) as e:
            self.last_error = f"Judge returned an invalid evaluation: {e}"
            log.error("Evaluation stalled: %s", self.last_error)
            return

        self.latest = finalize_evaluation(final, scenario)
        self._advance(EvaluationState.COMPLETE)
        log.info(
            "Evaluation complete: %s/%s",
            self.latest.overall_score,
            self.latest.total_possible_score,
        )
        yield self.latest
