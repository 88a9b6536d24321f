"""virtual_patient.evaluation.interfaces

Interfaces and simple types for scenario evaluation.
"""

from __future__ import annotations

import enum
from typing import AsyncIterator, Protocol, Sequence

from virtual_patient.scenarios.config import ScenarioConfig
from virtual_patient.state.turns import Turn


class EvaluationState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class EvaluationBackend(Protocol):
    def stream_evaluation(self, transcript: Sequence[Turn], scenario: ScenarioConfig) -> AsyncIterator[str]:
        """Yield raw JSON text chunks of the evaluation, in order.

        Raises `ExternalServiceError` when the judge call fails.
        """
        ...
