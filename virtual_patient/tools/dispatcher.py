"""virtual_patient.tools.dispatcher

Recognizes the patient model's tool calls and synthesizes their results locally,
so a measurement never costs the student a second network round trip.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from virtual_patient.errors import UnknownToolError
from virtual_patient.patient_sim.interfaces import ToolCallRequest
from virtual_patient.tools import blood_pressure, log_book
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ToolInvocationResult:
    tool_name: str
    request_id: str
    payload: Any


class ToolDispatcher:
    """Fixed registry: blood pressure (fresh per call) and home log book (fixed list)."""

    def __init__(self, *, rng: Optional[random.Random] = None, today: Optional[Callable[[], date]] = None) -> None:
        self._rng = rng or random.Random()
        self._today = today or date.today
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            blood_pressure.NAME: lambda _args: blood_pressure.take_blood_pressure(self._rng),
            log_book.NAME: lambda _args: log_book.get_my_log_book(self._today()),
        }

    @property
    def definitions(self) -> List[Dict[str, Any]]:
        return [blood_pressure.DEFINITION, log_book.DEFINITION]

    def knows(self, name: str) -> bool:
        return name in self._handlers

    async def dispatch(self, request: ToolCallRequest) -> ToolInvocationResult:
        handler = self._handlers.get(request.name)
        if handler is None:
            raise UnknownToolError(request.name)
        payload = handler(request.arguments)
        log.info("Tool %s dispatched (request %s)", request.name, request.request_id)
        return ToolInvocationResult(tool_name=request.name, request_id=request.request_id, payload=payload)
