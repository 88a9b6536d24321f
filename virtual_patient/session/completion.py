"""virtual_patient.session.completion

Finalizes a session exactly once, after the student confirms.

A failed save does not trap the student: they get a warning, and the session
is still marked completed.
"""

from __future__ import annotations

import enum
import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Union

from virtual_patient.errors import ExternalServiceError
from virtual_patient.persistence.interfaces import SaveReceipt, SessionSaver
from virtual_patient.state.turns import Turn
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)

CONFIRM_PROMPT = "Are you sure you want to complete the scenario?"
SAVE_FAILED_WARNING = "There was an error saving the session data, but the scenario will still be completed."

Confirm = Callable[[str], Union[bool, Awaitable[bool]]]


class CompletionState(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CompletionResult:
    completed: bool
    receipt: Optional[SaveReceipt] = None
    warning: str = ""


class CompletionGate:
    def __init__(self, saver: SessionSaver, *, on_complete: Optional[Callable[[], None]] = None) -> None:
        self._saver = saver
        self._on_complete = on_complete
        self._result: Optional[CompletionResult] = None
        self._saving = False
        self.state = CompletionState.OPEN

    @property
    def is_completed(self) -> bool:
        return self.state == CompletionState.COMPLETED

    async def complete(self, transcript: Sequence[Turn], timer_value: int, *, confirm: Confirm) -> CompletionResult:
        """Ask for confirmation, persist once, and close the session."""
        if self._result is not None:
            return self._result

        answer = confirm(CONFIRM_PROMPT)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            return CompletionResult(completed=False)
        # Re-check: another confirm may have gone through while we awaited the dialog.
        if self._result is not None:
            return self._result
        if self._saving:
            return CompletionResult(completed=False)
        self._saving = True

        receipt: Optional[SaveReceipt] = None
        warning = ""
        try:
            receipt = await self._saver.save([t.dehydrate() for t in transcript], timer_value)
        except ExternalServiceError as e:
            log.warning("Completing session without a saved copy: %s", e)
            warning = SAVE_FAILED_WARNING

        self.state = CompletionState.COMPLETED
        self._result = CompletionResult(completed=True, receipt=receipt, warning=warning)
        if self._on_complete is not None:
            self._on_complete()
        return self._result
