"""virtual_patient.errors

Exception taxonomy shared by the session core.

External failures (LLM, voice SDK, save) are raised as `ExternalServiceError` by the
adapters and caught by the boundary components, which turn them into visible state.
`InvariantViolation` marks programming defects and is never caught by the core.
"""

from __future__ import annotations


class VirtualPatientError(Exception):
    """Base class for recoverable errors raised by this package."""


class ExternalServiceError(VirtualPatientError):
    """A network/service call failed (chat stream, evaluation, save, voice)."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class UnknownToolError(VirtualPatientError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class EvaluationAlreadyStarted(VirtualPatientError):
    """The evaluator runs at most once per session."""


class InvariantViolation(AssertionError):
    """Programming defect, e.g. growing a turn that is no longer streaming."""
