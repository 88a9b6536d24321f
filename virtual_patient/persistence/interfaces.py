"""virtual_patient.persistence.interfaces

Interfaces for the "save session" collaborator used by the completion gate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Protocol

Transcript = List[Dict[str, Any]]


@dataclass(frozen=True)
class SaveReceipt:
    success: bool
    saved_count: int


class SessionSaver(Protocol):
    async def save(self, transcript: Transcript, elapsed_seconds: int) -> SaveReceipt:
        """Persist a dehydrated transcript. Raises `ExternalServiceError` on failure."""
        ...
