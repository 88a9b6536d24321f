"""virtual_patient.persistence.jsonl_saver

Appends completed sessions to a JSON-lines file, one session per line.

The saver is constructed by the entrypoint and passed into each session; there is
no module-level connection or cache.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from virtual_patient.errors import ExternalServiceError
from virtual_patient.persistence.interfaces import SaveReceipt, Transcript
from virtual_patient.utils.logger import get_logger

log = get_logger(__name__)


class JsonlSessionSaver:
    def __init__(self, path: Path, *, scenario_title: Optional[str] = None) -> None:
        self.path = Path(path)
        self.scenario_title = scenario_title

    async def save(self, transcript: Transcript, elapsed_seconds: int) -> SaveReceipt:
        if not isinstance(transcript, list):
            raise ValueError("Transcript must be a list of messages.")

        record: Dict[str, Any] = {
            "sessionId": uuid.uuid4().hex,
            "scenarioTitle": self.scenario_title,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "totalTime": int(elapsed_seconds),
            "messages": transcript,
        }
        try:
            await asyncio.to_thread(self._append, record)
        except OSError as e:
            log.error("Failed to save session to %s: %s", self.path, e)
            raise ExternalServiceError("session-save", str(e)) from e

        log.info("Session saved: %s messages, %ss", len(transcript), elapsed_seconds)
        return SaveReceipt(success=True, saved_count=len(transcript))

    def _append(self, record: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
