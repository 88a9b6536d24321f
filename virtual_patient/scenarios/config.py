"""virtual_patient.scenarios.config

Read-only scenario configuration.

A scenario file is examiner-authored JSON:

    {
      "id": "htn-follow-up",
      "title": "...",
      "patientName": "Alice Johnson",
      "startingMessage": "Hi...\\nI was told to come by.",
      "personaPrompt": "...",
      "description": "...",
      "patientInfo": "...markdown...",
      "evaluationPrompt": "...",
      "rubric": [{"title": "...", "description": "...", "tasks": [{"title": "...", "points": 5}]}],
      "voiceProfile": "oldFemale"
    }

Editing scenarios is an authoring concern; the session core never mutates them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from virtual_patient.utils.env import get_env

VOICE_PROFILES = ("youngMale", "youngFemale", "oldMale", "oldFemale")

# voiceProfile -> env var holding the ElevenLabs agent id
VOICE_AGENT_ENV = {
    "youngMale": "YOUNG_MALE_VOICE_AGENT_ID",
    "youngFemale": "YOUNG_FEMALE_VOICE_AGENT_ID",
    "oldMale": "OLD_MALE_VOICE_AGENT_ID",
    "oldFemale": "OLD_FEMALE_VOICE_AGENT_ID",
}

_REQUIRED = ("id", "title", "startingMessage", "personaPrompt")


@dataclass(frozen=True)
class RubricTask:
    title: str
    points: float


@dataclass(frozen=True)
class RubricSection:
    title: str
    tasks: Tuple[RubricTask, ...]
    description: str = ""

    @property
    def total_points(self) -> float:
        return sum(t.points for t in self.tasks)


@dataclass(frozen=True)
class ScenarioConfig:
    id: str
    title: str
    starting_message: str
    persona_prompt: str
    description: str = ""
    patient_info: str = ""
    patient_name: str = "the patient"
    evaluation_prompt: str = ""
    rubric: Tuple[RubricSection, ...] = field(default_factory=tuple)
    voice_profile: str = "oldFemale"

    @property
    def total_possible_score(self) -> float:
        return sum(s.total_points for s in self.rubric)

    def voice_agent_id(self) -> Optional[str]:
        return get_env(VOICE_AGENT_ENV[self.voice_profile])


def _rubric_from_json(raw: Any) -> Tuple[RubricSection, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError("Scenario 'rubric' must be a list of sections.")

    sections: List[RubricSection] = []
    for i, sec in enumerate(raw):
        if not isinstance(sec, dict) or not str(sec.get("title", "")).strip():
            raise ValueError(f"Rubric section #{i} must be an object with a 'title'.")
        tasks: List[RubricTask] = []
        for j, task in enumerate(sec.get("tasks") or []):
            if isinstance(task, str):
                # Plain task titles (the older `tasks: string[]` shape) are worth one point.
                tasks.append(RubricTask(title=task, points=1.0))
                continue
            if not isinstance(task, dict) or not str(task.get("title", "")).strip():
                raise ValueError(f"Rubric task #{j} in section '{sec['title']}' must have a 'title'.")
            points = float(task.get("points", 1))
            if points <= 0:
                raise ValueError(f"Rubric task '{task['title']}' must be worth a positive number of points.")
            tasks.append(RubricTask(title=str(task["title"]), points=points))
        if not tasks:
            raise ValueError(f"Rubric section '{sec['title']}' has no tasks.")
        sections.append(RubricSection(title=str(sec["title"]), tasks=tuple(tasks), description=sec.get("description", "") or ""))
    return tuple(sections)


def scenario_from_dict(data: Dict[str, Any]) -> ScenarioConfig:
    missing = [k for k in _REQUIRED if not str(data.get(k, "") or "").strip()]
    if missing:
        raise ValueError(f"Scenario is missing required fields: {', '.join(missing)}")

    voice_profile = data.get("voiceProfile", "oldFemale")
    if voice_profile not in VOICE_PROFILES:
        raise ValueError(f"Unknown voiceProfile {voice_profile!r}; expected one of {', '.join(VOICE_PROFILES)}")

    return ScenarioConfig(
        id=str(data["id"]),
        title=str(data["title"]),
        starting_message=str(data["startingMessage"]),
        persona_prompt=str(data["personaPrompt"]),
        description=data.get("description", "") or "",
        patient_info=data.get("patientInfo", "") or "",
        patient_name=data.get("patientName", "") or "the patient",
        evaluation_prompt=data.get("evaluationPrompt", "") or "",
        rubric=_rubric_from_json(data.get("rubric")),
        voice_profile=voice_profile,
    )


def load_scenario(scenario_path: str | Path) -> ScenarioConfig:
    """Load a scenario JSON from disk."""
    path = Path(scenario_path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return scenario_from_dict(json.load(f))
