"""virtual_patient.evaluation.schema

Evaluation models and the Structured Outputs schema sent to the judge.

Every field is optional: while the judge is still generating, `None` means
"not computed yet", which is different from a score of 0.

Groq Structured Outputs expects:
response_format = {"type": "json_schema", "json_schema": {"name": "...", "strict": True, "schema": <JSON Schema dict>}}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from virtual_patient.scenarios.config import ScenarioConfig


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EvaluationTask(_WireModel):
    title: Optional[str] = None
    score: Optional[float] = None
    total_points: Optional[float] = Field(default=None, alias="totalPoints")
    feedback_items: Optional[List[str]] = Field(default=None, alias="feedbackItems")


class EvaluationSection(_WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tasks: Optional[List[EvaluationTask]] = None


class Evaluation(_WireModel):
    sections: Optional[List[EvaluationSection]] = None
    overall_score: Optional[float] = Field(default=None, alias="overallScore")
    total_possible_score: Optional[float] = Field(default=None, alias="totalPossibleScore")
    summary: Optional[List[str]] = None

    @property
    def is_scored(self) -> bool:
        return self.overall_score is not None and self.total_possible_score is not None

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict with unknown fields left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


def build_evaluation_schema() -> Dict[str, Any]:
    """JSON Schema (strict-mode compatible) for a complete evaluation."""
    task_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "score": {"type": "number"},
            "totalPoints": {"type": "number"},
            "feedbackItems": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["title", "score", "totalPoints", "feedbackItems"],
        "additionalProperties": False,
    }
    section_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "description": {"type": "string"},
            "tasks": {"type": "array", "items": task_schema},
        },
        "required": ["title", "description", "tasks"],
        "additionalProperties": False,
    }
    return {
        "type": "object",
        "properties": {
            "sections": {"type": "array", "items": section_schema},
            "overallScore": {"type": "number"},
            "totalPossibleScore": {"type": "number"},
            "summary": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["sections", "overallScore", "totalPossibleScore", "summary"],
        "additionalProperties": False,
    }


def build_response_format(name: str = "scenario_evaluation", strict: bool = True) -> Dict[str, Any]:
    """Groq response_format payload for Structured Outputs."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "strict": bool(strict),
            "schema": build_evaluation_schema(),
        },
    }


def rubric_outline(scenario: ScenarioConfig) -> List[Dict[str, Any]]:
    """Rubric as sent to the judge: section titles, descriptions and task points."""
    return [
        {
            "title": section.title,
            "description": section.description,
            "tasks": [{"title": t.title, "totalPoints": t.points} for t in section.tasks],
        }
        for section in scenario.rubric
    ]
