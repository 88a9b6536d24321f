"""virtual_patient.evaluation.scoring

Deterministic totals for a finished evaluation.

The scenario rubric is authoritative: every rubric section and task appears in the
final evaluation and task maxima come from the rubric. Judge scores are clamped
into range, and tasks the judge left out are scored 0, so
`overallScore <= totalPossibleScore` holds whatever the model wrote.

This file DOES NOT call any LLM.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, TypeVar

from virtual_patient.evaluation.schema import Evaluation, EvaluationSection, EvaluationTask
from virtual_patient.scenarios.config import RubricSection, ScenarioConfig

_T = TypeVar("_T", EvaluationSection, EvaluationTask)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _norm(title: Optional[str]) -> str:
    return " ".join((title or "").lower().split())


def _match(items: Sequence[_T], titles: Sequence[str], index: int) -> Optional[_T]:
    """Judge entry for rubric entry `index`: same title first, then same position.

    A positional match is skipped when its title names a different rubric entry.
    """
    wanted = _norm(titles[index])
    for item in items:
        if _norm(item.title) == wanted:
            return item
    if index < len(items) and _norm(items[index].title) not in {_norm(t) for t in titles}:
        return items[index]
    return None


def _finalize_section(rubric_section: RubricSection, judged: Optional[EvaluationSection]) -> EvaluationSection:
    judged_tasks = (judged.tasks or []) if judged is not None else []
    titles = [t.title for t in rubric_section.tasks]
    tasks: List[EvaluationTask] = []
    for ti, rubric_task in enumerate(rubric_section.tasks):
        task = _match(judged_tasks, titles, ti)
        score = task.score if task is not None and task.score is not None else 0.0
        tasks.append(
            EvaluationTask(
                title=rubric_task.title,
                score=_clamp(score, 0.0, rubric_task.points),
                total_points=rubric_task.points,
                feedback_items=(task.feedback_items if task is not None else None) or [],
            )
        )
    description = (judged.description if judged is not None else None) or rubric_section.description
    return EvaluationSection(title=rubric_section.title, description=description, tasks=tasks)


def _finalize_unrubricked(evaluation: Evaluation) -> List[EvaluationSection]:
    # Scenarios without a rubric: the judge's own maxima are all there is.
    sections: List[EvaluationSection] = []
    for section in evaluation.sections or []:
        tasks = []
        for task in section.tasks or []:
            total = max(task.total_points or 0.0, 0.0)
            tasks.append(
                task.model_copy(
                    update={
                        "score": _clamp(task.score or 0.0, 0.0, total),
                        "total_points": total,
                        "feedback_items": task.feedback_items or [],
                    }
                )
            )
        sections.append(section.model_copy(update={"tasks": tasks}))
    return sections


def finalize_evaluation(evaluation: Evaluation, scenario: ScenarioConfig) -> Evaluation:
    """Align the judge output with the rubric, clamp scores and recompute totals."""
    if scenario.rubric:
        judged = evaluation.sections or []
        titles = [s.title for s in scenario.rubric]
        sections = [
            _finalize_section(rubric_section, _match(judged, titles, si))
            for si, rubric_section in enumerate(scenario.rubric)
        ]
    else:
        sections = _finalize_unrubricked(evaluation)

    overall = sum(t.score or 0.0 for s in sections for t in s.tasks or [])
    possible = sum(t.total_points or 0.0 for s in sections for t in s.tasks or [])

    return evaluation.model_copy(
        update={
            "sections": sections,
            "overall_score": round(overall, 2),
            "total_possible_score": round(possible, 2),
            "summary": evaluation.summary or [],
        }
    )
