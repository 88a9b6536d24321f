from __future__ import annotations

import pytest

from conftest import FakeEvaluationBackend
from virtual_patient.errors import EvaluationAlreadyStarted, ExternalServiceError, InvariantViolation
from virtual_patient.evaluation.evaluator import Evaluator, parse_partial
from virtual_patient.evaluation.interfaces import EvaluationState
from virtual_patient.evaluation.schema import Evaluation, EvaluationSection, EvaluationTask
from virtual_patient.evaluation.scoring import finalize_evaluation
from virtual_patient.scenarios.config import scenario_from_dict
from virtual_patient.state.turns import Turn

TRANSCRIPT = (
    Turn.text("assistant", "Hello!"),
    Turn.text("user", "Hi, I'm the pharmacist. How can I help?"),
    Turn.text("assistant", "It's about my blood pressure pills."),
)

CHUNKS = [
    '{"sections": [{"title": "History taking", "description": "Info", "tasks": [{"title": "Introduces self"',
    ', "score": 2, "totalPoints": 2, "feedbackItems": ["Clear introduction"]}]}, ',
    '{"title": "Assessment and counselling", "description": "Measurements", "tasks": [{"title": "Checks underst',
    'anding and invites questions", "score": 1, "totalPoints": 2, "feedbackItems": []}]}], ',
    '"overallScore": 50, "totalPossibleScore": 2, "summary": ["Solid start"]}',
]


@pytest.mark.asyncio
async def test_streams_partials_then_final_totals(scenario) -> None:
    evaluator = Evaluator(FakeEvaluationBackend(CHUNKS))
    states = []
    partials = []

    async for partial in evaluator.evaluate(TRANSCRIPT, scenario):
        states.append(evaluator.state)
        partials.append(partial)

    first_task = partials[0].sections[0].tasks[0]
    assert first_task.title == "Introduces self"
    assert first_task.score is None
    assert partials[0].overall_score is None

    final = partials[-1]
    assert final.overall_score == 3
    assert final.total_possible_score == 20
    assert final.summary == ["Solid start"]

    assert states[0] == EvaluationState.IN_PROGRESS
    assert states[-1] == EvaluationState.COMPLETE
    assert evaluator.state == EvaluationState.COMPLETE
    assert evaluator.latest == final


@pytest.mark.asyncio
async def test_is_one_shot(scenario) -> None:
    backend = FakeEvaluationBackend(CHUNKS)
    evaluator = Evaluator(backend)
    async for _ in evaluator.evaluate(TRANSCRIPT, scenario):
        pass

    with pytest.raises(EvaluationAlreadyStarted):
        evaluator.evaluate(TRANSCRIPT, scenario)
    assert backend.calls == 1


def test_trigger_is_spent_even_if_not_consumed(scenario) -> None:
    evaluator = Evaluator(FakeEvaluationBackend(CHUNKS))
    evaluator.evaluate(TRANSCRIPT, scenario)

    assert evaluator.state == EvaluationState.IN_PROGRESS
    assert not evaluator.can_evaluate
    with pytest.raises(EvaluationAlreadyStarted):
        evaluator.evaluate(TRANSCRIPT, scenario)


def test_requires_a_user_turn(scenario) -> None:
    evaluator = Evaluator(FakeEvaluationBackend(CHUNKS))
    with pytest.raises(ValueError):
        evaluator.evaluate((Turn.text("assistant", "Hello!"),), scenario)
    assert evaluator.state == EvaluationState.NOT_STARTED


@pytest.mark.asyncio
async def test_failure_stays_in_progress(scenario) -> None:
    backend = FakeEvaluationBackend(CHUNKS[:1], error=ExternalServiceError("groq-evaluation", "timeout"))
    evaluator = Evaluator(backend)

    partials = [p async for p in evaluator.evaluate(TRANSCRIPT, scenario)]

    assert partials
    assert evaluator.state == EvaluationState.IN_PROGRESS
    assert "timeout" in evaluator.last_error
    assert not evaluator.can_evaluate


@pytest.mark.asyncio
async def test_truncated_json_stays_in_progress(scenario) -> None:
    evaluator = Evaluator(FakeEvaluationBackend(CHUNKS[:2]))

    async for _ in evaluator.evaluate(TRANSCRIPT, scenario):
        pass

    assert evaluator.state == EvaluationState.IN_PROGRESS
    assert evaluator.last_error


def test_state_cannot_move_backwards() -> None:
    evaluator = Evaluator(FakeEvaluationBackend([]))
    evaluator._advance(EvaluationState.IN_PROGRESS)
    with pytest.raises(InvariantViolation):
        evaluator._advance(EvaluationState.NOT_STARTED)


def test_parse_partial_hides_growing_numbers() -> None:
    assert parse_partial("") is None
    growing = parse_partial('{"overallScore": 1')
    assert growing is None or growing.overall_score is None
    assert parse_partial('{"overallScore": 12, "summary": []}').overall_score == 12
    assert parse_partial("[1, 2") is None


def test_finalize_fills_missing_points_and_clamps(scenario) -> None:
    evaluation = Evaluation(
        sections=[
            EvaluationSection(
                title="History taking",
                tasks=[
                    EvaluationTask(title="Introduces self", score=5),
                    EvaluationTask(title="Medication history", score=-1, total_points=4),
                    EvaluationTask(title="Side effects", score=3, total_points=4, feedback_items=["Found the cough"]),
                ],
            )
        ],
        overall_score=99,
    )

    final = finalize_evaluation(evaluation, scenario)
    tasks = final.sections[0].tasks

    assert [t.score for t in tasks] == [2, 0, 3]
    assert [t.total_points for t in tasks] == [2, 4, 4]
    assert tasks[0].feedback_items == []
    assert tasks[2].feedback_items == ["Found the cough"]
    assert final.overall_score == 5
    assert final.total_possible_score == 20
    assert final.summary == []


def test_finalize_ignores_inflated_judge_maxima(scenario) -> None:
    evaluation = Evaluation(
        sections=[
            EvaluationSection(
                title="History taking",
                tasks=[EvaluationTask(title="Introduces self", score=100, total_points=100)],
            )
        ],
        overall_score=100,
        total_possible_score=100,
    )

    final = finalize_evaluation(evaluation, scenario)

    task = final.sections[0].tasks[0]
    assert task.title == "Introduces self and confirms the patient's identity"
    assert (task.score, task.total_points) == (2, 2)
    assert final.overall_score == 2
    assert final.total_possible_score == 20
    assert final.overall_score <= final.total_possible_score


def test_finalize_scores_omitted_sections_as_zero(scenario) -> None:
    evaluation = Evaluation(
        sections=[
            EvaluationSection(
                title="Assessment and counselling",
                tasks=[EvaluationTask(title="Checks understanding and invites questions", score=2, total_points=2)],
            )
        ],
        summary=["Good wrap-up"],
    )

    final = finalize_evaluation(evaluation, scenario)

    assert [s.title for s in final.sections] == ["History taking", "Assessment and counselling"]
    history, counselling = final.sections
    assert [t.score for t in history.tasks] == [0, 0, 0]
    assert [t.total_points for t in history.tasks] == [2, 4, 4]
    assert history.description == "Information gathering before making recommendations."
    assert [t.score for t in counselling.tasks] == [0, 0, 2]
    assert final.overall_score == 2
    assert final.total_possible_score == 20
    assert final.summary == ["Good wrap-up"]


def test_finalize_without_rubric_keeps_judge_maxima() -> None:
    config = scenario_from_dict({"id": "s1", "title": "Cough", "startingMessage": "Hello", "personaPrompt": "You are Bob."})
    evaluation = Evaluation(
        sections=[EvaluationSection(title="A", tasks=[EvaluationTask(title="t", score=7, total_points=5)])]
    )

    final = finalize_evaluation(evaluation, config)

    assert final.sections[0].tasks[0].score == 5
    assert (final.overall_score, final.total_possible_score) == (5, 5)


@pytest.mark.asyncio
async def test_partials_across_a_section_boundary(scenario) -> None:
    evaluator = Evaluator(FakeEvaluationBackend(CHUNKS))

    partials = [p async for p in evaluator.evaluate(TRANSCRIPT, scenario)]

    streaming = partials[:-1]
    two_sections = [p for p in streaming if p.sections and len(p.sections) == 2]
    assert len(two_sections) >= 2
    first_seen = two_sections[0]
    history = first_seen.sections[0]
    assert history.title == "History taking"
    assert history.tasks[0].score == 2
    assert history.tasks[0].feedback_items == ["Clear introduction"]
    assert first_seen.sections[1].title == "Assessment and counselling"
    assert all(t.score is None for t in first_seen.sections[1].tasks or [])

    completed = two_sections[1].sections[1].tasks[0]
    assert completed.title == "Checks understanding and invites questions"
    assert completed.score == 1
    assert two_sections[1].summary is None

    final = partials[-1]
    assert [t.score for t in final.sections[1].tasks] == [0, 0, 1]


def test_wire_format_uses_camel_case() -> None:
    evaluation = Evaluation.model_validate(
        {"sections": [{"title": "A", "tasks": [{"title": "t", "totalPoints": 2, "feedbackItems": []}]}], "overallScore": 1}
    )
    wire = evaluation.to_wire()
    assert wire["overallScore"] == 1
    assert wire["sections"][0]["tasks"][0]["totalPoints"] == 2
    assert "totalPossibleScore" not in wire
