import uuid
from decimal import Decimal

import pytest

from quizzer.core.errors import ConfigurationError, DataIntegrityError, ValidationError
from quizzer.models.orm import AnswerOption, Question
from quizzer.services.scoring import (
    SubmittedAnswer, aggregate_score, evaluate_answers, incorrect_answers,
)


def make_question(text="2 + 2?", correct="Four", marks=5, others=("Three", "Five", "four")):
    q = Question(id=uuid.uuid4(), question_text=text, marks=marks)
    q.options = [AnswerOption(id=uuid.uuid4(), option_text=correct, is_correct=True, order_index=0)]
    q.options += [
        AnswerOption(id=uuid.uuid4(), option_text=o, is_correct=False, order_index=i + 1)
        for i, o in enumerate(others)
    ]
    return q


def as_map(*questions):
    return {q.id: q for q in questions}


def test_exact_match_gets_full_marks():
    q = make_question()
    [result] = evaluate_answers([SubmittedAnswer(q.id, "Four")], as_map(q))
    assert result.is_correct and result.marks_obtained == 5
    assert result.selected_option_id == q.options[0].id


def test_match_is_case_sensitive_and_unnormalised():
    q = make_question()
    results = evaluate_answers([SubmittedAnswer(q.id, "four")], as_map(q))
    assert not results[0].is_correct and results[0].marks_obtained == 0
    results = evaluate_answers([SubmittedAnswer(q.id, " Four")], as_map(q))
    assert not results[0].is_correct


def test_missing_answer_is_incorrect():
    q = make_question()
    [result] = evaluate_answers([SubmittedAnswer(q.id, None)], as_map(q))
    assert not result.is_correct and result.selected_option_id is None


def test_question_without_correct_option():
    q = make_question()
    for o in q.options:
        o.is_correct = False
    with pytest.raises(DataIntegrityError):
        evaluate_answers([SubmittedAnswer(q.id, "Four")], as_map(q))


def test_foreign_question_rejected():
    q = make_question()
    with pytest.raises(ValidationError):
        evaluate_answers([SubmittedAnswer(uuid.uuid4(), "Four")], as_map(q))


def test_duplicate_and_excess_answers_rejected():
    q = make_question()
    with pytest.raises(ValidationError):
        evaluate_answers([SubmittedAnswer(q.id, "Four"), SubmittedAnswer(q.id, "Three")], as_map(q))


def test_two_question_scenario():
    q1, q2 = make_question("Q1"), make_question("Q2")
    evaluated = evaluate_answers(
        [SubmittedAnswer(q1.id, "Four"), SubmittedAnswer(q2.id, "Three")], as_map(q1, q2)
    )
    summary = aggregate_score(evaluated, total_questions=2, total_marks=10)
    assert summary.score == Decimal("5")
    assert summary.correct_count == 1
    assert summary.percentage == Decimal("50.00")
    assert incorrect_answers(evaluated) == [
        {"question": "Q2", "userAnswer": "Three", "correctAnswer": "Four"}
    ]


def test_percentage_rounds_half_up():
    qs = [make_question(f"Q{i}", marks=1) for i in range(3)]
    evaluated = evaluate_answers([SubmittedAnswer(qs[0].id, "Four")], as_map(*qs))
    assert aggregate_score(evaluated, 3, 3).percentage == Decimal("33.33")
    evaluated = evaluate_answers(
        [SubmittedAnswer(qs[0].id, "Four"), SubmittedAnswer(qs[1].id, "Four")], as_map(*qs)
    )
    assert aggregate_score(evaluated, 3, 3).percentage == Decimal("66.67")


def test_unanswered_questions_count_against_total():
    qs = [make_question(f"Q{i}") for i in range(4)]
    evaluated = evaluate_answers([SubmittedAnswer(qs[0].id, "Four")], as_map(*qs))
    assert aggregate_score(evaluated, 4, 20).percentage == Decimal("25.00")


def test_zero_total_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        aggregate_score([], total_questions=0, total_marks=0)
