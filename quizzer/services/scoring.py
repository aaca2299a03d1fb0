"""
Answer evaluation and score aggregation.

Both steps are pure: they work on already loaded ``Question`` rows (with
their options) and never touch the database.
"""
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Mapping, Optional, Sequence

from quizzer.core.errors import ConfigurationError, DataIntegrityError, ValidationError
from quizzer.models.orm import AnswerOption, Question

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: uuid.UUID
    answer: Optional[str]


@dataclass(frozen=True)
class EvaluatedAnswer:
    question_id: uuid.UUID
    question_text: str
    submitted: Optional[str]
    correct_answer: str
    is_correct: bool
    marks_obtained: int
    selected_option_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class ScoreSummary:
    score: Decimal
    correct_count: int
    total_questions: int
    total_marks: int
    percentage: Decimal


def correct_option(question: Question) -> AnswerOption:
    for option in question.options:
        if option.is_correct:
            return option
    raise DataIntegrityError(f"Question {question.id} has no correct option")


def evaluate_answers(
    answers: Sequence[SubmittedAnswer],
    questions: Mapping[uuid.UUID, Question],
) -> List[EvaluatedAnswer]:
    """Mark each answer correct only on an exact, case-sensitive match with the correct option text."""
    if len(answers) > len(questions):
        raise ValidationError(
            f"Received {len(answers)} answers for a quiz with {len(questions)} questions"
        )

    seen = set()
    evaluated = []
    for submitted in answers:
        if submitted.question_id in seen:
            raise ValidationError(f"Question {submitted.question_id} was answered more than once")
        seen.add(submitted.question_id)

        question = questions.get(submitted.question_id)
        if question is None:
            raise ValidationError(f"Question {submitted.question_id} does not belong to this quiz")

        correct = correct_option(question)
        is_correct = submitted.answer is not None and submitted.answer == correct.option_text
        selected = next((o for o in question.options if o.option_text == submitted.answer), None)
        evaluated.append(EvaluatedAnswer(
            question_id=question.id,
            question_text=question.question_text,
            submitted=submitted.answer,
            correct_answer=correct.option_text,
            is_correct=is_correct,
            marks_obtained=question.marks if is_correct else 0,
            selected_option_id=selected.id if selected else None,
        ))
    return evaluated


def aggregate_score(evaluated: Iterable[EvaluatedAnswer], total_questions: int, total_marks: int) -> ScoreSummary:
    if total_questions <= 0:
        raise ConfigurationError("Quiz has no questions; a percentage cannot be computed")

    evaluated = list(evaluated)
    correct_count = sum(1 for a in evaluated if a.is_correct)
    score = Decimal(sum(a.marks_obtained for a in evaluated)).quantize(TWO_PLACES)
    percentage = (Decimal(correct_count) / Decimal(total_questions) * 100).quantize(TWO_PLACES, ROUND_HALF_UP)
    return ScoreSummary(
        score=score,
        correct_count=correct_count,
        total_questions=total_questions,
        total_marks=total_marks,
        percentage=percentage,
    )


def incorrect_answers(evaluated: Iterable[EvaluatedAnswer]) -> List[dict]:
    return [
        {"question": a.question_text, "userAnswer": a.submitted, "correctAnswer": a.correct_answer}
        for a in evaluated if not a.is_correct
    ]
