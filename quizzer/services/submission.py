"""
Quiz submission pipeline: evaluate -> aggregate -> request feedback -> record.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quizzer.core.errors import ConflictError, NotFoundError, TransientUpstreamError
from quizzer.models.orm import Question, Quiz, QuizSubmission, SubmissionStatus, UserAnswer, utcnow
from quizzer.services.prompts import feedback_prompt, parse_suggestions
from quizzer.services.scoring import (
    EvaluatedAnswer, ScoreSummary, SubmittedAnswer, aggregate_score, evaluate_answers, incorrect_answers,
)
from quizzer.services.textgen import TextGenerator

logger = logging.getLogger(__name__)

ATTEMPT_CONSTRAINT = "uq_submission_attempt"


def is_attempt_collision(error: IntegrityError) -> bool:
    """PostgreSQL names the violated constraint; SQLite lists its columns."""
    message = str(error.orig)
    return ATTEMPT_CONSTRAINT in message or "quiz_submissions.attempt_number" in message


@dataclass
class Feedback:
    text: str
    suggestions: List[str]


@dataclass
class SubmissionResult:
    submission_id: uuid.UUID
    quiz_id: uuid.UUID
    attempt_number: int
    summary: ScoreSummary
    is_passed: bool
    improvement_tips: List[str]


class SubmissionService:
    def __init__(self, db: AsyncSession, generator: TextGenerator, *,
                 max_tips: int = 2, attempt_retries: int = 3):
        self.db = db
        self.generator = generator
        self.max_tips = max_tips
        self.attempt_retries = attempt_retries

    async def submit(self, user_id: uuid.UUID, quiz_id: uuid.UUID,
                     answers: Sequence[SubmittedAnswer]) -> SubmissionResult:
        quiz = await self.db.scalar(
            select(Quiz)
            .where(Quiz.id == quiz_id)
            .options(selectinload(Quiz.questions).selectinload(Question.options))
        )
        if quiz is None:
            raise NotFoundError("Quiz not found")

        questions = {q.id: q for q in quiz.questions}
        evaluated = evaluate_answers(answers, questions)
        summary = aggregate_score(evaluated, quiz.total_questions, quiz.total_marks)
        is_passed = summary.percentage >= Decimal(quiz.pass_percentage)

        feedback = await self.request_feedback(evaluated, summary)
        tips = feedback.suggestions[: self.max_tips]

        submission = await self.record(user_id, quiz_id, evaluated, summary, is_passed, feedback.text, tips)
        logger.info(
            "User %s completed quiz %s attempt %d: %s/%s (%s%%)",
            user_id, quiz_id, submission.attempt_number, summary.correct_count,
            summary.total_questions, summary.percentage,
        )
        return SubmissionResult(
            submission_id=submission.id,
            quiz_id=quiz_id,
            attempt_number=submission.attempt_number,
            summary=summary,
            is_passed=is_passed,
            improvement_tips=tips,
        )

    async def request_feedback(self, evaluated: Sequence[EvaluatedAnswer], summary: ScoreSummary) -> Feedback:
        """Best effort: an unavailable generator yields no suggestions."""
        prompt = feedback_prompt(incorrect_answers(evaluated), summary.correct_count, summary.total_questions)
        try:
            text = await self.generator.generate(prompt)
        except TransientUpstreamError as e:
            logger.warning(f"Feedback generation failed, continuing without tips: {e.message}")
            return Feedback(text="", suggestions=[])
        return Feedback(text=text, suggestions=parse_suggestions(text))

    async def next_attempt_number(self, user_id: uuid.UUID, quiz_id: uuid.UUID) -> int:
        current = await self.db.scalar(
            select(func.coalesce(func.max(QuizSubmission.attempt_number), 0))
            .where(QuizSubmission.user_id == user_id, QuizSubmission.quiz_id == quiz_id)
        )
        return (current or 0) + 1

    async def record(self, user_id: uuid.UUID, quiz_id: uuid.UUID, evaluated: Sequence[EvaluatedAnswer],
                     summary: ScoreSummary, is_passed: bool, feedback_text: str,
                     suggestions: List[str]) -> QuizSubmission:
        """Write the completed submission; retries when another request took the same attempt number."""
        for _ in range(self.attempt_retries):
            attempt_number = await self.next_attempt_number(user_id, quiz_id)
            now = utcnow()
            submission = QuizSubmission(
                user_id=user_id,
                quiz_id=quiz_id,
                attempt_number=attempt_number,
                status=SubmissionStatus.COMPLETED.value,
                started_at=now,
                completed_at=now,
                total_score=summary.score,
                percentage=summary.percentage,
                is_passed=is_passed,
                ai_feedback=feedback_text or None,
                improvement_suggestions=list(suggestions),
                answers=[
                    UserAnswer(
                        question_id=a.question_id,
                        selected_option_id=a.selected_option_id,
                        answer_text=a.submitted,
                        is_correct=a.is_correct,
                        marks_obtained=Decimal(a.marks_obtained),
                        answered_at=now,
                    )
                    for a in evaluated
                ],
            )
            self.db.add(submission)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if not is_attempt_collision(e):
                    raise
                logger.warning("Attempt %d for user %s on quiz %s was taken, retrying",
                               attempt_number, user_id, quiz_id)
                continue
            return submission
        raise ConflictError("Could not allocate an attempt number for this submission")
