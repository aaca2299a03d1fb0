import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quizzer.core.errors import NotFoundError
from quizzer.models.orm import AnswerOption, Question, Quiz, Subject
from quizzer.services.prompts import parse_generated_quiz, quiz_prompt
from quizzer.services.textgen import TextGenerator

logger = logging.getLogger(__name__)


def distribute_marks(max_score: int, count: int) -> List[int]:
    """Split max_score over count questions; earlier questions absorb the remainder."""
    base, extra = divmod(max_score, count)
    return [base + (1 if i < extra else 0) for i in range(count)]


class QuizGenerator:
    def __init__(self, db: AsyncSession, generator: TextGenerator):
        self.db = db
        self.generator = generator

    async def resolve_subject(self, name: str) -> Subject:
        subject = await self.db.scalar(select(Subject).where(Subject.name == name, Subject.is_active.is_(True)))
        if subject is None:
            raise NotFoundError(f"Subject {name} not found")
        return subject

    async def generate(self, user_id: Optional[uuid.UUID], grade: int, subject_name: str,
                       total_questions: int, max_score: int, difficulty: str) -> Quiz:
        subject = await self.resolve_subject(subject_name)
        subject_id = subject.id

        reply = await self.generator.generate(
            quiz_prompt(grade, subject_name, total_questions, max_score, difficulty)
        )
        generated = parse_generated_quiz(reply)
        if len(generated) != total_questions:
            logger.warning("Requested %d questions, generator returned %d", total_questions, len(generated))

        marks = distribute_marks(max_score, len(generated))
        quiz = Quiz(
            title=f"{subject_name} Quiz for Grade {grade}",
            subject_id=subject_id,
            grade_level=grade,
            difficulty_level=difficulty,
            total_questions=len(generated),
            total_marks=max_score,
            is_ai_generated=True,
            created_by=user_id,
            questions=[
                Question(
                    position=position,
                    question_text=item.question,
                    difficulty_level=item.difficulty,
                    marks=marks[position],
                    options=[
                        AnswerOption(option_text=text, is_correct=(text == item.answer), order_index=index)
                        for index, text in enumerate(item.options)
                    ],
                )
                for position, item in enumerate(generated)
            ],
        )

        # quiz, questions and options are written in a single transaction
        try:
            self.db.add(quiz)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to persist generated quiz for subject %s", subject_name)
            raise

        logger.info("Generated quiz %s with %d questions for %s grade %d",
                    quiz.id, len(generated), subject_name, grade)
        return await self.load(quiz.id)

    async def load(self, quiz_id: uuid.UUID) -> Quiz:
        quiz = await self.db.scalar(
            select(Quiz)
            .where(Quiz.id == quiz_id)
            .options(
                selectinload(Quiz.subject),
                selectinload(Quiz.questions).selectinload(Question.options),
            )
            .execution_options(populate_existing=True)
        )
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return quiz
