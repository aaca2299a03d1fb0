import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.errors import NotFoundError
from quizzer.models.orm import Question
from quizzer.services.prompts import hint_prompt
from quizzer.services.textgen import TextGenerator

logger = logging.getLogger(__name__)


class HintService:
    def __init__(self, db: AsyncSession, generator: TextGenerator):
        self.db = db
        self.generator = generator

    async def hint(self, quiz_id: uuid.UUID, question_id: uuid.UUID) -> str:
        # existence is checked before any generator call
        question = await self.db.scalar(
            select(Question).where(Question.id == question_id, Question.quiz_id == quiz_id)
        )
        if question is None:
            raise NotFoundError("Question not found")
        hint = await self.generator.generate(hint_prompt(question.question_text))
        logger.debug("Generated hint for question %s", question_id)
        return hint
