import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.errors import ValidationError
from quizzer.models.orm import Quiz, QuizSubmission, Subject

SORT_COLUMNS = {
    "completed_at": QuizSubmission.completed_at.asc(),
    "-completed_at": QuizSubmission.completed_at.desc(),
    "score": QuizSubmission.total_score.asc(),
    "-score": QuizSubmission.total_score.desc(),
}


@dataclass
class HistoryFilters:
    grade: Optional[int] = None
    subject: Optional[str] = None
    marks: Optional[Decimal] = None
    completed_date: Optional[date] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort: Optional[str] = None


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


async def query_history(db: AsyncSession, user_id: uuid.UUID, filters: HistoryFilters) -> List[Row]:
    """Past submissions of one user matching every supplied filter."""
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise ValidationError("'from' must not be after 'to'")
    if filters.sort is not None and filters.sort not in SORT_COLUMNS:
        raise ValidationError(f"Unsupported sort '{filters.sort}'", details={"allowed": sorted(SORT_COLUMNS)})

    stmt = (
        select(
            QuizSubmission.id.label("submission_id"),
            Quiz.id.label("quiz_id"),
            Quiz.grade_level,
            Subject.name.label("subject"),
            QuizSubmission.attempt_number,
            QuizSubmission.status,
            QuizSubmission.total_score.label("score"),
            Quiz.total_questions.label("total"),
            QuizSubmission.percentage,
            QuizSubmission.is_passed,
            QuizSubmission.completed_at.label("completed_date"),
        )
        .join(Quiz, Quiz.id == QuizSubmission.quiz_id)
        .join(Subject, Subject.id == Quiz.subject_id)
        .where(QuizSubmission.user_id == user_id)
    )

    if filters.grade is not None:
        stmt = stmt.where(Quiz.grade_level == filters.grade)
    if filters.subject:
        stmt = stmt.where(Subject.name == filters.subject)
    if filters.marks is not None:
        stmt = stmt.where(QuizSubmission.total_score == filters.marks)
    if filters.completed_date:
        start = _day_start(filters.completed_date)
        stmt = stmt.where(QuizSubmission.completed_at >= start,
                          QuizSubmission.completed_at < start + timedelta(days=1))
    if filters.date_from:
        stmt = stmt.where(QuizSubmission.completed_at >= _day_start(filters.date_from))
    if filters.date_to:
        # inclusive of the whole 'to' day
        stmt = stmt.where(QuizSubmission.completed_at < _day_start(filters.date_to) + timedelta(days=1))
    if filters.sort:
        stmt = stmt.order_by(SORT_COLUMNS[filters.sort])

    return list((await db.execute(stmt)).all())
