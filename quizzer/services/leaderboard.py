"""
Leaderboard computed on read from completed submissions.

Rankings are a ``ROW_NUMBER()`` window over per (user, subject, grade)
aggregates, ordered by average percentage, then total score, then the most
recent quiz.
"""
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import Subquery

from quizzer.models.orm import Quiz, QuizSubmission, Subject, SubmissionStatus, User


def ranked_entries() -> Subquery:
    totals = (
        select(
            QuizSubmission.user_id,
            Quiz.subject_id,
            Quiz.grade_level,
            func.count(QuizSubmission.id).label("total_quizzes"),
            func.sum(QuizSubmission.total_score).label("total_score"),
            func.avg(QuizSubmission.percentage).label("average_percentage"),
            func.max(QuizSubmission.completed_at).label("last_quiz_date"),
        )
        .join(Quiz, Quiz.id == QuizSubmission.quiz_id)
        .where(QuizSubmission.status == SubmissionStatus.COMPLETED.value)
        .group_by(QuizSubmission.user_id, Quiz.subject_id, Quiz.grade_level)
        .subquery("totals")
    )
    rank = func.row_number().over(
        partition_by=(totals.c.subject_id, totals.c.grade_level),
        order_by=(
            totals.c.average_percentage.desc(),
            totals.c.total_score.desc(),
            totals.c.last_quiz_date.desc(),
        ),
    )
    ranked = (
        select(
            totals.c.user_id,
            User.username,
            Subject.name.label("subject"),
            totals.c.grade_level,
            totals.c.total_quizzes,
            totals.c.total_score,
            totals.c.average_percentage,
            totals.c.last_quiz_date,
            rank.label("rank_position"),
        )
        .join(User, User.id == totals.c.user_id)
        .join(Subject, Subject.id == totals.c.subject_id)
        .subquery("ranked")
    )
    return ranked


async def leaderboard(db: AsyncSession, subject: Optional[str] = None, grade: Optional[int] = None,
                      limit: int = 10) -> List[Row]:
    ranked = ranked_entries()
    stmt = select(ranked).where(ranked.c.rank_position <= limit)
    if subject:
        stmt = stmt.where(ranked.c.subject == subject)
    if grade is not None:
        stmt = stmt.where(ranked.c.grade_level == grade)
    stmt = stmt.order_by(ranked.c.subject, ranked.c.grade_level, ranked.c.rank_position)
    return list((await db.execute(stmt)).all())


async def user_rankings(db: AsyncSession, user_id: uuid.UUID) -> List[Row]:
    ranked = ranked_entries()
    stmt = select(ranked).where(ranked.c.user_id == user_id).order_by(ranked.c.subject, ranked.c.grade_level)
    return list((await db.execute(stmt)).all())
