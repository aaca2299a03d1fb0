import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.auth import TokenData, get_current_user
from quizzer.core.database import get_db
from quizzer.services.leaderboard import leaderboard, user_rankings

router = APIRouter()


class LeaderboardEntry(BaseModel):
    user_id: uuid.UUID
    username: str
    subject: str
    grade_level: int
    total_quizzes: int
    total_score: Decimal
    average_percentage: Decimal
    last_quiz_date: Optional[datetime] = None
    rank_position: int


@router.get("", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    subject: Optional[str] = None,
    grade: Optional[int] = Query(None, ge=1, le=12),
    limit: int = Query(10, ge=1, le=100),
    user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await leaderboard(db, subject=subject, grade=grade, limit=limit)
    return [LeaderboardEntry(**row._asdict()) for row in rows]


@router.get("/me", response_model=List[LeaderboardEntry])
async def my_rankings(user: TokenData = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    rows = await user_rankings(db, user.user_id)
    return [LeaderboardEntry(**row._asdict()) for row in rows]
