import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.database import get_db
from quizzer.models.orm import Subject

router = APIRouter()


class SubjectOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


@router.get("", response_model=List[SubjectOut])
async def list_subjects(db: AsyncSession = Depends(get_db)):
    subjects = await db.scalars(select(Subject).where(Subject.is_active.is_(True)).order_by(Subject.name))
    return [SubjectOut(id=s.id, name=s.name, description=s.description, icon=s.icon) for s in subjects]
