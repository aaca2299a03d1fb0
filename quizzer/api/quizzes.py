import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, constr, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.core.auth import TokenData, get_current_user
from quizzer.core.config import Settings, get_app_settings
from quizzer.core.database import get_db
from quizzer.models.orm import Quiz
from quizzer.services.hints import HintService
from quizzer.services.history import HistoryFilters, query_history
from quizzer.services.quiz_generation import QuizGenerator
from quizzer.services.scoring import SubmittedAnswer
from quizzer.services.submission import SubmissionService
from quizzer.services.textgen import TextGenerator, get_text_generator

router = APIRouter()


class QuizGenerate(BaseModel):
    grade: int = Field(ge=1, le=12)
    subject: constr(min_length=1, max_length=255)
    total_questions: int = Field(ge=1, le=50)
    max_score: int = Field(ge=1, le=1000)
    difficulty: Literal["easy", "medium", "hard"] = "medium"

    @model_validator(mode="after")
    def every_question_earns_marks(self) -> "QuizGenerate":
        if self.max_score < self.total_questions:
            raise ValueError("max_score must be at least total_questions so every question carries marks")
        return self


class OptionOut(BaseModel):
    id: uuid.UUID
    text: str


class QuestionOut(BaseModel):
    id: uuid.UUID
    question: str
    difficulty: str
    marks: int
    options: List[OptionOut]


class QuizOut(BaseModel):
    quiz_id: uuid.UUID
    title: str
    grade_level: int
    subject: str
    difficulty: str
    total_questions: int
    total_marks: int
    questions: List[QuestionOut]


class AnswerIn(BaseModel):
    question_id: uuid.UUID
    answer: Optional[str] = None


class QuizSubmit(BaseModel):
    answers: List[AnswerIn]


class SubmitResult(BaseModel):
    quiz_id: uuid.UUID
    submission_id: uuid.UUID
    attempt_number: int
    score: Decimal
    total: int
    total_marks: int
    percentage: Decimal
    is_passed: bool
    improvement_tips: List[str]


class HistoryItem(BaseModel):
    submission_id: uuid.UUID
    quiz_id: uuid.UUID
    grade_level: int
    subject: str
    attempt_number: int
    status: str
    score: Optional[Decimal]
    total: int
    percentage: Optional[Decimal]
    is_passed: Optional[bool]
    completed_date: Optional[datetime]


class HintOut(BaseModel):
    quiz_id: uuid.UUID
    question_id: uuid.UUID
    hint: str


def _quiz_out(quiz: Quiz) -> QuizOut:
    # correct flags never leave the server
    return QuizOut(
        quiz_id=quiz.id,
        title=quiz.title,
        grade_level=quiz.grade_level,
        subject=quiz.subject.name,
        difficulty=quiz.difficulty_level,
        total_questions=quiz.total_questions,
        total_marks=quiz.total_marks,
        questions=[
            QuestionOut(
                id=q.id,
                question=q.question_text,
                difficulty=q.difficulty_level,
                marks=q.marks,
                options=[OptionOut(id=o.id, text=o.option_text) for o in q.options],
            )
            for q in quiz.questions
        ],
    )


@router.post("/generate", response_model=QuizOut, status_code=201)
async def generate_quiz(payload: QuizGenerate, user: TokenData = Depends(get_current_user),
                        db: AsyncSession = Depends(get_db),
                        generator: TextGenerator = Depends(get_text_generator)):
    quiz = await QuizGenerator(db, generator).generate(
        user.user_id, payload.grade, payload.subject, payload.total_questions,
        payload.max_score, payload.difficulty,
    )
    return _quiz_out(quiz)


# declared before /{quiz_id} so "history" is not parsed as an id
@router.get("/history", response_model=List[HistoryItem])
async def get_history(
    grade: Optional[int] = Query(None, ge=1, le=12),
    subject: Optional[str] = None,
    marks: Optional[Decimal] = None,
    completed_date: Optional[date] = None,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    sort: Optional[str] = None,
    user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = HistoryFilters(grade=grade, subject=subject, marks=marks, completed_date=completed_date,
                             date_from=date_from, date_to=date_to, sort=sort)
    rows = await query_history(db, user.user_id, filters)
    return [HistoryItem(**row._asdict()) for row in rows]


@router.get("/{quiz_id}", response_model=QuizOut)
async def get_quiz(quiz_id: uuid.UUID, user: TokenData = Depends(get_current_user),
                   db: AsyncSession = Depends(get_db),
                   generator: TextGenerator = Depends(get_text_generator)):
    quiz = await QuizGenerator(db, generator).load(quiz_id)
    return _quiz_out(quiz)


@router.post("/{quiz_id}/submit", response_model=SubmitResult)
async def submit_quiz(quiz_id: uuid.UUID, payload: QuizSubmit, user: TokenData = Depends(get_current_user),
                      db: AsyncSession = Depends(get_db),
                      generator: TextGenerator = Depends(get_text_generator),
                      settings: Settings = Depends(get_app_settings)):
    service = SubmissionService(db, generator, max_tips=settings.FEEDBACK_MAX_TIPS,
                                attempt_retries=settings.SUBMISSION_ATTEMPT_RETRIES)
    result = await service.submit(
        user.user_id, quiz_id, [SubmittedAnswer(a.question_id, a.answer) for a in payload.answers]
    )
    return SubmitResult(
        quiz_id=result.quiz_id,
        submission_id=result.submission_id,
        attempt_number=result.attempt_number,
        score=result.summary.score,
        total=result.summary.total_questions,
        total_marks=result.summary.total_marks,
        percentage=result.summary.percentage,
        is_passed=result.is_passed,
        improvement_tips=result.improvement_tips,
    )


@router.get("/{quiz_id}/questions/{question_id}/hint", response_model=HintOut)
async def get_hint(quiz_id: uuid.UUID, question_id: uuid.UUID, user: TokenData = Depends(get_current_user),
                   db: AsyncSession = Depends(get_db),
                   generator: TextGenerator = Depends(get_text_generator)):
    hint = await HintService(db, generator).hint(quiz_id, question_id)
    return HintOut(quiz_id=quiz_id, question_id=question_id, hint=hint)
