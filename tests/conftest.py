import json
from typing import List, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from quizzer.core.cache import RedisCache
from quizzer.core.config import Settings
from quizzer.core.database import Database
from quizzer.main import create_app
from quizzer.models.orm import AnswerOption, Question, Quiz, Subject
from quizzer.models.seed import seed_subjects


class FakeRedis:
    """In-memory stand-in for the handful of redis commands RedisCache issues."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    async def exists(self, *keys):
        return sum(1 for k in keys if k in self.store)

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def ttl(self, key):
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return key in self.store

    def pipeline(self):
        return FakePipeline(self)

    async def ping(self):
        return True

    async def aclose(self):
        return None


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.calls = []

    def incr(self, key):
        self.calls.append((self.redis.incr, key))
        return self

    def ttl(self, key):
        self.calls.append((self.redis.ttl, key))
        return self

    async def execute(self):
        return [await call(key) for call, key in self.calls]


class FakeGenerator:
    """Replays scripted replies; an Exception instance in the script is raised instead."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None):
        self.replies = list(replies or [])
        self.prompts: List[str] = []

    def queue(self, *replies: Union[str, Exception]) -> None:
        self.replies.extend(replies)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self) -> None:
        return None


def quiz_reply(questions: List[dict]) -> str:
    return "Here is your quiz:\n```json\n" + json.dumps({"quiz": questions}) + "\n```"


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="testing",
        SECRET_KEY="test-secret-key",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        CREATE_TABLES_ON_STARTUP=False,
        SEED_DEFAULT_SUBJECTS=False,
        SENTRY_DSN=None,
        LOG_LEVEL="WARNING",
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
async def database(settings):
    db = Database.from_settings(settings)
    await db.connect()
    await db.create_all()
    async with db.session() as session:
        await seed_subjects(session)
    yield db
    await db.dispose()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return RedisCache(fake_redis, default_ttl=60)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def app(settings, database, cache, generator):
    return create_app(settings, database=database, cache=cache, generator=generator)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def register(client, username="student1", password="S3cret-pass!", grade_level=5) -> dict:
    r = await client.post("/v1/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
        "grade_level": grade_level,
    })
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
async def auth_headers(client):
    body = await register(client)
    return {"Authorization": f"Bearer {body['tokens']['access_token']}"}


async def make_quiz(database, subject="Mathematics", grade=5, marks=(5, 5)) -> Quiz:
    """Stores a quiz whose question N has options A..D with 'A' correct."""
    async with database.session() as session:
        subject_row = await session.scalar(select(Subject).where(Subject.name == subject))
        quiz = Quiz(
            title=f"{subject} Quiz for Grade {grade}",
            subject_id=subject_row.id,
            grade_level=grade,
            total_questions=len(marks),
            total_marks=sum(marks),
            questions=[
                Question(
                    position=i,
                    question_text=f"Question {i + 1}?",
                    marks=m,
                    options=[
                        AnswerOption(option_text=text, is_correct=(text == "A"), order_index=j)
                        for j, text in enumerate("ABCD")
                    ],
                )
                for i, m in enumerate(marks)
            ],
        )
        session.add(quiz)
        await session.commit()
        return quiz
