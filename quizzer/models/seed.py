import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quizzer.models.orm import Subject

logger = logging.getLogger(__name__)

DEFAULT_SUBJECTS = [
    ("Mathematics", "Mathematical concepts, problem solving, and numerical analysis", "🔢"),
    ("Science", "Physics, Chemistry, Biology, and Earth Sciences", "🔬"),
    ("English", "Language arts, literature, grammar, and writing", "📚"),
    ("History", "World history, historical events, and civilizations", "🏛️"),
    ("Geography", "World geography, countries, capitals, and physical features", "🌍"),
    ("Computer Science", "Programming, algorithms, and computer technology", "💻"),
]


async def seed_subjects(db: AsyncSession) -> int:
    """Insert any missing default subjects. Returns how many were added."""
    existing = set((await db.scalars(select(Subject.name))).all())
    added = 0
    for name, description, icon in DEFAULT_SUBJECTS:
        if name in existing:
            continue
        db.add(Subject(name=name, description=description, icon=icon))
        added += 1
    if added:
        await db.commit()
        logger.info("Seeded %d subjects", added)
    return added
