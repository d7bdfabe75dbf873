import sys
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from elevate_api.app import create_app
from elevate_api.db.base import Base
from elevate_api.db.session import enable_sqlite_transactions, get_session
from elevate_api.models import (
    ActivityCode,
    Badge,
    Submission,
    SubmissionStatus,
    User,
    UserTypeEnum,
)


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()


SEED_BADGES = (
    ("STARTER", "Starter", "Complete both Elevate AI Learn courses"),
    ("IN_CLASS_INNOVATOR", "In-Class Innovator", "Have an Explore submission approved"),
    ("COMMUNITY_VOICE", "Community Voice", "Have a Present submission approved"),
)


@pytest_asyncio.fixture
async def session_factory():
    engine = enable_sqlite_transactions(create_async_engine("sqlite+aiosqlite:///:memory:", future=True))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async with factory() as session:
        session.add_all(
            Badge(code=code, name=name, description=description, criteria={})
            for code, name, description in SEED_BADGES
        )
        await session.commit()

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    async def _make_user(session: AsyncSession, **overrides) -> User:
        suffix = uuid4().hex[:8]
        values = {
            "handle": f"educator_{suffix}",
            "name": f"Educator {suffix}",
            "email": f"educator_{suffix}@example.com",
            "user_type": UserTypeEnum.EDUCATOR.value,
        }
        values.update(overrides)
        user = User(**values)
        session.add(user)
        await session.flush()
        return user

    return _make_user


@pytest.fixture
def make_submission():
    async def _make_submission(
        session: AsyncSession,
        user: User,
        activity_code: ActivityCode,
        payload: dict | None = None,
        status: SubmissionStatus = SubmissionStatus.PENDING,
    ) -> Submission:
        submission = Submission(
            user_id=user.id,
            activity_code=activity_code,
            status=status,
            payload=payload or {},
        )
        session.add(submission)
        await session.flush()
        return submission

    return _make_submission
