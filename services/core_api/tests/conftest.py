"""
Pytest 설정 및 공용 fixture
테스트용 환경 변수는 app 모듈을 import 하기 전에 설정해야 합니다.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-traflow-journal-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"

import httpx
import pytest
from typing import AsyncGenerator, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.models import AIReview, Base, User
from app.db.session import create_db_engine, create_session_factory
from app.main import create_app
from app.services.auth_service import hash_password


# 테스트 DB (in-memory SQLite, StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEFAULT_PASSWORD = "secret1"


@pytest.fixture
async def test_db_engine():
    """테스트마다 새 DB 엔진 + 스키마 생성"""
    engine = create_db_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return create_session_factory(test_db_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """서비스 계층 테스트용 세션"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(test_db_engine) -> AsyncGenerator[httpx.AsyncClient, None]:
    """테스트 엔진을 주입한 앱에 붙는 HTTP 클라이언트"""
    app = create_app(get_settings(), engine=test_db_engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def api():
    """API 경로 접두어를 붙여 주는 헬퍼"""
    prefix = get_settings().API_PREFIX

    def _path(path: str) -> str:
        return f"{prefix}{path}"

    return _path


@pytest.fixture
def make_user(db_session):
    """DB에 직접 사용자 생성"""

    async def _make_user(
        username: str,
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def add_ai_review(session_factory):
    """외부 AI 서비스가 리뷰를 작성한 상황을 흉내냄"""

    async def _add_ai_review(record_id: int, content: str = "손절 기준이 명확했습니다.") -> None:
        async with session_factory() as session:
            session.add(AIReview(record_id=record_id, review_content=content, model_name="gpt-4o"))
            await session.commit()

    return _add_ai_review
