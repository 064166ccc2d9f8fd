"""
DB 엔진/세션 설정 및 관리 (비동기)
엔진과 세션 팩토리는 create_app()이 만들어 app.state에 보관하고,
FastAPI 의존성 주입용 get_db()가 요청마다 세션을 하나씩 제공합니다.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


def to_async_url(database_url: str) -> str:
    """
    동기 드라이버 URL을 비동기 형식으로 변환
    postgresql:// -> postgresql+asyncpg://
    sqlite://     -> sqlite+aiosqlite://
    """
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_db_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    SQLAlchemy 비동기 Engine 생성

    pool_pre_ping=True: 연결을 사용하기 전에 유효성을 검사하여 끊어진 연결 재사용 방지
    SQLite 메모리 DB는 연결마다 별도 DB가 생기므로 StaticPool로 단일 연결을 공유합니다.
    """
    url = to_async_url(database_url)

    if url.startswith("sqlite+aiosqlite://"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)

        # SQLite는 외래 키 제약을 연결마다 켜야 한다
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_fk(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_async_engine(url, pool_pre_ping=True, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """비동기 DB 세션 생성기 정의"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입(Dependency Injection)을 위한 비동기 DB 세션 생성기.
    요청이 끝날 때 세션을 자동으로 닫습니다.

    주의: commit은 각 서비스 함수에서 명시적으로 수행해야 합니다.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            # DB 세션을 API 엔드포인트에 제공
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
