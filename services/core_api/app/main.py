"""
FastAPI 애플리케이션 진입점
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AuthenticationError,
    InputValidationError,
    JournalError,
    format_validation_errors,
)
from app.core.logging_config import setup_logging, get_logger
from app.db.models import Base
from app.db.session import create_db_engine, create_session_factory
from app.api import auth, records, users, stats

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None) -> FastAPI:
    """
    애플리케이션 팩토리

    DB 엔진과 세션 팩토리는 app.state에 보관하고 get_db()로 요청마다 주입합니다.
    테스트에서는 engine을 직접 넘겨 별도 DB를 사용할 수 있습니다.

    settings 인자는 앱 구성(DB 연결, CORS, 라우터 접두어, 로깅)에만 적용됩니다.
    토큰 서명 키/만료, bcrypt 비용, OpenAPI tokenUrl은 auth_service와 api.auth가
    import 시점에 get_settings()로 읽으므로 환경 변수로만 바꿀 수 있습니다.
    """
    settings = settings or get_settings()

    # 로깅 초기화
    setup_logging(settings.DEBUG, settings.SQL_ECHO)

    # FastAPI 앱 생성
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        debug=settings.DEBUG,
    )

    app.state.settings = settings
    app.state.engine = engine or create_db_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    app.state.session_factory = create_session_factory(app.state.engine)

    # CORS 설정 (프론트엔드와 통신을 위해 필요)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 라우터 등록
    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(records.router, prefix=settings.API_PREFIX)
    app.include_router(users.router, prefix=settings.API_PREFIX)
    app.include_router(stats.router, prefix=settings.API_PREFIX)

    # ==================== 예외 핸들러 ====================

    @app.exception_handler(JournalError)
    async def journal_error_handler(request: Request, exc: JournalError):
        """도메인 예외 -> 상태 코드 + {detail, code, errors}"""
        if exc.status_code >= 500:
            logger.error("요청 처리 실패", path=request.url.path, code=exc.code)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """요청 본문/경로 검증 실패도 422 대신 400 + 필드별 오류로 통일"""
        error = InputValidationError(
            "요청 데이터 형식이 올바르지 않습니다.",
            details=format_validation_errors(exc.errors()),
        )
        logger.warning("요청 검증 실패", path=request.url.path, errors=len(error.details))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    # ==================== 수명 주기 ====================

    @app.on_event("startup")
    async def startup_event():
        """애플리케이션 시작 시 실행"""
        logger.info("애플리케이션 시작", app_name=settings.APP_NAME, version="1.0.0")
        # 데이터베이스 테이블 생성
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("데이터베이스 테이블 생성 완료")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.engine.dispose()
        logger.info("애플리케이션 종료")

    @app.get("/")
    def root():
        """루트 엔드포인트"""
        return {
            "message": settings.APP_NAME,
            "version": "1.0.0",
            "docs": "/docs"
        }

    @app.get("/health")
    def health_check():
        """헬스 체크 엔드포인트"""
        return {"status": "healthy"}

    return app


app = create_app()
