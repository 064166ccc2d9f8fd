"""
인증 API 엔드포인트
사용자 등록, 로그인, 토큰 검증, 로그아웃
및 다른 라우터에서 쓰는 인증 의존성 함수
"""

from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Response, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.db.models import User
from app.core.config import get_settings
from app.core.exceptions import AuthenticationError
from app.core.logging_config import get_logger
from app.models.schemas import (
    AuthResponse,
    LoginRequest,
    UserCreate,
    UserResponse,
    ValidateResponse,
)
from app.services.auth_service import resolve_user, revoke_session
from app.services.user_service import login_user, register_user

# 로거 설정
logger = get_logger(__name__)

# 설정 가져오기
settings = get_settings()

# Bearer 토큰 추출 (없으면 None, 익명 조회 허용)
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login",
    auto_error=False,
)

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
)


# ==================== 인증 의존성 ====================

async def get_optional_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Optional[User]:
    """
    토큰이 있으면 사용자, 없거나 무효하면 None
    공개 목록처럼 익명 접근을 허용하는 엔드포인트에서 사용합니다.
    """
    return await resolve_user(db, token)


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)]
) -> User:
    """
    로그인이 필요한 엔드포인트용 의존성
    익명이면 401을 반환합니다.
    """
    if user is None:
        raise AuthenticationError("로그인이 필요합니다. 토큰이 없거나 만료되었습니다.")
    return user


# ==================== 엔드포인트 구현 ====================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    사용자 등록 엔드포인트
    새로운 사용자를 생성하고 세션 토큰을 반환합니다.
    """
    token, user = await register_user(db, user_data)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    로그인 엔드포인트
    이메일/비밀번호 확인 후 새 세션 토큰을 반환합니다.
    """
    token, user = await login_user(db, credentials)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.get("/validate", response_model=ValidateResponse)
async def validate_token(
    current_user: Annotated[User, Depends(get_current_user)]
):
    """현재 토큰이 유효한지 확인하고 사용자 정보를 반환"""
    return ValidateResponse(user=UserResponse.model_validate(current_user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    current_user: Annotated[User, Depends(get_current_user)],
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """현재 세션을 폐기합니다. 이후 같은 토큰은 401"""
    await revoke_session(db, token)
    logger.info("사용자 로그아웃", user_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
