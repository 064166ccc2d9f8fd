"""
사용자 API 엔드포인트
내 정보 조회 및 프로필 수정
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.db.models import User
from app.db.session import get_db
from app.models.schemas import UserResponse, UserUpdate
from app.services.user_service import update_profile

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)]
):
    """
    현재 로그인한 사용자 정보 조회
    """
    return current_user


@router.put("/me", response_model=UserResponse)
async def update_me(
    payload: UserUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """
    프로필 수정 (사용자 이름, 이메일, 아바타, 비밀번호)
    비밀번호 변경 시 currentPassword가 필요합니다.
    """
    return await update_profile(db, current_user, payload)
