"""
계정 서비스
회원 가입, 로그인, 프로필 수정
"""

import asyncio
from typing import Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, ConflictError, StorageError
from app.core.logging_config import get_logger
from app.db.models import User
from app.models.schemas import LoginRequest, UserCreate, UserUpdate
from app.services.auth_service import hash_password, issue_session, verify_password

logger = get_logger(__name__)

INVALID_CREDENTIALS = "이메일 또는 비밀번호가 잘못되었습니다."


async def _check_unique(
    db: AsyncSession,
    username: Optional[str],
    email: Optional[str],
    exclude_user_id: Optional[int] = None,
) -> None:
    """사용자 이름/이메일 중복 확인. 중복이면 ConflictError"""
    conditions = []
    if username is not None:
        conditions.append(User.username == username)
    if email is not None:
        conditions.append(User.email == email)
    if not conditions:
        return

    query = select(User.username, User.email).where(or_(*conditions))
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)

    for existing_username, existing_email in (await db.execute(query)).all():
        if username is not None and existing_username == username:
            raise ConflictError(
                "이미 존재하는 사용자 이름입니다.",
                details=[{"field": "username", "message": "이미 존재하는 사용자 이름입니다."}],
            )
        if email is not None and existing_email == email:
            raise ConflictError(
                "이미 등록된 이메일입니다.",
                details=[{"field": "email", "message": "이미 등록된 이메일입니다."}],
            )


async def register_user(db: AsyncSession, data: UserCreate) -> Tuple[str, User]:
    """
    신규 사용자를 생성하고 세션 토큰을 발급합니다.
    사용자 행과 세션 행은 하나의 트랜잭션으로 저장됩니다.
    """
    await _check_unique(db, data.username, data.email)

    # 비밀번호 해싱 (CPU 작업을 별도 스레드에서 실행)
    password_hash = await asyncio.to_thread(hash_password, data.password)

    user = User(
        username=data.username,
        email=data.email,
        password_hash=password_hash,
        is_active=True,
    )
    try:
        db.add(user)
        await db.flush()  # user.id를 얻기 위해 flush (아직 commit은 안 함)
        token = issue_session(db, user)
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        # 동시 가입으로 고유 제약에 걸린 경우
        await db.rollback()
        logger.warning("사용자 등록 실패: 동시 가입 충돌", username=data.username)
        raise ConflictError("이미 존재하는 사용자 이름 또는 이메일입니다.")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("사용자 등록 DB 저장 실패", error=str(e), error_type=type(e).__name__)
        raise StorageError()

    logger.info("신규 사용자 등록 성공", username=user.username, user_id=user.id)
    return token, user


async def login_user(db: AsyncSession, data: LoginRequest) -> Tuple[str, User]:
    """이메일/비밀번호 확인 후 새 세션 토큰 발급"""
    result = await db.execute(
        select(User).where(User.email == data.email, User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("로그인 실패: 사용자 없음")
        raise AuthenticationError(INVALID_CREDENTIALS)

    user_id = user.id
    is_password_valid = await asyncio.to_thread(verify_password, data.password, user.password_hash)
    if not is_password_valid:
        logger.warning("로그인 실패: 비밀번호 불일치", user_id=user_id)
        raise AuthenticationError(INVALID_CREDENTIALS)

    try:
        token = issue_session(db, user)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("세션 저장 실패", error=str(e), error_type=type(e).__name__, user_id=user_id)
        raise StorageError()

    logger.info("사용자 로그인 성공", username=user.username, user_id=user_id)
    return token, user


async def update_profile(db: AsyncSession, user: User, data: UserUpdate) -> User:
    """
    프로필 부분 수정
    비밀번호 변경 시 현재 비밀번호가 맞아야 합니다.
    """
    user_id = user.id
    changes = data.model_dump(exclude_unset=True)

    new_username = changes.get("username")
    new_email = changes.get("email")
    await _check_unique(
        db,
        new_username if new_username != user.username else None,
        new_email if new_email != user.email else None,
        exclude_user_id=user_id,
    )

    if data.new_password:
        is_current_valid = await asyncio.to_thread(verify_password, data.current_password, user.password_hash)
        if not is_current_valid:
            logger.warning("비밀번호 변경 실패: 현재 비밀번호 불일치", user_id=user_id)
            raise AuthenticationError("현재 비밀번호가 올바르지 않습니다.")
        user.password_hash = await asyncio.to_thread(hash_password, data.new_password)

    if new_username is not None:
        user.username = new_username
    if new_email is not None:
        user.email = new_email
    if "avatar_url" in changes:
        user.avatar_url = changes["avatar_url"]

    try:
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("이미 존재하는 사용자 이름 또는 이메일입니다.")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("프로필 저장 실패", error=str(e), error_type=type(e).__name__, user_id=user_id)
        raise StorageError()

    logger.info("프로필 수정 완료", user_id=user_id, fields=sorted(changes.keys()))
    return user
