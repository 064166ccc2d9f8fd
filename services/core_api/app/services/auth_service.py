"""
인증 서비스
비밀번호 해싱, JWT 발급/검증, 세션 발급/폐기, 토큰 -> 사용자 해석
"""

import secrets
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import StorageError
from app.core.logging_config import get_logger
from app.db.models import User, UserSession, utcnow

# 로거 설정
logger = get_logger(__name__)

# 설정 가져오기
settings = get_settings()

# 비밀번호 해싱 설정
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


# ==================== 비밀번호 ====================

def hash_password(password: str) -> str:
    """비밀번호를 해시화 (CPU 집약적 동기 함수, asyncio.to_thread로 호출)"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """비밀번호 검증 (CPU 집약적 동기 함수, asyncio.to_thread로 호출)"""
    return pwd_context.verify(plain_password, hashed_password)


# ==================== JWT ====================

def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    JWT 액세스 토큰 생성

    jti에 난수를 넣어 같은 초에 여러 번 로그인해도 토큰(=세션 키)이 겹치지 않게 합니다.
    """
    issued_at = utcnow()
    expire = issued_at + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "iat": issued_at,
        "exp": expire,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """서명과 만료를 검증하고 페이로드를 반환. 실패 시 None"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ==================== 세션 ====================

def issue_session(db: AsyncSession, user: User) -> str:
    """
    토큰을 발급하고 세션 행을 추가합니다.
    commit은 호출자의 트랜잭션에서 수행합니다 (사용자 생성과 함께 원자적으로 처리하기 위함).

    user.id가 채워져 있어야 하므로 신규 사용자는 먼저 flush 해야 합니다.
    """
    token = create_access_token(user)
    db.add(UserSession(
        user_id=user.id,
        session_token=token,
        expires_at=utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    ))
    return token


async def revoke_session(db: AsyncSession, token: str) -> bool:
    """세션 행을 삭제하여 토큰을 폐기합니다. 삭제된 행이 있으면 True"""
    try:
        result = await db.execute(delete(UserSession).where(UserSession.session_token == token))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("세션 폐기 실패", error=str(e), error_type=type(e).__name__)
        raise StorageError()
    return result.rowcount > 0


async def resolve_user(db: AsyncSession, token: Optional[str]) -> Optional[User]:
    """
    Bearer 토큰을 사용자로 해석합니다.

    - 토큰 없음/형식 오류/서명 검증 실패 -> None
    - 만료되지 않은 세션 + 활성 사용자가 없으면 -> None
    - 저장소 오류도 None (익명으로 강등, 공개 조회는 계속 가능)

    읽기 전용이며 세션 만료 시각을 연장하지 않습니다.
    """
    if not token or not token.strip():
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        result = await db.execute(
            select(User)
            .join(UserSession, UserSession.user_id == User.id)
            .where(
                UserSession.session_token == token,
                UserSession.expires_at > utcnow(),
                User.is_active.is_(True),
            )
        )
        user = result.scalars().first()
    except SQLAlchemyError as e:
        logger.error("세션 조회 실패", error=str(e), error_type=type(e).__name__)
        return None

    if user is None:
        return None

    # 서명된 sub와 세션 소유자가 다르면 위조로 간주
    if str(user.id) != str(payload.get("sub")):
        logger.warning("토큰 sub와 세션 소유자 불일치", user_id=user.id)
        return None

    return user
