"""
인증 서비스 테스트 (토큰 -> 사용자 해석)
"""

from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import StorageError
from app.db.models import User, UserSession, utcnow
from app.services.auth_service import (
    create_access_token,
    decode_access_token,
    hash_password,
    issue_session,
    resolve_user,
    revoke_session,
    verify_password,
)


async def _login(db_session, user: User) -> str:
    token = issue_session(db_session, user)
    await db_session.commit()
    return token


def test_password_hash_roundtrip():
    hashed = hash_password("secret1")
    assert hashed != "secret1"
    assert verify_password("secret1", hashed)
    assert not verify_password("secret2", hashed)


@pytest.mark.asyncio
async def test_tokens_are_unique_per_login(db_session, make_user):
    user = await make_user("alice")
    first = await _login(db_session, user)
    second = await _login(db_session, user)
    assert first != second

    payload = decode_access_token(first)
    assert payload["sub"] == str(user.id)
    assert payload["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_resolve_valid_session(db_session, make_user):
    user = await make_user("alice")
    token = await _login(db_session, user)

    resolved = await resolve_user(db_session, token)
    assert resolved is not None
    assert resolved.id == user.id


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, "", "   ", "not-a-jwt", "a.b.c"])
async def test_resolve_malformed_token(db_session, token):
    assert await resolve_user(db_session, token) is None


@pytest.mark.asyncio
async def test_resolve_tampered_token(db_session, make_user):
    user = await make_user("alice")
    token = await _login(db_session, user)

    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, ("A" if signature[0] != "A" else "B") + signature[1:]])
    assert await resolve_user(db_session, tampered) is None


@pytest.mark.asyncio
async def test_resolve_token_signed_with_other_key(db_session, make_user):
    user = await make_user("alice")
    settings = get_settings()
    forged = jwt.encode(
        {"sub": str(user.id), "exp": utcnow() + timedelta(hours=1)},
        "another-secret-key-that-is-long-enough-000",
        algorithm=settings.ALGORITHM,
    )
    assert await resolve_user(db_session, forged) is None


@pytest.mark.asyncio
async def test_valid_jwt_without_session(db_session, make_user):
    user = await make_user("alice")
    token = create_access_token(user)
    assert decode_access_token(token) is not None
    assert await resolve_user(db_session, token) is None


@pytest.mark.asyncio
async def test_resolve_expired_session(db_session, make_user):
    user = await make_user("alice")
    token = await _login(db_session, user)

    await db_session.execute(
        update(UserSession)
        .where(UserSession.session_token == token)
        .values(expires_at=utcnow() - timedelta(seconds=1))
    )
    await db_session.commit()

    assert await resolve_user(db_session, token) is None


@pytest.mark.asyncio
async def test_resolve_inactive_user(db_session, make_user):
    user = await make_user("alice")
    token = await _login(db_session, user)

    user.is_active = False
    await db_session.commit()

    assert await resolve_user(db_session, token) is None


@pytest.mark.asyncio
async def test_revoked_session(db_session, make_user):
    user = await make_user("alice")
    token = await _login(db_session, user)
    other = await _login(db_session, user)

    assert await revoke_session(db_session, token) is True
    assert await revoke_session(db_session, token) is False

    assert await resolve_user(db_session, token) is None
    # 다른 세션은 영향 없음
    assert (await resolve_user(db_session, other)).id == user.id


@pytest.mark.asyncio
async def test_session_of_other_user_rejected(db_session, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    token = create_access_token(alice)
    # alice의 토큰이 bob 세션으로 저장된 경우 (sub 불일치)
    db_session.add(UserSession(
        user_id=bob.id,
        session_token=token,
        expires_at=utcnow() + timedelta(hours=1),
    ))
    await db_session.commit()

    assert await resolve_user(db_session, token) is None


@pytest.mark.asyncio
async def test_revoke_session_storage_failure(db_session, make_user, monkeypatch):
    user = await make_user("alice")
    token = await _login(db_session, user)
    user_id = user.id

    async def broken_commit(self):
        raise OperationalError("DELETE", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", broken_commit)

    with pytest.raises(StorageError):
        await revoke_session(db_session, token)

    monkeypatch.undo()
    # 롤백되었으므로 세션은 그대로 유효
    assert (await resolve_user(db_session, token)).id == user_id
