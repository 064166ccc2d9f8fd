"""
기록 변경 서비스
기록+노트 생성/수정(원자적), 소프트 삭제, 즐겨찾기 토글

검증은 스키마(RecordCreate/RecordUpdate)에서, 소유권 확인은 owns()에서
모든 쓰기 이전에 끝납니다.
"""

from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, NotFoundError, StorageError
from app.core.logging_config import get_logger
from app.db.models import Favorite, TradingNote, TradingRecord, User, utcnow
from app.models.schemas import (
    FavoriteToggleResponse,
    NoteIn,
    RecordCreate,
    RecordUpdate,
    TradingRecordResponse,
)
from app.services.record_query import find_visible_record, get_record

logger = get_logger(__name__)

RECORD_NOT_FOUND = "기록을 찾을 수 없습니다."


def owns(user: Optional[User], record: TradingRecord) -> bool:
    """기록 소유자 여부 (모든 변경 작업 전에 사용하는 단일 권한 판단)"""
    return user is not None and record.user_id == user.id


def _build_notes(record_id: int, notes: List[NoteIn]) -> List[TradingNote]:
    return [
        TradingNote(
            record_id=record_id,
            note_order=note.note_order,
            note_type=note.note_type,
            content=note.content if note.note_type == "text" else None,
            image_url=note.image_url if note.note_type == "image" else None,
        )
        for note in sorted(notes, key=lambda n: n.note_order)
    ]


async def _load_owned_record(db: AsyncSession, user: User, record_id: int) -> TradingRecord:
    """존재 확인 -> 소유권 확인. 둘 다 쓰기 전에 수행"""
    record = await find_visible_record(db, record_id)
    if record is None:
        raise NotFoundError(RECORD_NOT_FOUND)
    if not owns(user, record):
        logger.warning("기록 소유자가 아닌 사용자의 변경 시도", user_id=user.id, record_id=record_id)
        raise AuthorizationError("본인이 작성한 기록만 수정하거나 삭제할 수 있습니다.")
    return record


async def create_record(db: AsyncSession, owner: User, payload: RecordCreate) -> TradingRecordResponse:
    """
    기록과 노트를 하나의 트랜잭션으로 저장하고, 집계값이 채워진 기록을 반환합니다.
    노트 저장 중 실패하면 기록 행도 함께 롤백됩니다.
    """
    owner_id = owner.id
    try:
        record = TradingRecord(
            user_id=owner_id,
            review_date=payload.review_date,
            coin_symbol=payload.coin_symbol,
            chart_image_url=payload.chart_image_url,
            profit_loss_ratio=payload.profit_loss_ratio,
            thinking=payload.thinking,
        )
        db.add(record)
        await db.flush()  # record.id를 얻기 위해 flush (아직 commit은 안 함)

        db.add_all(_build_notes(record.id, payload.notes))
        await db.commit()
    except SQLAlchemyError as e:
        # 에러 발생 시 롤백 (기록도 함께 롤백됨)
        await db.rollback()
        logger.error(
            "기록 저장 실패",
            error=str(e),
            error_type=type(e).__name__,
            user_id=owner_id,
            coin_symbol=payload.coin_symbol,
        )
        raise StorageError()

    logger.info(
        "기록 생성 완료",
        user_id=owner_id,
        record_id=record.id,
        coin_symbol=record.coin_symbol,
        note_count=len(payload.notes),
    )
    return await get_record(db, record.id, viewer_id=owner_id)


async def update_record(
    db: AsyncSession,
    caller: User,
    record_id: int,
    payload: RecordUpdate,
) -> TradingRecordResponse:
    """
    기록 부분 수정 (소유자만 가능)

    payload에 포함된 필드만 변경합니다. notes가 포함되면 기존 노트를 모두 지우고
    새 노트로 교체합니다 (병합하지 않음).
    """
    caller_id = caller.id
    record = await _load_owned_record(db, caller, record_id)

    changes = payload.model_dump(exclude_unset=True, exclude={"notes"})
    replace_notes = "notes" in payload.model_fields_set

    try:
        for field, value in changes.items():
            setattr(record, field, value)
        record.updated_at = utcnow()

        if replace_notes:
            await db.execute(delete(TradingNote).where(TradingNote.record_id == record.id))
            # 고유 제약(record_id, note_order) 때문에 삭제를 먼저 반영
            await db.flush()
            db.add_all(_build_notes(record.id, payload.notes))

        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "기록 수정 실패",
            error=str(e),
            error_type=type(e).__name__,
            user_id=caller_id,
            record_id=record_id,
        )
        raise StorageError()

    logger.info(
        "기록 수정 완료",
        user_id=caller_id,
        record_id=record_id,
        fields=sorted(changes.keys()),
        notes_replaced=replace_notes,
    )
    return await get_record(db, record_id, viewer_id=caller_id)


async def delete_record(db: AsyncSession, caller: User, record_id: int) -> None:
    """소프트 삭제 (is_deleted 플래그). 이후 모든 조회에서 제외됩니다."""
    record = await _load_owned_record(db, caller, record_id)

    try:
        record.is_deleted = True
        record.updated_at = utcnow()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("기록 삭제 실패", error=str(e), error_type=type(e).__name__, record_id=record_id)
        raise StorageError()

    logger.info("기록 삭제 완료", user_id=caller.id, record_id=record_id)


async def count_favorites(db: AsyncSession, record_id: int) -> int:
    result = await db.execute(select(func.count(Favorite.id)).where(Favorite.record_id == record_id))
    return result.scalar_one()


async def toggle_favorite(db: AsyncSession, caller: User, record_id: int) -> FavoriteToggleResponse:
    """
    (caller, record) 즐겨찾기 토글

    먼저 삭제를 시도해 있으면 해제, 없으면 추가합니다.
    동시 토글로 추가가 고유 제약에 걸리면 '이미 즐겨찾기됨'으로 처리합니다.
    """
    caller_id = caller.id
    record = await find_visible_record(db, record_id)
    if record is None:
        raise NotFoundError(RECORD_NOT_FOUND)

    try:
        result = await db.execute(
            delete(Favorite).where(Favorite.user_id == caller_id, Favorite.record_id == record_id)
        )
        if result.rowcount > 0:
            is_favorited = False
        else:
            db.add(Favorite(user_id=caller_id, record_id=record_id))
            is_favorited = True
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("즐겨찾기 중복 추가 무시", user_id=caller_id, record_id=record_id)
        is_favorited = True
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("즐겨찾기 처리 실패", error=str(e), error_type=type(e).__name__, record_id=record_id)
        raise StorageError()

    favorite_count = await count_favorites(db, record_id)
    logger.info(
        "즐겨찾기 토글",
        user_id=caller_id,
        record_id=record_id,
        is_favorited=is_favorited,
        favorite_count=favorite_count,
    )
    return FavoriteToggleResponse(is_favorited=is_favorited, favorite_count=favorite_count)
