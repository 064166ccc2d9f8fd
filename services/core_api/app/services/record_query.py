"""
기록 조회 엔진
필터/정렬/페이지네이션과 즐겨찾기 수, 즐겨찾기 여부, AI 리뷰 존재 여부 집계
"""

import math
from typing import List, Optional

from sqlalchemy import exists, func, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, selectinload

from app.core.exceptions import StorageError
from app.core.logging_config import get_logger
from app.db.models import AIReview, Favorite, TradingRecord, User
from app.models.schemas import (
    AIReviewResponse,
    NoteResponse,
    RecordFilterParams,
    RecordPage,
    TradingRecordResponse,
)
from app.services.record_filters import BASE_CLAUSES, Clause, build_clauses, compile_clauses

logger = get_logger(__name__)


async def _execute(db: AsyncSession, statement, **context):
    """조회 쿼리 실행. 저장소 오류는 롤백 후 StorageError로 변환"""
    try:
        return await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("기록 조회 실패", error=str(e), error_type=type(e).__name__, **context)
        raise StorageError()


def _record_select(viewer_id: Optional[int]):
    """
    기록 + 집계 컬럼을 함께 조회하는 기본 SELECT
    (favorite_count, is_favorited, has_ai_review)
    """
    favorite_counts = (
        select(
            Favorite.record_id.label("record_id"),
            func.count(Favorite.id).label("favorite_count"),
        )
        .group_by(Favorite.record_id)
        .subquery("favorite_counts")
    )
    favorite_count = func.coalesce(favorite_counts.c.favorite_count, 0)

    if viewer_id is not None:
        is_favorited = exists(
            select(Favorite.id).where(
                Favorite.record_id == TradingRecord.id,
                Favorite.user_id == viewer_id,
            )
        )
    else:
        is_favorited = literal(False)

    has_ai_review = exists(select(AIReview.id).where(AIReview.record_id == TradingRecord.id))

    query = (
        select(
            TradingRecord,
            favorite_count.label("favorite_count"),
            is_favorited.label("is_favorited"),
            has_ai_review.label("has_ai_review"),
        )
        .join(User, User.id == TradingRecord.user_id)
        .outerjoin(favorite_counts, favorite_counts.c.record_id == TradingRecord.id)
        .options(
            contains_eager(TradingRecord.owner),
            selectinload(TradingRecord.notes),
        )
        # 같은 세션에서 노트를 교체한 직후에도 최신 상태로 다시 채운다
        .execution_options(populate_existing=True)
    )
    return query, favorite_count


def to_record_response(
    record: TradingRecord,
    favorite_count: int = 0,
    is_favorited: bool = False,
    has_ai_review: bool = False,
    include_ai_review: bool = False,
) -> TradingRecordResponse:
    """ORM 객체 + 집계값 -> 응답 스키마"""
    ai_review = None
    if include_ai_review and record.ai_review is not None:
        ai_review = AIReviewResponse.model_validate(record.ai_review)

    return TradingRecordResponse(
        id=record.id,
        user_id=record.user_id,
        username=record.owner.username,
        user_avatar=record.owner.avatar_url,
        review_date=record.review_date,
        coin_symbol=record.coin_symbol,
        chart_image_url=record.chart_image_url,
        profit_loss_ratio=record.profit_loss_ratio,
        thinking=record.thinking,
        favorite_count=int(favorite_count or 0),
        is_favorited=bool(is_favorited),
        has_ai_review=bool(has_ai_review),
        notes=[NoteResponse.model_validate(note) for note in record.notes],
        created_at=record.created_at,
        updated_at=record.updated_at,
        ai_review=ai_review,
    )


async def list_records(
    db: AsyncSession,
    filters: RecordFilterParams,
    viewer_id: Optional[int] = None,
) -> RecordPage:
    """
    필터 조건에 맞는 기록 한 페이지와 전체 개수를 반환합니다.

    데이터 쿼리와 COUNT 쿼리는 같은 조건절 목록을 사용합니다.
    """
    clauses = build_clauses(filters, viewer_id)
    conditions = compile_clauses(clauses)

    query, favorite_count = _record_select(viewer_id)
    query = query.where(*conditions)

    if filters.sort == "popular":
        query = query.order_by(
            favorite_count.desc(),
            TradingRecord.created_at.desc(),
            TradingRecord.id.desc(),
        )
    else:
        query = query.order_by(TradingRecord.created_at.desc(), TradingRecord.id.desc())

    offset = (filters.page - 1) * filters.limit
    query = query.offset(offset).limit(filters.limit)

    count_query = (
        select(func.count(TradingRecord.id))
        .select_from(TradingRecord)
        .join(User, User.id == TradingRecord.user_id)
        .where(*conditions)
    )

    rows = (await _execute(db, query, sort=filters.sort, viewer_id=viewer_id)).all()
    total = (await _execute(db, count_query, sort=filters.sort, viewer_id=viewer_id)).scalar_one()

    items: List[TradingRecordResponse] = [
        to_record_response(record, fav_count, favorited, has_review)
        for record, fav_count, favorited, has_review in rows
    ]

    logger.debug(
        "기록 목록 조회",
        sort=filters.sort,
        page=filters.page,
        limit=filters.limit,
        total=total,
        viewer_id=viewer_id,
    )

    return RecordPage(
        items=items,
        total=total,
        page=filters.page,
        limit=filters.limit,
        total_pages=math.ceil(total / filters.limit) if total else 0,
    )


async def get_record(
    db: AsyncSession,
    record_id: int,
    viewer_id: Optional[int] = None,
    include_ai_review: bool = True,
) -> Optional[TradingRecordResponse]:
    """단일 기록 조회 (삭제되었거나 작성자가 비활성이면 None)"""
    query, _ = _record_select(viewer_id)
    query = query.where(*compile_clauses(list(BASE_CLAUSES) + [Clause("id", "eq", record_id)]))
    if include_ai_review:
        query = query.options(selectinload(TradingRecord.ai_review))

    row = (await _execute(db, query, record_id=record_id)).first()
    if row is None:
        return None

    record, fav_count, favorited, has_review = row
    return to_record_response(record, fav_count, favorited, has_review, include_ai_review=include_ai_review)


async def find_visible_record(db: AsyncSession, record_id: int) -> Optional[TradingRecord]:
    """수정/삭제/즐겨찾기 대상이 되는 기록 ORM 객체 조회"""
    result = await _execute(
        db,
        select(TradingRecord)
        .join(User, User.id == TradingRecord.user_id)
        .where(*compile_clauses(list(BASE_CLAUSES) + [Clause("id", "eq", record_id)])),
        record_id=record_id,
    )
    return result.scalar_one_or_none()
