"""
커뮤니티 통계 API 엔드포인트
공개된 기록을 집계하여 대시보드용 통계 생성
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Annotated

from app.db.session import get_db
from app.db.models import AIReview, Favorite, TradingRecord, User, utcnow
from app.models.schemas import CoinCount, StatsResponse
from app.services.record_filters import BASE_CLAUSES, compile_clauses
from app.core.logging_config import get_logger

# 로거 설정
logger = get_logger(__name__)

router = APIRouter(prefix="/stats", tags=["Stats"])

POPULAR_COIN_LIMIT = 5


@router.get("", response_model=StatsResponse)
async def get_community_stats(
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    커뮤니티 통계
    - 공개 기록 수 / 활성 사용자 수
    - 공개 기록에 달린 즐겨찾기 수 / AI 리뷰 수
    - 많이 기록된 코인 Top 5 (Bar Chart용)
    """
    visible = compile_clauses(list(BASE_CLAUSES))

    # --- 1. 기본 집계 (SQL Aggregation) ---
    # 삭제되지 않았고 작성자가 활성인 기록만 센다
    visible_ids = (
        select(TradingRecord.id)
        .join(User, User.id == TradingRecord.user_id)
        .where(*visible)
    )

    total_records = (await db.execute(
        select(func.count()).select_from(visible_ids.subquery())
    )).scalar_one()

    total_users = (await db.execute(
        select(func.count(User.id)).where(User.is_active.is_(True))
    )).scalar_one()

    total_favorites = (await db.execute(
        select(func.count(Favorite.id)).where(Favorite.record_id.in_(visible_ids))
    )).scalar_one()

    ai_reviews_count = (await db.execute(
        select(func.count(AIReview.id)).where(AIReview.record_id.in_(visible_ids))
    )).scalar_one()

    # --- 2. 코인별 기록 수 (빈도순, 같으면 심볼순) ---
    coin_count = func.count(TradingRecord.id)
    coin_rows = (await db.execute(
        select(TradingRecord.coin_symbol, coin_count)
        .join(User, User.id == TradingRecord.user_id)
        .where(*visible)
        .group_by(TradingRecord.coin_symbol)
        .order_by(coin_count.desc(), TradingRecord.coin_symbol.asc())
        .limit(POPULAR_COIN_LIMIT)
    )).all()

    logger.info("커뮤니티 통계 생성", total_records=total_records, total_users=total_users)

    # --- 3. 최종 응답 구성 ---
    return StatsResponse(
        total_records=total_records,
        total_users=total_users,
        total_favorites=total_favorites,
        ai_reviews_count=ai_reviews_count,
        popular_coins=[CoinCount(symbol=symbol, count=count) for symbol, count in coin_rows],
        generated_at=utcnow(),
    )
