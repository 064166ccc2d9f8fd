"""
매매 기록 API 엔드포인트
목록 조회(익명 허용), 생성, 상세, 수정, 삭제, 즐겨찾기 토글
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user, get_optional_user
from app.core.exceptions import InputValidationError, NotFoundError
from app.core.logging_config import get_logger
from app.db.models import User
from app.db.session import get_db
from app.models.schemas import (
    FavoriteToggleResponse,
    RecordCreate,
    RecordFilterParams,
    RecordPage,
    RecordUpdate,
    TradingRecordResponse,
)
from app.services import record_service
from app.services.record_query import get_record, list_records

# 로거 설정
logger = get_logger(__name__)

router = APIRouter(prefix="/records", tags=["Records"])


def get_record_filters(request: Request) -> RecordFilterParams:
    """
    쿼리 문자열을 RecordFilterParams로 검증
    잘못된 값은 쿼리 실행 전에 필드별 오류로 400을 반환합니다.
    """
    try:
        return RecordFilterParams.model_validate(dict(request.query_params))
    except ValidationError as e:
        logger.warning("기록 목록 필터 검증 실패", errors=e.error_count())
        raise InputValidationError.from_pydantic(e, "조회 조건이 올바르지 않습니다.")


@router.get("", response_model=RecordPage)
async def list_trading_records(
    filters: Annotated[RecordFilterParams, Depends(get_record_filters)],
    db: Annotated[AsyncSession, Depends(get_db)],
    viewer: Annotated[Optional[User], Depends(get_optional_user)]
):
    """
    기록 목록 조회

    Query Params:
        page, limit, sort(latest|popular|mine|favorites), coin,
        userId, dateFrom, dateTo, hasAiReview
    """
    return await list_records(db, filters, viewer.id if viewer else None)


@router.post("", response_model=TradingRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_trading_record(
    payload: RecordCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """새 기록 생성 (노트 포함, 원자적 저장)"""
    return await record_service.create_record(db, current_user, payload)


@router.get("/{record_id}", response_model=TradingRecordResponse)
async def get_trading_record(
    record_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    viewer: Annotated[Optional[User], Depends(get_optional_user)]
):
    """기록 상세 조회 (AI 리뷰 포함)"""
    record = await get_record(db, record_id, viewer.id if viewer else None)
    if record is None:
        raise NotFoundError(record_service.RECORD_NOT_FOUND)
    return record


@router.put("/{record_id}", response_model=TradingRecordResponse)
async def update_trading_record(
    record_id: int,
    payload: RecordUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """
    기록 부분 수정 (작성자만 가능)
    notes를 생략하면 기존 노트 유지, []이면 전부 삭제
    """
    return await record_service.update_record(db, current_user, record_id, payload)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trading_record(
    record_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """기록 삭제 (소프트 삭제, 작성자만 가능)"""
    await record_service.delete_record(db, current_user, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{record_id}/favorite", response_model=FavoriteToggleResponse)
async def toggle_record_favorite(
    record_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """즐겨찾기 토글 -> {isFavorited, favoriteCount}"""
    return await record_service.toggle_favorite(db, current_user, record_id)
