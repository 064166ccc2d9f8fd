"""
기록 목록 필터 -> 조건절 빌더

필터 파라미터를 (field, op, value) 형태의 Clause 목록으로 만든 뒤
SQLAlchemy 표현식으로 컴파일합니다. 값은 항상 바인딩 파라미터로 전달되므로
문자열 이어붙이기로 SQL을 만들지 않습니다.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import exists, false, select
from sqlalchemy.sql.elements import ColumnElement

from app.db.models import AIReview, Favorite, TradingRecord, User
from app.models.schemas import RecordFilterParams


@dataclass(frozen=True)
class Clause:
    field: str
    op: str
    value: Any = None


# 목록에 노출될 수 있는 기록: 삭제되지 않았고, 작성자가 활성 사용자
BASE_CLAUSES = (
    Clause("is_deleted", "eq", False),
    Clause("owner_active", "eq", True),
)

# 결과가 항상 비도록 만드는 조건
EMPTY_RESULT = Clause("id", "in", ())


def build_clauses(filters: RecordFilterParams, viewer_id: Optional[int] = None) -> List[Clause]:
    """
    필터와 (선택적) 조회자 ID로 AND 결합될 Clause 목록 생성

    sort=mine / sort=favorites 는 조회자가 없으면 빈 결과가 됩니다.
    """
    clauses = list(BASE_CLAUSES)

    if filters.coin:
        # 저장된 심볼은 항상 대문자라서 소문자가 섞인 검색어는 일치할 수 없다
        if filters.coin != filters.coin.upper():
            clauses.append(EMPTY_RESULT)
        else:
            clauses.append(Clause("coin_symbol", "contains", filters.coin))

    if filters.user_id is not None:
        clauses.append(Clause("owner_id", "eq", filters.user_id))

    if filters.date_from is not None:
        clauses.append(Clause("review_date", "gte", filters.date_from))
    if filters.date_to is not None:
        clauses.append(Clause("review_date", "lte", filters.date_to))

    if filters.has_ai_review is not None:
        clauses.append(Clause("has_ai_review", "exists", filters.has_ai_review))

    if filters.sort == "mine":
        clauses.append(Clause("owner_id", "eq", viewer_id) if viewer_id is not None else EMPTY_RESULT)
    elif filters.sort == "favorites":
        clauses.append(Clause("favorited_by", "exists", viewer_id) if viewer_id is not None else EMPTY_RESULT)

    return clauses


def _column(field: str):
    columns = {
        "id": TradingRecord.id,
        "owner_id": TradingRecord.user_id,
        "coin_symbol": TradingRecord.coin_symbol,
        "review_date": TradingRecord.review_date,
        "is_deleted": TradingRecord.is_deleted,
        "owner_active": User.is_active,
    }
    if field not in columns:
        raise ValueError(f"알 수 없는 필터 필드: {field}")
    return columns[field]


def compile_clause(clause: Clause) -> ColumnElement:
    """
    Clause 하나를 SQLAlchemy 조건식으로 변환
    (User 테이블이 조인된 TradingRecord 쿼리 기준)
    """
    if clause.op == "exists":
        if clause.field == "favorited_by":
            return exists(
                select(Favorite.id).where(
                    Favorite.record_id == TradingRecord.id,
                    Favorite.user_id == clause.value,
                )
            )
        if clause.field == "has_ai_review":
            has_review = exists(select(AIReview.id).where(AIReview.record_id == TradingRecord.id))
            return has_review if clause.value else ~has_review
        raise ValueError(f"exists를 지원하지 않는 필드: {clause.field}")

    column = _column(clause.field)
    if clause.op == "eq":
        if isinstance(clause.value, bool):
            return column.is_(clause.value)
        return column == clause.value
    if clause.op == "contains":
        return column.contains(clause.value, autoescape=True)
    if clause.op == "gte":
        return column >= clause.value
    if clause.op == "lte":
        return column <= clause.value
    if clause.op == "in":
        values = list(clause.value)
        return column.in_(values) if values else false()
    raise ValueError(f"알 수 없는 연산자: {clause.op}")


def compile_clauses(clauses: List[Clause]) -> List[ColumnElement]:
    return [compile_clause(clause) for clause in clauses]
