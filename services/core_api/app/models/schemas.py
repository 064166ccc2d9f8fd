"""
Pydantic 스키마 정의
API 요청/응답 데이터 유효성 검사 및 직렬화

JSON 키는 camelCase(reviewDate, coinSymbol ...)를 사용하며,
요청 본문은 snake_case 이름도 허용합니다.
"""

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Literal, Optional, List
from datetime import date, datetime
import re


USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_\u4e00-\u9fa5]+$')
COIN_SYMBOL_PATTERN = re.compile(r'^[A-Z0-9]+$')
ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

MAX_NOTES_PER_RECORD = 10
MAX_THINKING_LENGTH = 2000
MAX_NOTE_CONTENT_LENGTH = 1000


class CamelModel(BaseModel):
    """camelCase 별칭을 쓰는 공통 베이스"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True  # SQLAlchemy 모델에서 자동 변환


def parse_iso_date(v, field_label: str = "날짜"):
    """'YYYY-MM-DD' 문자열을 실제 달력 날짜로 변환 (None은 그대로 통과)"""
    if v is None or isinstance(v, date):
        return v
    if not isinstance(v, str) or not ISO_DATE_PATTERN.fullmatch(v):
        raise ValueError(f"{field_label} 형식이 올바르지 않습니다. (YYYY-MM-DD)")
    try:
        return date.fromisoformat(v)
    except ValueError:
        raise ValueError(f"존재하지 않는 {field_label}입니다: {v}")


def normalize_coin_symbol(v):
    """코인 심볼을 대문자로 정규화한 뒤 형식 검증"""
    if v is None:
        return v
    if not isinstance(v, str):
        raise ValueError("코인 심볼은 문자열이어야 합니다.")
    v = v.strip().upper()
    if not v:
        raise ValueError("코인 심볼은 필수입니다.")
    if len(v) > 20:
        raise ValueError("코인 심볼은 최대 20자까지 입력 가능합니다.")
    if not COIN_SYMBOL_PATTERN.fullmatch(v):
        raise ValueError("코인 심볼은 영문 대문자와 숫자만 사용할 수 있습니다.")
    return v


# ==================== 인증 관련 스키마 ====================

class UserCreate(CamelModel):
    """사용자 생성 요청 스키마"""
    username: str = Field(..., min_length=3, max_length=50, description="사용자 이름 (영문, 숫자, _, 한자)")
    email: EmailStr = Field(..., description="이메일 (로그인 ID)")
    password: str = Field(..., min_length=6, max_length=100, description="비밀번호 (6~100자)")

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not USERNAME_PATTERN.fullmatch(v):
            raise ValueError("사용자 이름은 영문, 숫자, 밑줄(_)과 한자만 사용할 수 있습니다.")
        return v

    @field_validator('email')
    @classmethod
    def validate_email_length(cls, v: str) -> str:
        if len(v) > 100:
            raise ValueError("이메일 주소가 너무 깁니다.")
        return v


class LoginRequest(CamelModel):
    """로그인 요청 스키마"""
    email: EmailStr
    password: str = Field(..., min_length=1, description="비밀번호")


class UserResponse(CamelModel):
    """사용자 공개 정보 응답 스키마 (비밀번호 해시는 절대 포함하지 않음)"""
    id: int
    username: str
    email: str
    avatar_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    """등록/로그인 응답 스키마"""
    token: str
    token_type: str = "bearer"
    user: UserResponse


class ValidateResponse(CamelModel):
    user: UserResponse


class UserUpdate(CamelModel):
    """프로필 수정 요청 스키마 (부분 수정)"""
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = Field(None, max_length=500)
    current_password: Optional[str] = Field(None, min_length=1)
    new_password: Optional[str] = Field(None, min_length=6, max_length=100)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not USERNAME_PATTERN.fullmatch(v):
            raise ValueError("사용자 이름은 영문, 숫자, 밑줄(_)과 한자만 사용할 수 있습니다.")
        return v

    @model_validator(mode="after")
    def check_password_change(self):
        # 비밀번호를 바꾸려면 현재 비밀번호가 필요
        if self.new_password and not self.current_password:
            raise ValueError("비밀번호를 변경하려면 현재 비밀번호를 입력해야 합니다.")
        return self


# ==================== 매매 기록(TradingRecord) 관련 스키마 ====================

class NoteIn(CamelModel):
    """노트 입력 스키마 (noteOrder/noteType 또는 order/kind)"""
    note_order: int = Field(
        ...,
        ge=1,
        le=MAX_NOTES_PER_RECORD,
        validation_alias=AliasChoices("noteOrder", "note_order", "order"),
    )
    note_type: Literal["text", "image"] = Field(
        ...,
        validation_alias=AliasChoices("noteType", "note_type", "kind"),
    )
    content: Optional[str] = Field(None, max_length=MAX_NOTE_CONTENT_LENGTH)
    image_url: Optional[str] = Field(
        None,
        max_length=500,
        validation_alias=AliasChoices("imageUrl", "image_url"),
    )

    @model_validator(mode="after")
    def check_kind_content(self):
        """노트 종류에 맞는 내용이 있는지 검증"""
        if self.note_type == "text" and not (self.content and self.content.strip()):
            raise ValueError("텍스트 노트는 내용(content)이 필요합니다.")
        if self.note_type == "image" and not (self.image_url and self.image_url.strip()):
            raise ValueError("이미지 노트는 이미지 주소(imageUrl)가 필요합니다.")
        return self


def check_note_orders(notes: Optional[List[NoteIn]]) -> Optional[List[NoteIn]]:
    if notes is None:
        return notes
    if len(notes) > MAX_NOTES_PER_RECORD:
        raise ValueError(f"노트는 최대 {MAX_NOTES_PER_RECORD}개까지 추가할 수 있습니다.")
    orders = [note.note_order for note in notes]
    if len(orders) != len(set(orders)):
        raise ValueError("노트 순서(noteOrder)는 기록 안에서 중복될 수 없습니다.")
    return notes


class RecordCreate(CamelModel):
    """매매 기록 생성 요청 스키마"""
    review_date: date = Field(..., description="복기 날짜 (YYYY-MM-DD)")
    coin_symbol: str = Field(..., description="코인 심볼 (대문자로 정규화)")
    chart_image_url: Optional[str] = Field(None, max_length=500)
    profit_loss_ratio: Optional[float] = Field(None, ge=-100, le=1000, description="손익률 (%)")
    thinking: Optional[str] = Field(None, max_length=MAX_THINKING_LENGTH)
    notes: List[NoteIn] = Field(default_factory=list)

    @field_validator('review_date', mode='before')
    @classmethod
    def validate_review_date(cls, v):
        return parse_iso_date(v, "복기 날짜")

    @field_validator('coin_symbol', mode='before')
    @classmethod
    def validate_coin_symbol(cls, v):
        return normalize_coin_symbol(v)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v: List[NoteIn]) -> List[NoteIn]:
        return check_note_orders(v)


class RecordUpdate(CamelModel):
    """
    매매 기록 수정 요청 스키마 (부분 수정)

    notes 규칙: 생략하면 기존 노트 유지, []이면 전부 삭제, 목록이면 전체 교체.
    reviewDate, coinSymbol, notes는 명시적인 null을 허용하지 않습니다.
    """
    review_date: Optional[date] = None
    coin_symbol: Optional[str] = None
    chart_image_url: Optional[str] = Field(None, max_length=500)
    profit_loss_ratio: Optional[float] = Field(None, ge=-100, le=1000)
    thinking: Optional[str] = Field(None, max_length=MAX_THINKING_LENGTH)
    notes: Optional[List[NoteIn]] = None

    @field_validator('review_date', mode='before')
    @classmethod
    def validate_review_date(cls, v):
        if v is None:
            raise ValueError("복기 날짜는 null일 수 없습니다.")
        return parse_iso_date(v, "복기 날짜")

    @field_validator('coin_symbol', mode='before')
    @classmethod
    def validate_coin_symbol(cls, v):
        if v is None:
            raise ValueError("코인 심볼은 null일 수 없습니다.")
        return normalize_coin_symbol(v)

    @field_validator('notes', mode='before')
    @classmethod
    def reject_null_notes(cls, v):
        if v is None:
            raise ValueError("notes는 null일 수 없습니다. 전체 삭제는 []를 사용하세요.")
        return v

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v: Optional[List[NoteIn]]) -> Optional[List[NoteIn]]:
        return check_note_orders(v)


class NoteResponse(CamelModel):
    id: int
    record_id: int
    note_order: int
    note_type: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime


class AIReviewResponse(CamelModel):
    id: int
    record_id: int
    review_content: str
    model_name: str
    created_at: datetime
    updated_at: datetime


class TradingRecordResponse(CamelModel):
    """매매 기록 응답 스키마 (집계값 포함)"""
    id: int
    user_id: int
    username: str
    user_avatar: Optional[str] = None
    review_date: date
    coin_symbol: str
    chart_image_url: Optional[str] = None
    profit_loss_ratio: Optional[float] = None
    thinking: Optional[str] = None
    favorite_count: int = 0
    is_favorited: bool = False
    has_ai_review: bool = False
    notes: List[NoteResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    ai_review: Optional[AIReviewResponse] = None


class RecordPage(CamelModel):
    """페이지네이션된 기록 목록"""
    items: List[TradingRecordResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class FavoriteToggleResponse(CamelModel):
    is_favorited: bool
    favorite_count: int


# ==================== 목록 필터 스키마 ====================

SortOption = Literal["latest", "popular", "mine", "favorites"]


class RecordFilterParams(CamelModel):
    """기록 목록 조회 쿼리 파라미터"""
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort: SortOption = "latest"
    coin: Optional[str] = Field(None, max_length=20)
    user_id: Optional[int] = Field(None, gt=0)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    has_ai_review: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def drop_empty_values(cls, data):
        # ?coin=&dateFrom= 처럼 빈 문자열은 미지정으로 처리
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v != ""}
        return data

    @field_validator('sort', mode='before')
    @classmethod
    def normalize_sort(cls, v):
        # 구 버전 클라이언트의 sort=my
        if v == "my":
            return "mine"
        return v

    @field_validator('date_from', 'date_to', mode='before')
    @classmethod
    def validate_dates(cls, v):
        return parse_iso_date(v)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("dateFrom은 dateTo보다 늦을 수 없습니다.")
        return self


# ==================== 통계 관련 스키마 ====================

class CoinCount(CamelModel):
    symbol: str
    count: int


class StatsResponse(CamelModel):
    """커뮤니티 통계 응답 스키마"""
    total_records: int
    total_users: int
    total_favorites: int
    ai_reviews_count: int
    popular_coins: List[CoinCount]
    generated_at: datetime
