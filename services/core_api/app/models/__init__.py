"""
Pydantic 스키마 모듈
"""

from .schemas import (
    # 인증 관련
    UserCreate,
    LoginRequest,
    UserResponse,
    UserUpdate,
    AuthResponse,
    ValidateResponse,
    # 기록 관련
    NoteIn,
    RecordCreate,
    RecordUpdate,
    NoteResponse,
    AIReviewResponse,
    TradingRecordResponse,
    RecordPage,
    RecordFilterParams,
    FavoriteToggleResponse,
    # 통계 관련
    CoinCount,
    StatsResponse,
)

__all__ = [
    "UserCreate",
    "LoginRequest",
    "UserResponse",
    "UserUpdate",
    "AuthResponse",
    "ValidateResponse",
    "NoteIn",
    "RecordCreate",
    "RecordUpdate",
    "NoteResponse",
    "AIReviewResponse",
    "TradingRecordResponse",
    "RecordPage",
    "RecordFilterParams",
    "FavoriteToggleResponse",
    "CoinCount",
    "StatsResponse",
]
