"""
DB 모델 정의
User, UserSession, TradingRecord, TradingNote, Favorite, AIReview 테이블 및 관계 설정
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Boolean,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship, DeclarativeBase


def utcnow() -> datetime:
    """UTC 기준 naive datetime (DB에는 timezone 없이 저장)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# SQLAlchemy 모델의 기본 클래스
class Base(DeclarativeBase):
    pass


class User(Base):
    """
    User 테이블: 사용자 인증 및 기본 정보 저장
    물리 삭제 없이 is_active로만 비활성화합니다.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    avatar_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    records = relationship("TradingRecord", back_populates="owner")


class UserSession(Base):
    """
    UserSession 테이블: 로그인 세션 (토큰 폐기를 가능하게 함)
    사용자당 여러 세션을 동시에 가질 수 있습니다.
    """
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(512), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")


class TradingRecord(Base):
    """
    TradingRecord 테이블: 매매 복기 기록
    삭제 시 is_deleted 플래그만 세우고, 모든 조회에서 제외합니다.
    """
    __tablename__ = "trading_records"
    __table_args__ = (
        Index("ix_trading_records_visible_created", "is_deleted", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    review_date = Column(Date, nullable=False, index=True)
    coin_symbol = Column(String(20), nullable=False, index=True)  # 대문자 영숫자
    chart_image_url = Column(String(500), nullable=True)
    profit_loss_ratio = Column(Float, nullable=True)  # 손익률 (%)
    thinking = Column(Text, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="records")
    # 노트는 항상 note_order 순서로 로드
    notes = relationship(
        "TradingNote",
        back_populates="record",
        order_by="TradingNote.note_order",
        cascade="all, delete-orphan",
    )
    ai_review = relationship("AIReview", back_populates="record", uselist=False)


class TradingNote(Base):
    """
    TradingNote 테이블: 기록에 붙는 순서 있는 메모 (텍스트 또는 이미지)
    하나의 기록 안에서 note_order는 1~10 사이의 고유값입니다.
    """
    __tablename__ = "trading_notes"
    __table_args__ = (
        UniqueConstraint("record_id", "note_order", name="uq_trading_notes_record_order"),
        CheckConstraint("note_order BETWEEN 1 AND 10", name="ck_trading_notes_order_range"),
        CheckConstraint("note_type IN ('text', 'image')", name="ck_trading_notes_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(Integer, ForeignKey("trading_records.id", ondelete="CASCADE"), nullable=False, index=True)
    note_order = Column(Integer, nullable=False)
    note_type = Column(String(10), nullable=False)
    content = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    record = relationship("TradingRecord", back_populates="notes")


class Favorite(Base):
    """
    Favorite 테이블: 사용자-기록 즐겨찾기 관계
    (user_id, record_id) 쌍은 최대 1개
    """
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "record_id", name="uq_favorites_user_record"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    record_id = Column(Integer, ForeignKey("trading_records.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class AIReview(Base):
    """
    AIReview 테이블: 외부 AI 서비스가 작성한 기록별 코멘트 (기록당 최대 1개)
    이 API는 읽기만 합니다.
    """
    __tablename__ = "ai_reviews"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(Integer, ForeignKey("trading_records.id", ondelete="CASCADE"), unique=True, nullable=False)
    review_content = Column(Text, nullable=False)
    model_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    record = relationship("TradingRecord", back_populates="ai_review")
