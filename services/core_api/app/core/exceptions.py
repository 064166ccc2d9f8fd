"""
도메인 예외 정의
서비스 계층은 HTTPException 대신 아래 예외를 발생시키고,
main.py에 등록된 핸들러가 상태 코드와 응답 본문으로 변환합니다.
"""

from typing import Any, List, Optional

from pydantic import ValidationError


class JournalError(Exception):
    """모든 도메인 예외의 기본 클래스"""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "errors": self.details}


class InputValidationError(JournalError):
    """입력값 형식/범위 오류 (쓰기 전에 항상 검출)"""

    code = "VALIDATION_ERROR"
    status_code = 400

    @classmethod
    def from_pydantic(cls, exc: ValidationError, message: str = "요청 데이터 형식이 올바르지 않습니다."):
        return cls(message, details=format_validation_errors(exc.errors()))

    @classmethod
    def for_field(cls, field: str, message: str):
        return cls(message, details=[{"field": field, "message": message}])


class AuthenticationError(JournalError):
    """토큰 누락/무효/만료 또는 로그인 실패"""

    code = "AUTHENTICATION_ERROR"
    status_code = 401


class AuthorizationError(JournalError):
    """인증은 되었으나 리소스 소유자가 아님"""

    code = "AUTHORIZATION_ERROR"
    status_code = 403


class NotFoundError(JournalError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(JournalError):
    """사용자 이름/이메일 중복"""

    code = "CONFLICT"
    status_code = 400


class StorageError(JournalError):
    """트랜잭션/연결 실패. 내부 정보는 응답에 노출하지 않는다."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요."):
        super().__init__(message)


def format_validation_errors(errors: List[Any]) -> List[dict]:
    """
    pydantic / FastAPI 검증 오류 목록을 [{field, message}] 형태로 변환

    loc의 첫 요소가 body/query인 경우(FastAPI 요청 검증)는 제거합니다.
    """
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        message = error.get("msg", "")
        # field_validator에서 발생한 ValueError는 "Value error, " 접두어가 붙는다
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        formatted.append({"field": ".".join(loc) or "__root__", "message": message})
    return formatted
