"""
로깅 설정 모듈
structlog JSON 로그 + 민감 정보(토큰, 비밀번호) 마스킹
"""

import logging
import sys
import structlog

# 값 대신 마스킹 문자열을 남길 키
SENSITIVE_KEYS = frozenset({
    "token",
    "session_token",
    "password",
    "password_hash",
    "current_password",
    "new_password",
    "authorization",
})
MASK = "***"


def mask_sensitive_values(logger, method_name, event_dict):
    """이벤트에 토큰/비밀번호가 섞여 들어와도 출력하지 않는다"""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = MASK
    return event_dict


def setup_logging(debug: bool = False, sql_echo: bool = False) -> None:
    """
    structlog 초기화 (create_app에서 한 번 호출)

    Args:
        debug: True이면 DEBUG 레벨까지 출력
        sql_echo: False이면 SQLAlchemy 엔진 로그는 WARNING 이상만 출력
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if sql_echo else logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            mask_sensitive_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """모듈별 로거 (보통 __name__ 전달)"""
    return structlog.get_logger(name)
