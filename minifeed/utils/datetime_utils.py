# minifeed/utils/datetime_utils.py
"""
피드 전체에서 일관된 시간 처리를 위한 유틸리티 모듈

이 모듈의 목적:
1. 모든 시각을 UTC timezone-aware datetime으로 통일
2. Firestore Timestamp <-> datetime 변환
3. ISO 포맷 문자열 파싱
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """시간 처리를 위한 중앙화된 유틸리티 클래스"""

    @staticmethod
    def now() -> datetime:
        """현재 시간을 UTC timezone-aware datetime으로 반환"""
        return datetime.now(timezone.utc)

    @staticmethod
    def parse_iso_datetime(iso_string: str) -> datetime:
        """
        ISO 포맷 문자열을 datetime 객체로 파싱

        지원 포맷:
        - 2024-01-15T10:30:00Z
        - 2024-01-15T10:30:00+09:00
        - 2024-01-15T10:30:00.123456Z
        - 2024-01-15T10:30:00
        """
        try:
            if not iso_string:
                raise ValueError("빈 문자열은 파싱할 수 없습니다")

            if iso_string.endswith('Z'):
                iso_string = iso_string[:-1] + '+00:00'

            dt = dateutil_parser.isoparse(iso_string)

            # timezone-naive인 경우 UTC로 가정
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)

            return dt.astimezone(timezone.utc)

        except Exception as e:
            logger.error(f"ISO datetime 파싱 실패: {iso_string} - {e}")
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {iso_string}")

    @staticmethod
    def to_utc(value: Any, default: Optional[datetime] = None) -> datetime:
        """
        Firestore에서 읽은 시각 값을 UTC datetime으로 정규화합니다.

        - DatetimeWithNanoseconds / datetime -> UTC datetime
        - ISO 문자열 -> 파싱 후 UTC datetime
        - None 또는 해석할 수 없는 값 -> default (없으면 현재 시각)
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)

        try:
            if isinstance(value, str) and value:
                return DateTimeUtils.parse_iso_datetime(value)

            # google.protobuf Timestamp 등 timestamp()를 제공하는 객체
            if hasattr(value, 'timestamp'):
                return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
        except (ValueError, TypeError, OverflowError, OSError) as e:
            logger.warning(f"시각 값을 해석할 수 없어 기본값을 사용합니다: {value!r} - {e}")

        return default if default is not None else DateTimeUtils.now()

