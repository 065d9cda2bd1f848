# minifeed/utils/test_datetime_utils.py
"""
시간 유틸리티 기능 테스트

사용법: python -m pytest minifeed/utils/test_datetime_utils.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone
from minifeed.utils.datetime_utils import DateTimeUtils


def test_parse_iso_datetime():
    """ISO 포맷 파싱 테스트"""
    test_cases = [
        "2024-01-15T10:30:00Z",
        "2024-01-15T10:30:00+09:00",
        "2024-01-15T10:30:00.123456Z",
        "2024-01-15T10:30:00"
    ]

    for iso_string in test_cases:
        dt = DateTimeUtils.parse_iso_datetime(iso_string)
        assert isinstance(dt, datetime)
        assert dt.tzinfo == timezone.utc  # UTC로 정규화되어야 함


def test_to_utc_normalizes_values():
    """Firestore 읽기 값 정규화 테스트"""
    kst = timezone(timedelta(hours=9))
    aware = datetime(2024, 1, 15, 19, 30, tzinfo=kst)
    assert DateTimeUtils.to_utc(aware) == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    naive = datetime(2024, 1, 15, 10, 30)
    assert DateTimeUtils.to_utc(naive).tzinfo == timezone.utc

    assert DateTimeUtils.to_utc("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_to_utc_falls_back_to_default():
    default = datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert DateTimeUtils.to_utc(None, default) == default

    # default가 없으면 현재 시각
    before = DateTimeUtils.now()
    assert DateTimeUtils.to_utc(None) >= before


def test_error_handling():
    """오류 처리 테스트"""
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("invalid-date")

    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("")


def test_to_utc_uses_default_for_unparseable_values():
    """저장소에 잘못 저장된 값은 예외 대신 기본값으로 대체되어야 함"""
    default = datetime(2020, 1, 1, tzinfo=timezone.utc)

    assert DateTimeUtils.to_utc("not-a-date", default) == default
    assert DateTimeUtils.to_utc(12345, default) == default
    assert DateTimeUtils.to_utc(["2024-01-15"], default) == default
