# uruoi/utils/datetime_utils.py
"""
프로젝트 전체에서 일관된 시간/날짜 처리를 위한 중앙화된 유틸리티 모듈

이 모듈의 목적:
1. 모든 시각을 UTC timezone-aware datetime으로 통일
2. Firestore Timestamp와의 상호 변환 보장
3. 분석 화면의 일/주/월/년 구간 계산 제공
"""

import logging
from datetime import datetime, timezone, time, timedelta
from typing import Any, Tuple
from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """시간/날짜 처리를 위한 중앙화된 유틸리티 클래스"""

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
    def for_firestore(dt: datetime) -> datetime:
        """Firestore 저장용: timezone-naive는 UTC로 간주하고 UTC로 변환"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def from_firestore(dt: datetime) -> datetime:
        """
        Firestore에서 읽은 Timestamp(DatetimeWithNanoseconds)를 일반 UTC datetime으로 변환
        마이크로초까지 유지합니다.
        """
        utc = DateTimeUtils.for_firestore(dt)
        return datetime(utc.year, utc.month, utc.day, utc.hour, utc.minute, utc.second,
                        utc.microsecond, tzinfo=timezone.utc)

    @staticmethod
    def validate_datetime_field(value: Any, field_name: str = "datetime") -> datetime:
        """
        외부에서 받은 datetime 값을 검증하고 UTC로 변환

        Args:
            value: 검증할 값 (ISO 문자열, datetime 또는 Firestore Timestamp)
            field_name: 필드명 (오류 메시지용)

        Raises:
            ValueError: 값이 없거나 형식이 잘못된 경우
        """
        if value is None:
            raise ValueError(f"{field_name}은 필수 필드입니다")
        if isinstance(value, str):
            return DateTimeUtils.parse_iso_datetime(value)
        if isinstance(value, datetime):
            return DateTimeUtils.from_firestore(value)
        logger.error(f"{field_name} 검증 실패: {value!r}")
        raise ValueError(f"{field_name}은 문자열 또는 datetime 객체여야 합니다")

    @staticmethod
    def start_of_day(dt: datetime) -> datetime:
        """해당 시각이 속한 날(UTC)의 00:00:00"""
        dt = DateTimeUtils.for_firestore(dt)
        return datetime.combine(dt.date(), time.min, tzinfo=timezone.utc)

    @staticmethod
    def period_range(period: str, reference: datetime) -> Tuple[datetime, datetime]:
        """
        분석 구간 [start, end)를 반환합니다.

        - week: 일요일 00:00부터 7일
        - month: 해당 월 1일부터 다음 달 1일 전까지
        - year: 해당 연도 1월 1일부터 다음 해 1월 1일 전까지
        """
        day = DateTimeUtils.start_of_day(reference)
        if period == 'week':
            # weekday(): 월=0 ... 일=6
            start = day - timedelta(days=(day.weekday() + 1) % 7)
            return start, start + timedelta(days=7)
        elif period == 'month':
            start = day.replace(day=1)
            return start, start + relativedelta(months=1)
        elif period == 'year':
            start = day.replace(month=1, day=1)
            return start, start + relativedelta(years=1)
        raise ValueError(f"지원하지 않는 기간입니다: {period}")

    @staticmethod
    def shift_period(period: str, reference: datetime, amount: int) -> datetime:
        """기준 시각을 구간 단위로 이동합니다 (이전/다음 기간 비교용)."""
        if period == 'week':
            return reference + timedelta(weeks=amount)
        elif period == 'month':
            return reference + relativedelta(months=amount)
        elif period == 'year':
            return reference + relativedelta(years=amount)
        raise ValueError(f"지원하지 않는 기간입니다: {period}")

