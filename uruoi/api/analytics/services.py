# uruoi/api/analytics/services.py
"""
음수량 분석 서비스

모든 값은 호출할 때마다 로컬 저장소에서 다시 계산합니다.
동기화로 적용된 변경도 다음 호출부터 그대로 반영됩니다.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from uruoi.models.water_record import WaterRecord
from uruoi.store.dispatcher import StoreDispatcher
from uruoi.store.local_store import LocalStore
from uruoi.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

ABNORMAL_HIGH_RATIO = 1.5
ABNORMAL_LOW_RATIO = 0.5
ABNORMAL_SAMPLE_SIZE = 20
UNKNOWN_CONTAINER_NAME = "알 수 없는 그릇"

EVENT_SETUP = 'setup'
EVENT_COLLECTION = 'collection'


class AnalyticsService:
    """
    음수량 통계와 이상 감지를 담당하는 서비스
    """

    def __init__(self, local_store: LocalStore, dispatcher: StoreDispatcher, default_cat_count: int = 2):
        self.local_store = local_store
        self.dispatcher = dispatcher
        self.default_cat_count = default_cat_count

    def _run(self, fn, *args, **kwargs):
        return self.dispatcher.run(self.local_store.run_in_transaction, fn, *args, **kwargs)

    def _per_cat(self, total: float, divisor: float = 1) -> float:
        if self.default_cat_count <= 0 or divisor <= 0:
            return 0.0
        return total / divisor / self.default_cat_count

    @staticmethod
    def _total(records: List[WaterRecord]) -> float:
        return sum(record.amount or 0 for record in records)

    # --- 요약 ---

    def weekly_average_per_cat(self, now: Optional[datetime] = None) -> float:
        """최근 7일 동안 시작된 종료 기록의 합계 / 7일 / 기본 고양이 수"""
        now = DateTimeUtils.for_firestore(now or DateTimeUtils.now())
        records = self._run(
            self.local_store.fetch_records, active=False, started_from=now - timedelta(days=7)
        )
        return self._per_cat(self._total(records), 7)

    def today_total_per_cat(self, now: Optional[datetime] = None) -> float:
        """오늘 0시부터 지금까지 시작된 종료 기록의 합계 / 기본 고양이 수"""
        now = DateTimeUtils.for_firestore(now or DateTimeUtils.now())
        records = self._run(
            self.local_store.fetch_records, active=False,
            started_from=DateTimeUtils.start_of_day(now), started_until=now
        )
        return self._per_cat(self._total(records))

    # --- 기간 분석 ---

    def period_intake(self, period: str, reference: datetime) -> List[Dict[str, Any]]:
        """
        기간 내 회수 시각(endTime) 기준 합계를 구간별로 나눕니다.

        Args:
            period: 'week' | 'month' 는 일 단위, 'year' 는 월 단위
            reference: 기간을 정하는 기준 시각

        Returns:
            [{'date': 구간 시작, 'total_amount': 합계, 'label': 표시용 라벨}, ...] (오래된 순)
        """
        start, end = DateTimeUtils.period_range(period, reference)
        records = self._run(self.local_store.fetch_records, active=False, started_until=end)
        finished = [r for r in records if start <= r.end_time < end]

        step = relativedelta(months=1) if period == 'year' else relativedelta(days=1)
        buckets = []
        cursor = start
        while cursor < end:
            next_cursor = cursor + step
            chunk = [r for r in finished if cursor <= r.end_time < next_cursor]
            buckets.append({
                'date': cursor,
                'total_amount': self._total(chunk),
                'label': cursor.strftime('%Y-%m') if period == 'year' else cursor.strftime('%m-%d'),
            })
            cursor = next_cursor
        return buckets

    def period_average(self, buckets: List[Dict[str, Any]]) -> float:
        """구간 평균 / 기본 고양이 수"""
        if not buckets:
            return 0.0
        return self._per_cat(sum(b['total_amount'] for b in buckets), len(buckets))

    def period_summary(self, period: str, reference: Optional[datetime] = None) -> Dict[str, Any]:
        """현재 기간의 구간별 합계, 평균, 직전 기간 평균과의 차이를 한 번에 반환합니다."""
        reference = DateTimeUtils.for_firestore(reference or DateTimeUtils.now())
        start, end = DateTimeUtils.period_range(period, reference)
        buckets = self.period_intake(period, reference)
        average = self.period_average(buckets)
        previous_average = self.period_average(
            self.period_intake(period, DateTimeUtils.shift_period(period, reference, -1))
        )
        return {
            'period': period,
            'start': start,
            'end': end,
            'buckets': buckets,
            'average': average,
            'previous_average': previous_average,
            # 직전 기간 데이터가 없으면 비교하지 않음
            'difference': average - previous_average if previous_average > 0 else None,
        }

    # --- 이상 감지 ---

    def _is_abnormal(self, record: WaterRecord) -> bool:
        amount = record.amount
        if amount is None:
            return False
        history = self.local_store.fetch_records(container_id=record.container_id, active=False)
        past = [r.amount for r in history if r.id != record.id and (r.amount or 0) > 0][:ABNORMAL_SAMPLE_SIZE]
        if not past:
            return False
        average = sum(past) / len(past)
        return amount >= average * ABNORMAL_HIGH_RATIO or amount <= average * ABNORMAL_LOW_RATIO

    def is_record_abnormal(self, record: WaterRecord) -> bool:
        """
        같은 그릇의 다른 종료 기록(섭취량 > 0, 최근 20건) 평균과 비교해
        1.5배 이상이거나 0.5배 이하이면 이상으로 판단합니다.
        """
        return self._run(self._is_abnormal, record)

    def _latest_abnormal(self, container_id: Optional[str]) -> Optional[WaterRecord]:
        latest = self.local_store.fetch_records(container_id=container_id, active=False, limit=1)
        if latest and self._is_abnormal(latest[0]):
            return latest[0]
        return None

    def container_alert(self, container_id: str) -> Optional[WaterRecord]:
        """그릇의 가장 최근 종료 기록이 이상이면 그 기록을, 아니면 None을 반환합니다."""
        return self._run(self._latest_abnormal, container_id)

    def health_alert(self) -> Optional[WaterRecord]:
        """전체 그릇 중 가장 최근 종료 기록이 이상이면 그 기록을 반환합니다."""
        record = self._run(self._latest_abnormal, None)
        if record:
            logger.info(f"평소와 다른 음수량이 감지되었습니다 (Record: {record.id}, amount: {record.amount}g)")
        return record

    # --- 타임라인 ---

    def timeline(self, records: List[WaterRecord]) -> List[Dict[str, Any]]:
        """기록마다 설치/회수 이벤트를 만들어 최신순으로 정렬합니다."""
        names = {c.id: c.name for c in self._run(self.local_store.fetch_containers)}
        events = []
        for record in records:
            container_name = names.get(record.container_id, UNKNOWN_CONTAINER_NAME)
            events.append({
                'record_id': record.id,
                'type': EVENT_SETUP,
                'date': record.start_time,
                'weight': record.start_weight,
                'container_name': container_name,
                'amount': None,
                'weather_condition': None,
                'temperature': None,
            })
            if record.end_time is not None:
                events.append({
                    'record_id': record.id,
                    'type': EVENT_COLLECTION,
                    'date': record.end_time,
                    'weight': record.end_weight or 0,
                    'container_name': container_name,
                    'amount': record.amount,
                    'weather_condition': record.weather_condition,
                    'temperature': record.temperature,
                })
        return sorted(events, key=lambda e: e['date'], reverse=True)

    def recent_timeline(self, limit: int = 50) -> List[Dict[str, Any]]:
        records = self._run(self.local_store.fetch_records, limit=limit)
        return self.timeline(records)
