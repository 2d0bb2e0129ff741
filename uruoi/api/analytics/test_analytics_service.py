# uruoi/api/analytics/test_analytics_service.py
"""
음수량 분석 서비스 테스트 (기본 고양이 수 2)
"""

import pytest
from datetime import datetime, timedelta, timezone

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)  # 수요일


def _at(day, hour=0):
    return datetime(2024, 5, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def seed(local_store, dispatcher):
    def _seed(*records):
        def _write():
            if local_store.get_container('c1') is None:
                local_store.upsert_container(Container(id='c1', name='거실', empty_weight=100.0, created_at=_at(1)))
            for record in records:
                local_store.upsert_record(record)
            local_store.save()
        dispatcher.run(_write)
    return _seed


_counter = iter(range(10000))


def _finished(start, end, amount, start_weight=300.0, container_id='c1'):
    return WaterRecord(id=f"r{next(_counter)}", container_id=container_id, start_time=start,
                       start_weight=start_weight, cat_count=1, end_time=end, end_weight=start_weight - amount)


def test_weekly_average_per_cat(analytics_service, seed):
    seed(
        _finished(_at(10, 9), _at(10, 20), 70),
        _finished(_at(14, 9), _at(14, 20), 70),
        _finished(_at(1, 9), _at(1, 20), 100),  # 7일 이전
        WaterRecord(id='active', container_id='c1', start_time=_at(15, 8), start_weight=300.0, cat_count=1),
    )
    assert analytics_service.weekly_average_per_cat(NOW) == pytest.approx(140 / 7 / 2)


def test_today_total_per_cat(analytics_service, seed):
    seed(
        _finished(_at(15, 8), _at(15, 11), 30),
        _finished(_at(14, 22), _at(15, 6), 40),  # 어제 시작
    )
    assert analytics_service.today_total_per_cat(NOW) == pytest.approx(15)


def test_empty_store_returns_zero(analytics_service):
    assert analytics_service.weekly_average_per_cat(NOW) == 0
    assert analytics_service.today_total_per_cat(NOW) == 0
    assert analytics_service.health_alert() is None


def test_period_intake_week_buckets_by_end_time(analytics_service, seed):
    seed(_finished(_at(11, 9), _at(14, 10), 70))

    buckets = analytics_service.period_intake('week', NOW)

    assert len(buckets) == 7
    assert buckets[0]['date'] == _at(12)
    assert [b['total_amount'] for b in buckets] == [0, 0, 70, 0, 0, 0, 0]


def test_period_intake_year_has_month_buckets(analytics_service, seed):
    seed(_finished(_at(14, 9), _at(14, 10), 70))
    buckets = analytics_service.period_intake('year', NOW)
    assert len(buckets) == 12
    assert buckets[4]['total_amount'] == 70
    assert buckets[4]['label'] == '2024-05'


def test_period_summary_compares_with_previous(analytics_service, seed):
    seed(
        _finished(_at(13, 9), _at(14, 10), 70),
        _finished(_at(7, 9), _at(8, 10), 140),
    )
    summary = analytics_service.period_summary('week', NOW)

    assert summary['average'] == pytest.approx(70 / 7 / 2)
    assert summary['previous_average'] == pytest.approx(140 / 7 / 2)
    assert summary['difference'] == pytest.approx(-5)


def test_period_summary_without_previous_data(analytics_service, seed):
    seed(_finished(_at(13, 9), _at(14, 10), 70))
    assert analytics_service.period_summary('month', NOW)['difference'] is None


@pytest.mark.parametrize("amount, expected", [(80, True), (60, False), (20, True), (25, True)])
def test_is_record_abnormal(analytics_service, seed, amount, expected):
    history = [_finished(_at(day, 9), _at(day, 20), 50) for day in (1, 2, 3)]
    target = _finished(_at(4, 9), _at(4, 20), amount)
    seed(*history, target)
    assert analytics_service.is_record_abnormal(target) is expected


def test_is_record_abnormal_needs_history(analytics_service, seed):
    target = _finished(_at(4, 9), _at(4, 20), 500)
    # 섭취량 0인 강제 종료 기록은 비교 대상이 아님
    seed(_finished(_at(3, 9), _at(3, 20), 0), target)
    assert analytics_service.is_record_abnormal(target) is False

    active = WaterRecord(id='active', container_id='c1', start_time=_at(5), start_weight=300.0, cat_count=1)
    assert analytics_service.is_record_abnormal(active) is False


def test_health_and_container_alert(analytics_service, seed):
    history = [_finished(_at(day, 9), _at(day, 20), 50) for day in (1, 2, 3)]
    latest = _finished(_at(4, 9), _at(4, 20), 150)
    seed(*history, latest)

    assert analytics_service.health_alert().id == latest.id
    assert analytics_service.container_alert('c1').id == latest.id
    assert analytics_service.container_alert('other') is None


def test_timeline_events_newest_first(analytics_service, seed):
    finished = _finished(_at(1, 9), _at(1, 20), 50)
    orphan = WaterRecord(id='orphan', container_id='gone', start_time=_at(2, 9), start_weight=200.0, cat_count=1)
    seed(finished)

    events = analytics_service.timeline([finished, orphan])

    assert [(e['type'], e['record_id']) for e in events] == [
        ('setup', 'orphan'), ('collection', finished.id), ('setup', finished.id),
    ]
    assert events[0]['container_name'] == '알 수 없는 그릇'
    assert events[1]['amount'] == 50
