# uruoi/schemas/test_sync_schemas.py
import pytest
from datetime import datetime, timedelta, timezone
from marshmallow import ValidationError

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import decode_container, decode_record, encode_container, encode_record

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _record_doc(**overrides):
    doc = {
        'id': 'r1', 'containerId': 'c1', 'startTime': T0, 'startWeight': 300.0,
        'endTime': None, 'endWeight': None, 'catCount': 2, 'weatherCondition': None,
        'temperature': None, 'note': None, 'createdByDeviceId': 'device-a',
    }
    doc.update(overrides)
    return doc


def test_encode_container_uses_camel_case_keys():
    container = Container(id='c1', name='거실', empty_weight=120.5, created_at=T0, sort_order=1)
    doc = encode_container(container)
    assert doc == {
        'id': 'c1', 'name': '거실', 'emptyWeight': 120.5, 'isArchived': False,
        'createdAt': T0, 'sortOrder': 1,
    }
    assert decode_container(doc) == container


def test_encode_record_keeps_null_end_fields():
    record = WaterRecord(id='r1', container_id='c1', start_time=T0, start_weight=300, cat_count=2,
                         created_by_device_id='device-a')
    doc = encode_record(record)
    assert doc['endTime'] is None and doc['endWeight'] is None
    assert doc['createdByDeviceId'] == 'device-a'
    assert decode_record(doc) == record


def test_finished_record_round_trip_keeps_every_field():
    start = datetime(2024, 5, 1, 9, 0, 0, 123456, tzinfo=timezone.utc)
    record = WaterRecord(
        id='r1', container_id='c1', start_time=start, start_weight=300.5, cat_count=2,
        end_time=start + timedelta(hours=10, microseconds=654321), end_weight=250.25,
        weather_condition='cloud.sun', temperature=-3.5, note="残量: 250g\n잘 마심",
        created_by_device_id='device-a',
    )

    doc = encode_record(record)

    assert doc == {
        'id': 'r1', 'containerId': 'c1', 'startTime': start, 'startWeight': 300.5,
        'endTime': record.end_time, 'endWeight': 250.25, 'catCount': 2,
        'weatherCondition': 'cloud.sun', 'temperature': -3.5, 'note': "残量: 250g\n잘 마심",
        'createdByDeviceId': 'device-a',
    }
    decoded = decode_record(doc)
    assert decoded == record
    assert decoded.end_time.microsecond == 777777


def test_decode_record_ignores_unknown_fields_and_accepts_iso_strings():
    record = decode_record(_record_doc(startTime='2024-05-01T18:00:00+09:00', futureField=1))
    assert record.start_time == T0


def test_decode_record_allows_force_closed_record():
    record = decode_record(_record_doc(endTime=T0, endWeight=300.0))
    assert record.amount == 0


@pytest.mark.parametrize("overrides", [
    {'endTime': T0},                          # endWeight 없음
    {'endTime': T0, 'endWeight': 301.0},      # 설치 무게 초과
    {'startWeight': 0},
    {'catCount': 0},
    {'containerId': ''},
    {'startTime': 'not-a-date'},
])
def test_decode_record_rejects_malformed(overrides):
    with pytest.raises(ValidationError):
        decode_record(_record_doc(**overrides))


def test_decode_rejects_missing_document():
    with pytest.raises(ValidationError):
        decode_container(None)
    with pytest.raises(ValidationError):
        decode_container({'id': 'c1', 'name': '거실'})


def test_encode_rejects_structurally_invalid_entity():
    record = WaterRecord(id='r1', container_id='c1', start_time=T0, start_weight=300, cat_count=0)
    with pytest.raises(ValidationError):
        encode_record(record)
