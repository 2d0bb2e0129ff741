# uruoi/services/test_migration_service.py
"""
데이터 이전(업로드)과 로컬 초기화 테스트
"""

import pytest
from datetime import datetime, timedelta, timezone

from uruoi.core.exceptions import LocalDeleteFailedError, SyncFailedError
from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import encode_record
from uruoi.services.firestore_service import (
    CONTAINERS_COLLECTION, RECORDS_COLLECTION, collection_path, document_path,
)
from uruoi.services.migration_service import MigrationService

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _seed(dispatcher, local_store, containers=3, records_per_container=0, archived=False):
    def _fill():
        record_count = 0
        for i in range(containers):
            container = Container(id=f"c{i}", name=f"그릇{i}", empty_weight=100.0,
                                  is_archived=archived and i == 0, created_at=T0, sort_order=i)
            local_store.upsert_container(container)
            for j in range(records_per_container):
                local_store.upsert_record(WaterRecord(
                    id=f"r{record_count}", container_id=container.id,
                    start_time=T0 + timedelta(hours=record_count), start_weight=300.0, cat_count=1,
                ))
                record_count += 1
        local_store.save()
    dispatcher.run(_fill)


def test_export_empty_store_writes_nothing(remote, migration_service):
    assert migration_service.export_all_to_remote('h1') == 0
    assert remote.log == []


def test_export_uploads_everything_in_one_batch(remote, local_store, dispatcher, migration_service):
    _seed(dispatcher, local_store, containers=2, records_per_container=2, archived=True)

    assert migration_service.export_all_to_remote('h1') == 6
    assert remote.log == [('batch', 6)]

    containers = remote.docs_in(collection_path('h1', CONTAINERS_COLLECTION))
    records = remote.docs_in(collection_path('h1', RECORDS_COLLECTION))
    assert set(containers) == {'c0', 'c1'}
    assert containers['c0']['isArchived'] is True  # 보관된 그릇도 포함
    assert set(records) == {'r0', 'r1', 'r2', 'r3'}
    assert records['r0']['endTime'] is None


def test_export_over_batch_limit_fails_without_writing(remote, local_store, dispatcher):
    _seed(dispatcher, local_store, containers=3)
    service = MigrationService(remote, local_store, dispatcher, batch_limit=2)

    with pytest.raises(SyncFailedError):
        service.export_all_to_remote('h1')
    assert remote.log == []


def test_export_remote_failure_raises_sync_failed(remote, local_store, dispatcher, migration_service):
    _seed(dispatcher, local_store, containers=1)
    remote.fail_writes = True

    with pytest.raises(SyncFailedError) as exc_info:
        migration_service.export_all_to_remote('h1')
    assert exc_info.value.cause is not None
    assert remote.documents == {}


def test_wipe_local_removes_all_containers_and_records(local_store, dispatcher, migration_service):
    _seed(dispatcher, local_store, containers=3, records_per_container=4)
    # 10건만 남도록 2건 삭제
    dispatcher.run(lambda: (local_store.delete_record('r0'), local_store.delete_record('r1'), local_store.save()))
    assert len(dispatcher.run(local_store.fetch_records)) == 10

    migration_service.wipe_local()

    assert dispatcher.run(local_store.fetch_containers) == []
    assert dispatcher.run(local_store.fetch_records) == []


def test_wipe_local_failure_raises_and_rolls_back(local_store, dispatcher, migration_service, monkeypatch):
    _seed(dispatcher, local_store, containers=1, records_per_container=2)

    def _broken():
        raise RuntimeError("disk I/O error")
    monkeypatch.setattr(local_store, 'delete_all_containers', _broken)

    with pytest.raises(LocalDeleteFailedError):
        migration_service.wipe_local()

    # 먼저 지운 기록도 롤백되어 저장소는 그대로 사용 가능
    assert len(dispatcher.run(local_store.fetch_records)) == 2
    assert len(dispatcher.run(local_store.fetch_containers)) == 1


def test_latest_remote_record_timestamp(remote, migration_service):
    assert migration_service.latest_remote_record_timestamp('h1') is None

    for i, hours in enumerate([1, 5, 3]):
        record = WaterRecord(id=f"r{i}", container_id='c1', start_time=T0 + timedelta(hours=hours),
                             start_weight=300.0, cat_count=1)
        remote.put_document(document_path('h1', RECORDS_COLLECTION, record.id), encode_record(record))

    assert migration_service.latest_remote_record_timestamp('h1') == T0 + timedelta(hours=5)


def test_latest_remote_record_timestamp_failure(remote, migration_service):
    remote.fail_queries = True
    with pytest.raises(SyncFailedError):
        migration_service.latest_remote_record_timestamp('h1')
