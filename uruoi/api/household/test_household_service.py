# uruoi/api/household/test_household_service.py
"""
가족 공유 흐름(만들기/참여/복원/나가기) 테스트
"""

import pytest
from datetime import datetime, timedelta, timezone

from uruoi.core.exceptions import LocalDeleteFailedError, NotFoundError, SyncFailedError
from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import encode_container, encode_record
from uruoi.services.device_service import CREATED_HOUSEHOLD_ID_KEY, HOUSEHOLD_ID_KEY
from uruoi.services.firestore_service import (
    CONTAINERS_COLLECTION, RECORDS_COLLECTION, collection_path, document_path,
)

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def _seed_remote(remote, household_id):
    container = Container(id='c1', name='원격 그릇', empty_weight=100.0, created_at=T0)
    record = WaterRecord(id='r1', container_id='c1', start_time=T0, start_weight=300.0, cat_count=1,
                         end_time=T0 + timedelta(hours=9), end_weight=250.0)
    remote.put_document(document_path(household_id, CONTAINERS_COLLECTION, 'c1'), encode_container(container))
    remote.put_document(document_path(household_id, RECORDS_COLLECTION, 'r1'), encode_record(record))


def _seed_local(container_service, record_service, containers=3, records=10):
    created = [container_service.add_container(f"그릇{i}", 100.0) for i in range(containers)]
    for i in range(records):
        record_service.start_recording(created[i % containers].id, 300.0, 1, date=T0 + timedelta(hours=i))
    return created


def test_create_household_uploads_local_data(remote, settings, sync_service, household_service,
                                             container_service, record_service):
    _seed_local(container_service, record_service, containers=2, records=3)

    household_id = household_service.create_household()
    sync_service.drain()

    assert settings.get(HOUSEHOLD_ID_KEY) == household_id
    assert settings.get(CREATED_HOUSEHOLD_ID_KEY) == household_id
    assert sync_service.current_household_id == household_id
    assert len(remote.docs_in(collection_path(household_id, CONTAINERS_COLLECTION))) == 2
    assert len(remote.docs_in(collection_path(household_id, RECORDS_COLLECTION))) == 3
    assert ('batch', 5) in remote.log


def test_create_household_failure_keeps_idle(remote, settings, sync_service, household_service, container_service):
    container_service.add_container('거실', 100.0)
    remote.fail_writes = True

    with pytest.raises(SyncFailedError):
        household_service.create_household()

    assert settings.get(HOUSEHOLD_ID_KEY) is None
    assert not sync_service.state.is_syncing


def test_join_household_replaces_local_data(remote, settings, sync_service, household_service,
                                            container_service, record_service, analytics_service):
    _seed_local(container_service, record_service, containers=3, records=10)
    _seed_remote(remote, 'family')

    household_service.join_household('  family  ')
    sync_service.drain()

    assert settings.get(HOUSEHOLD_ID_KEY) == 'family'
    assert [c.id for c in container_service.list_containers()] == ['c1']
    record = record_service.get_record('r1')
    assert record.amount == 50
    assert len(record_service.recent_history('c1')) == 1
    assert analytics_service.timeline([record])[0]['amount'] == 50


def test_join_household_requires_id(household_service):
    with pytest.raises(ValueError):
        household_service.join_household('   ')


def test_join_household_wipe_failure_keeps_previous_id(settings, household_service, migration_service, monkeypatch):
    settings.set(HOUSEHOLD_ID_KEY, 'old')

    def _broken():
        raise LocalDeleteFailedError("로컬 데이터를 삭제하지 못했습니다.")
    monkeypatch.setattr(migration_service, 'wipe_local', _broken)

    with pytest.raises(LocalDeleteFailedError):
        household_service.join_household('new')
    assert settings.get(HOUSEHOLD_ID_KEY) == 'old'


def test_restore_requires_created_household(household_service):
    with pytest.raises(NotFoundError):
        household_service.restore_household()
    with pytest.raises(NotFoundError):
        household_service.restore_preview()


def test_restore_preview_and_restore(remote, settings, sync_service, household_service, container_service):
    settings.set(CREATED_HOUSEHOLD_ID_KEY, 'mine')
    _seed_remote(remote, 'mine')
    container_service.add_container('로컬 전용', 100.0)

    preview = household_service.restore_preview()
    assert preview == {"household_id": 'mine', "latest_record_time": T0}

    household_service.restore_household()
    sync_service.drain()

    assert [c.name for c in container_service.list_containers()] == ['원격 그릇']
    assert settings.get(HOUSEHOLD_ID_KEY) == 'mine'


def test_leave_household_keeps_cloud_and_local_data(remote, settings, sync_service, household_service,
                                                   container_service):
    _seed_remote(remote, 'family')
    household_service.join_household('family')
    sync_service.drain()

    household_service.leave_household()

    assert settings.get(HOUSEHOLD_ID_KEY) is None
    assert not sync_service.state.is_syncing
    assert remote.docs_in(collection_path('family', CONTAINERS_COLLECTION))
    assert [c.id for c in container_service.list_containers()] == ['c1']

    # 나간 뒤의 로컬 변경은 전송하지 않음
    container_service.add_container('새 그릇', 100.0)
    sync_service.drain()
    assert len(remote.docs_in(collection_path('family', CONTAINERS_COLLECTION))) == 1


def test_refresh_resume_and_status(settings, sync_service, household_service, device_identity):
    assert household_service.resume() is False
    assert household_service.refresh()['is_syncing'] is False

    settings.set(HOUSEHOLD_ID_KEY, 'family')
    status = household_service.refresh()

    assert status['is_syncing'] is True
    assert status['syncing_household_id'] == 'family'
    assert status['device_id'] == device_identity.device_id
    assert status['deferred_record_ids'] == []


def test_status_reports_closed_watch_until_refresh(settings, remote, household_service):
    settings.set(HOUSEHOLD_ID_KEY, 'family')
    assert household_service.refresh()['inactive_subscriptions'] == []

    remote.close_watches()
    assert household_service.status()['inactive_subscriptions'] == ['containers', 'records']

    assert household_service.refresh()['inactive_subscriptions'] == []
