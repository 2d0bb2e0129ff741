# uruoi/conftest.py
"""
공용 pytest 픽스처

원격 저장소는 Firestore 대신 메모리 구현(FakeRemoteStore)을 사용합니다.
Firestore처럼 구독 시작 시 현재 문서를 ADDED로 한 번 전달하고,
쓰기/삭제가 일어나면 같은 컬렉션의 구독자에게 변경을 다시 전달(echo)합니다.
"""
import threading
from typing import Any, Dict, List, Sequence, Tuple

import pytest

from uruoi import create_app, shutdown_app
from uruoi.api.analytics.services import AnalyticsService
from uruoi.api.containers.services import ContainerService
from uruoi.api.household.services import HouseholdService
from uruoi.api.records.services import RecordService
from uruoi.services.device_service import DeviceIdentityProvider, DeviceSettingsStore
from uruoi.services.firestore_service import (
    ChangeKind, ChangeHandler, DocumentChange, ErrorHandler, RemoteStore, Subscription,
)
from uruoi.services.migration_service import MigrationService
from uruoi.services.sync_service import SyncService
from uruoi.store import LocalStore, StoreDispatcher


class RemoteWriteError(Exception):
    pass


class FakeSubscription(Subscription):
    def __init__(self, remote: "FakeRemoteStore", key: int):
        self._remote = remote
        self._key = key

    def unsubscribe(self) -> None:
        with self._remote.lock:
            self._remote.listeners.pop(self._key, None)

    @property
    def is_active(self) -> bool:
        with self._remote.lock:
            return self._key in self._remote.listeners


class FakeRemoteStore(RemoteStore):
    def __init__(self):
        self.lock = threading.RLock()
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.listeners: Dict[int, Tuple[str, ChangeHandler, ErrorHandler]] = {}
        self.log: List[Tuple[str, Any]] = []
        self.fail_writes = False
        self.fail_queries = False
        self._next_key = 0

    @staticmethod
    def _split(path: str) -> Tuple[str, str]:
        collection, document_id = path.rsplit('/', 1)
        return collection, document_id

    def _notify(self, collection: str, changes: List[DocumentChange]) -> None:
        if not changes:
            return
        with self.lock:
            handlers = [handler for path, handler, _ in self.listeners.values() if path == collection]
        for handler in handlers:
            handler(list(changes))

    def docs_in(self, collection: str) -> Dict[str, Dict[str, Any]]:
        prefix = f"{collection}/"
        with self.lock:
            return {
                path[len(prefix):]: dict(doc) for path, doc in self.documents.items()
                if path.startswith(prefix) and '/' not in path[len(prefix):]
            }

    def emit(self, collection: str, changes: List[DocumentChange]) -> None:
        """저장 없이 구독자에게 변경 묶음을 직접 전달합니다 (손상 문서 등 재현용)."""
        self._notify(collection, changes)

    def close_watches(self) -> None:
        """권한 거부 등으로 watch 스트림이 콜백 없이 끝난 상황."""
        with self.lock:
            self.listeners.clear()

    def fail_listeners(self, error: Exception) -> None:
        with self.lock:
            error_handlers = [on_error for _, _, on_error in self.listeners.values()]
        for on_error in error_handlers:
            on_error(error)

    # --- RemoteStore ---

    def subscribe(self, path: str, on_changes: ChangeHandler, on_error: ErrorHandler) -> Subscription:
        with self.lock:
            key = self._next_key
            self._next_key += 1
            self.listeners[key] = (path, on_changes, on_error)
            initial = [
                DocumentChange(ChangeKind.ADDED, document_id, doc)
                for document_id, doc in self.docs_in(path).items()
            ]
        if initial:
            on_changes(initial)
        return FakeSubscription(self, key)

    def batch_write(self, writes: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        if self.fail_writes:
            raise RemoteWriteError("batch write failed")
        by_collection: Dict[str, List[DocumentChange]] = {}
        with self.lock:
            self.log.append(('batch', len(writes)))
            for path, document in writes:
                collection, document_id = self._split(path)
                kind = ChangeKind.MODIFIED if path in self.documents else ChangeKind.ADDED
                self.documents[path] = dict(document)
                by_collection.setdefault(collection, []).append(DocumentChange(kind, document_id, dict(document)))
        for collection, changes in by_collection.items():
            self._notify(collection, changes)

    def put_document(self, path: str, document: Dict[str, Any]) -> None:
        if self.fail_writes:
            raise RemoteWriteError(f"put failed: {path}")
        collection, document_id = self._split(path)
        with self.lock:
            self.log.append(('put', path))
            kind = ChangeKind.MODIFIED if path in self.documents else ChangeKind.ADDED
            self.documents[path] = dict(document)
        self._notify(collection, [DocumentChange(kind, document_id, dict(document))])

    def delete_document(self, path: str) -> None:
        if self.fail_writes:
            raise RemoteWriteError(f"delete failed: {path}")
        collection, document_id = self._split(path)
        with self.lock:
            self.log.append(('delete', path))
            existed = self.documents.pop(path, None)
        if existed is not None:
            self._notify(collection, [DocumentChange(ChangeKind.REMOVED, document_id, existed)])

    def query_latest(self, path: str, order_field: str, limit: int = 1) -> List[Dict[str, Any]]:
        if self.fail_queries:
            raise RemoteWriteError(f"query failed: {path}")
        docs = [doc for doc in self.docs_in(path).values() if doc.get(order_field) is not None]
        docs.sort(key=lambda doc: doc[order_field], reverse=True)
        return docs[:limit]


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def dispatcher():
    dispatcher = StoreDispatcher(name='test-store')
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def local_store(dispatcher):
    store = dispatcher.run(LocalStore, 'sqlite://')
    yield store
    dispatcher.run(store.close)


@pytest.fixture
def sync_service(remote, local_store, dispatcher):
    service = SyncService(remote, local_store, dispatcher)
    yield service
    service.shutdown()


@pytest.fixture
def migration_service(remote, local_store, dispatcher):
    return MigrationService(remote, local_store, dispatcher, batch_limit=500)


@pytest.fixture
def settings(tmp_path):
    return DeviceSettingsStore(str(tmp_path / 'device_settings.json'))


@pytest.fixture
def device_identity(settings):
    return DeviceIdentityProvider(settings)


@pytest.fixture
def container_service(local_store, dispatcher, sync_service):
    return ContainerService(local_store, dispatcher, sync_service)


@pytest.fixture
def record_service(local_store, dispatcher, sync_service, device_identity):
    return RecordService(local_store, dispatcher, sync_service, device_identity)


@pytest.fixture
def household_service(sync_service, migration_service, settings, device_identity):
    return HouseholdService(sync_service, migration_service, settings, device_identity)


@pytest.fixture
def analytics_service(local_store, dispatcher):
    return AnalyticsService(local_store, dispatcher, default_cat_count=2)


@pytest.fixture
def app(remote, tmp_path):
    app = create_app('testing', remote_store=remote, settings_path=str(tmp_path / 'app_settings.json'))
    yield app
    shutdown_app(app)


@pytest.fixture
def client(app):
    return app.test_client()
