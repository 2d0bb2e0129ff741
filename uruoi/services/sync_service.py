# uruoi/services/sync_service.py
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from marshmallow import ValidationError

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import encode_container, encode_record
from uruoi.services.change_stream import ChangeStream
from uruoi.services.firestore_service import (
    CONTAINERS_COLLECTION, RECORDS_COLLECTION, DocumentChange, RemoteStore, Subscription,
    collection_path, document_path,
)
from uruoi.services.sync_diff import (
    ENTITY_CONTAINER, DiffResult, LocalSnapshot, LocalWrite,
    apply_container_changes, apply_record_changes,
)
from uruoi.store.dispatcher import StoreDispatcher
from uruoi.store.local_store import LocalStore


@dataclass(frozen=True)
class SyncState:
    """Idle(household_id=None) 또는 Syncing(household_id). generation은 세션마다 증가합니다."""
    household_id: Optional[str] = None
    generation: int = 0

    @property
    def is_syncing(self) -> bool:
        return self.household_id is not None


SyncErrorReporter = Callable[[str, Exception], None]


class SyncService:
    """
    하나의 가족 공유(household)에 대한 실시간 양방향 동기화를 담당하는 서비스.

    - 원격 -> 로컬: containers/records 두 컬렉션을 구독하고, 변경 묶음을 로컬 저장소 소유 스레드에서 적용합니다.
    - 로컬 -> 원격: 호출 지점이 로컬 저장에 성공한 뒤 push_upsert/push_delete로 문서를 통째로 씁니다 (fire-and-forget).

    재연결/백오프는 원격 저장소 클라이언트의 몫이며, 이 서비스는 구독 오류를 보고만 합니다.
    """
    def __init__(self,
                 remote_store: RemoteStore,
                 local_store: LocalStore,
                 dispatcher: StoreDispatcher,
                 error_reporter: Optional[SyncErrorReporter] = None):
        self.remote_store = remote_store
        self.local_store = local_store
        self.dispatcher = dispatcher
        self.error_reporter = error_reporter
        self._lock = threading.RLock()
        self._state = SyncState()
        self._subscriptions: Dict[str, Subscription] = {}
        self._streams: List[ChangeStream] = []
        # 그릇을 기다리는 기록 변경 (문서 ID -> 변경). 소유 스레드에서 _lock을 잡고만 접근합니다.
        self._deferred_records: Dict[str, DocumentChange] = {}
        self._push_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='sync-push')
        self.last_error: Optional[str] = None
        logging.info("SyncService initialized.")

    # --- 상태 ---

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def current_household_id(self) -> Optional[str]:
        return self.state.household_id

    @property
    def deferred_record_ids(self) -> List[str]:
        with self._lock:
            return list(self._deferred_records)

    @property
    def inactive_collections(self) -> List[str]:
        """동기화 중인데 구독이 없거나 더 이상 변경을 받지 못하는 컬렉션 목록."""
        with self._lock:
            if not self._state.is_syncing:
                return []
            subscriptions = dict(self._subscriptions)
        inactive = [
            collection for collection in (CONTAINERS_COLLECTION, RECORDS_COLLECTION)
            if collection not in subscriptions or not subscriptions[collection].is_active
        ]
        if inactive:
            logging.warning(f"변경을 받지 못하는 구독이 있습니다: {inactive}")
        return inactive

    # --- 수명 주기 ---

    def start_sync(self, household_id: str) -> None:
        """
        household_id에 대한 구독을 시작합니다.
        이미 동기화 중이면(같은 ID 포함) 기존 구독을 먼저 해제한 뒤 다시 만듭니다.
        """
        household_id = (household_id or '').strip()
        if not household_id:
            raise ValueError("householdId가 비어 있습니다.")

        self.stop_sync()

        with self._lock:
            generation = self._state.generation + 1
            self._state = SyncState(household_id=household_id, generation=generation)
            logging.info(f"동기화를 시작합니다 (Household: {household_id}, generation: {generation})")

            for collection in (CONTAINERS_COLLECTION, RECORDS_COLLECTION):
                stream = ChangeStream(f"{collection}-{generation}")
                consumer = threading.Thread(
                    target=self._consume,
                    args=(stream, collection, generation),
                    name=f"sync-{collection}-{generation}",
                    daemon=True,
                )
                consumer.start()
                self._streams.append(stream)
                try:
                    subscription = self.remote_store.subscribe(
                        collection_path(household_id, collection),
                        stream.publish,
                        lambda error, c=collection: self._report_error(f"{c} 구독 오류", error),
                    )
                except Exception as e:
                    self._report_error(f"{collection} 구독 시작 실패", e)
                    continue
                self._subscriptions[collection] = subscription

    def stop_sync(self) -> None:
        """
        두 구독을 해제하고 Idle로 전환합니다.
        반환 시점 이후에는 이전 세션의 변경 묶음이 로컬에 적용되지 않습니다.
        """
        with self._lock:
            previous = self._state
            self._state = SyncState(household_id=None, generation=previous.generation + 1)
            subscriptions, self._subscriptions = list(self._subscriptions.values()), {}
            streams, self._streams = self._streams, []
            self._deferred_records.clear()

        for subscription in subscriptions:
            try:
                subscription.unsubscribe()
            except Exception as e:
                logging.warning(f"구독 해제 중 오류 (무시): {e}")
        for stream in streams:
            stream.close()

        if previous.is_syncing:
            logging.info(f"동기화를 중지했습니다 (Household: {previous.household_id})")

    def drain(self) -> None:
        """대기 중인 push와 수신된 변경 묶음이 모두 처리될 때까지 기다립니다."""
        self._push_executor.submit(lambda: None).result()
        with self._lock:
            streams = list(self._streams)
        for stream in streams:
            stream.join()
        self.dispatcher.run(lambda: None)

    def shutdown(self) -> None:
        self.stop_sync()
        self._push_executor.shutdown(wait=True)
        logging.info("SyncService shut down.")

    # --- 원격 -> 로컬 ---

    def _consume(self, stream: ChangeStream, collection: str, generation: int) -> None:
        for changes in stream:
            try:
                self.dispatcher.run(self._apply_batch, collection, changes, generation)
            except Exception as e:
                self._report_error(f"{collection} 변경 적용 실패", e)

    def apply_remote_changes(self, collection: str, changes: List[DocumentChange]) -> Optional[DiffResult]:
        """
        현재 세션의 변경 묶음으로 간주해 즉시 적용합니다 (재처리/재연결 재생용).
        동기화 중이 아니면 ValueError.
        """
        state = self.state
        if not state.is_syncing:
            raise ValueError("동기화 중이 아니므로 원격 변경을 적용할 수 없습니다.")
        return self.dispatcher.run(self._apply_batch, collection, changes, state.generation)

    def _apply_batch(self, collection: str, changes: List[DocumentChange], generation: int) -> Optional[DiffResult]:
        # 소유 스레드에서 _lock을 잡은 채로 적용하므로 stop_sync와 겹치지 않습니다.
        with self._lock, self.local_store.transaction():
            if generation != self._state.generation:
                logging.info(f"이전 세션의 {collection} 변경 {len(changes)}건을 버립니다 (generation: {generation})")
                return None

            if collection == CONTAINERS_COLLECTION:
                result = self._apply_container_batch(changes)
            elif collection == RECORDS_COLLECTION:
                result = self._apply_record_batch(changes)
            else:
                raise ValueError(f"알 수 없는 컬렉션입니다: {collection}")

            logging.info(
                f"{collection} 변경 적용 완료: {len(result.writes)} writes, "
                f"{len(result.skipped)} skipped, {len(self._deferred_records)} deferred"
            )
            return result

    def _apply_container_batch(self, changes: List[DocumentChange]) -> DiffResult:
        ids = {change.document_id for change in changes}
        snapshot = LocalSnapshot(
            containers={c.id: c for c in self.local_store.fetch_containers(ids=ids)},
        )
        result = apply_container_changes(snapshot, changes)
        self._write(result.writes)

        # 그릇이 도착했으니 보류 중이던 기록을 다시 시도
        if self._deferred_records:
            retry = self._apply_record_batch([])
            result.writes.extend(retry.writes)
        return result

    def _apply_record_batch(self, changes: List[DocumentChange]) -> DiffResult:
        pending = list(self._deferred_records.values())
        batch = pending + list(changes)
        snapshot = LocalSnapshot(
            containers={c.id: c for c in self.local_store.fetch_containers()},
            records={r.id: r for r in self.local_store.fetch_records(ids={c.document_id for c in batch})},
        )
        result = apply_record_changes(snapshot, batch)
        self._write(result.writes)
        self._deferred_records = {change.document_id: change for change in result.deferred}
        return result

    def _write(self, writes: List[LocalWrite]) -> None:
        if not writes:
            return
        for write in writes:
            if write.entity_type == ENTITY_CONTAINER:
                if write.action == 'upsert':
                    self.local_store.upsert_container(write.entity)
                else:
                    self.local_store.delete_container(write.entity_id)
            else:
                if write.action == 'upsert':
                    self.local_store.upsert_record(write.entity)
                else:
                    self.local_store.delete_record(write.entity_id)
        # 묶음당 한 번만 커밋
        self.local_store.save()

    # --- 로컬 -> 원격 ---

    def push_upsert(self, entity: Union[Container, WaterRecord], household_id: str) -> Future:
        """
        엔티티 문서를 households/{household_id}/{collection}/{id}에 통째로 씁니다.
        실패해도 예외를 던지지 않고 로그만 남기며, Future는 성공 여부(bool)로 완료됩니다.
        """
        if isinstance(entity, Container):
            collection, encoder = CONTAINERS_COLLECTION, encode_container
        else:
            collection, encoder = RECORDS_COLLECTION, encode_record
        path = document_path(household_id, collection, entity.id)

        # 호출 시점의 값으로 문서를 고정
        try:
            document = encoder(entity)
        except ValidationError as e:
            self._report_error(f"문서 변환 실패 (Path: {path})", e)
            future: Future = Future()
            future.set_result(False)
            return future

        return self._push_executor.submit(
            self._run_push, f"저장 (Path: {path})", self.remote_store.put_document, path, document
        )

    def push_delete(self, collection: str, entity_id: str, household_id: str) -> Future:
        """households/{household_id}/{collection}/{entity_id} 문서를 삭제합니다. 실패 처리는 push_upsert와 같습니다."""
        path = document_path(household_id, collection, entity_id)
        return self._push_executor.submit(
            self._run_push, f"삭제 (Path: {path})", self.remote_store.delete_document, path
        )

    def _run_push(self, label: str, operation: Callable, *args) -> bool:
        try:
            operation(*args)
            return True
        except Exception as e:
            self._report_error(f"원격 {label} 실패", e)
            return False

    # --- 오류 보고 ---

    def _report_error(self, message: str, error: Exception) -> None:
        logging.error(f"{message}: {error}", exc_info=error)
        self.last_error = f"{message}: {error}"
        if self.error_reporter:
            try:
                self.error_reporter(message, error)
            except Exception as e:
                logging.warning(f"오류 보고 콜백 실패: {e}")
