# uruoi/services/firestore_service.py
"""
가족 공유용 원격 문서 저장소(Cloud Firestore) 어댑터.

문서 구조:
    households/{householdId}/containers/{containerId}
    households/{householdId}/records/{recordId}

동기화 코어는 RemoteStore 계약(구독, 배치 쓰기, 단건 쓰기/삭제, 최신 문서 조회)에만 의존하며,
테스트에서는 같은 계약을 구현한 메모리 저장소로 교체할 수 있습니다.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from firebase_admin import firestore

HOUSEHOLDS_COLLECTION = 'households'
CONTAINERS_COLLECTION = 'containers'
RECORDS_COLLECTION = 'records'


def collection_path(household_id: str, collection: str) -> str:
    return f"{HOUSEHOLDS_COLLECTION}/{household_id}/{collection}"


def document_path(household_id: str, collection: str, document_id: str) -> str:
    return f"{collection_path(household_id, collection)}/{document_id}"


class ChangeKind(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class DocumentChange:
    """구독 콜백 한 번에 함께 전달되는 변경 한 건."""
    kind: ChangeKind
    document_id: str
    document: Optional[Dict[str, Any]] = None


ChangeHandler = Callable[[List[DocumentChange]], None]
ErrorHandler = Callable[[Exception], None]


class Subscription(ABC):
    """구독 핸들. unsubscribe() 이후에는 콜백이 더 이상 전달되지 않아야 합니다."""

    @abstractmethod
    def unsubscribe(self) -> None:
        ...

    @property
    def is_active(self) -> bool:
        """구독이 아직 변경을 전달하고 있는지 여부."""
        return True


class RemoteStore(ABC):
    """동기화 코어가 사용하는 원격 문서 저장소 계약."""

    @abstractmethod
    def subscribe(self, path: str, on_changes: ChangeHandler, on_error: ErrorHandler) -> Subscription:
        ...

    @abstractmethod
    def batch_write(self, writes: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        """(문서 경로, 문서) 목록을 하나의 원자적 배치로 씁니다. 실패하면 아무것도 쓰지 않습니다."""

    @abstractmethod
    def put_document(self, path: str, document: Dict[str, Any]) -> None:
        """문서를 생성하거나 통째로 교체합니다."""

    @abstractmethod
    def delete_document(self, path: str) -> None:
        ...

    @abstractmethod
    def query_latest(self, path: str, order_field: str, limit: int = 1) -> List[Dict[str, Any]]:
        """order_field 내림차순으로 상위 limit개의 문서를 반환합니다."""


class FirestoreSubscription(Subscription):
    def __init__(self, watch, path: str):
        self._watch = watch
        self._path = path

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()
        logging.info(f"Firestore 구독 해제 (Path: {self._path})")

    @property
    def is_active(self) -> bool:
        return self._watch.is_active


_CHANGE_KINDS = {
    'ADDED': ChangeKind.ADDED,
    'MODIFIED': ChangeKind.MODIFIED,
    'REMOVED': ChangeKind.REMOVED,
}


class FirestoreRemoteStore(RemoteStore):
    """
    firebase_admin Firestore 클라이언트 기반 구현.
    on_snapshot 콜백은 Firestore의 watch 스레드에서 호출되며, 재연결은 클라이언트 라이브러리가 담당합니다.
    """
    def __init__(self, client=None):
        self.db = client or firestore.client()
        logging.info("FirestoreRemoteStore initialized.")

    def subscribe(self, path: str, on_changes: ChangeHandler, on_error: ErrorHandler) -> Subscription:
        """
        컬렉션 변경을 구독합니다.

        on_error는 스냅샷을 DocumentChange로 바꾸거나 전달하는 중 실패했을 때만 호출됩니다.
        권한 거부처럼 watch 스트림 자체가 복구 불가능하게 끝나면 Firestore 클라이언트는 콜백 없이
        스트림을 닫으므로, 이 경우는 반환된 구독의 is_active로만 알 수 있습니다.
        """
        def _on_snapshot(col_snapshot, changes, read_time):
            try:
                batch = [
                    DocumentChange(
                        kind=_CHANGE_KINDS[change.type.name],
                        document_id=change.document.id,
                        document=change.document.to_dict(),
                    )
                    for change in changes
                ]
                on_changes(batch)
            except Exception as e:
                logging.error(f"Firestore 변경 처리 실패 (Path: {path}): {e}", exc_info=True)
                on_error(e)

        watch = self.db.collection(path).on_snapshot(_on_snapshot)
        logging.info(f"Firestore 구독 시작 (Path: {path})")
        return FirestoreSubscription(watch, path)

    def batch_write(self, writes: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        try:
            batch = self.db.batch()
            for path, document in writes:
                batch.set(self.db.document(path), document)
            batch.commit()
            logging.info(f"Firestore 배치 저장 성공 ({len(writes)} documents)")
        except Exception as e:
            logging.error(f"Firestore 배치 저장 실패 ({len(writes)} documents): {e}", exc_info=True)
            raise

    def put_document(self, path: str, document: Dict[str, Any]) -> None:
        self.db.document(path).set(document)

    def delete_document(self, path: str) -> None:
        self.db.document(path).delete()

    def query_latest(self, path: str, order_field: str, limit: int = 1) -> List[Dict[str, Any]]:
        docs = self.db.collection(path) \
            .order_by(order_field, direction=firestore.Query.DESCENDING) \
            .limit(limit) \
            .stream()
        return [doc.to_dict() for doc in docs]
