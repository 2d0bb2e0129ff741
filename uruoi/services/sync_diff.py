# uruoi/services/sync_diff.py
"""
원격 변경 묶음을 로컬 상태에 적용하는 순수 함수 모음.

(현재 로컬 스냅샷, 변경 목록) -> (새 스냅샷, 로컬 쓰기 목록)
저장소에 직접 접근하지 않으므로 실제 DB 없이도 그대로 테스트할 수 있습니다.

규칙:
- added/modified: 문서를 디코딩해 같은 ID의 로컬 엔티티를 통째로 덮어쓰거나 새로 만듭니다 (원격 우선).
- 디코딩 실패 문서는 그 문서만 건너뛰고 나머지는 계속 처리합니다.
- removed: 로컬에 있으면 삭제하고, 없으면 무시합니다.
- 기록의 그릇이 아직 로컬에 없으면 이번 묶음에서는 적용을 미루고 deferred로 돌려줍니다.
- 같은 문서를 두 번 적용해도 결과는 같습니다.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from marshmallow import ValidationError

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import decode_container, decode_record
from uruoi.services.firestore_service import ChangeKind, DocumentChange

logger = logging.getLogger(__name__)

ENTITY_CONTAINER = 'container'
ENTITY_RECORD = 'record'


@dataclass
class LocalSnapshot:
    """적용에 필요한 만큼의 로컬 상태 (ID -> 엔티티)."""
    containers: Dict[str, Container] = field(default_factory=dict)
    records: Dict[str, WaterRecord] = field(default_factory=dict)

    def copy(self) -> "LocalSnapshot":
        return LocalSnapshot(containers=dict(self.containers), records=dict(self.records))


@dataclass(frozen=True)
class LocalWrite:
    """로컬 저장소에 반영할 쓰기 한 건. upsert는 entity, delete는 entity_id만 사용합니다."""
    action: str  # 'upsert' | 'delete'
    entity_type: str  # ENTITY_CONTAINER | ENTITY_RECORD
    entity_id: str
    entity: Optional[Union[Container, WaterRecord]] = None


@dataclass
class DiffResult:
    snapshot: LocalSnapshot
    writes: List[LocalWrite] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # 디코딩 실패로 건너뛴 문서 ID
    deferred: List[DocumentChange] = field(default_factory=list)  # 그릇을 기다리는 기록 변경


def _decode(change: DocumentChange, decoder: Callable, label: str):
    try:
        entity = decoder(change.document)
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning(f"{label} 문서 디코딩 실패, 건너뜀 (Doc ID: {change.document_id}): {e}")
        return None
    if entity.id != change.document_id:
        logger.warning(f"{label} 문서 ID 불일치, 건너뜀 (Doc ID: {change.document_id}, id 필드: {entity.id})")
        return None
    return entity


def apply_container_changes(snapshot: LocalSnapshot, changes: List[DocumentChange]) -> DiffResult:
    """그릇(containers) 변경 묶음을 전달된 순서대로 적용합니다."""
    result = DiffResult(snapshot=snapshot.copy())
    containers = result.snapshot.containers
    records = result.snapshot.records

    for change in changes:
        if change.kind is ChangeKind.REMOVED:
            if containers.pop(change.document_id, None) is not None:
                # 그릇 삭제는 연결된 기록까지 지웁니다 (저장소의 cascade와 동일)
                for record_id in [r.id for r in records.values() if r.container_id == change.document_id]:
                    del records[record_id]
                result.writes.append(LocalWrite('delete', ENTITY_CONTAINER, change.document_id))
            continue

        container = _decode(change, decode_container, 'Container')
        if container is None:
            result.skipped.append(change.document_id)
            continue
        containers[container.id] = container
        result.writes.append(LocalWrite('upsert', ENTITY_CONTAINER, container.id, container))

    return result


def apply_record_changes(snapshot: LocalSnapshot, changes: List[DocumentChange]) -> DiffResult:
    """
    기록(records) 변경 묶음을 전달된 순서대로 적용합니다.
    그릇이 스냅샷에 없는 기록은 deferred에 담아 돌려주며, 같은 문서에 대한
    이후 변경이 묶음 안에 있으면 앞선 보류 항목은 버립니다.
    """
    result = DiffResult(snapshot=snapshot.copy())
    containers = result.snapshot.containers
    records = result.snapshot.records
    deferred: Dict[str, DocumentChange] = {}

    for change in changes:
        deferred.pop(change.document_id, None)

        if change.kind is ChangeKind.REMOVED:
            if records.pop(change.document_id, None) is not None:
                result.writes.append(LocalWrite('delete', ENTITY_RECORD, change.document_id))
            continue

        record = _decode(change, decode_record, 'Record')
        if record is None:
            result.skipped.append(change.document_id)
            continue
        if record.container_id not in containers:
            logger.info(f"그릇 {record.container_id}이(가) 아직 없어 기록 {record.id}의 적용을 보류합니다.")
            deferred[change.document_id] = change
            continue
        records[record.id] = record
        result.writes.append(LocalWrite('upsert', ENTITY_RECORD, record.id, record))

    result.deferred = list(deferred.values())
    return result
