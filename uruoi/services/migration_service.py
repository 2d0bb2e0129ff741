# uruoi/services/migration_service.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from marshmallow import ValidationError

from uruoi.core.exceptions import LocalDeleteFailedError, SyncFailedError
from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.schemas.sync_schemas import decode_record, encode_container, encode_record
from uruoi.services.firestore_service import (
    CONTAINERS_COLLECTION, RECORDS_COLLECTION, RemoteStore, collection_path, document_path,
)
from uruoi.store.dispatcher import StoreDispatcher
from uruoi.store.local_store import LocalStore

DEFAULT_BATCH_LIMIT = 500


class MigrationService:
    """
    로컬 전체 데이터를 새 가족 공유 공간으로 옮기거나, 공유를 받기 전에 로컬을 비우는 일회성 작업 서비스.
    어느 작업도 자동으로 재시도하지 않습니다. 재시도는 사용자가 다시 실행하는 것입니다.
    """
    def __init__(self,
                 remote_store: RemoteStore,
                 local_store: LocalStore,
                 dispatcher: StoreDispatcher,
                 batch_limit: int = DEFAULT_BATCH_LIMIT):
        self.remote_store = remote_store
        self.local_store = local_store
        self.dispatcher = dispatcher
        self.batch_limit = batch_limit
        logging.info("MigrationService initialized.")

    def _snapshot_local(self) -> Tuple[List[Container], List[WaterRecord]]:
        # 보관(archived)된 그릇까지 모두 포함
        return (
            self.local_store.fetch_containers(include_archived=True),
            self.local_store.fetch_records(newest_first=False),
        )

    def export_all_to_remote(self, household_id: str) -> int:
        """
        로컬의 모든 그릇과 기록을 households/{household_id} 아래에 하나의 원자적 배치로 업로드합니다.

        배치는 나누지 않습니다. 문서 수가 batch_limit(Firestore 기준 500)을 넘으면
        아무것도 쓰지 않고 SyncFailedError를 발생시킵니다 (알려진 확장 한계).

        Returns:
            업로드한 문서 수. 로컬이 비어 있으면 0 (쓰기 없음).

        Raises:
            SyncFailedError: 문서 변환 실패, 배치 한도 초과, 원격 쓰기 실패
        """
        containers, records = self.dispatcher.run(self.local_store.run_in_transaction, self._snapshot_local)

        if not containers and not records:
            logging.info(f"이전할 로컬 데이터가 없습니다 (Household: {household_id})")
            return 0

        try:
            writes: List[Tuple[str, Dict[str, Any]]] = [
                (document_path(household_id, CONTAINERS_COLLECTION, c.id), encode_container(c))
                for c in containers
            ]
            writes += [
                (document_path(household_id, RECORDS_COLLECTION, r.id), encode_record(r))
                for r in records
            ]
        except ValidationError as e:
            logging.error(f"이전용 문서 변환 실패 (Household: {household_id}): {e.messages}")
            raise SyncFailedError("데이터를 업로드 형식으로 변환하지 못했습니다.", cause=e) from e

        if len(writes) > self.batch_limit:
            logging.error(f"배치 문서 수 초과: {len(writes)} > {self.batch_limit} (Household: {household_id})")
            raise SyncFailedError(
                f"한 번에 업로드할 수 있는 문서 수({self.batch_limit})를 초과했습니다: {len(writes)}"
            )

        try:
            self.remote_store.batch_write(writes)
        except Exception as e:
            raise SyncFailedError("클라우드로 데이터를 업로드하지 못했습니다.", cause=e) from e

        logging.info(
            f"데이터 이전 완료 (Household: {household_id}): Containers: {len(containers)}, Records: {len(records)}"
        )
        return len(writes)

    def _wipe(self) -> None:
        try:
            with self.local_store.transaction():
                # 그릇이 이미 지워진 기록까지 정리하기 위해 기록을 먼저 삭제
                record_count = self.local_store.delete_all_records()
                container_count = self.local_store.delete_all_containers()
                self.local_store.save()
        except Exception as e:
            logging.error(f"로컬 데이터 전체 삭제 실패: {e}", exc_info=True)
            raise LocalDeleteFailedError("로컬 데이터를 삭제하지 못했습니다.", cause=e) from e
        logging.info(f"로컬 데이터를 모두 삭제했습니다 (Containers: {container_count}, Records: {record_count})")

    def wipe_local(self) -> None:
        """로컬의 모든 기록과 그릇을 삭제하고 저장합니다. 실패 시 LocalDeleteFailedError."""
        self.dispatcher.run(self._wipe)

    def latest_remote_record_timestamp(self, household_id: str) -> Optional[datetime]:
        """
        원격 records 중 가장 최근 startTime을 반환합니다 (복원 전 확인용). 기록이 없으면 None.

        Raises:
            SyncFailedError: 원격 조회 실패 또는 최신 문서가 손상된 경우
        """
        try:
            documents = self.remote_store.query_latest(
                collection_path(household_id, RECORDS_COLLECTION), 'startTime', limit=1
            )
        except Exception as e:
            logging.error(f"최신 기록 조회 실패 (Household: {household_id}): {e}", exc_info=True)
            raise SyncFailedError("클라우드의 기록을 조회하지 못했습니다.", cause=e) from e

        if not documents:
            return None

        try:
            return decode_record(documents[0]).start_time
        except ValidationError as e:
            raise SyncFailedError("클라우드의 최신 기록을 해석하지 못했습니다.", cause=e) from e
