# uruoi/api/records/services.py
import dataclasses
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from uruoi.core.exceptions import EntityValidationError, NotFoundError
from uruoi.models.water_record import MAX_NOTE_LENGTH, WaterRecord
from uruoi.services.base import BaseLocalService
from uruoi.services.device_service import DeviceIdentityProvider
from uruoi.services.firestore_service import RECORDS_COLLECTION
from uruoi.services.sync_service import SyncService
from uruoi.store.dispatcher import StoreDispatcher
from uruoi.store.local_store import LocalStore
from uruoi.utils.datetime_utils import DateTimeUtils

# 다른 기기(iOS 앱 포함)와 같은 메모 형식을 공유합니다.
REMAINING_NOTE_FORMAT = "残量: {}g"
DEFAULT_HISTORY_LIMIT = 10


def build_finish_note(end_weight: float, user_note: Optional[str]) -> str:
    """회수 메모: 첫 줄에 남은 양, 사용자 메모가 있으면 다음 줄에 붙입니다."""
    note = REMAINING_NOTE_FORMAT.format(int(end_weight))
    if user_note:
        note += f"\n{user_note}"
    return note


def _check_user_note(note: Optional[str]) -> None:
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise EntityValidationError([f"메모는 {MAX_NOTE_LENGTH}자 이내로 입력해 주세요 (현재: {len(note)}자)."])


class RecordService(BaseLocalService):
    """
    급수 기록(설치/회수)의 생성, 수정, 삭제를 전담하는 서비스 클래스.
    로컬 커밋이 성공한 변경만 현재 가족 공유 공간으로 전송합니다.
    """

    def __init__(self, local_store: LocalStore, dispatcher: StoreDispatcher, sync_service: SyncService,
                 device_identity: DeviceIdentityProvider):
        super().__init__(local_store, dispatcher, sync_service)
        self.device_identity = device_identity
        logging.info("RecordService initialized.")

    def _require_record(self, record_id: str) -> WaterRecord:
        record = self.local_store.get_record(record_id)
        if record is None:
            raise NotFoundError(f"기록을 찾을 수 없습니다: {record_id}")
        return record

    def _require_container(self, container_id: str) -> None:
        if self.local_store.get_container(container_id) is None:
            raise NotFoundError(f"그릇을 찾을 수 없습니다: {container_id}")

    # --- 설치 ---

    def _start(self, container_id: str, start_weight: float, cat_count: int,
               note: Optional[str], at: datetime) -> Tuple[List[WaterRecord], WaterRecord]:
        self._require_container(container_id)
        new_record = WaterRecord.start(
            container_id, start_weight, cat_count, at, note=note, device_id=self.device_identity.device_id
        )
        new_record.validate()

        # 같은 그릇의 진행 중 기록은 모두 강제 종료 (여러 기기가 동시에 설치한 경우도 정리)
        closed = self.local_store.fetch_records(container_id=container_id, active=True)
        for record in closed:
            record.force_close(at)
            self.local_store.upsert_record(record)
        self.local_store.upsert_record(new_record)
        self.local_store.save()
        return closed, new_record

    def start_recording(self, container_id: str, start_weight: float, cat_count: int,
                        note: Optional[str] = None, date: Optional[datetime] = None) -> WaterRecord:
        """
        그릇에 물을 설치하고 새 기록을 시작합니다.

        Args:
            container_id: 그릇 ID
            start_weight: 설치 시 무게(g)
            cat_count: 고양이 수
            note: 메모 (50자 이내)
            date: 설치 시각 (기본값: 현재)

        Returns:
            새로 시작된 기록
        """
        at = date or DateTimeUtils.now()
        closed, new_record = self._run(self._start, container_id, start_weight, cat_count, note, at)
        if closed:
            logging.info(f"이전 진행 중 기록 {len(closed)}건을 강제 종료했습니다 (Container: {container_id})")
        logging.info(f"Record started: {new_record.id} (Container: {container_id})")

        for record in closed:
            self._sync_upsert(record)
        self._sync_upsert(new_record)
        return new_record

    # --- 회수 ---

    def _finish(self, container_id: str, end_weight: float, weather_condition: Optional[str],
                temperature: Optional[float], cat_count: Optional[int], note: Optional[str],
                at: datetime) -> WaterRecord:
        self._require_container(container_id)
        active = self.local_store.fetch_records(container_id=container_id, active=True, limit=1)
        if not active:
            raise NotFoundError(f"진행 중인 기록이 없습니다 (Container: {container_id})")

        _check_user_note(note)
        record = active[0]
        record.finish(at, end_weight)
        record.weather_condition = weather_condition
        record.temperature = temperature
        if cat_count is not None:
            record.cat_count = cat_count
        # 사용자 메모는 위에서 검증했으므로, 남은 양 접두어를 붙이기 전 상태로 검증합니다.
        dataclasses.replace(record, note=None).validate()
        record.note = build_finish_note(end_weight, note)

        self.local_store.upsert_record(record)
        self.local_store.save()
        return record

    def finish_recording(self, container_id: str, end_weight: float,
                         weather_condition: Optional[str] = None,
                         temperature: Optional[float] = None,
                         cat_count: Optional[int] = None,
                         note: Optional[str] = None,
                         date: Optional[datetime] = None) -> WaterRecord:
        """그릇의 가장 최근 진행 중 기록을 회수(종료)합니다. 회수 무게는 설치 무게보다 적어야 합니다."""
        at = date or DateTimeUtils.now()
        record = self._run(self._finish, container_id, end_weight, weather_condition,
                           temperature, cat_count, note, at)
        logging.info(f"Record finished: {record.id} (amount: {record.amount}g)")
        self._sync_upsert(record)
        return record

    def finish_and_restart(self, container_id: str, end_weight: float, next_start_weight: float,
                           weather_condition: Optional[str] = None,
                           temperature: Optional[float] = None,
                           cat_count: Optional[int] = None,
                           note: Optional[str] = None,
                           date: Optional[datetime] = None) -> Tuple[WaterRecord, WaterRecord]:
        """회수 후 같은 시각에 새 설치를 이어서 시작합니다. 새 기록의 메모에는 남은 양을 남깁니다."""
        at = date or DateTimeUtils.now()
        finished = self.finish_recording(container_id, end_weight, weather_condition,
                                         temperature, cat_count, note, at)
        started = self.start_recording(container_id, next_start_weight, finished.cat_count,
                                       REMAINING_NOTE_FORMAT.format(int(end_weight)), at)
        return finished, started

    # --- 수정/삭제 ---

    def update_start_record(self, record_id: str, start_time: datetime, start_weight: float,
                            note: Optional[str] = None) -> WaterRecord:
        """진행 중 기록의 설치 정보(시각, 무게, 메모)를 수정합니다."""
        def _update() -> WaterRecord:
            record = dataclasses.replace(
                self._require_record(record_id),
                start_time=DateTimeUtils.validate_datetime_field(start_time, 'start_time'),
                start_weight=start_weight,
                note=note,
            )
            record.validate(allow_zero_intake=not record.is_active)
            self.local_store.upsert_record(record)
            self.local_store.save()
            return record

        record = self._run(_update)
        logging.info(f"Record start updated: {record.id}")
        self._sync_upsert(record)
        return record

    def update_record(self, record_id: str, start_time: datetime, end_time: Optional[datetime],
                      start_weight: float, end_weight: Optional[float],
                      note: Optional[str] = None) -> WaterRecord:
        """
        기록 전체를 수정합니다.
        회수 무게가 있으면 메모를 '남은 양 + 사용자 메모' 형식으로 다시 만듭니다.
        """
        def _update() -> WaterRecord:
            record = dataclasses.replace(
                self._require_record(record_id),
                start_time=DateTimeUtils.validate_datetime_field(start_time, 'start_time'),
                end_time=DateTimeUtils.validate_datetime_field(end_time, 'end_time') if end_time else None,
                start_weight=start_weight,
                end_weight=end_weight,
                note=note,
            )
            if end_weight is None:
                record.validate()
            else:
                _check_user_note(note)
                dataclasses.replace(record, note=None).validate()
                record.note = build_finish_note(end_weight, note)
            self.local_store.upsert_record(record)
            self.local_store.save()
            return record

        record = self._run(_update)
        logging.info(f"Record updated: {record.id}")
        self._sync_upsert(record)
        return record

    def delete_record(self, record_id: str) -> None:
        def _delete() -> None:
            if not self.local_store.delete_record(record_id):
                raise NotFoundError(f"기록을 찾을 수 없습니다: {record_id}")
            self.local_store.save()

        self._run(_delete)
        logging.info(f"Record deleted: {record_id}")
        self._sync_delete(RECORDS_COLLECTION, record_id)

    # --- 조회 ---

    def get_record(self, record_id: str) -> WaterRecord:
        return self._run(self._require_record, record_id)

    def active_records(self) -> List[WaterRecord]:
        """모든 그릇의 진행 중 기록 (최근 설치 순)."""
        return self._run(self.local_store.fetch_records, active=True)

    def recent_history(self, container_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[WaterRecord]:
        return self._run(self.local_store.fetch_records, container_id=container_id, limit=limit)

    def is_own_record(self, record: WaterRecord) -> bool:
        return self.device_identity.is_own_record(record)
