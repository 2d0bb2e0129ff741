# uruoi/services/base.py
"""
로컬 쓰기 호출 지점(그릇/기록 서비스)의 기본 클래스
로컬 저장소 접근과 원격 반영(push) 공통 기능 제공
"""

import logging
from typing import Any, Callable, Union

from uruoi.models.container import Container
from uruoi.models.water_record import WaterRecord
from uruoi.services.sync_service import SyncService
from uruoi.store.dispatcher import StoreDispatcher
from uruoi.store.local_store import LocalStore

logger = logging.getLogger(__name__)


class BaseLocalService:
    """
    로컬 우선 서비스의 기본 클래스.
    변경은 항상 저장소 소유 스레드에서 실행하고, 커밋이 성공한 뒤에만 원격에 반영합니다.
    """

    def __init__(self, local_store: LocalStore, dispatcher: StoreDispatcher, sync_service: SyncService):
        self.local_store = local_store
        self.dispatcher = dispatcher
        self.sync_service = sync_service

    def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """저장소 소유 스레드에서 fn을 하나의 작업 단위로 실행합니다. 실패하면 세션은 롤백됩니다."""
        return self.dispatcher.run(self.local_store.run_in_transaction, fn, *args, **kwargs)

    def _sync_upsert(self, entity: Union[Container, WaterRecord]) -> None:
        # 호출 시점의 공유 ID를 한 번만 읽어 그대로 전달
        household_id = self.sync_service.current_household_id
        if not household_id:
            return
        self.sync_service.push_upsert(entity, household_id)

    def _sync_delete(self, collection: str, entity_id: str) -> None:
        household_id = self.sync_service.current_household_id
        if not household_id:
            return
        self.sync_service.push_delete(collection, entity_id, household_id)
