# uruoi/api/household/services.py
"""
가족 공유(household) 화면의 흐름을 조합하는 서비스.

- 새로 만들기: 로컬 데이터를 새 공유 공간으로 업로드한 뒤 동기화 시작
- 참여/복원: 로컬 데이터를 모두 지우고 대상 공유 공간의 데이터로 채움
- 나가기: 동기화만 멈추고 클라우드 데이터는 그대로 둠
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from uruoi.core.exceptions import NotFoundError
from uruoi.services.device_service import (
    CREATED_HOUSEHOLD_ID_KEY, HOUSEHOLD_ID_KEY, DeviceIdentityProvider, DeviceSettingsStore,
)
from uruoi.services.migration_service import MigrationService
from uruoi.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class HouseholdService:
    def __init__(self,
                 sync_service: SyncService,
                 migration_service: MigrationService,
                 settings: DeviceSettingsStore,
                 device_identity: DeviceIdentityProvider):
        self.sync_service = sync_service
        self.migration_service = migration_service
        self.settings = settings
        self.device_identity = device_identity
        logger.info("HouseholdService initialized.")

    @property
    def household_id(self) -> Optional[str]:
        return self.settings.get(HOUSEHOLD_ID_KEY)

    @property
    def created_household_id(self) -> Optional[str]:
        return self.settings.get(CREATED_HOUSEHOLD_ID_KEY)

    def create_household(self) -> str:
        """
        새 공유 ID를 발급하고 로컬 데이터를 업로드한 뒤 동기화를 시작합니다.
        업로드에 실패하면(SyncFailedError) 공유 ID는 저장되지 않습니다.
        """
        household_id = str(uuid.uuid4())
        exported = self.migration_service.export_all_to_remote(household_id)

        self.settings.set(HOUSEHOLD_ID_KEY, household_id)
        self.settings.set(CREATED_HOUSEHOLD_ID_KEY, household_id)
        self.sync_service.start_sync(household_id)
        logger.info(f"가족 공유를 만들었습니다 (Household: {household_id}, 업로드 문서: {exported})")
        return household_id

    def join_household(self, household_id: str) -> str:
        """
        다른 기기에서 만든 공유 공간에 참여합니다.
        로컬 데이터는 모두 삭제되며, 삭제 실패(LocalDeleteFailedError) 시 공유 ID는 바뀌지 않습니다.
        """
        household_id = (household_id or '').strip()
        if not household_id:
            raise ValueError("참여할 공유 ID를 입력해 주세요.")

        # 이전 세션의 변경이 삭제 이후에 적용되지 않도록 먼저 구독을 멈춤
        self.sync_service.stop_sync()
        self.migration_service.wipe_local()

        self.settings.set(HOUSEHOLD_ID_KEY, household_id)
        self.sync_service.start_sync(household_id)
        logger.info(f"가족 공유에 참여했습니다 (Household: {household_id})")
        return household_id

    def _require_created_id(self) -> str:
        created_id = self.created_household_id
        if not created_id:
            raise NotFoundError("이 기기에서 만든 공유 ID가 없습니다.")
        return created_id

    def restore_preview(self) -> Dict[str, Any]:
        """복원 전에 클라우드에 남아 있는 가장 최근 기록 시각을 알려줍니다."""
        created_id = self._require_created_id()
        latest: Optional[datetime] = self.migration_service.latest_remote_record_timestamp(created_id)
        return {"household_id": created_id, "latest_record_time": latest}

    def restore_household(self) -> str:
        """이 기기에서 만들었던 공유 공간의 데이터로 로컬을 덮어씁니다."""
        return self.join_household(self._require_created_id())

    def leave_household(self) -> None:
        """동기화를 멈추고 공유 ID를 지웁니다. 클라우드 데이터와 로컬 데이터는 그대로 남습니다."""
        previous = self.household_id
        self.settings.delete(HOUSEHOLD_ID_KEY)
        self.sync_service.stop_sync()
        logger.info(f"가족 공유에서 나왔습니다 (Household: {previous})")

    def refresh(self) -> Dict[str, Any]:
        """앱이 다시 활성화되었을 때처럼 현재 공유 ID로 구독을 새로 만듭니다."""
        household_id = self.household_id
        if household_id:
            self.sync_service.start_sync(household_id)
        return self.status()

    def resume(self) -> bool:
        """저장된 공유 ID가 있으면 동기화를 시작합니다 (앱 시작 시)."""
        household_id = self.household_id
        if not household_id:
            return False
        self.sync_service.start_sync(household_id)
        return True

    def status(self) -> Dict[str, Any]:
        state = self.sync_service.state
        return {
            "is_syncing": state.is_syncing,
            "household_id": self.household_id,
            "syncing_household_id": state.household_id,
            "created_household_id": self.created_household_id,
            "device_id": self.device_identity.device_id,
            "deferred_record_ids": self.sync_service.deferred_record_ids,
            "last_error": self.sync_service.last_error,
            "inactive_subscriptions": self.sync_service.inactive_collections,
        }
