# uruoi/services/device_service.py
import json
import logging
import os
import threading
import uuid
from typing import Any, Dict, Optional

from uruoi.models.water_record import WaterRecord

DEVICE_ID_KEY = 'savedDeviceId'
HOUSEHOLD_ID_KEY = 'householdId'
CREATED_HOUSEHOLD_ID_KEY = 'createdHouseholdId'


class DeviceSettingsStore:
    """
    기기별 설정(JSON 파일) 저장소.
    기기 ID와 가족 공유 ID처럼 로컬 DB 초기화와 무관하게 남아야 하는 값을 보관합니다.
    """
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"기기 설정 파일을 읽지 못해 빈 설정으로 시작합니다 ({self.path}): {e}")
            return {}

    def _flush(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


class DeviceIdentityProvider:
    """설치마다 고정된 기기 ID를 제공합니다. 가족 공유에서 '누가 기록했는지' 구분하는 데 사용합니다."""
    def __init__(self, settings: DeviceSettingsStore):
        self.settings = settings
        self._lock = threading.Lock()

    @property
    def device_id(self) -> str:
        with self._lock:
            saved = self.settings.get(DEVICE_ID_KEY)
            if saved:
                return saved
            # 최초 1회 발급 후 저장
            new_id = str(uuid.uuid4())
            self.settings.set(DEVICE_ID_KEY, new_id)
            logging.info(f"새 기기 ID를 발급했습니다: {new_id}")
            return new_id

    def is_own_record(self, record: WaterRecord) -> bool:
        """작성 기기 ID가 없거나 비어 있으면 이 기기(또는 이전 버전)의 기록으로 취급합니다."""
        author: Optional[str] = record.created_by_device_id
        return not author or author == self.device_id
