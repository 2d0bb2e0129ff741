# uruoi/models/water_record.py
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from uruoi.core.exceptions import EntityValidationError
from uruoi.models.container import MAX_WEIGHT_GRAMS
from uruoi.utils.datetime_utils import DateTimeUtils

MIN_CAT_COUNT = 1
MAX_CAT_COUNT = 99
MIN_TEMPERATURE = -50
MAX_TEMPERATURE = 70
MAX_NOTE_LENGTH = 50


@dataclass
class WaterRecord:
    """
    급수 세션 한 건 (설치 → 회수).
    endTime/endWeight가 모두 None이면 진행 중(active) 기록입니다.
    container_id는 그릇과의 관계가 끊겨도 복구할 수 있도록 항상 보관합니다.
    """
    id: str
    container_id: str
    start_time: datetime
    start_weight: float
    cat_count: int
    end_time: Optional[datetime] = None
    end_weight: Optional[float] = None
    weather_condition: Optional[str] = None  # 날씨 아이콘 토큰 (예: 'sun.max', 'cloud.rain')
    temperature: Optional[float] = None       # 섭씨
    note: Optional[str] = None
    created_by_device_id: Optional[str] = None

    @classmethod
    def start(cls, container_id: str, start_weight: float, cat_count: int, start_time: datetime,
              note: Optional[str] = None, device_id: Optional[str] = None) -> "WaterRecord":
        """설치(start) 액션으로 새 기록을 만듭니다."""
        return cls(
            id=str(uuid.uuid4()),
            container_id=container_id,
            start_time=DateTimeUtils.validate_datetime_field(start_time, 'start_time'),
            start_weight=start_weight,
            cat_count=cat_count,
            note=note,
            created_by_device_id=device_id,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterRecord":
        processed_data = data.copy()
        processed_data['start_time'] = DateTimeUtils.validate_datetime_field(
            processed_data.get('start_time'), 'start_time'
        )
        if processed_data.get('end_time') is not None:
            processed_data['end_time'] = DateTimeUtils.validate_datetime_field(
                processed_data['end_time'], 'end_time'
            )
        return cls(**processed_data)

    # --- 파생 값 (저장하지 않음) ---

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def amount(self) -> Optional[float]:
        """섭취량(g) = 설치 무게 - 회수 무게. 회수 전에는 None."""
        if self.end_weight is None:
            return None
        return self.start_weight - self.end_weight

    @property
    def per_cat_amount(self) -> Optional[float]:
        amount = self.amount
        if amount is None or not self.cat_count or self.cat_count <= 0:
            return None
        return amount / self.cat_count

    # --- 상태 변경 ---

    def finish(self, end_time: datetime, end_weight: float) -> None:
        self.end_time = DateTimeUtils.validate_datetime_field(end_time, 'end_time')
        self.end_weight = end_weight

    def force_close(self, at: datetime) -> None:
        """
        같은 그릇에서 새 기록이 시작될 때 이전 진행 중 기록을 강제로 닫습니다.
        회수 무게는 설치 무게와 같게 두어 섭취량 0으로 남깁니다.
        """
        self.end_time = DateTimeUtils.validate_datetime_field(at, 'end_time')
        self.end_weight = self.start_weight

    # --- 검증 ---

    def validation_errors(self, allow_zero_intake: bool = False) -> List[str]:
        """
        검증 오류 메시지 목록을 반환합니다.

        Args:
            allow_zero_intake: True이면 endWeight == startWeight(강제 종료된 기록)를 허용합니다.
                사용자 입력 경로에서는 항상 False입니다.
        """
        errors = []
        if self.start_weight is None or self.start_weight <= 0:
            errors.append("설치 무게는 0보다 커야 합니다.")
        elif self.start_weight > MAX_WEIGHT_GRAMS:
            errors.append(f"설치 무게는 {MAX_WEIGHT_GRAMS}g 이하로 입력해 주세요.")

        if (self.end_time is None) != (self.end_weight is None):
            errors.append("회수 시각과 회수 무게는 함께 입력해야 합니다.")
        if self.end_weight is not None:
            if self.end_weight < 0:
                errors.append("회수 무게는 0 이상이어야 합니다.")
            elif self.start_weight is not None:
                too_heavy = self.end_weight > self.start_weight if allow_zero_intake \
                    else self.end_weight >= self.start_weight
                if too_heavy:
                    errors.append("회수 무게는 설치 무게보다 적어야 합니다.")

        if self.cat_count is None or not MIN_CAT_COUNT <= self.cat_count <= MAX_CAT_COUNT:
            errors.append(f"고양이 수는 {MIN_CAT_COUNT}~{MAX_CAT_COUNT} 사이여야 합니다.")

        if self.temperature is not None and not MIN_TEMPERATURE <= self.temperature <= MAX_TEMPERATURE:
            errors.append(f"기온은 {MIN_TEMPERATURE}℃~{MAX_TEMPERATURE}℃ 범위로 입력해 주세요 (현재: {self.temperature}℃).")

        if self.note is not None and len(self.note) > MAX_NOTE_LENGTH:
            errors.append(f"메모는 {MAX_NOTE_LENGTH}자 이내로 입력해 주세요 (현재: {len(self.note)}자).")
        return errors

    def is_valid(self, allow_zero_intake: bool = False) -> bool:
        return not self.validation_errors(allow_zero_intake)

    def validate(self, allow_zero_intake: bool = False) -> None:
        errors = self.validation_errors(allow_zero_intake)
        if errors:
            raise EntityValidationError(errors)
