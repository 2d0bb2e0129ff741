# uruoi/models/container.py
import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from uruoi.core.exceptions import EntityValidationError
from uruoi.utils.datetime_utils import DateTimeUtils

MAX_NAME_LENGTH = 20
MAX_WEIGHT_GRAMS = 10000


def has_control_characters(text: str) -> bool:
    """유니코드 제어 문자(Cc)가 포함되어 있는지 확인합니다."""
    return any(unicodedata.category(ch) == 'Cc' for ch in text)


@dataclass
class Container:
    """
    물그릇(Container) 엔티티.
    로컬 저장소와 Firestore 'households/{id}/containers' 문서 사이를 오가는 기준 모델.
    isArchived는 소프트 삭제 플래그로, 보관된 그릇도 과거 기록 연결을 위해 남겨 둡니다.
    """
    id: str
    name: str
    empty_weight: float
    is_archived: bool = False
    created_at: datetime = field(default_factory=DateTimeUtils.now)
    sort_order: int = 0

    @classmethod
    def create(cls, name: str, empty_weight: float, sort_order: int = 0) -> "Container":
        """새 UUID를 발급해 그릇을 만듭니다. 이름은 앞뒤 공백을 제거해 저장합니다."""
        return cls(
            id=str(uuid.uuid4()),
            name=name.strip(),
            empty_weight=empty_weight,
            sort_order=sort_order,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Container":
        processed_data = data.copy()
        processed_data['created_at'] = DateTimeUtils.validate_datetime_field(
            processed_data.get('created_at'), 'created_at'
        )
        return cls(**processed_data)

    # --- 검증 ---

    def validation_errors(self) -> List[str]:
        """검증 오류 메시지 목록을 반환합니다. 비어 있으면 유효합니다."""
        errors = []
        trimmed = (self.name or '').strip()
        if not trimmed:
            errors.append("그릇 이름을 입력해 주세요.")
        elif len(trimmed) > MAX_NAME_LENGTH:
            errors.append(f"그릇 이름은 {MAX_NAME_LENGTH}자 이내로 입력해 주세요.")
        elif has_control_characters(trimmed):
            errors.append("그릇 이름에 사용할 수 없는 문자가 포함되어 있습니다.")

        if self.empty_weight is None or self.empty_weight < 0:
            errors.append("빈 그릇 무게는 0 이상이어야 합니다.")
        elif self.empty_weight > MAX_WEIGHT_GRAMS:
            errors.append(f"빈 그릇 무게는 {MAX_WEIGHT_GRAMS}g 이하로 입력해 주세요.")
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def validate(self) -> None:
        """유효하지 않으면 EntityValidationError를 발생시킵니다."""
        errors = self.validation_errors()
        if errors:
            raise EntityValidationError(errors)
