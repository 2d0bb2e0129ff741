# uruoi/core/exceptions.py
from typing import List, Optional


class SyncFailedError(RuntimeError):
    """원격 저장소(Firestore) 쓰기/읽기가 실패해 이전·복원 작업이 중단되었을 때 발생합니다."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class LocalDeleteFailedError(RuntimeError):
    """로컬 데이터 전체 삭제가 실패했을 때 발생합니다. 자동 롤백은 하지 않습니다."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class LocalPersistenceError(RuntimeError):
    """로컬 저장소 커밋이 실패했을 때 발생합니다."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class EntityValidationError(ValueError):
    """저장 전 엔티티 검증 실패. 사용자에게 보여줄 메시지 목록을 담습니다."""
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class NotFoundError(LookupError):
    """요청한 그릇(Container) 또는 기록(WaterRecord)을 찾을 수 없습니다."""
