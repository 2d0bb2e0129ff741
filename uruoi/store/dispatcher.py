# uruoi/store/dispatcher.py
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable


class StoreDispatcher:
    """
    로컬 저장소를 소유하는 단일 스레드.

    화면(요청 처리) 경로와 원격 변경 적용 경로가 모두 이 스레드를 거쳐야만
    LocalStore에 접근할 수 있습니다. 소유 스레드 안에서 다시 호출되면 그 자리에서 실행합니다.
    """
    def __init__(self, name: str = 'local-store'):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._owner_ident = self._executor.submit(threading.get_ident).result()
        logging.info(f"StoreDispatcher started (thread: {name})")

    def is_owner_thread(self) -> bool:
        return threading.get_ident() == self._owner_ident

    def run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """소유 스레드에서 fn을 실행하고 결과를 기다립니다. 예외는 호출자에게 그대로 전달됩니다."""
        if self.is_owner_thread():
            return fn(*args, **kwargs)
        return self._executor.submit(fn, *args, **kwargs).result()

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
