# uruoi/services/change_stream.py
import queue
import threading
from typing import Iterator, List

from uruoi.services.firestore_service import DocumentChange

_CLOSED = object()


class ChangeStream:
    """
    구독 콜백과 처리 루프 사이의 채널.

    콜백 스레드는 publish()로 변경 묶음을 넣기만 하고, 처리 루프는 close()될 때까지
    for 문으로 꺼내 갑니다. 닫힌 뒤에 들어온 묶음은 버립니다.
    """
    def __init__(self, name: str):
        self.name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def publish(self, changes: List[DocumentChange]) -> None:
        if self._closed.is_set():
            return
        self._queue.put(list(changes))

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[List[DocumentChange]]:
        while True:
            item = self._queue.get()
            try:
                if item is _CLOSED:
                    return
                yield item
            finally:
                self._queue.task_done()

    def join(self) -> None:
        """지금까지 넣은 묶음이 모두 처리될 때까지 기다립니다."""
        self._queue.join()
