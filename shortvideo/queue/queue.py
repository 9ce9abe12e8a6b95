from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable, Optional
from uuid import UUID


class BaseQueue:
    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover

    def close(self) -> None: ...  # pragma: no cover


_STOP = object()


class LocalQueue(BaseQueue):
    """FIFO of job ids drained by ``concurrency`` worker threads."""

    def __init__(
        self,
        processor: Callable[[UUID], None],
        concurrency: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._processor = processor
        self._queue: Queue = Queue()
        self.log = logger or logging.getLogger(__name__)
        self._threads = [
            threading.Thread(target=self._run, name=f"video-worker-{idx}", daemon=True)
            for idx in range(max(1, concurrency))
        ]
        for thread in self._threads:
            thread.start()

    def enqueue(self, job_id: UUID) -> None:
        self._queue.put(job_id)

    def pending(self) -> int:
        return self._queue.qsize()

    def join(self) -> None:
        self._queue.join()

    def close(self) -> None:
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout=5)

    def _run(self) -> None:
        while True:
            job_id = self._queue.get()
            try:
                if job_id is _STOP:
                    return
                self._processor(job_id)
            except Exception:
                self.log.exception("worker processor crashed", extra={"job_id": str(job_id)})
            finally:
                self._queue.task_done()
