"""Storage interface shared by the spool and the in-memory queue."""
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Tuple

from vouch_outbox.logging_conf import logger
from vouch_outbox.queue.models import CorruptRecordError, EnqueueResult, WorkItem


class QueueStorage(ABC):
    """Ordered, capacity-bounded store of pending WorkItems plus a dead-letter area.

    Implementations serialize every mutation behind ``self._lock`` so a producer
    thread and the delivery worker can share one instance.
    """

    def __init__(self, max_on_disk: int):
        if max_on_disk <= 0:
            raise ValueError("max_on_disk must be > 0")
        self.max_on_disk = max_on_disk
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @abstractmethod
    def enqueue(self, item: WorkItem) -> EnqueueResult:
        """Persist the item and evict the oldest records above capacity."""

    @abstractmethod
    def peek_next(self) -> Optional[str]:
        """Oldest pending record id, or None when empty."""

    @abstractmethod
    def read(self, record_id: str) -> WorkItem:
        """Load a pending record without removing it; raises CorruptRecordError."""

    @abstractmethod
    def remove(self, record_id: str) -> None:
        """Remove a pending record; absent ids are a no-op."""

    @abstractmethod
    def move_to_dead(self, record_id: str) -> bool:
        """Move a pending record to the dead-letter area. Returns True if it moved."""

    @abstractmethod
    def clear_all(self) -> int:
        """Drop every pending record; returns how many were removed."""

    @abstractmethod
    def list_dead(self) -> list:
        """Dead-letter record ids, oldest first."""

    @abstractmethod
    def requeue_dead(self, record_id: str) -> bool:
        """Move a dead record back to pending. Returns True if it moved."""

    @property
    @abstractmethod
    def count(self) -> int:
        """Current pending size."""

    def dequeue(self) -> Optional[Tuple[WorkItem, str]]:
        """Read and remove the oldest record in one step.

        Returns None when empty or when the head record is corrupt; a corrupt
        head is removed anyway so it cannot block the queue.
        """
        with self._lock:
            record_id = self.peek_next()
            if record_id is None:
                return None
            try:
                item = self.read(record_id)
            except CorruptRecordError as e:
                logger.warning(f"Dropping corrupt record on dequeue: {e.reason}", extra={"record_id": record_id})
                self.remove(record_id)
                return None
            self.remove(record_id)
            return item, record_id

    def enqueue_nowait(
        self,
        item: WorkItem,
        callback: Optional[Callable[[EnqueueResult], None]] = None,
    ) -> "Future[EnqueueResult]":
        """Fire-and-forget enqueue on a dedicated single I/O thread."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="outbox-io")
            executor = self._executor

        def _run() -> EnqueueResult:
            result = self.enqueue(item)
            if callback:
                try:
                    callback(result)
                except Exception as e:
                    logger.error(f"Enqueue callback failed: {e}", exc_info=True)
            return result

        return executor.submit(_run)

    def close(self) -> None:
        """Wait for pending fire-and-forget writes and release the I/O thread."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor:
            executor.shutdown(wait=True)

    def _overflow(self, pending: list) -> list:
        """Oldest ids that exceed capacity, given the index after an append."""
        excess = len(pending) - self.max_on_disk
        return pending[:excess] if excess > 0 else []
