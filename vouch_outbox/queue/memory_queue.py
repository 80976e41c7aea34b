"""In-memory queue with the same contract as the spool; used by tests."""
from typing import Dict, List, Optional

from vouch_outbox.queue.base import QueueStorage
from vouch_outbox.queue.models import AnalysisPayload, CorruptRecordError, EnqueueResult, WorkItem


class MemoryQueue(QueueStorage):
    """Keeps serialized payloads in dicts instead of files.

    Records are stored as JSON text so decode failures behave like the spool's.
    """

    def __init__(self, max_on_disk: int = 100):
        super().__init__(max_on_disk)
        self._records: Dict[str, str] = {}
        self._dead: Dict[str, str] = {}
        self._pending: List[str] = []

    def enqueue(self, item: WorkItem) -> EnqueueResult:
        with self._lock:
            self._records[item.id] = item.payload.to_json()
            if item.id not in self._pending:
                self._pending.append(item.id)
                self._pending.sort()
            dropped = self._overflow(self._pending)
            for record_id in dropped:
                self._records.pop(record_id, None)
            del self._pending[: len(dropped)]
            return EnqueueResult(record_id=item.id, dropped_count=len(dropped))

    def put_raw(self, record_id: str, text: str) -> None:
        """Insert a record verbatim, bypassing serialization."""
        with self._lock:
            self._records[record_id] = text
            if record_id not in self._pending:
                self._pending.append(record_id)
                self._pending.sort()

    def peek_next(self) -> Optional[str]:
        with self._lock:
            return self._pending[0] if self._pending else None

    def read(self, record_id: str) -> WorkItem:
        with self._lock:
            text = self._records.get(record_id)
        if text is None:
            raise CorruptRecordError(record_id, "record is missing")
        try:
            return WorkItem.restore(record_id, AnalysisPayload.from_json(text))
        except (ValueError, KeyError, TypeError, RecursionError) as e:
            raise CorruptRecordError(record_id, f"undecodable: {e!r}")

    def remove(self, record_id: str) -> None:
        with self._lock:
            self._records.pop(record_id, None)
            if record_id in self._pending:
                self._pending.remove(record_id)

    def move_to_dead(self, record_id: str) -> bool:
        with self._lock:
            text = self._records.pop(record_id, None)
            if record_id in self._pending:
                self._pending.remove(record_id)
            if text is None:
                return False
            self._dead[record_id] = text
            return True

    def clear_all(self) -> int:
        with self._lock:
            removed = len(self._records)
            self._records.clear()
            self._pending.clear()
            return removed

    def list_dead(self) -> List[str]:
        with self._lock:
            return sorted(self._dead)

    def requeue_dead(self, record_id: str) -> bool:
        with self._lock:
            text = self._dead.pop(record_id, None)
            if text is None:
                return False
            self.put_raw(record_id, text)
            return True

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._pending)
