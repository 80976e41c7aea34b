"""Worker that drains the spool to the analyzer."""
import random
import threading
import weakref
from enum import Enum
from typing import Dict, Optional

from vouch_outbox import settings
from vouch_outbox.logging_conf import logger
from vouch_outbox.analysis_client import AnalysisClient, AnalysisClientError
from vouch_outbox.queue.base import QueueStorage
from vouch_outbox.queue.models import CorruptRecordError
from vouch_outbox.results import ResultSink


class WorkerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class DeliveryStatus(Enum):
    EMPTY = "empty"
    DELIVERED = "delivered"
    CORRUPT = "corrupt"
    RETRY = "retry"
    DEAD_LETTERED = "dead_lettered"


class DeliveryWorker:
    """Background loop: peek, submit, then remove / back off / dead-letter.

    One cycle at a time, across the loop thread and `process_once`, so at
    most one request is ever in flight. Attempt counts live in memory only
    and reset on restart.
    """

    def __init__(
        self,
        queue: QueueStorage,
        client: AnalysisClient,
        result_sink: Optional[ResultSink] = None,
        *,
        max_attempts: Optional[int] = None,
        min_backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
        jitter_ratio: Optional[float] = None,
        idle_interval: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.queue = queue
        self.client = client
        self._sink_ref = weakref.ref(result_sink) if result_sink is not None else None

        self.max_attempts = max_attempts or settings.MAX_ATTEMPTS_PER_ITEM
        self.min_backoff = min_backoff if min_backoff is not None else settings.MIN_BACKOFF_SECONDS
        self.max_backoff = max_backoff if max_backoff is not None else settings.MAX_BACKOFF_SECONDS
        self.jitter_ratio = jitter_ratio if jitter_ratio is not None else settings.BACKOFF_JITTER_RATIO
        self.idle_interval = idle_interval if idle_interval is not None else settings.IDLE_INTERVAL_SECONDS
        self._rng = rng or random.Random()

        self._attempts: Dict[str, int] = {}
        self._backoff = self.min_backoff
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = WorkerState.STOPPED
        self._stop_event: Optional[threading.Event] = None
        self.thread: Optional[threading.Thread] = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is WorkerState.RUNNING

    @property
    def current_backoff(self) -> float:
        return self._backoff

    def attempts_for(self, record_id: str) -> int:
        return self._attempts.get(record_id, 0)

    def start(self):
        """Start the worker in a background thread."""
        with self._state_lock:
            if self._state is WorkerState.RUNNING:
                logger.warning("Worker is already running")
                return

            # each run gets its own token so a lingering old thread never resumes
            self._stop_event = threading.Event()
            self._state = WorkerState.RUNNING
            self.thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="outbox-sender", daemon=True
            )
            self.thread.start()
        logger.info("Worker started")

    def stop(self, timeout: Optional[float] = None):
        """Stop the worker; waits for an in-flight request up to the client timeout."""
        with self._state_lock:
            if self._state is WorkerState.STOPPED:
                return
            self._stop_event.set()
            thread, self.thread = self.thread, None
            self._state = WorkerState.STOPPED

        if thread and thread is not threading.current_thread():
            thread.join(timeout=timeout if timeout is not None else self.client.timeout + 1)
            if thread.is_alive():
                logger.warning("Worker thread still finishing an in-flight request")
        logger.info("Worker stopped")

    def step(self) -> DeliveryStatus:
        """Run exactly one peek, submit, settle cycle."""
        with self._cycle_lock:
            return self._deliver_next()

    def process_once(self, limit: int = 1) -> int:
        """Try to send up to `limit` items right now; stop at the first failure."""
        sent = 0
        for _ in range(limit):
            status = self.step()
            if status is DeliveryStatus.DELIVERED:
                sent += 1
            elif status is DeliveryStatus.CORRUPT:
                continue
            else:
                break
        logger.info(f"Manual send: {sent} item(s) (queue={self.queue.count})")
        return sent

    def _run(self, stop_event: threading.Event):
        """Main worker loop."""
        logger.info("Worker thread started")

        if self.client.health_check():
            logger.info("Analyzer server is reachable")
        else:
            logger.warning("Analyzer server not reachable yet; will retry")

        while not stop_event.is_set():
            try:
                status = self.step()
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                stop_event.wait(self.idle_interval)
                continue

            if status is DeliveryStatus.EMPTY:
                stop_event.wait(self.idle_interval)
            elif status is DeliveryStatus.RETRY:
                stop_event.wait(self._next_delay())

        logger.info("Worker thread stopped")

    def _deliver_next(self) -> DeliveryStatus:
        record_id = self.queue.peek_next()
        if record_id is None:
            return DeliveryStatus.EMPTY
        self._prune_attempts(record_id)

        try:
            item = self.queue.read(record_id)
        except CorruptRecordError as e:
            # retry can't fix a decode error
            logger.warning(f"Corrupt queued item: {e.reason}. Dropping.", extra={"record_id": record_id})
            self.queue.remove(record_id)
            self._attempts.pop(record_id, None)
            return DeliveryStatus.CORRUPT

        logger.info(f"Sending 1 payload (queue={self.queue.count})", extra={"record_id": record_id})
        try:
            outcome, info = self.client.submit_for_result(item.payload, request_id=record_id)
        except AnalysisClientError as e:
            return self._record_failure(record_id, e)
        except Exception as e:
            logger.error(f"Unexpected error sending record: {e}", exc_info=True, extra={"record_id": record_id})
            return self._record_failure(record_id, e)

        self.queue.remove(record_id)
        self._attempts.pop(record_id, None)
        self._backoff = self.min_backoff
        logger.info(
            f"Sent in {info.elapsed_ms}ms (queue={self.queue.count})",
            extra={"record_id": record_id},
        )
        self._notify(record_id, outcome)
        return DeliveryStatus.DELIVERED

    def _prune_attempts(self, head_id: str):
        """Only the head can be failing; forget counts for records removed elsewhere."""
        for stale in [k for k in self._attempts if k != head_id]:
            del self._attempts[stale]

    def _record_failure(self, record_id: str, error: Exception) -> DeliveryStatus:
        attempt = self._attempts.get(record_id, 0) + 1
        if attempt >= self.max_attempts:
            self._attempts.pop(record_id, None)
            self.queue.move_to_dead(record_id)
            self._backoff = self.min_backoff
            logger.error(
                f"Giving up after {attempt} attempt(s): {error}. Moved to dead-letter.",
                extra={"record_id": record_id, "attempt": attempt},
            )
            return DeliveryStatus.DEAD_LETTERED

        self._attempts[record_id] = attempt
        logger.warning(
            f"Send failed: {error}. Retrying in ~{self._backoff:.1f}s",
            extra={"record_id": record_id, "attempt": attempt},
        )
        return DeliveryStatus.RETRY

    def _next_delay(self) -> float:
        """Current backoff plus jitter; doubles the backoff for next time."""
        delay = self._backoff + self._rng.uniform(0, self.jitter_ratio * self._backoff)
        self._backoff = min(self._backoff * 2, self.max_backoff)
        return delay

    def _notify(self, record_id: str, outcome):
        sink = self._sink_ref() if self._sink_ref else None
        if sink is None:
            return
        try:
            sink.apply(record_id, outcome)
        except Exception as e:
            logger.error(f"Result sink failed: {e}", exc_info=True, extra={"record_id": record_id})
