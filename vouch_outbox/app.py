"""Main application - wires the spool, analyzer client, worker and result board."""
import signal
import sys
import threading
from typing import Optional

from vouch_outbox.logging_conf import logger
from vouch_outbox import settings
from vouch_outbox.analysis_client import AnalysisClient
from vouch_outbox.queue.base import QueueStorage
from vouch_outbox.queue.models import AnalysisPayload, EnqueueResult, WindowInfo, WorkItem
from vouch_outbox.queue.spool_queue import SpoolQueue
from vouch_outbox.results import ResultBoard
from vouch_outbox.worker import DeliveryWorker


class Application:
    """Delivery pipeline facade used by the capture side and the operator CLI."""

    def __init__(
        self,
        queue: Optional[QueueStorage] = None,
        client: Optional[AnalysisClient] = None,
        board: Optional[ResultBoard] = None,
        worker: Optional[DeliveryWorker] = None,
    ):
        self.queue = queue or SpoolQueue()
        self.client = client or AnalysisClient()
        self.board = board or ResultBoard()
        self.worker = worker or DeliveryWorker(self.queue, self.client, self.board)
        self._shutdown = threading.Event()

    def start(self):
        """Start the application."""
        logger.info("=" * 50)
        logger.info("VouchForMe outbox")
        logger.info("=" * 50)
        logger.info(f"Spool: {settings.SPOOL_BASE_DIR} (pending={self.queue.count})")
        logger.info(f"Analyzer: {self.client.base_url}")
        logger.info("=" * 50)

        self.worker.start()

    def stop(self):
        """Stop the application."""
        self._shutdown.set()
        self.worker.stop()
        self.queue.close()
        logger.info("Stopped")

    def request_shutdown(self):
        """Ask run() to return; safe from signal handlers."""
        self._shutdown.set()

    def run(self):
        """Start, then block until request_shutdown() (usually from a signal handler)."""
        self.start()
        try:
            while not self._shutdown.wait(1):
                pass
        except KeyboardInterrupt:
            pass
        self.stop()

    def capture(
        self,
        typed_text: str,
        app_name: str,
        bundle_id: Optional[str] = None,
        window: Optional[WindowInfo] = None,
        screenshot_bytes: Optional[bytes] = None,
        screenshot_mime: str = "image/jpeg",
    ) -> EnqueueResult:
        """Spool a captured chunk and show it as CHECKING on the board."""
        payload = AnalysisPayload.make(
            typed_text,
            app_name,
            bundle_id=bundle_id,
            window=window,
            screenshot_bytes=screenshot_bytes,
            screenshot_mime=screenshot_mime,
        )
        result = self.queue.enqueue(WorkItem.create(payload))
        if result.dropped_count:
            logger.warning(f"Dropped {result.dropped_count} oldest payload(s) (queue full)")
        self.board.track(
            result.record_id,
            app_name=app_name,
            window_title=window.title if window else "",
            chunk=typed_text,
        )
        return result

    def send_now(self, limit: Optional[int] = None) -> int:
        """Pause the background loop, flush up to `limit` items, resume."""
        was_running = self.worker.running
        self.worker.stop()
        try:
            return self.worker.process_once(limit or settings.SEND_NOW_LIMIT)
        finally:
            if was_running:
                self.worker.start()

    def clear_queue(self) -> int:
        """Pause the background loop, drop every pending item, resume."""
        was_running = self.worker.running
        self.worker.stop()
        try:
            removed = self.queue.clear_all()
            logger.info(f"Cleared queue ({removed} item(s))")
            return removed
        finally:
            if was_running:
                self.worker.start()

    def status(self) -> dict:
        return {
            "pending": self.queue.count,
            "dead": len(self.queue.list_dead()),
            "worker": self.worker.state.value,
            "analyzer_reachable": self.client.health_check(),
        }


def main():
    """Entry point."""
    try:
        settings.validate_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    app = Application()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        app.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.run()


if __name__ == "__main__":
    main()
