"""Result sinks: where analyzer verdicts are routed after delivery."""
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

from vouch_outbox import settings
from vouch_outbox.analysis_client import AnalysisResult
from vouch_outbox.logging_conf import logger


class ResultSink(ABC):
    """Receives the outcome of a delivered work item.

    `apply` must be a no-op for ids the sink no longer cares about.
    """

    @abstractmethod
    def apply(self, record_id: str, outcome: Optional[AnalysisResult]) -> None:
        ...


class NullResultSink(ResultSink):
    def apply(self, record_id: str, outcome: Optional[AnalysisResult]) -> None:
        pass


class Verdict(Enum):
    CHECKING = "checking"
    VERIFIED = "verified"    # no replacement
    CORRECTED = "corrected"  # replacement present


@dataclass(frozen=True)
class BoardItem:
    id: str
    app_name: str
    window_title: str
    chunk: str
    verdict: Verdict = Verdict.CHECKING
    replacement: Optional[str] = None
    tracked_at: float = 0.0
    is_newest: bool = False

    @property
    def has_correction(self) -> bool:
        return self.replacement is not None


class ResultBoard(ResultSink):
    """The last few tracked chunks and their verdicts, newest first."""

    def __init__(self, max_items: Optional[int] = None):
        self.max_items = max_items or settings.RESULT_BOARD_SIZE
        self._items: List[BoardItem] = []
        self._lock = threading.Lock()

    def track(self, record_id: str, app_name: str, window_title: str, chunk: str) -> BoardItem:
        """Show a chunk as CHECKING; re-tracking an id resets it in place."""
        item = BoardItem(
            id=record_id,
            app_name=app_name,
            window_title=window_title,
            chunk=chunk,
            tracked_at=time.time(),
            is_newest=True,
        )
        with self._lock:
            self._items = [replace(i, is_newest=False) for i in self._items]
            idx = self._index(record_id)
            if idx is not None:
                self._items[idx] = item
            else:
                self._items.insert(0, item)
                del self._items[self.max_items:]
        return item

    def apply(self, record_id: str, outcome: Optional[AnalysisResult]) -> None:
        replacement = outcome.replacement_chunk if outcome else None
        if replacement is not None and not replacement.strip():
            replacement = None
        with self._lock:
            idx = self._index(record_id)
            if idx is None:
                logger.debug("Result for untracked item ignored", extra={"record_id": record_id})
                return
            verdict = Verdict.VERIFIED if replacement is None else Verdict.CORRECTED
            self._items[idx] = replace(self._items[idx], verdict=verdict, replacement=replacement)
        logger.info(f"Result applied: {verdict.value}", extra={"record_id": record_id})

    def mark_applied(self, record_id: str) -> None:
        """The replacement was written back into the user's text."""
        with self._lock:
            idx = self._index(record_id)
            if idx is not None:
                self._items[idx] = replace(self._items[idx], verdict=Verdict.VERIFIED, replacement=None)

    def get(self, record_id: str) -> Optional[BoardItem]:
        with self._lock:
            idx = self._index(record_id)
            return self._items[idx] if idx is not None else None

    def items(self) -> List[BoardItem]:
        with self._lock:
            return list(self._items)

    def _index(self, record_id: str) -> Optional[int]:
        for i, item in enumerate(self._items):
            if item.id == record_id:
                return i
        return None
