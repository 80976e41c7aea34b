"""Spool-directory based queue."""
import os
import tempfile
from pathlib import Path
from typing import Optional, List

from vouch_outbox import settings
from vouch_outbox.logging_conf import logger
from vouch_outbox.queue.base import QueueStorage
from vouch_outbox.queue.models import (
    AnalysisPayload,
    CorruptRecordError,
    EnqueueResult,
    StorageError,
    WorkItem,
)

RECORD_SUFFIX = ".json"


class SpoolQueue(QueueStorage):
    """Durable queue: one JSON file per item, an in-memory index sorted by filename.

    Filenames are ``<unix-millis>_<uuid>.json`` so sorting by name is FIFO order.
    The index is rebuilt from the pending directory on construction; nothing
    else is trusted after a crash.
    """

    def __init__(
        self,
        pending_dir: Optional[Path] = None,
        dead_dir: Optional[Path] = None,
        max_on_disk: Optional[int] = None,
    ):
        super().__init__(max_on_disk if max_on_disk is not None else settings.MAX_ON_DISK)
        self.pending_dir: Path = Path(pending_dir or settings.SPOOL_PENDING_DIR)
        self.dead_dir: Path = Path(dead_dir or settings.SPOOL_DEAD_DIR)

        # Ensure directories exist
        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.dead_dir.mkdir(parents=True, exist_ok=True)

        with self._lock:
            self._pending: List[str] = self._scan(self.pending_dir)
        logger.info(f"Spool loaded {len(self._pending)} pending record(s) from {self.pending_dir}")

    @classmethod
    def from_base_dir(cls, base_dir: Path, max_on_disk: Optional[int] = None) -> "SpoolQueue":
        base_dir = Path(base_dir)
        return cls(base_dir / "pending", base_dir / "dead", max_on_disk=max_on_disk)

    def enqueue(self, item: WorkItem) -> EnqueueResult:
        """Write the item as `<id>.json`, then drop the oldest files above capacity."""
        with self._lock:
            path = self._path(item.id)
            try:
                self._atomic_write(path, item.payload.to_json())
            except OSError as e:
                logger.error(f"Failed to spool enqueue: {e}", exc_info=True, extra={"record_id": item.id})
                raise StorageError(f"Failed to write {path}: {e}") from e

            # rewriting a pending id replaces its file but keeps one index entry
            if item.id not in self._pending:
                self._pending.append(item.id)
                # ids from other processes or clock skew may arrive out of order
                if len(self._pending) > 1 and self._pending[-2] > item.id:
                    self._pending.sort()

            dropped = self._overflow(self._pending)
            for record_id in dropped:
                self._unlink(self._path(record_id))
            if dropped:
                del self._pending[: len(dropped)]
                logger.warning(
                    f"Spool full; dropped {len(dropped)} oldest record(s)",
                    extra={"dropped": len(dropped)},
                )

            logger.debug("Spool enqueued", extra={"record_id": item.id})
            return EnqueueResult(record_id=item.id, dropped_count=len(dropped))

    def peek_next(self) -> Optional[str]:
        with self._lock:
            return self._pending[0] if self._pending else None

    def read(self, record_id: str) -> WorkItem:
        path = self._path(record_id)
        try:
            payload = AnalysisPayload.from_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise CorruptRecordError(record_id, "file is missing")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptRecordError(record_id, f"unreadable: {e}")
        except (ValueError, KeyError, TypeError, RecursionError) as e:
            raise CorruptRecordError(record_id, f"undecodable: {e!r}")
        return WorkItem.restore(record_id, payload)

    def remove(self, record_id: str) -> None:
        with self._lock:
            self._unlink(self._path(record_id))
            self._discard(record_id)

    def move_to_dead(self, record_id: str) -> bool:
        """Rename into the dead-letter directory, replacing any same-named file."""
        with self._lock:
            moved = False
            try:
                os.replace(self._path(record_id), self.dead_dir / f"{record_id}{RECORD_SUFFIX}")
                moved = True
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to move record to dead-letter: {e}", extra={"record_id": record_id})
            self._discard(record_id)
            return moved

    def clear_all(self) -> int:
        with self._lock:
            removed = 0
            for name in self._scan(self.pending_dir):
                if self._unlink(self._path(name)):
                    removed += 1
            self._pending.clear()
            logger.info(f"Spool cleared ({removed} record(s))")
            return removed

    def list_dead(self) -> List[str]:
        with self._lock:
            return self._scan(self.dead_dir)

    def requeue_dead(self, record_id: str) -> bool:
        with self._lock:
            try:
                os.replace(self.dead_dir / f"{record_id}{RECORD_SUFFIX}", self._path(record_id))
            except FileNotFoundError:
                return False
            if record_id not in self._pending:
                self._pending.append(record_id)
                self._pending.sort()
            logger.info("Requeued dead-letter record", extra={"record_id": record_id})
            return True

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _path(self, record_id: str) -> Path:
        return self.pending_dir / f"{record_id}{RECORD_SUFFIX}"

    def _discard(self, record_id: str) -> None:
        try:
            self._pending.remove(record_id)
        except ValueError:
            pass

    def _scan(self, directory: Path) -> List[str]:
        """Record ids in a directory, sorted by name (FIFO)."""
        try:
            return sorted(
                p.stem for p in directory.iterdir()
                if p.is_file() and p.suffix == RECORD_SUFFIX
            )
        except FileNotFoundError:
            return []

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete spool file {path}: {e}")
            return False

    def _atomic_write(self, path: Path, text: str) -> None:
        """Write to a temp file in the same directory, fsync, then rename into place."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
