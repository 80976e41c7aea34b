"""
Pytest configuration and fixtures for vouch-outbox.

Provides payload/item factories, a scripted analyzer client and a recording
result sink so worker tests never touch the network.
"""

import uuid
from typing import List, Optional, Tuple

import pytest

from vouch_outbox.analysis_client import AnalysisResult, ResponseInfo
from vouch_outbox.queue.memory_queue import MemoryQueue
from vouch_outbox.queue.models import AnalysisPayload, AppInfo, WorkItem
from vouch_outbox.queue.spool_queue import SpoolQueue
from vouch_outbox.results import ResultSink

BASE_MS = 1_700_000_000_000


def make_payload(text: str = "The Eiffel Tower is in Berlin.") -> AnalysisPayload:
    return AnalysisPayload(
        timestamp="2025-11-02T10:00:00.000Z",
        app=AppInfo(name="Notes", bundle_id="com.apple.Notes"),
        typed_text_chunk=text,
    )


def make_item(seq: int, text: Optional[str] = None) -> WorkItem:
    """Item whose id sorts by `seq`, independent of wall-clock resolution."""
    record_id = f"{BASE_MS + seq:013d}_{uuid.uuid4()}"
    return WorkItem.restore(record_id, make_payload(text or f"chunk {seq}"))


class FakeClient:
    """Analyzer stand-in; replays scripted outcomes, then `default`.

    A scripted entry that is an Exception is raised; anything else is returned
    as the parsed outcome.
    """

    timeout = 1.0
    base_url = "http://analyzer.test"

    def __init__(self, script=None, default=None, healthy: bool = True):
        self.script = list(script or [])
        self.default = default
        self.healthy = healthy
        self.calls: List[Tuple[Optional[str], AnalysisPayload]] = []
        self.health_checks = 0

    def health_check(self) -> bool:
        self.health_checks += 1
        return self.healthy

    def submit_for_result(self, payload, request_id=None):
        self.calls.append((request_id, payload))
        action = self.script.pop(0) if self.script else self.default
        if isinstance(action, Exception):
            raise action
        return action, ResponseInfo(status_code=200, request_id=request_id, elapsed_ms=1)


class RecordingSink(ResultSink):
    def __init__(self):
        self.applied: List[Tuple[str, Optional[AnalysisResult]]] = []

    def apply(self, record_id, outcome):
        self.applied.append((record_id, outcome))


@pytest.fixture
def payload():
    return make_payload()


@pytest.fixture
def spool(tmp_path):
    """Spool rooted in a temp dir with the default capacity."""
    return SpoolQueue.from_base_dir(tmp_path / "spool", max_on_disk=100)


@pytest.fixture
def memory_queue():
    return MemoryQueue(max_on_disk=100)


@pytest.fixture
def sink():
    return RecordingSink()
