"""
Producers and the delivery worker hitting one spool at the same time.
"""

import threading

from vouch_outbox.queue.spool_queue import SpoolQueue
from vouch_outbox.worker import DeliveryWorker

from conftest import FakeClient, RecordingSink, make_item


def test_producer_and_worker_keep_index_and_disk_in_step(tmp_path):
    spool = SpoolQueue.from_base_dir(tmp_path / "spool", max_on_disk=5)
    sink = RecordingSink()
    worker = DeliveryWorker(
        spool, FakeClient(default=None), sink,
        max_attempts=3, min_backoff=0.01, max_backoff=0.05, idle_interval=0.01,
    )
    results = []

    def produce():
        for seq in range(200):
            item = make_item(seq)
            if seq % 2:
                results.append(spool.enqueue_nowait(item).result(timeout=5))
            else:
                results.append(spool.enqueue(item))

    producer = threading.Thread(target=produce)
    worker.start()
    try:
        producer.start()
        producer.join(timeout=30)
        assert not producer.is_alive()
    finally:
        worker.stop()
        spool.close()

    on_disk = sorted(p.stem for p in spool.pending_dir.glob("*.json"))
    assert spool.count == len(on_disk)
    assert spool.count <= 5

    pending = []
    while spool.peek_next() is not None:
        pending.append(spool.peek_next())
        spool.remove(pending[-1])
    assert pending == on_disk

    delivered = [record_id for record_id, _ in sink.applied]
    assert delivered == sorted(delivered)
    assert len(set(delivered)) == len(delivered)
    assert len(results) == 200
    assert all(r.dropped_count in (0, 1) for r in results)
