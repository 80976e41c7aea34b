"""
Tests for the logging setup.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from vouch_outbox import settings
from vouch_outbox.logging_conf import QueueContextFilter


def test_file_handler_writes_app_log():
    handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]

    assert len(handlers) == 1
    assert Path(handlers[0].baseFilename) == (settings.LOGS_DIR / "app.log").resolve()
    assert handlers[0].maxBytes == 10 * 1024 * 1024
    assert handlers[0].backupCount == 5


def test_context_filter_renders_extras():
    record = logging.LogRecord("vouch_outbox", logging.INFO, __file__, 1, "Sent", None, None)
    record.record_id = "abc"
    record.attempt = 2

    assert QueueContextFilter().filter(record) is True
    assert record.queue_context == " [record_id=abc attempt=2]"
