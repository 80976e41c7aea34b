"""Configuration for the VouchForMe outbox."""
import os
from pathlib import Path
from urllib.parse import urlparse
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = BASE_DIR / "logs"
LOGS_DIR.mkdir(exist_ok=True)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Spool
SPOOL_BASE_DIR = Path(os.getenv("SPOOL_BASE_DIR", str(BASE_DIR / "spool")))
SPOOL_PENDING_DIR = SPOOL_BASE_DIR / "pending"
SPOOL_DEAD_DIR = SPOOL_BASE_DIR / "dead"
MAX_ON_DISK = int(os.getenv("MAX_ON_DISK", "100"))  # drop oldest above this

# Delivery
MAX_ATTEMPTS_PER_ITEM = int(os.getenv("MAX_ATTEMPTS_PER_ITEM", "6"))
MIN_BACKOFF_SECONDS = float(os.getenv("MIN_BACKOFF_SECONDS", "1"))
MAX_BACKOFF_SECONDS = float(os.getenv("MAX_BACKOFF_SECONDS", "60"))
BACKOFF_JITTER_RATIO = float(os.getenv("BACKOFF_JITTER_RATIO", "0.3"))
IDLE_INTERVAL_SECONDS = float(os.getenv("IDLE_INTERVAL_SECONDS", "0.25"))
SEND_NOW_LIMIT = int(os.getenv("SEND_NOW_LIMIT", "10"))

# Analyzer server
ANALYZER_BASE_URL = os.getenv("ANALYZER_BASE_URL", "http://127.0.0.1:3000")
ANALYZER_TIMEOUT_SECONDS = float(os.getenv("ANALYZER_TIMEOUT_SECONDS", "120"))

# Result board (overlay keeps the last few cards)
RESULT_BOARD_SIZE = int(os.getenv("RESULT_BOARD_SIZE", "3"))


def validate_config():
    """Validate configuration."""
    errors = []

    if MAX_ON_DISK <= 0:
        errors.append(f"MAX_ON_DISK must be > 0: {MAX_ON_DISK}")

    if MAX_ATTEMPTS_PER_ITEM <= 0:
        errors.append(f"MAX_ATTEMPTS_PER_ITEM must be > 0: {MAX_ATTEMPTS_PER_ITEM}")

    if MIN_BACKOFF_SECONDS <= 0:
        errors.append(f"MIN_BACKOFF_SECONDS must be > 0: {MIN_BACKOFF_SECONDS}")
    elif MAX_BACKOFF_SECONDS < MIN_BACKOFF_SECONDS:
        errors.append(
            f"MAX_BACKOFF_SECONDS ({MAX_BACKOFF_SECONDS}) must be >= "
            f"MIN_BACKOFF_SECONDS ({MIN_BACKOFF_SECONDS})"
        )

    if not 0 <= BACKOFF_JITTER_RATIO <= 1:
        errors.append(f"BACKOFF_JITTER_RATIO must be within [0, 1]: {BACKOFF_JITTER_RATIO}")

    parsed = urlparse(ANALYZER_BASE_URL)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"ANALYZER_BASE_URL must be an http(s) URL: {ANALYZER_BASE_URL}")

    try:
        SPOOL_PENDING_DIR.mkdir(parents=True, exist_ok=True)
        SPOOL_DEAD_DIR.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        errors.append(f"Cannot create SPOOL_BASE_DIR: {e}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
