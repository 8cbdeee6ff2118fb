import time
import uuid
from datetime import datetime, timezone


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def epoch_millis() -> int:
    return int(time.time() * 1000)


def time_based_id() -> str:
    """Millisecond timestamp with a short random suffix, sortable by creation time"""
    return f"{epoch_millis()}-{uuid.uuid4().hex[:6]}"
