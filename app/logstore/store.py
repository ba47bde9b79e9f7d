import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from app.vars import LOG_MAX_ENTRIES

logger = logging.getLogger("uvicorn.error")


@dataclass
class LogEntry:
    type: str
    url: str
    status: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RequestLog:
    """Bounded in-memory log of proxy events; the oldest entries are evicted first."""

    def __init__(self, max_entries: int = LOG_MAX_ENTRIES):
        self._entries: deque = deque(maxlen=max(1, max_entries))
        self._lock = threading.Lock()

    def record(
        self,
        type: str,
        url: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> LogEntry:
        entry = LogEntry(type=type, url=url, status=status, details=dict(details or {}))
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        """Newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


def record_event(
    log: Optional[RequestLog],
    type: str,
    url: str,
    status: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Fire-and-forget: a failing store never affects the response."""
    if log is None:
        return
    try:
        log.record(type, url, status, details)
    except Exception as e:
        logger.debug(f"[RequestLog] Failed to record {type} event for {url}: {e}")


_request_log = RequestLog()


def get_request_log() -> RequestLog:
    return _request_log
