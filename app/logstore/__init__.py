from .store import LogEntry, RequestLog, get_request_log, record_event

__all__ = ["LogEntry", "RequestLog", "get_request_log", "record_event"]
