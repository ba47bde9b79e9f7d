"""
Exception logging helpers that never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string, falling back to repr and finally the type
    name when __str__ or __repr__ fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def format_exception_message(exception: BaseException) -> str:
    """
    One-line description of an exception including its cause chain, e.g.
    ``ContentDecodingError: Failed to decode gzip body (caused by BadGzipFile: ...)``.
    """
    if exception is None:
        return "None"
    try:
        message = f"{type(exception).__name__}: {_safe_str(exception)}"
        cause = exception.__cause__ or exception.__context__
        seen = {id(exception)}
        while cause is not None and id(cause) not in seen:
            seen.add(id(cause))
            message += f" (caused by {type(cause).__name__}: {_safe_str(cause)})"
            cause = cause.__cause__ or cause.__context__
        return message
    except Exception:
        return "<exception (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its cause chain and traceback.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Fallback]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        logger.log(
            level,
            f"{_safe_str(prefix)} {format_exception_message(exception)}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        try:
            logger.log(level, f"{_safe_str(prefix)} Exception (logging failed)")
        except Exception:
            # Logging itself is broken; nothing left to report to
            pass
