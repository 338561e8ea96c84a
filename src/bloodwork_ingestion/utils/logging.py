# ============================================================================
# src/bloodwork_ingestion/utils/logging.py
# ============================================================================
"""
Logging setup for the ingestion service.

Plain-text or JSON lines to stdout (and optionally a file). Structured
context passed through ``extra=`` (owner, file hash, page, timing) is
kept as top-level keys in JSON output.
"""

import asyncio
import functools
import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Keys callers may pass via ``extra=`` that JsonFormatter keeps
CONTEXT_FIELDS = ("owner_id", "file_hash", "page", "operation", "duration_ms")

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiohttp.access", "PIL", "multipart")

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_json: bool = False,
    quiet_libraries: bool = True,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Also write to this file (parent directories are created)
        format_json: One JSON object per line instead of plain text
        quiet_libraries: Raise HTTP/SDK client loggers to WARNING
    """
    formatter = JsonFormatter() if format_json else logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=getattr(logging, level.upper()), handlers=handlers, force=True)

    if quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ingestion context fields lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                data[key] = value

        if record.exc_info:
            data['exception'] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


def log_performance(logger: logging.Logger, operation: str):
    """
    Log how long a function or coroutine function took.

    Success is logged at INFO, failure at ERROR (the exception is
    re-raised). Both records carry ``operation`` and ``duration_ms``.
    """
    def report(start: float, error: Optional[BaseException] = None) -> None:
        duration = time.perf_counter() - start
        extra = {"operation": operation, "duration_ms": round(duration * 1000, 1)}
        if error is None:
            logger.info(f"{operation} completed in {duration:.3f}s", extra=extra)
        else:
            logger.error(f"{operation} failed after {duration:.3f}s: {error}", extra=extra)

    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start, e)
                    raise
                report(start)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start, e)
                raise
            report(start)
            return result

        return wrapper
    return decorator
