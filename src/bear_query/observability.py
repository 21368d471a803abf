"""Observability utilities for bear-query.

Provides opt-in logging configuration, per-operation timing and in-memory
operation counters. The library only ever logs at DEBUG level and never
logs failures; reporting errors is left to the calling application.
"""
import functools
import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

ROOT_LOGGER_NAME = "bear_query"

# Type variable for decorators
F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    level: int = logging.INFO,
    console: bool = True,
    log_dir: Optional[Union[str, Path]] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
) -> logging.Logger:
    """Attach handlers to the ``bear_query`` logger hierarchy.

    The library adds no handlers on its own; applications that want to see
    its debug output call this once at startup.

    Args:
        level: Logging level (default: INFO)
        console: Log to stderr (default: True)
        log_dir: Also write a rotating ``bear_query.log`` file here
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)

    Returns:
        The configured ``bear_query`` logger

    Example:
        configure_logging(level=logging.DEBUG)
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / "bear_query.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    return root_logger


@dataclass
class OperationStats:
    """Call counts and timings of one ``BearDb`` operation (``notes``, ``search``...)."""
    calls: int = 0
    failures: int = 0
    rows: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error_type: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        mean = self.total_ms / self.calls if self.calls else 0.0
        return {
            'calls': self.calls,
            'failures': self.failures,
            'rows': self.rows,
            'mean_ms': round(mean, 2),
            'slowest_ms': round(self.slowest_ms, 2),
            'last_error_type': self.last_error_type,
        }


class MetricsCollector:
    """In-memory, thread-safe counters for the read operations of this process.

    Only exception class names are kept for failures; messages can carry
    note text or paths and are never recorded. Nothing is written to disk.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()

    def record(
        self,
        operation: str,
        duration_ms: float,
        rows: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        """Record one finished call; ``error_type`` marks it as failed."""
        with self._lock:
            stats = self._stats[operation]
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            if rows is not None:
                stats.rows += rows
            if error_type is not None:
                stats.failures += 1
                stats.last_error_type = error_type

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's counters, keyed by operation name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def reset(self) -> None:
        """Forget everything recorded so far (useful for testing)."""
        with self._lock:
            self._stats.clear()


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time one read operation and record it in ``metrics``.

    Yields a dict; setting ``rows`` in it adds to the operation's row count.
    Success is logged at DEBUG; failures are only counted, then re-raised.

    Example:
        with timed_operation('search', text='bear') as op:
            found = run_search()
            op['rows'] = len(found)
    """
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {}

    try:
        yield result_info
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record(operation, duration_ms, error_type=type(e).__name__)
        raise

    duration_ms = (time.perf_counter() - start_time) * 1000
    rows = result_info.get('rows')
    metrics.record(operation, duration_ms, rows=rows)
    context_str = ''.join(f' {k}={v}' for k, v in context.items())
    logger.debug(f"{operation}{context_str}: {rows} rows in {duration_ms:.2f}ms")


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator running a ``BearDb`` method under ``timed_operation``.

    Sized results (lists, sets, tag collections, DataFrames) report their
    length as the row count; a single note counts as one row, None as zero.

    Example:
        @traced('notes')
        def notes(self, query: NotesQuery) -> List[Note]:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(op_name) as op:
                result = func(*args, **kwargs)
                if hasattr(result, '__len__'):
                    op['rows'] = len(result)
                else:
                    op['rows'] = 0 if result is None else 1
                return result

        return wrapper  # type: ignore
    return decorator
