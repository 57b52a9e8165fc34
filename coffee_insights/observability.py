"""
Observability module for structured logging, customer context, and metrics.

Usage:
    from coffee_insights.observability import setup_logging, get_logger, customer_context

    # In app startup:
    setup_logging()

    # In modules:
    logger = get_logger(__name__)

    # Around per-customer work:
    with customer_context(customer_id):
        logger.info("Computing insights")
"""
import asyncio
import functools
import json
import logging
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import numpy as np

# Context variable for the customer currently being analysed
_customer_id: ContextVar[Optional[int]] = ContextVar("customer_id", default=None)

# Context variable for additional context (operation, etc.)
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord carries; anything else is an "extra"
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName"
}


def get_customer_id() -> Optional[int]:
    """Get the customer id bound to the current context."""
    return _customer_id.get()


class customer_context:
    """Context manager binding a customer id to all log lines inside it."""

    def __init__(self, customer_id: Optional[int]):
        self.customer_id = customer_id
        self.token = None

    def __enter__(self):
        self.token = _customer_id.set(self.customer_id)
        return self.customer_id

    def __exit__(self, *args):
        _customer_id.reset(self.token)


def add_log_context(**kwargs) -> None:
    """Add extra context to be included in all log messages."""
    current = _log_context.get()
    _log_context.set({**current, **kwargs})


def clear_log_context() -> None:
    """Clear the log context."""
    _log_context.set({})


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and not k.startswith("_")}


class StructuredFormatter(logging.Formatter):
    """
    JSON log formatter.

    Outputs logs as JSON with timestamp, level, logger, message,
    customer_id (if bound), context fields, extras and exception info.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        customer_id = get_customer_id()
        if customer_id is not None:
            log_entry["customer_id"] = customer_id

        context = _log_context.get()
        if context:
            log_entry.update(context)

        log_entry.update(_record_extras(record))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable log formatter.

    Format: TIMESTAMP - LEVEL - LOGGER [customer=ID] - MESSAGE | extras
    """

    def format(self, record: logging.LogRecord) -> str:
        customer_id = get_customer_id()
        customer_str = f" [customer={customer_id}]" if customer_id is not None else ""

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base_msg = f"{timestamp} - {record.levelname:8} - {record.name}{customer_str} - {record.getMessage()}"

        extras = _record_extras(record)
        if extras:
            base_msg += f" | {extras}"

        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"

        return base_msg


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_libs: bool = False
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON logs; otherwise human-readable
        include_libs: If True, also log from third-party libraries
    """
    formatter = StructuredFormatter() if json_format else HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    if not include_libs:
        logging.getLogger("redis").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE METRICS (simple in-memory stats)
# ═══════════════════════════════════════════════════════════════════════════════

class EngineMetrics:
    """
    In-memory counters for the analytics engines.

    Tracks:
    - Computations by operation (cache misses that ran the full pipeline)
    - Cache hits by operation
    - Error counts by exception type
    - Timing samples by operation
    """

    def __init__(self, max_samples: int = 100):
        self._computations: Dict[str, int] = {}
        self._cache_hits: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}
        self._timing_samples: Dict[str, list] = {}
        self._max_samples = max_samples

    def record_computation(self, operation: str) -> None:
        self._computations[operation] = self._computations.get(operation, 0) + 1

    def record_cache_hit(self, operation: str) -> None:
        self._cache_hits[operation] = self._cache_hits.get(operation, 0) + 1

    def record_error(self, error_type: str) -> None:
        self._errors[error_type] = self._errors.get(error_type, 0) + 1

    def record_timing(self, operation: str, duration_ms: float) -> None:
        samples = self._timing_samples.setdefault(operation, [])
        samples.append(duration_ms)

        # Keep only last N samples
        if len(samples) > self._max_samples:
            self._timing_samples[operation] = samples[-self._max_samples:]

    def computations(self, operation: str) -> int:
        """Number of full computations recorded for an operation."""
        return self._computations.get(operation, 0)

    def get_stats(self) -> Dict[str, Any]:
        """Get current metrics snapshot."""
        stats = {
            "computations": dict(self._computations),
            "cache_hits": dict(self._cache_hits),
            "errors": dict(self._errors),
            "timing": {}
        }

        for operation, samples in self._timing_samples.items():
            if samples:
                stats["timing"][operation] = _summarize_timings(samples)

        return stats

    def reset(self) -> None:
        """Reset all metrics."""
        self._computations.clear()
        self._cache_hits.clear()
        self._errors.clear()
        self._timing_samples.clear()


def _summarize_timings(samples: list) -> Dict[str, Any]:
    values = np.asarray(samples, dtype=float)
    return {
        "count": int(values.size),
        "avg_ms": round(float(values.mean()), 2),
        "max_ms": round(float(values.max()), 2),
        "p50_ms": round(float(np.percentile(values, 50, method="higher")), 2),
        # p95 is noise below 20 samples
        "p95_ms": round(float(np.percentile(values, 95, method="higher")), 2) if values.size >= 20 else None,
    }


# Global metrics instance
metrics = EngineMetrics()


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer("customer_orders", logger) as t:
            orders = await store.get_completed_orders(customer_id)
        print(f"Query took {t.elapsed_ms}ms")
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None, warn_threshold_ms: float = 1000):
        self.name = name
        self.logger = logger
        self.warn_threshold_ms = warn_threshold_ms
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        metrics.record_timing(self.name, self.elapsed_ms)

        if self.logger:
            level = logging.WARNING if self.elapsed_ms > self.warn_threshold_ms else logging.DEBUG
            self.logger.log(
                level,
                f"{self.name} completed",
                extra={"duration_ms": round(self.elapsed_ms, 2)}
            )


def timed(name: Optional[str] = None, warn_threshold_ms: float = 1000):
    """
    Decorator for timing coroutine or plain function execution.

    Args:
        name: Operation name (defaults to function name)
        warn_threshold_ms: Log at WARNING level if exceeds this threshold
    """
    def decorator(func: Callable) -> Callable:
        operation_name = name or func.__name__
        func_logger = get_logger(func.__module__)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with Timer(operation_name, func_logger, warn_threshold_ms):
                return await func(*args, **kwargs)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with Timer(operation_name, func_logger, warn_threshold_ms):
                return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
