"""Logging and observability utilities for taskplan.

This module provides structured logging, a redacting log sink,
performance monitoring, and observability hooks for the plan pipeline.
"""

from __future__ import annotations

import json
import logging as std_logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

REDACTED = "[REDACTED]"

_SENSITIVE_FRAGMENTS = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "credential",
    "authorization",
    "private_key",
)
_SENSITIVE_EXACT = {"auth", "key", "cookie"}


def _is_sensitive_key(key: str) -> bool:
    lowered = str(key).lower().replace("-", "_")
    return lowered in _SENSITIVE_EXACT or any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def filter_sensitive_data(context: Any) -> Any:
    """Return a copy of ``context`` with sensitive keys redacted, recursively."""
    if isinstance(context, dict):
        return {
            key: REDACTED if _is_sensitive_key(key) else filter_sensitive_data(value)
            for key, value in context.items()
        }
    if isinstance(context, (list, tuple)):
        return [filter_sensitive_data(item) for item in context]
    return context


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Setup structured logging for taskplan."""
    logger = std_logging.getLogger("taskplan")
    logger.setLevel(log_level)
    logger.handlers.clear()

    detailed_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # MCP stdio transport owns stdout, so console output goes to stderr.
    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info("taskplan logging initialized")


class JsonFormatter(std_logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: std_logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_entry.update(filter_sensitive_data(extra_fields))

        return json.dumps(log_entry, default=str)


def log(
    message: str,
    context: Optional[Dict[str, Any]] = None,
    *,
    level: int = std_logging.INFO,
    logger_name: str = "taskplan",
) -> None:
    """Log sink: record ``message`` with an optional, redacted context."""
    logger = std_logging.getLogger(logger_name)
    if context:
        filtered = filter_sensitive_data(context)
        logger.log(level, "%s | context=%s", message, json.dumps(filtered, default=str, sort_keys=True),
                   extra={"extra_fields": {"context": filtered}})
    else:
        logger.log(level, message)


class PerformanceMonitor:
    """In-memory duration metrics, keyed by metric name."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        metric = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "name": name,
            "value": value,
            "tags": tags or {},
        }
        with self._lock:
            self.metrics.setdefault(name, []).append(metric)
        std_logging.getLogger("taskplan.performance").debug(
            "Metric %s=%s", name, value, extra={"extra_fields": metric}
        )

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            if name:
                return {name: list(self.metrics.get(name, []))}
            return {key: list(values) for key, values in self.metrics.items()}

    def clear(self) -> None:
        with self._lock:
            self.metrics.clear()


performance_monitor = PerformanceMonitor()


def _outcome_fields(operation_name: str, started: float, error: Optional[BaseException] = None) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "operation": operation_name,
        "duration": time.perf_counter() - started,
        "status": "failed" if error is not None else "completed",
    }
    if error is not None:
        fields["error_type"] = type(error).__name__
    return fields


def log_performance(operation_name: str):
    """Decorator recording how long each call of the wrapped function takes.

    Durations land in :data:`performance_monitor` under
    ``<operation_name>_duration``, tagged with the outcome.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = std_logging.getLogger("taskplan.performance")
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                fields = _outcome_fields(operation_name, started, e)
                performance_monitor.record_metric(
                    f"{operation_name}_duration",
                    fields["duration"],
                    {"status": "error", "error_type": fields["error_type"]},
                )
                logger.warning(
                    "%s failed after %.3fs (%s)", operation_name, fields["duration"], fields["error_type"],
                    extra={"extra_fields": fields},
                )
                raise

            fields = _outcome_fields(operation_name, started)
            performance_monitor.record_metric(f"{operation_name}_duration", fields["duration"], {"status": "success"})
            logger.debug("%s took %.3fs", operation_name, fields["duration"], extra={"extra_fields": fields})
            return result

        return wrapper

    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Bracket a block with started/completed (or failed) records."""
    logger = std_logging.getLogger("taskplan.operations")
    started = time.perf_counter()
    logger.info(
        "Starting %s", operation_name,
        extra={"extra_fields": {"operation": operation_name, "status": "started", **extra_fields}},
    )

    try:
        yield
    except Exception as e:
        fields = {**_outcome_fields(operation_name, started, e), **extra_fields}
        logger.error(
            "%s failed after %.3fs: %s", operation_name, fields["duration"], fields["error_type"],
            extra={"extra_fields": fields},
        )
        raise

    fields = {**_outcome_fields(operation_name, started), **extra_fields}
    logger.info("%s completed in %.3fs", operation_name, fields["duration"], extra={"extra_fields": fields})


class ObservabilityHooks:
    """Observability hooks for plan lifecycle events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., None]]] = {}
        self.logger = std_logging.getLogger("taskplan.observability")

    def register_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        """Register a callback for a specific event type."""
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Trigger all callbacks for a specific event type.

        A failing hook is logged and does not stop the remaining hooks.
        """
        for hook in list(self.hooks.get(event_type, [])):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_plan_event(self, event_type: str, plan_id: Optional[str] = None, **data) -> None:
        """Log a plan event and trigger hooks."""
        event_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "plan_id": plan_id,
            **data,
        }
        self.logger.info(f"Plan event: {event_type}", extra={"extra_fields": event_data})

        hook_data = {k: v for k, v in event_data.items() if k != "event_type"}
        self.trigger_hooks(event_type, **hook_data)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: BaseException, context: Dict[str, Any], **extra_fields) -> None:
    """Log an error with full detail to the diagnostic log."""
    logger = std_logging.getLogger("taskplan.errors")

    error_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": filter_sensitive_data(context),
        **extra_fields,
    }

    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": error_data},
        exc_info=(type(error), error, error.__traceback__),
    )


def log_plan_generated(plan_id: str, step_count: int, file_count: int, **extra_fields) -> None:
    observability_hooks.log_plan_event(
        "plan_generated", plan_id, step_count=step_count, file_count=file_count, **extra_fields
    )


def log_plan_verified(plan_id: str, passed: bool, summary: Dict[str, int], **extra_fields) -> None:
    observability_hooks.log_plan_event("plan_verified", plan_id, passed=passed, summary=summary, **extra_fields)


def log_step_updated(plan_id: str, step_id: str, completed: bool, **extra_fields) -> None:
    observability_hooks.log_plan_event("step_updated", plan_id, step_id=step_id, completed=completed, **extra_fields)


def log_status_changed(plan_id: str, status: str, **extra_fields) -> None:
    observability_hooks.log_plan_event("status_changed", plan_id, status=status, **extra_fields)
