"""Logging and observability utilities for Planboard.

This module provides structured logging, timing of planner operations,
and observability hooks that the controller uses to surface planner
events and user notifications.
"""

from __future__ import annotations

import inspect
import json
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``planboard`` logger tree."""
    logger = std_logging.getLogger("planboard")
    logger.setLevel(log_level)
    logger.handlers.clear()

    console_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # stderr: stdout carries the MCP stdio transport
    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file)
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info("Planboard logging initialized")


class JsonFormatter(std_logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            entry.update(record.extra_fields)

        return json.dumps(entry, default=str)


class PerformanceMonitor:
    """In-memory timings of planner operations."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        metric = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "name": name,
            "value": value,
            "tags": tags or {},
        }
        self.metrics.setdefault(name, []).append(metric)

        logger = std_logging.getLogger("planboard.performance")
        logger.debug(f"Metric recorded: {name}={value}", extra={"extra_fields": metric})

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        if name:
            return {name: self.metrics.get(name, [])}
        return self.metrics.copy()

    def clear(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


def _record_success(operation_name: str, started: float) -> None:
    duration = time.perf_counter() - started
    performance_monitor.record_metric(f"{operation_name}_duration", duration, {"status": "success"})
    std_logging.getLogger("planboard.performance").debug(
        f"Completed operation: {operation_name} in {duration:.3f}s",
        extra={"extra_fields": {"operation": operation_name, "duration": duration, "status": "success"}},
    )


def _record_failure(operation_name: str, started: float, error: Exception) -> None:
    duration = time.perf_counter() - started
    performance_monitor.record_metric(
        f"{operation_name}_duration",
        duration,
        {"status": "error", "error_type": type(error).__name__},
    )
    std_logging.getLogger("planboard.performance").error(
        f"Failed operation: {operation_name} after {duration:.3f}s - {error}",
        extra={"extra_fields": {
            "operation": operation_name,
            "duration": duration,
            "status": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
        }},
    )


def log_performance(operation_name: str):
    """Decorator timing a function or coroutine function."""
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record_failure(operation_name, started, e)
                    raise
                _record_success(operation_name, started)
                return result
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record_failure(operation_name, started, e)
                raise
            _record_success(operation_name, started)
            return result
        return wrapper
    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log start, completion or failure of a block."""
    logger = std_logging.getLogger("planboard.operations")
    started = time.perf_counter()

    logger.info(f"Starting operation: {operation_name}", extra={"extra_fields": {
        "operation": operation_name,
        "status": "started",
        **extra_fields,
    }})

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - started
        logger.error(f"Failed operation: {operation_name} after {duration:.3f}s - {e}", extra={"extra_fields": {
            "operation": operation_name,
            "status": "failed",
            "duration": duration,
            "error_type": type(e).__name__,
            "error_message": str(e),
            **extra_fields,
        }})
        raise

    duration = time.perf_counter() - started
    logger.info(f"Completed operation: {operation_name} in {duration:.3f}s", extra={"extra_fields": {
        "operation": operation_name,
        "status": "completed",
        "duration": duration,
        **extra_fields,
    }})


class ObservabilityHooks:
    """Callbacks fired on planner events (moves, resizes, notifications...)."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., Any]]] = {}
        self.logger = std_logging.getLogger("planboard.observability")

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        callbacks = self.hooks.get(event_type, [])
        if not callbacks:
            return
        self.logger.debug(f"Triggering {len(callbacks)} hooks for event: {event_type}")
        for hook in list(callbacks):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_planner_event(self, event_type: str, task_id: Optional[str] = None, **data) -> None:
        """Log a planner event and run its hooks."""
        event_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "task_id": task_id,
            **data,
        }
        self.logger.info(f"Planner event: {event_type}", extra={"extra_fields": event_data})

        hook_data = {k: v for k, v in event_data.items() if k != "event_type"}
        self.trigger_hooks(event_type, **hook_data)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields) -> None:
    """Log an error together with the operation context it happened in."""
    logger = std_logging.getLogger("planboard.errors")

    error_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **extra_fields,
    }

    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": error_data},
        exc_info=error,
    )


def log_task_moved(task_id: str, old_programmer: str, new_programmer: str, new_month: str, **extra_fields) -> None:
    observability_hooks.log_planner_event(
        "task_moved",
        task_id=task_id,
        old_programmer=old_programmer,
        new_programmer=new_programmer,
        new_month=new_month,
        **extra_fields,
    )


def log_task_resized(task_id: str, start_month: Optional[str], end_month: Optional[str], **extra_fields) -> None:
    observability_hooks.log_planner_event(
        "task_resized",
        task_id=task_id,
        start_month=start_month,
        end_month=end_month,
        **extra_fields,
    )


def log_planner_assignment(task_id: str, programmer: str, month: str, **extra_fields) -> None:
    observability_hooks.log_planner_event(
        "planner_assignment",
        task_id=task_id,
        programmer=programmer,
        month=month,
        **extra_fields,
    )


def log_gesture_rejected(task_id: Optional[str], reason: str, **extra_fields) -> None:
    std_logging.getLogger("planboard.controller").debug(
        f"Gesture rejected for task {task_id}: {reason}",
        extra={"extra_fields": {"task_id": task_id, "reason": reason, **extra_fields}},
    )


def log_layout_computed(course: str, lanes: int, placements: int) -> None:
    std_logging.getLogger("planboard.layout").debug(
        f"Layout computed for course {course}: {lanes} lanes, {placements} placements",
        extra={"extra_fields": {"course": course, "lanes": lanes, "placements": placements}},
    )
