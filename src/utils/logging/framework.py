"""Logging framework with decorators, context managers, and auto-detection.

- ``SmartLogger``: per-module facade that injects the component name
- ``log_execution``: decorator for sync and async function logging
- ``log_operation``: context manager for scoped operations with a correlation ID
"""

import asyncio
import functools
import inspect
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Dict, Optional, Union

from .logger import get_logger

_operation_context: ContextVar[Dict[str, Any]] = ContextVar("operation_context", default={})


def _get_component_from_module(module_name: str) -> str:
    """Auto-detect component from module path."""
    component_map = {
        "orchestrator": "orchestrator",
        "registry": "registry",
        "a2a": "a2a",
        "utils.config": "config",
        "utils.llm": "system",
    }
    for pattern, component in component_map.items():
        if pattern in module_name:
            return component
    return "system"


class SmartLogger:
    """Logger that auto-detects its component and injects operation context."""

    def __init__(self, component: Optional[str] = None, auto_detect: bool = True):
        """Initialize smart logger.

        Args:
            component: Explicit component name
            auto_detect: Whether to auto-detect component from the caller's module
        """
        if component:
            self._component = component
        elif auto_detect:
            frame = inspect.currentframe()
            try:
                module_name = frame.f_back.f_globals.get("__name__", "unknown")
                self._component = _get_component_from_module(module_name)
            finally:
                del frame
        else:
            self._component = "system"

    @property
    def component(self) -> str:
        return self._component

    def _log(self, level: str, message: str, **kwargs):
        kwargs.setdefault("component", self._component)
        for key, value in _operation_context.get().items():
            kwargs.setdefault(key, value)
        getattr(get_logger(), level)(message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log("info", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("error", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log("warning", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log("debug", message, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        return get_logger().isEnabledFor(level)


def _preview(value: Any, limit: int = 1000) -> Dict[str, Any]:
    text = str(value)
    if len(text) > limit:
        return {"result_preview": text[:500] + "...", "result_size": len(text)}
    return {"result": text}


def log_execution(func_or_component: Union[Callable, str, None] = None, operation: Optional[str] = None,
                  include_args: bool = False, include_result: bool = False,
                  component: Optional[str] = None):
    """Decorator logging start, completion (with duration) and errors of a call.

    Works for plain functions and coroutine functions.

    Example:
        @log_execution("orchestrator", "create_plan")
        async def create_plan(self, goal: str): ...
    """
    if callable(func_or_component):
        return _create_wrapper(func_or_component, component, operation, include_args, include_result)

    actual_component = func_or_component or component

    def decorator(func: Callable) -> Callable:
        return _create_wrapper(func, actual_component, operation, include_args, include_result)
    return decorator


def _create_wrapper(func: Callable, component: Optional[str], operation: Optional[str],
                    include_args: bool, include_result: bool) -> Callable:
    func_logger = SmartLogger(component or _get_component_from_module(func.__module__))
    op_name = operation or func.__name__

    def _start(args, kwargs) -> str:
        exec_id = uuid.uuid4().hex[:8]
        extra = {}
        if include_args:
            # Skip 'self' for methods
            start_idx = 1 if args and hasattr(args[0], func.__name__) else 0
            extra["args"] = args[start_idx:]
            extra["kwargs"] = kwargs
        func_logger.debug(f"function_start_{op_name}", operation=op_name, execution_id=exec_id, **extra)
        return exec_id

    def _complete(exec_id: str, start_time: float, result: Any):
        extra = _preview(result) if include_result else {}
        func_logger.debug(f"function_complete_{op_name}",
                          operation=op_name,
                          execution_id=exec_id,
                          duration_seconds=round(time.time() - start_time, 3),
                          **extra)

    def _failed(exec_id: str, start_time: float, error: Exception):
        func_logger.error(f"function_error_{op_name}",
                          operation=op_name,
                          execution_id=exec_id,
                          duration_seconds=round(time.time() - start_time, 3),
                          error=str(error),
                          error_type=type(error).__name__)

    if asyncio.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            exec_id = _start(args, kwargs)
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(exec_id, start_time, e)
                raise
            _complete(exec_id, start_time, result)
            return result
        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        exec_id = _start(args, kwargs)
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _failed(exec_id, start_time, e)
            raise
        _complete(exec_id, start_time, result)
        return result
    return wrapper


@contextmanager
def log_operation(component: Optional[str] = None, operation: str = "operation",
                  correlation_id: Optional[str] = None, **context):
    """Scope an operation: every log inside gets the correlation ID and context.

    Example:
        with log_operation("orchestrator", "execute_goal", session_id=sid):
            ...
    """
    if not component:
        frame = inspect.currentframe()
        try:
            # frame.f_back is contextlib's __enter__; two levels up is the caller
            module_name = frame.f_back.f_back.f_globals.get("__name__", "unknown")
            component = _get_component_from_module(module_name)
        finally:
            del frame

    correlation_id = correlation_id or uuid.uuid4().hex[:8]
    op_logger = SmartLogger(component)
    structured = get_logger()

    previous_correlation = structured._get_correlation_id()
    structured.set_correlation_id(correlation_id)
    context_token = _operation_context.set({**_operation_context.get(), "operation": operation, **context})

    op_logger.info(f"operation_start_{operation}")
    start_time = time.time()
    try:
        yield correlation_id
    except Exception as e:
        op_logger.error(f"operation_error_{operation}",
                        duration_seconds=round(time.time() - start_time, 3),
                        success=False,
                        error=str(e),
                        error_type=type(e).__name__)
        raise
    else:
        op_logger.info(f"operation_complete_{operation}",
                       duration_seconds=round(time.time() - start_time, 3),
                       success=True)
    finally:
        _operation_context.reset(context_token)
        if previous_correlation:
            structured.set_correlation_id(previous_correlation)
        else:
            structured.clear_correlation_id()


def get_smart_logger(component: Optional[str] = None) -> SmartLogger:
    return SmartLogger(component)
