"""Logging utilities for the MultiAsk client."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import platform
import sys
import threading
import time
from pathlib import Path
from typing import Any, Optional

from .config import get_user_config_dir

LOG_FILENAME = "multiask.log"

_EXCEPTION_HOOK_INSTALLED = False
_HOOK_LOCK = threading.Lock()


def setup_logging(
    app_name: str = "MultiAsk",
    *,
    level: int = logging.INFO,
    log_filename: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """Configure logging using the standard :mod:`logging` machinery.

    Handlers are attached to the *root* logger so that module loggers across
    the package inherit them. Log records are always persisted to a file in
    the user configuration directory; console output can be disabled for
    the command line runner, where stdout carries the answers.
    """

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return logging.getLogger(app_name)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config_dir = get_user_config_dir(app_name)
    log_path = Path(config_dir) / (log_filename or LOG_FILENAME)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [file_handler]

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.insert(0, console_handler)

    logging.basicConfig(level=level, handlers=handlers)

    root_logger.log_path = log_path  # type: ignore[attr-defined]
    logger = logging.getLogger(app_name)
    logger.log_path = log_path  # type: ignore[attr-defined]

    logger.info(
        "Logging initialised",
        extra={
            "log_path": str(log_path),
            "level": logging.getLevelName(level),
        },
    )
    logger.debug(
        "Runtime environment",
        extra={
            "python": platform.python_version(),
            "platform": platform.platform(),
            "executable": sys.executable,
            "cwd": os.getcwd(),
        },
    )
    return logger


def get_log_file_path(logger: logging.Logger) -> Optional[Path]:
    """Return the path of the first file handler attached to ``logger``."""

    log_path = getattr(logger, "log_path", None)
    if isinstance(log_path, Path):
        return log_path

    for handler in logger.handlers:
        filename = getattr(handler, "baseFilename", None)
        if filename:
            return Path(filename)
    return None


def _flush_logger_handlers(logger: logging.Logger) -> None:
    for handler in logging.getLogger().handlers + logger.handlers:
        try:
            handler.flush()
        except (OSError, ValueError):  # pragma: no cover - closed stream
            continue


def install_exception_hook(logger: logging.Logger) -> None:
    """Log unhandled exceptions raised on the main thread or worker threads."""

    global _EXCEPTION_HOOK_INSTALLED
    with _HOOK_LOCK:
        if _EXCEPTION_HOOK_INSTALLED:
            return
        _EXCEPTION_HOOK_INSTALLED = True

    default_hook = sys.excepthook

    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            default_hook(exc_type, exc_value, exc_traceback)
            return

        logger.critical(
            "Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback)
        )
        _flush_logger_handlers(logger)
        log_path = get_log_file_path(logger)
        if log_path is not None:
            print(f"Unexpected error; details were written to {log_path}", file=sys.stderr)
        default_hook(exc_type, exc_value, exc_traceback)

    sys.excepthook = handle_exception

    thread_hook = threading.excepthook

    def handle_thread_exception(args):
        if issubclass(args.exc_type, KeyboardInterrupt):
            thread_hook(args)
            return

        logger.critical(
            "Unhandled exception in thread %s",
            args.thread.name if args.thread is not None else "<unknown>",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        _flush_logger_handlers(logger)
        thread_hook(args)

    threading.excepthook = handle_thread_exception


def _safe_repr(value: Any, *, max_length: int = 2000) -> str:
    """Return a truncated ``repr`` suitable for logging."""

    try:
        result = repr(value)
    except Exception:
        result = object.__repr__(value)
    if len(result) > max_length:
        return result[: max_length - 1] + "…"
    return result


def _format_arguments(signature: inspect.Signature, *args: Any, **kwargs: Any) -> str:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return "unavailable"
    arguments = []
    for name, value in bound.arguments.items():
        if name in {"self", "cls"}:
            continue
        arguments.append(f"{name}={_safe_repr(value)}")
    return ", ".join(arguments)


def _resolve_logger(target: logging.Logger | str | None, module: str) -> logging.Logger:
    if isinstance(target, logging.Logger):
        return target
    if isinstance(target, str):
        return logging.getLogger(target)
    return logging.getLogger(module)


def log_call(
    _func: Optional[Any] = None,
    *,
    logger: logging.Logger | str | None = None,
    level: int = logging.DEBUG,
    include_args: bool = True,
    include_result: bool = False,
    exc_level: int = logging.ERROR,
) -> Any:
    """Decorator that logs entry, exit, and failures for ``_func``.

    Usable both with and without arguments::

        @log_call
        def some_function(...):
            ...

        @log_call(level=logging.INFO, include_result=True)
        def another(...):
            ...

    Generator functions are not wrapped specially: the logged duration covers
    creating the generator, not consuming it.
    """

    def decorator(func: Any) -> Any:
        signature = inspect.signature(func)
        qualname = getattr(func, "__qualname__", getattr(func, "__name__", "<call>"))
        module = getattr(func, "__module__", "")
        log_identifier = f"{module}.{qualname}" if module else qualname

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            resolved_logger = _resolve_logger(logger, module)
            if include_args:
                arguments = _format_arguments(signature, *args, **kwargs)
                resolved_logger.log(level, "Calling %s(%s)", log_identifier, arguments)
            else:
                resolved_logger.log(level, "Calling %s", log_identifier)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed = time.perf_counter() - start
                resolved_logger.log(
                    exc_level,
                    "Error in %s after %.3fs",
                    log_identifier,
                    elapsed,
                    exc_info=True,
                )
                raise
            elapsed = time.perf_counter() - start
            if include_result:
                resolved_logger.log(
                    level,
                    "%s returned %s (%.3fs)",
                    log_identifier,
                    _safe_repr(result),
                    elapsed,
                )
            else:
                resolved_logger.log(
                    level,
                    "%s completed in %.3fs",
                    log_identifier,
                    elapsed,
                )
            return result

        return wrapper

    if callable(_func):
        return decorator(_func)
    return decorator


__all__ = [
    "setup_logging",
    "install_exception_hook",
    "get_log_file_path",
    "log_call",
]
