from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, current_app


_CORE_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}

_log_context: ContextVar[Dict[str, Any]] = ContextVar("anatomy_log_context", default={})


def _resolve_app() -> Optional[Flask]:
    try:
        return current_app._get_current_object()  # type: ignore[attr-defined]
    except RuntimeError:
        return None


def _resolve_app_logger() -> Optional[logging.Logger]:
    app = _resolve_app()
    if app:
        return app.logger
    return None


def get_log_context() -> Dict[str, Any]:
    """Return a shallow copy of the active contextual logging fields."""

    return dict(_log_context.get())


@contextmanager
def log_context(**fields: Any):
    """Temporarily add contextual fields (flag, node name, seed file...) to every record."""

    current = dict(_log_context.get())
    current.update({k: v for k, v in fields.items() if v is not None})
    token = _log_context.set(current)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextAwareFormatter(logging.Formatter):
    """Formatter that can emit JSON or text logs enriched with contextual fields."""

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        *,
        json_format: bool = False,
    ) -> None:
        super().__init__(fmt=fmt or "[%(asctime)s] %(levelname)s %(name)s - %(message)s", datefmt=datefmt)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        if self.json_format:
            return self._format_json(record)

        base = super().format(record)
        context = _log_context.get()
        if context:
            ctx = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            base = f"{base} | {ctx}"
        return base

    def _format_json(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _CORE_LOG_RECORD_FIELDS or key.startswith("_") or key in payload:
                continue
            payload[key] = value

        context = _log_context.get()
        if context:
            payload["context"] = dict(context)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, separators=(",", ":"))


@dataclass(frozen=True)
class LogCategory:
    """A logical logging category backed by its own file."""

    name: str
    filename: str


DEFAULT_CATEGORIES: Dict[str, LogCategory] = {
    "app": LogCategory("app", "application.log"),
    "anatomy": LogCategory("anatomy", "anatomy.log"),
    "registry": LogCategory("registry", "registry.log"),
    "seed": LogCategory("seed", "seed.log"),
    "cache": LogCategory("cache", "cache.log"),
    "model_utils": LogCategory("model_utils", "model_utils.log"),
    "error": LogCategory("error", "errors.log"),
}


class LoggerManager:
    """
    Hands out one logger per category. Each category writes to its own
    midnight-rotated file under ``base_dir``, optionally mirrors to the
    console, and always mirrors the Flask app handlers when an app is active.
    """

    def __init__(
        self,
        *,
        base_dir: Optional[str] = None,
        backup_count: int = 7,
        enable_category_files: bool = True,
        enable_console: bool = True,
        json_format: bool = False,
        default_level: int = logging.INFO,
    ) -> None:
        self._base_dir = base_dir
        self._backup_count = backup_count
        self._categories = DEFAULT_CATEGORIES.copy()
        self._enable_category_files = enable_category_files
        self._enable_console = enable_console
        self._json_format = json_format
        self._default_level = default_level
        self._loggers: Dict[str, logging.Logger] = {}
        self._console_handler: Optional[logging.Handler] = None

    @property
    def base_dir(self) -> Path:
        if self._base_dir:
            return Path(self._base_dir)
        return Path(os.getenv("LOGGING_BASE_DIR", os.path.join(tempfile.gettempdir(), "module_anatomy_logs")))

    def register_category(self, name: str, filename: Optional[str] = None) -> LogCategory:
        key = name.strip().lower()
        entry = LogCategory(key, filename or f"{key}.log")
        self._categories[key] = entry
        return entry

    def get_logger(self, category: str) -> logging.Logger:
        category_key = category.lower()
        if category_key in self._loggers:
            return self._loggers[category_key]

        entry = self._categories.get(category_key) or self.register_category(category)

        logger = logging.getLogger(f"module_anatomy.{entry.name}")
        logger.propagate = False
        logger.setLevel(self._default_level)
        formatter = ContextAwareFormatter(json_format=self._json_format)

        if self._enable_category_files:
            log_dir = self.base_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = TimedRotatingFileHandler(
                log_dir / entry.filename,
                when="midnight",
                backupCount=self._backup_count,
                encoding="utf-8",
                utc=True,
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        if self._enable_console:
            if self._console_handler is None:
                self._console_handler = logging.StreamHandler()
                self._console_handler.setFormatter(formatter)
            logger.addHandler(self._console_handler)

        app_logger = _resolve_app_logger()
        if app_logger and app_logger.handlers:
            for app_handler in app_logger.handlers:
                if app_handler not in logger.handlers:
                    logger.addHandler(app_handler)

        if not logger.handlers:
            # keep records flowing to the root configuration
            logger.propagate = True

        self._loggers[category_key] = logger
        return logger

    def shutdown(self) -> None:
        for key in list(self._loggers.keys()):
            logger = self._loggers.pop(key)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                # app handlers are owned by the Flask app
                if isinstance(handler, TimedRotatingFileHandler):
                    handler.close()
        if self._console_handler:
            self._console_handler.close()
            self._console_handler = None


def _to_bool(value: Optional[Any], *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def _to_level(value: Optional[Any], *, default: int = logging.INFO) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    numeric = getattr(logging, str(value).strip().upper(), None)
    return numeric if isinstance(numeric, int) else default


_manager: Optional[LoggerManager] = None


def init_logger(app: Flask) -> LoggerManager:
    """Configure the shared logger manager from the Flask application config."""

    global _manager

    manager = LoggerManager(
        base_dir=app.config.get("LOGGING_BASE_DIR"),
        backup_count=int(app.config.get("LOGGING_ROTATION_BACKUP_COUNT", 7)),
        enable_category_files=_to_bool(app.config.get("LOGGING_ENABLE_CATEGORY_FILES"), default=True),
        enable_console=_to_bool(app.config.get("LOGGING_CONSOLE_ENABLED"), default=True),
        json_format=_to_bool(app.config.get("LOGGING_JSON_FORMAT"), default=False),
        default_level=_to_level(app.config.get("LOG_LEVEL")),
    )

    shutdown_logger()
    _manager = manager
    return _manager


def logger_manager() -> LoggerManager:
    global _manager
    if _manager is None:
        _manager = LoggerManager(
            enable_category_files=_to_bool(os.getenv("LOGGING_ENABLE_CATEGORY_FILES"), default=False),
            enable_console=_to_bool(os.getenv("LOGGING_CONSOLE_ENABLED"), default=True),
            json_format=_to_bool(os.getenv("LOGGING_JSON_FORMAT"), default=False),
            default_level=_to_level(os.getenv("LOG_LEVEL")),
        )
    return _manager


def shutdown_logger() -> None:
    global _manager
    if _manager is None:
        return
    _manager.shutdown()
    _manager = None


def get_logger(category: str) -> logging.Logger:
    return logger_manager().get_logger(category)
