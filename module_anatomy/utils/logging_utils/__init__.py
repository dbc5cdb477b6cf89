"""
Convenience accessors for the categorized logging facility.

Usage:
    from module_anatomy.utils.logging_utils import get_logger, log_context
    log = get_logger("seed")
    with log_context(flag="DentalAnatomy"):
        log.info("seeding dental chart")
"""

from .manager import (
    LogCategory,
    LoggerManager,
    get_log_context,
    get_logger,
    init_logger,
    log_context,
    logger_manager,
    shutdown_logger,
)

__all__ = [
    "LogCategory",
    "LoggerManager",
    "get_logger",
    "get_log_context",
    "log_context",
    "init_logger",
    "logger_manager",
    "shutdown_logger",
]
