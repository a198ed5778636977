#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file logger.py
@brief Модуль настройки логирования воркера
@details Настраивает общий логгер "uptime" и даёт короткие обёртки log_* для всех компонентов
@author Monitoring Module
@date 2025-11-09
"""

import asyncio
import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

# Global project logger
LOGGER = logging.getLogger("uptime")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _ensure_basic_config() -> None:
    """
    Ensure a basic config is present so early log_* calls work before setup_logger()
    """
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format=DEFAULT_FORMAT,
            stream=sys.stdout,
        )


# Basic configuration for early calls
_ensure_basic_config()


def setup_logger(config: Dict[str, Any]) -> logging.Logger:
    """
    Configure the project logger.
    config:
      - level: DEBUG|INFO|WARNING|ERROR|CRITICAL
      - format: log line format
      - file: path to log file (empty/None disables the file handler)
      - console: enable console logging (default True)
      - max_bytes: rotating file max size (default 5MB)
      - backup_count: number of rotations (default 5)
    """
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = config.get("format", DEFAULT_FORMAT)
    log_file = config.get("file", "uptime-worker.log")

    console_enabled = config.get("console", True)
    file_enabled = bool(log_file)

    max_bytes = int(config.get("max_bytes", 5 * 1024 * 1024))  # 5 MB
    backup_count = int(config.get("backup_count", 5))

    # Clean previous handlers to avoid duplication
    LOGGER.handlers.clear()
    LOGGER.setLevel(level)
    LOGGER.propagate = False

    formatter = logging.Formatter(fmt)

    if console_enabled:
        console_handler = logging.StreamHandler(stream=sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        LOGGER.addHandler(console_handler)

    if file_enabled:
        try:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            LOGGER.addHandler(file_handler)
        except Exception as e:
            LOGGER.error(f"Failed to set up file logger: {e}")

    LOGGER.debug("Logger 'uptime' configured")
    return LOGGER


def get_logger() -> logging.Logger:
    return LOGGER


def install_global_exception_hooks(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """
    Route exceptions that escape the event loop or worker threads into the project logger.
    """

    def _loop_handler(_loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "unhandled exception in event loop")
        if exc is not None:
            LOGGER.error(f"[loop] {message}", exc_info=exc)
        else:
            LOGGER.error(f"[loop] {message}")

    def _thread_hook(args: threading.ExceptHookArgs) -> None:
        name = args.thread.name if args.thread else "unknown"
        LOGGER.error(
            f"[thread] uncaught exception in {name}",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    if loop is not None:
        loop.set_exception_handler(_loop_handler)
    threading.excepthook = _thread_hook


# --- Standard helpers ---

def log_debug(message: str, exc: Optional[BaseException] = None) -> None:
    LOGGER.debug(message, exc_info=exc) if exc else LOGGER.debug(message)

def log_info(message: str, exc: Optional[BaseException] = None) -> None:
    LOGGER.info(message, exc_info=exc) if exc else LOGGER.info(message)

def log_warning(message: str, exc: Optional[BaseException] = None) -> None:
    LOGGER.warning(message, exc_info=exc) if exc else LOGGER.warning(message)

def log_error(message: str, exc: Optional[BaseException] = None) -> None:
    LOGGER.error(message, exc_info=exc) if exc else LOGGER.error(message)

def log_exception(message: str) -> None:
    LOGGER.exception(message)
