#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/__init__.py
@brief Пакет воркера проверок: хранилища, обработка исходов, ротация логов
@details Планировщик импортируется явно из monitoring.scheduler (он зависит от checker).
"""

from .storage import FileRecordStore
from .log_store import LogStore
from .check_log import CheckLog
from .processor import OutcomeProcessor
from .log_rotator import LogRotator, RotationReport

__all__ = [
    "FileRecordStore",
    "LogStore",
    "CheckLog",
    "OutcomeProcessor",
    "LogRotator",
    "RotationReport",
]
