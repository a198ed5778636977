#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/errors.py
@brief Исключения воркера проверок
@details Ни одно из них не фатально для процесса: компоненты ловят их, пишут в лог
         и ждут следующего тика планировщика.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class WorkerError(Exception):
    """Base class for every error raised by the check worker."""


class CheckValidationError(WorkerError):
    """A stored check record is malformed; it is skipped until the next tick."""

    def __init__(self, check_id: Optional[str], fields: Iterable[str]) -> None:
        self.check_id = check_id
        self.fields: List[str] = list(fields)
        label = check_id or "<no id>"
        super().__init__(f"check {label} has invalid fields: {', '.join(self.fields)}")


class ProbeError(WorkerError):
    """Transport failure or timeout. Folded into a `down` outcome, never propagated."""

    def __init__(self, descriptor: str, cause: Optional[BaseException] = None) -> None:
        self.descriptor = descriptor
        self.cause = cause
        super().__init__(descriptor)


class PersistenceError(WorkerError):
    """Record store read/update failure."""


class RecordNotFoundError(PersistenceError):
    def __init__(self, category: str, record_id: str) -> None:
        self.category = category
        self.record_id = record_id
        super().__init__(f"{category}/{record_id} not found")


class LogStoreError(PersistenceError):
    """Append, compress or truncate failure in the log store."""


class RotationError(WorkerError):
    def __init__(self, log_id: str, reason: str) -> None:
        self.log_id = log_id
        self.reason = reason
        super().__init__(f"rotation of {log_id} failed: {reason}")
