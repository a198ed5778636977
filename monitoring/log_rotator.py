#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/log_rotator.py
@brief Периодическая ротация логов проверок: архив + усечение
@details Каждый живой лог архивируется под id "<checkId>-<ts>" и затем обнуляется.
         Усечение только после того, как архив записан. Пустые логи пропускаются.
         Сбой на одном логе не мешает остальным.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from monitoring.errors import LogStoreError, RotationError
from monitoring.log_store import LogStore
from monitoring.models import now_ms
from utils.logger import log_debug, log_error, log_info


@dataclass
class RotationReport:
    rotated: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.rotated) + len(self.skipped) + len(self.failed)


class LogRotator:
    def __init__(self, log_store: LogStore, clock: Callable[[], int] = now_ms) -> None:
        self.log_store = log_store
        self.clock = clock

    async def rotate_all(self) -> RotationReport:
        report = RotationReport()
        try:
            log_ids = await asyncio.to_thread(self.log_store.list_active)
        except LogStoreError as e:
            log_error(f"[rotator] cannot list logs: {e}")
            return report

        if not log_ids:
            log_debug("[rotator] no logs to rotate")
            return report

        timestamp = self.clock()
        results = await asyncio.gather(
            *(asyncio.to_thread(self.rotate_one, log_id, timestamp) for log_id in log_ids),
            return_exceptions=True,
        )
        for log_id, result in zip(log_ids, results):
            if isinstance(result, RotationError):
                log_error(f"[rotator] {result}")
                report.failed[log_id] = result.reason
            elif isinstance(result, BaseException):
                log_error(f"[rotator] unexpected failure on {log_id}", exc=result)
                report.failed[log_id] = str(result)
            elif result is None:
                report.skipped.append(log_id)
            else:
                report.rotated[log_id] = result

        log_info(
            f"[rotator] done: rotated={len(report.rotated)}, "
            f"skipped={len(report.skipped)}, failed={len(report.failed)}"
        )
        return report

    def rotate_one(self, log_id: str, timestamp: int) -> Optional[str]:
        """
        @brief Архивирует и обнуляет один лог
        @return id архива или None, если лог пуст
        @throws RotationError При ошибке архивации или усечения
        """
        archive_id = f"{log_id}-{timestamp}"
        # блокировка держится на всё время архив+усечение, дозаписи ждут
        with self.log_store.lock(log_id):
            try:
                if self.log_store.line_count(log_id) == 0:
                    log_debug(f"[rotator] {log_id} is empty, skipped")
                    return None
                self.log_store.compress(log_id, archive_id)
            except LogStoreError as e:
                raise RotationError(log_id, f"compress: {e}") from e
            try:
                self.log_store.truncate(log_id)
            except LogStoreError as e:
                raise RotationError(log_id, f"truncate: {e}") from e
        log_debug(f"[rotator] {log_id} -> {archive_id}")
        return archive_id
