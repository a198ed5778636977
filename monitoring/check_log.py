#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/check_log.py
@brief Запись исходов проб в лог проверки (logId = id проверки)
"""

from __future__ import annotations

import asyncio

from monitoring.errors import LogStoreError
from monitoring.log_store import LogStore
from monitoring.models import LogRecord
from utils.logger import log_debug, log_error


class CheckLog:
    def __init__(self, log_store: LogStore) -> None:
        self.log_store = log_store

    async def append(self, log_id: str, record: LogRecord) -> bool:
        line = record.to_line()
        try:
            await asyncio.to_thread(self.log_store.append, log_id, line)
        except LogStoreError as e:
            log_error(f"[check-log] append to {log_id} failed: {e}")
            return False
        log_debug(f"[check-log] {log_id} += state={record.state} alert={record.alert}")
        return True
