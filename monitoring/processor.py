#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/processor.py
@brief Обработка исхода пробы: новое состояние, решение об алерте, сохранение
@details Состояние меняется только здесь, ровно один раз на завершённую пробу,
         и всегда вместе с lastChecked. Первая проба проверки алерт не вызывает.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol

from monitoring.check_log import CheckLog
from monitoring.errors import PersistenceError
from monitoring.models import STATE_DOWN, STATE_UP, Check, LogRecord, Outcome, now_ms
from utils.logger import log_debug, log_error, log_info, log_warning


class RecordStore(Protocol):
    def update(self, category: str, record_id: str, record: dict) -> None: ...


class AlertSender(Protocol):
    async def send(self, destination: str, message: str) -> bool: ...


@dataclass(frozen=True)
class ProcessResult:
    check_id: str
    previous_state: str
    state: str
    alert: bool
    persisted: bool
    logged: bool = False
    notified: Optional[bool] = None


def derive_state(check: Check, outcome: Outcome) -> str:
    if outcome.transport_error is None and outcome.response_code in check.success_codes:
        return STATE_UP
    return STATE_DOWN


def should_alert(check: Check, new_state: str) -> bool:
    return check.last_checked is not None and new_state != check.state


def format_alert(check: Check, state: Optional[str] = None) -> str:
    return (
        f"Alert! Your check for {check.method.upper()} {check.url} "
        f"is currently {state or check.state}"
    )


class OutcomeProcessor:
    def __init__(
        self,
        store: RecordStore,
        check_log: CheckLog,
        notifier: AlertSender,
        category: str = "checks",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.check_log = check_log
        self.notifier = notifier
        self.category = category
        self.clock = clock

    async def process(self, check: Check, outcome: Outcome) -> ProcessResult:
        new_state = derive_state(check, outcome)
        alert = should_alert(check, new_state)
        checked_at = self.clock()

        # в хранилище меняются только state и lastChecked, остальные ключи как были
        updated = replace(check, state=new_state, last_checked=checked_at)
        try:
            await asyncio.to_thread(
                self.store.update,
                self.category,
                check.id,
                check.with_probe_result(new_state, checked_at),
            )
        except PersistenceError as e:
            log_error(f"[processor] {check.id}: failed to save state {new_state}: {e}")
            return ProcessResult(check.id, check.state, new_state, alert, persisted=False)

        record = LogRecord(
            check=check.stored_record(),
            outcome=outcome,
            state=new_state,
            alert=alert,
            time=checked_at,
        )
        logged = await self.check_log.append(check.id, record)

        notified: Optional[bool] = None
        if alert:
            notified = await self._alert(updated)
        else:
            log_debug(f"[processor] {check.id}: {check.state} -> {new_state}, no alert needed")

        return ProcessResult(
            check.id, check.state, new_state, alert,
            persisted=True, logged=logged, notified=notified,
        )

    async def _alert(self, check: Check) -> bool:
        message = format_alert(check)
        destination = check.owner_phone or check.owner
        log_info(f"[processor] {check.id}: state changed, alerting {destination}")
        try:
            delivered = await self.notifier.send(destination, message)
        except Exception as e:
            log_error(f"[processor] {check.id}: notifier raised", exc=e)
            return False
        if not delivered:
            log_warning(f"[processor] {check.id}: alert was not delivered: {message}")
        return bool(delivered)
