#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/scheduler.py
@brief Планировщик воркера: тик проб и независимый тик ротации логов
@details Каждый тик проб читает список проверок и запускает по одной задаче на проверку
         (чтение → валидация → проба → обработка исхода) внутри TaskGroup.
         Цикл не ждёт окончания тика: тики могут перекрываться, и две пробы одной
         проверки могут идти одновременно. guard_in_flight=True пропускает проверку,
         у которой предыдущая проба ещё не завершилась.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from checker.http_checker import HttpProber
from checker.validator import validate_check
from monitoring.errors import CheckValidationError, PersistenceError, RecordNotFoundError
from monitoring.log_rotator import LogRotator, RotationReport
from monitoring.processor import OutcomeProcessor
from monitoring.storage import FileRecordStore
from utils.logger import log_debug, log_error, log_info, log_warning


@dataclass
class SchedulerConfig:
    check_interval_sec: float = 60
    rotation_interval_sec: float = 60 * 60 * 24
    run_on_start: bool = True
    rotate_on_start: bool = True
    guard_in_flight: bool = False
    category: str = "checks"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SchedulerConfig":
        worker_cfg = config.get("worker") or {}
        storage_cfg = config.get("storage") or {}
        return cls(
            check_interval_sec=max(1.0, float(worker_cfg.get("check_interval_sec", 60))),
            rotation_interval_sec=max(1.0, float(worker_cfg.get("rotation_interval_sec", 86400))),
            run_on_start=bool(worker_cfg.get("run_on_start", True)),
            rotate_on_start=bool(worker_cfg.get("rotate_on_start", True)),
            guard_in_flight=bool(worker_cfg.get("guard_in_flight", False)),
            category=str(storage_cfg.get("checks_category", "checks")),
        )


class CheckScheduler:
    def __init__(
        self,
        store: FileRecordStore,
        prober: HttpProber,
        processor: OutcomeProcessor,
        rotator: LogRotator,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        self.store = store
        self.prober = prober
        self.processor = processor
        self.rotator = rotator
        self.config = config or SchedulerConfig()

        self._loops: List[asyncio.Task] = []
        self._ticks: Set[asyncio.Task] = set()
        self._in_flight: Set[str] = set()
        self._tick_counter = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    # --- Жизненный цикл ---------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._loops = [
            asyncio.create_task(self._probe_loop(), name="probe-loop"),
            asyncio.create_task(self._rotation_loop(), name="rotation-loop"),
        ]
        log_info(
            f"[scheduler] started: checks every {self.config.check_interval_sec}s, "
            f"rotation every {self.config.rotation_interval_sec}s, "
            f"guard_in_flight={self.config.guard_in_flight}"
        )

    async def stop(self) -> None:
        """
        Останавливает оба цикла и бросает незавершённые пробы, не дожидаясь сети.
        """
        if not self._running:
            return
        self._running = False
        pending = [*self._loops, *self._ticks]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._loops.clear()
        self._ticks.clear()
        self._in_flight.clear()
        await self.prober.close()
        log_info(f"[scheduler] stopped, {len(pending)} task(s) cancelled")

    # --- Циклы ------------------------------------------------------------

    async def _probe_loop(self) -> None:
        if not self.config.run_on_start:
            await asyncio.sleep(self.config.check_interval_sec)
        while True:
            self.spawn_tick()
            await asyncio.sleep(self.config.check_interval_sec)

    async def _rotation_loop(self) -> None:
        if not self.config.rotate_on_start:
            await asyncio.sleep(self.config.rotation_interval_sec)
        while True:
            try:
                await self.run_rotation()
            except Exception as e:
                log_error("[scheduler] rotation pass failed", exc=e)
            await asyncio.sleep(self.config.rotation_interval_sec)

    def spawn_tick(self) -> asyncio.Task:
        self._tick_counter += 1
        task = asyncio.create_task(
            self.run_probe_tick(), name=f"probe-tick-{self._tick_counter}"
        )
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)
        return task

    # --- Один проход ------------------------------------------------------

    async def run_probe_tick(self) -> int:
        """
        @brief Один тик: список проверок и по задаче на каждую
        @return Количество запущенных задач
        """
        try:
            check_ids = await asyncio.to_thread(self.store.list, self.config.category)
        except PersistenceError as e:
            log_error(f"[scheduler] cannot list checks: {e}")
            return 0

        if not check_ids:
            log_debug("[scheduler] no checks to process")
            return 0

        log_debug(f"[scheduler] tick: {len(check_ids)} check(s)")
        async with asyncio.TaskGroup() as group:
            for check_id in check_ids:
                group.create_task(self.run_check(check_id), name=f"check-{check_id}")
        return len(check_ids)

    async def run_rotation(self) -> RotationReport:
        return await self.rotator.rotate_all()

    async def run_check(self, check_id: str) -> None:
        """
        Чтение → валидация → проба → обработка. Не бросает исключений: всё пишется в лог,
        повтор будет на следующем тике.
        """
        if self.config.guard_in_flight:
            if check_id in self._in_flight:
                log_warning(f"[scheduler] {check_id}: previous probe still in flight, skipped")
                return
            self._in_flight.add(check_id)
        try:
            raw = await asyncio.to_thread(self.store.read, self.config.category, check_id)
            check = validate_check(raw)
            outcome = await self.prober.probe(check)
            await self.processor.process(check, outcome)
        except RecordNotFoundError:
            log_debug(f"[scheduler] {check_id}: record disappeared before read")
        except CheckValidationError as e:
            log_warning(f"[scheduler] skipping malformed check: {e}")
        except PersistenceError as e:
            log_error(f"[scheduler] {check_id}: cannot read record: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_error(f"[scheduler] {check_id}: unexpected error", exc=e)
        finally:
            if self.config.guard_in_flight:
                self._in_flight.discard(check_id)
