#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file main.py
@brief Главный модуль воркера проверок доступности
@details Раз в минуту пробует все сохранённые проверки, пишет исходы в лог проверки,
         шлёт алерт владельцу при смене состояния и раз в сутки ротирует логи.
@author Monitoring Module
@date 2025-11-10
"""

import asyncio
import signal
import sys
from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from utils.config_loader import load_config
from utils.logger import (
    install_global_exception_hooks,
    log_debug,
    log_info,
    setup_logger,
)
from utils.notifier import Notifier

from checker.http_checker import HttpProber
from monitoring import CheckLog, FileRecordStore, LogRotator, LogStore, OutcomeProcessor
from monitoring.scheduler import CheckScheduler, SchedulerConfig

console = Console()


def _print_worker_overview(
    config: Dict[str, Any],
    store: FileRecordStore,
    log_store: LogStore,
    scheduler_cfg: SchedulerConfig,
    notifier: Notifier,
) -> None:
    table = Table(
        title="Воркер проверок",
        show_header=True,
        header_style="bold cyan",
        show_lines=False,
    )
    table.add_column("Параметр", no_wrap=True)
    table.add_column("Значение")

    table.add_row("Записи проверок", f"{store.describe()['path']} ({scheduler_cfg.category})")
    table.add_row("Логи проверок", str(log_store.base_dir.resolve()))
    table.add_row("Тик проб", f"{scheduler_cfg.check_interval_sec:g} сек")
    table.add_row("Тик ротации", f"{scheduler_cfg.rotation_interval_sec:g} сек")
    table.add_row("Защита от перекрытия", "да" if scheduler_cfg.guard_in_flight else "нет")
    channels = notifier.enabled_channels() if notifier.enabled else []
    table.add_row("Каналы алертов", ", ".join(channels) or "выключены")
    table.add_row("User-Agent", str((config.get("probe") or {}).get("user_agent", "-")))
    console.print(table)


def build_scheduler(config: Dict[str, Any]) -> CheckScheduler:
    scheduler_cfg = SchedulerConfig.from_config(config)
    store = FileRecordStore.from_config(config)
    log_store = LogStore.from_config(config)
    notifier = Notifier(config.get("notifications", {}) or {})

    processor = OutcomeProcessor(
        store,
        CheckLog(log_store),
        notifier,
        category=scheduler_cfg.category,
    )
    scheduler = CheckScheduler(
        store,
        HttpProber.from_config(config),
        processor,
        LogRotator(log_store),
        scheduler_cfg,
    )
    _print_worker_overview(config, store, log_store, scheduler_cfg, notifier)
    return scheduler


async def main() -> int:
    console.print("[bold green]Запуск воркера проверок[/bold green]\n")

    try:
        config = load_config()
        setup_logger(config.get("logging", {}))
        install_global_exception_hooks(asyncio.get_running_loop())
        log_info("Конфигурация успешно загружена")
    except Exception as e:
        console.print(
            f"[bold red]Ошибка загрузки конфигурации:[/bold red] {e}"
        )
        return 1

    scheduler = build_scheduler(config)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows
            log_debug(f"Signal handler for {sig!r} is not supported here")

    scheduler.start()
    console.print("[yellow]Background workers are running[/yellow]")
    try:
        await stop_event.wait()
    finally:
        log_info("Остановка воркера")
        await scheduler.stop()

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
