#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file checker/http_checker.py
@brief Проба одной проверки: HTTP/HTTPS запрос с жёстким таймаутом
@details Исход пробы фиксируется первым из трёх событий: получен ответ (код статуса),
         ошибка транспорта или истёк таймаут. Повторные события игнорируются.
         Ретраев нет: следующая попытка будет на следующем тике планировщика.
"""

import asyncio
import time
from typing import Optional

import aiohttp
from yarl import URL

from monitoring.errors import ProbeError
from monitoring.models import Check, Outcome
from utils.logger import log_debug, log_error, log_warning


class ProbeSlot:
    """
    Одноразовый слот результата пробы. Первый report() фиксирует Outcome,
    остальные возвращают False и ничего не меняют.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._future: asyncio.Future = loop.create_future()
        self.source: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self._future.done()

    def report(self, outcome: Outcome, source: str = "response") -> bool:
        if self._future.done():
            log_debug(f"[prober] late {source} event ignored: {outcome}")
            return False
        self.source = source
        self._future.set_result(outcome)
        return True

    def fail(self, error: ProbeError) -> bool:
        return self.report(Outcome.error(error.descriptor), "error")

    async def wait(self) -> Outcome:
        return await self._future


def build_request_url(check: Check) -> URL:
    """
    protocol + "://" + target → URL с хостом и путём вместе с query-строкой.
    """
    return URL(f"{check.protocol}://{check.target}", encoded=False)


def describe_error(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class HttpProber:
    """
    Выполняет пробы через общий aiohttp.ClientSession.
    Переданную снаружи сессию не закрывает.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = "uptime-watcher/1.0",
        verify_ssl: bool = True,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl

    @classmethod
    def from_config(cls, config: dict) -> "HttpProber":
        probe_cfg = config.get("probe") or {}
        return cls(
            user_agent=str(probe_cfg.get("user_agent", "uptime-watcher/1.0")),
            verify_ssl=bool(probe_cfg.get("verify_ssl", True)),
        )

    async def open(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # лимит соединений снят: одна задача на проверку за тик
            connector = aiohttp.TCPConnector(limit=0, ssl=self.verify_ssl)
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def probe(self, check: Check) -> Outcome:
        """
        @brief Выполняет одну пробу проверки
        @param check Проверенная запись
        @return Outcome: код ответа либо описание ошибки транспорта / "timeout"
        """
        session = await self.open()
        loop = asyncio.get_running_loop()
        slot = ProbeSlot(loop)
        started = time.monotonic()

        request_task = asyncio.create_task(
            self._send_request(session, check, slot),
            name=f"probe-{check.id}",
        )
        timer = loop.call_later(
            check.timeout_seconds, slot.report, Outcome.timeout(), "timeout"
        )
        try:
            outcome = await slot.wait()
        finally:
            timer.cancel()
            if not request_task.done():
                request_task.cancel()

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        if outcome.transport_error:
            log_warning(
                f"[prober] {check.id} {check.method.upper()} {check.url} failed after "
                f"{elapsed_ms} ms (budget {check.timeout_ms} ms): {outcome.transport_error}"
            )
        else:
            log_debug(
                f"[prober] {check.id} {check.method.upper()} {check.url} -> "
                f"{outcome.response_code} in {elapsed_ms} ms"
            )
        return outcome

    async def _send_request(
        self, session: aiohttp.ClientSession, check: Check, slot: ProbeSlot
    ) -> None:
        timeout_obj = aiohttp.ClientTimeout(total=check.timeout_seconds)
        headers = {"User-Agent": self.user_agent}
        try:
            async with session.request(
                method=check.method.upper(),
                url=build_request_url(check),
                headers=headers,
                timeout=timeout_obj,
                allow_redirects=False,
            ) as response:
                # тело ответа не читаем, нужен только статус
                slot.report(Outcome.response(response.status), "response")
        except asyncio.TimeoutError:
            slot.report(Outcome.timeout(), "timeout")
        except (aiohttp.ClientError, ValueError, OSError) as e:
            # кривой target (невалидный URL/порт) тоже ошибка транспорта
            slot.fail(ProbeError(describe_error(e), cause=e))
        except Exception as e:
            log_error(f"[prober] {check.id}: unexpected error in request", exc=e)
            slot.fail(ProbeError(describe_error(e), cause=e))
