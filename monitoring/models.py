#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/models.py
@brief Типы данных воркера: проверка, исход пробы, запись лога
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

CHECK_ID_LENGTH = 20
PROTOCOLS = ("http", "https")
METHODS = ("get", "put", "post", "delete")
MIN_TIMEOUT_SEC = 1
MAX_TIMEOUT_SEC = 5

STATE_UNKNOWN = "unknown"
STATE_UP = "up"
STATE_DOWN = "down"
STATES = (STATE_UNKNOWN, STATE_UP, STATE_DOWN)

TIMEOUT_DESCRIPTOR = "timeout"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Check:
    """
    Проверенная копия записи проверки. Воркер держит её только на время одного прохода.
    Ключи хранилища (camelCase) сохраняются в to_record(), неизвестные ключи идут в extra.
    """

    id: str
    owner: str
    protocol: str
    target: str
    method: str
    success_codes: List[int]
    timeout_seconds: int
    state: str = STATE_UNKNOWN
    last_checked: Optional[int] = None
    owner_phone: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    # запись в том виде, в каком она лежит в хранилище
    source: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.target}"

    @property
    def timeout_ms(self) -> int:
        return self.timeout_seconds * 1000

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = dict(self.extra)
        record.update(
            {
                "id": self.id,
                "owner": self.owner,
                "protocol": self.protocol,
                "target": self.target,
                "method": self.method,
                "successCodes": list(self.success_codes),
                "timeoutSeconds": self.timeout_seconds,
                "state": self.state,
                "lastChecked": self.last_checked,
            }
        )
        if self.owner_phone:
            record["userPhone"] = self.owner_phone
        return record

    def stored_record(self) -> Dict[str, Any]:
        """Исходная запись хранилища с её написанием ключей (email/url и т.п.)."""
        return dict(self.source) if self.source else self.to_record()

    def with_probe_result(self, state: str, last_checked: int) -> Dict[str, Any]:
        record = self.stored_record()
        record["state"] = state
        record["lastChecked"] = last_checked
        return record


@dataclass(frozen=True)
class Outcome:
    transport_error: Optional[str] = None
    response_code: Optional[int] = None

    @classmethod
    def response(cls, status: int) -> "Outcome":
        return cls(response_code=int(status))

    @classmethod
    def error(cls, descriptor: str) -> "Outcome":
        return cls(transport_error=descriptor)

    @classmethod
    def timeout(cls) -> "Outcome":
        return cls(transport_error=TIMEOUT_DESCRIPTOR)

    @property
    def timed_out(self) -> bool:
        return self.transport_error == TIMEOUT_DESCRIPTOR

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.transport_error, "responseCode": self.response_code}


@dataclass(frozen=True)
class LogRecord:
    check: Dict[str, Any]
    outcome: Outcome
    state: str
    alert: bool
    time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check": self.check,
            "outcome": self.outcome.to_dict(),
            "state": self.state,
            "alert": self.alert,
            "time": self.time,
        }

    def to_line(self) -> str:
        # одна запись = одна строка, без переводов строк внутри
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
