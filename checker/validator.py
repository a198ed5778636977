#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file checker/validator.py
@brief Проверка и нормализация сырой записи проверки перед пробой
@details Записи приходят из хранилища как есть: могут не иметь полей, которые
         воркер ещё ни разу не выставлял (state, lastChecked), или содержать
         устаревшие ключи (url, userPhone). Обязательные поля приводятся к типам,
         необязательные получают значения по умолчанию.
"""

import math
from typing import Any, Dict, List, Optional

from monitoring.errors import CheckValidationError
from monitoring.models import (
    CHECK_ID_LENGTH,
    MAX_TIMEOUT_SEC,
    METHODS,
    MIN_TIMEOUT_SEC,
    PROTOCOLS,
    STATE_UNKNOWN,
    STATES,
    Check,
)
from utils.logger import log_debug

_KNOWN_KEYS = {
    "id", "owner", "email", "protocol", "target", "url", "method",
    "successCodes", "timeoutSeconds", "state", "lastChecked", "userPhone",
}


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_int(value: Any) -> Optional[int]:
    # bool: подкласс int, но кодом ответа не является
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        # isdigit() пропускает "²" и прочие цифры, которые int() не берёт
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _coerce_id(raw: Dict[str, Any]) -> Optional[str]:
    value = _clean_str(raw.get("id"))
    if value is not None and len(value) == CHECK_ID_LENGTH:
        return value
    return None


def _coerce_choice(value: Any, choices) -> Optional[str]:
    text = _clean_str(value)
    if text is None:
        return None
    text = text.lower()
    return text if text in choices else None


def _coerce_success_codes(value: Any) -> Optional[List[int]]:
    if not isinstance(value, (list, tuple)) or not value:
        return None
    codes: List[int] = []
    for item in value:
        code = _as_int(item)
        if code is None:
            return None
        codes.append(code)
    return codes


def _coerce_timeout(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    seconds = int(value)
    if MIN_TIMEOUT_SEC <= seconds <= MAX_TIMEOUT_SEC:
        return seconds
    return None


def _coerce_last_checked(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value) if value > 0 else None


def validate_check(raw: Any) -> Check:
    """
    @brief Приводит сырую запись к Check
    @param raw Запись из хранилища (любой формы)
    @return Полностью типизированный Check
    @throws CheckValidationError Если хотя бы одно обязательное поле не прошло проверку
    """
    record: Dict[str, Any] = raw if isinstance(raw, dict) else {}

    check_id = _coerce_id(record)
    owner = _clean_str(record.get("owner")) or _clean_str(record.get("email"))
    protocol = _coerce_choice(record.get("protocol"), PROTOCOLS)
    target = _clean_str(record.get("target")) or _clean_str(record.get("url"))
    method = _coerce_choice(record.get("method"), METHODS)
    success_codes = _coerce_success_codes(record.get("successCodes"))
    timeout_seconds = _coerce_timeout(record.get("timeoutSeconds"))

    required = {
        "id": check_id,
        "owner": owner,
        "protocol": protocol,
        "target": target,
        "method": method,
        "successCodes": success_codes,
        "timeoutSeconds": timeout_seconds,
    }
    failed = [name for name, value in required.items() if value is None]
    if failed:
        raw_id = record.get("id") if isinstance(record.get("id"), str) else None
        raise CheckValidationError(check_id or raw_id, failed)

    state = record.get("state")
    if state not in STATES:
        state = STATE_UNKNOWN

    extra = {k: v for k, v in record.items() if k not in _KNOWN_KEYS}

    check = Check(
        id=check_id,
        owner=owner,
        protocol=protocol,
        target=target,
        method=method,
        success_codes=success_codes,
        timeout_seconds=timeout_seconds,
        state=state,
        last_checked=_coerce_last_checked(record.get("lastChecked")),
        owner_phone=_clean_str(record.get("userPhone")),
        extra=extra,
        source=dict(record),
    )
    log_debug(f"[validator] {check.id} ok: {check.method.upper()} {check.url}")
    return check
