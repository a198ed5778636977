#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file notifier.py
@brief Модуль отправки алертов владельцам проверок (Telegram / Discord / Twilio SMS)
@details Notifier.send(destination, message) рассылает сообщение во все включённые каналы.
         destination: контакт владельца (телефон для SMS, для чатов попадает в шаблон).
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import re
from datetime import datetime, timezone

import aiohttp

from utils.logger import log_info, log_warning, log_error, log_debug


# ================== НИЗКОУРОВНЕВЫЕ HTTP-ХЕЛПЕРЫ ==================


async def _post_json(url: str, json_payload: Dict[str, Any], timeout: float = 5.0) -> bool:
    try:
        timeout_obj = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=timeout_obj) as session:
            async with session.post(url, json=json_payload) as resp:
                text = await resp.text()
                if 200 <= resp.status < 300:
                    log_debug(f"[notifier] POST JSON {url} OK {resp.status}: {text[:200]}")
                    return True
                log_warning(f"[notifier] POST JSON {url} failed {resp.status}: {text[:200]}")
                return False
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log_error(f"[notifier] POST JSON {url} exception: {e}")
        return False


async def _post_form(
    url: str,
    data: Dict[str, Any],
    timeout: float = 5.0,
    auth: Optional[aiohttp.BasicAuth] = None,
) -> bool:
    try:
        timeout_obj = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=timeout_obj) as session:
            async with session.post(url, data=data, auth=auth) as resp:
                text = await resp.text()
                if 200 <= resp.status < 300:
                    log_debug(f"[notifier] POST FORM {url} OK {resp.status}: {text[:200]}")
                    return True
                log_warning(f"[notifier] POST FORM {url} failed {resp.status}: {text[:200]}")
                return False
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log_error(f"[notifier] POST FORM {url} exception: {e}")
        return False


# ================== РЕНДЕРИНГ ШАБЛОНОВ ==================


def _render_template(template: str, context: Dict[str, Any]) -> str:
    """
    Простейший рендер: {{key}} → value из context.
    """
    result = template
    for key, value in context.items():
        placeholder = "{{" + key + "}}"
        result = result.replace(placeholder, str(value))
    return result


def _build_context(destination: str, message: str, tags: List[str]) -> Dict[str, Any]:
    return {
        "destination": destination or "-",
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tags": ", ".join(tags),
    }


_PHONE_RE = re.compile(r"\+?[\d\s\-().]{7,}")


def _normalize_phone(raw: str, country_code: str = "") -> Optional[str]:
    # e-mail и прочие контакты не телефон, даже если в них есть цифры
    if not _PHONE_RE.fullmatch(raw.strip()):
        return None
    digits = "".join(ch for ch in raw if ch.isdigit())
    if not digits:
        return None
    if raw.strip().startswith("+"):
        return "+" + digits
    if country_code:
        return "+" + country_code.lstrip("+") + digits
    return "+" + digits


# ================== КАНАЛЫ: TELEGRAM / DISCORD / TWILIO ==================


async def _send_telegram_message(cfg: Dict[str, Any], destination: str, text: str) -> bool:
    token = cfg.get("bot_token") or ""
    chat_id = cfg.get("chat_id") or ""
    if not token or not chat_id:
        log_warning("[notifier] Telegram enabled, but bot_token/chat_id missing")
        return False

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }
    if cfg.get("parse_mode"):
        payload["parse_mode"] = cfg["parse_mode"]
    timeout = float(cfg.get("timeout_sec", 5))
    ok = await _post_form(url, payload, timeout=timeout)
    if ok:
        log_info("[notifier] Telegram message sent")
    return ok


async def _send_discord_message(cfg: Dict[str, Any], destination: str, text: str) -> bool:
    webhook_url = cfg.get("webhook_url") or ""
    if not webhook_url:
        log_warning("[notifier] Discord enabled, but webhook_url missing")
        return False

    payload: Dict[str, Any] = {"content": text}
    if cfg.get("username"):
        payload["username"] = cfg["username"]
    if cfg.get("avatar_url"):
        payload["avatar_url"] = cfg["avatar_url"]

    timeout = float(cfg.get("timeout_sec", 5))
    ok = await _post_json(webhook_url, payload, timeout=timeout)
    if ok:
        log_info("[notifier] Discord message sent")
    return ok


async def _send_twilio_sms(cfg: Dict[str, Any], destination: str, text: str) -> bool:
    sid = cfg.get("account_sid") or ""
    auth_token = cfg.get("auth_token") or ""
    from_phone = cfg.get("from_phone") or ""
    if not sid or not auth_token or not from_phone:
        log_warning("[notifier] Twilio enabled, but account_sid/auth_token/from_phone missing")
        return False

    to_phone = _normalize_phone(destination or "", str(cfg.get("country_code") or ""))
    if to_phone is None and cfg.get("default_to"):
        to_phone = _normalize_phone(str(cfg["default_to"]), str(cfg.get("country_code") or ""))
    if to_phone is None:
        log_warning(f"[notifier] Twilio: no phone number for destination {destination!r}")
        return False

    # лимит Twilio на тело SMS
    body = text[:1600]
    url = f"https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
    payload = {"From": from_phone, "To": to_phone, "Body": body}
    timeout = float(cfg.get("timeout_sec", 5))
    ok = await _post_form(url, payload, timeout=timeout, auth=aiohttp.BasicAuth(sid, auth_token))
    if ok:
        log_info(f"[notifier] SMS sent to {to_phone}")
    return ok


ChannelSender = Callable[[Dict[str, Any], str, str], Awaitable[bool]]

CHANNELS: Dict[str, ChannelSender] = {
    "telegram": _send_telegram_message,
    "discord": _send_discord_message,
    "twilio": _send_twilio_sms,
}


# ================== ВЫСОКОУРОВНЕВЫЙ ОТПРАВИТЕЛЬ ==================


class Notifier:
    """
    Отправитель алертов. send() возвращает True, если хотя бы один канал доставил сообщение.
    """

    def __init__(
        self,
        notifications_cfg: Dict[str, Any],
        channels: Optional[Dict[str, ChannelSender]] = None,
    ) -> None:
        self.cfg = notifications_cfg or {}
        self.channels = channels if channels is not None else dict(CHANNELS)

    @property
    def enabled(self) -> bool:
        return bool(self.cfg.get("enabled", False))

    def enabled_channels(self) -> List[str]:
        return [
            name
            for name in self.channels
            if (self.cfg.get(name) or {}).get("enabled", False)
        ]

    def render(self, channel_cfg: Dict[str, Any], destination: str, message: str) -> str:
        common = self.cfg.get("common", {}) or {}
        tags: List[str] = list(dict.fromkeys(common.get("tags", []) or []))
        include_tags = bool(common.get("include_tags", False))
        ctx = _build_context(destination, message, tags)

        template = channel_cfg.get("message_template")
        text = _render_template(template, ctx) if template else message
        # теги префиксом, если их нет в шаблоне
        if include_tags and tags and not (template and "{{tags}}" in template):
            text = f"[{', '.join(tags)}] {text}"
        return text

    async def send(self, destination: str, message: str) -> bool:
        """
        @brief Отправляет алерт во все включённые каналы
        @param destination Контакт владельца проверки
        @param message     Текст алерта
        @return True, если хотя бы один канал принял сообщение
        """
        if not self.enabled:
            log_debug("[notifier] Notifications disabled globally")
            return False

        names = self.enabled_channels()
        if not names:
            log_warning("[notifier] Notifications enabled, but no channel is enabled")
            return False

        common = self.cfg.get("common", {}) or {}
        retry_attempts = max(1, int(common.get("retry_attempts", 1)))

        async def send_to_channel(name: str) -> bool:
            channel_cfg = self.cfg.get(name) or {}
            text = self.render(channel_cfg, destination, message)
            sender = self.channels[name]
            for attempt in range(1, retry_attempts + 1):
                if await sender(channel_cfg, destination, text):
                    return True
                log_warning(f"[notifier] {name} send attempt {attempt} failed")
                if attempt < retry_attempts:
                    await asyncio.sleep(0.5)
            log_error(f"[notifier] {name} failed after {retry_attempts} attempt(s)")
            return False

        results = await asyncio.gather(
            *(send_to_channel(name) for name in names), return_exceptions=True
        )
        delivered = False
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                log_error(f"[notifier] {name} raised", exc=result)
            elif result:
                delivered = True
        return delivered
