"""Tests for outcome processing: state derivation, alert decision, persistence."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

import pytest

from checker.validator import validate_check
from monitoring.errors import PersistenceError, RecordNotFoundError
from monitoring.models import Outcome
from monitoring.processor import OutcomeProcessor, derive_state, format_alert, should_alert

from conftest import CHECK_ID, FakeNotifier, make_record

NOW = 1_750_000_000_000
EARLIER = NOW - 60_000


class RecordingStore:
    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.updates: List[Tuple[str, str, Dict[str, Any]]] = []

    def update(self, category: str, record_id: str, record: Dict[str, Any]) -> None:
        if self.fail is not None:
            raise self.fail
        self.updates.append((category, record_id, record))


def _processor(store, check_log, notifier) -> OutcomeProcessor:
    return OutcomeProcessor(store, check_log, notifier, clock=lambda: NOW)


# ── pure derivation ──────────────────────────────────────────────────────────


class TestDeriveState:
    @pytest.mark.parametrize(
        "codes,outcome,expected",
        [
            ([200], Outcome.response(200), "up"),
            ([200, 201], Outcome.response(201), "up"),
            ([200], Outcome.response(500), "down"),
            ([200], Outcome.response(301), "down"),
            ([200], Outcome.timeout(), "down"),
            ([200], Outcome.error("ClientConnectorError: refused"), "down"),
            ([200], Outcome(transport_error="reset", response_code=200), "down"),
        ],
    )
    def test_grid(self, codes, outcome, expected) -> None:
        check = validate_check(make_record(successCodes=codes))
        assert derive_state(check, outcome) == expected


class TestShouldAlert:
    @pytest.mark.parametrize("new_state", ["up", "down"])
    def test_first_probe_never_alerts(self, new_state) -> None:
        check = validate_check(make_record())
        assert should_alert(check, new_state) is False

    @pytest.mark.parametrize(
        "previous,new_state,expected",
        [("up", "down", True), ("down", "up", True), ("up", "up", False), ("down", "down", False)],
    )
    def test_transitions(self, previous, new_state, expected) -> None:
        check = validate_check(make_record(state=previous, lastChecked=EARLIER))
        assert should_alert(check, new_state) is expected

    def test_legacy_record_with_timestamp_but_no_state(self) -> None:
        check = validate_check(make_record(lastChecked=EARLIER))
        assert should_alert(check, "up") is True


def test_alert_message_names_method_protocol_target_state() -> None:
    check = validate_check(make_record(method="post", protocol="https", target="api.io/ping"))
    assert format_alert(check, "down") == "Alert! Your check for POST https://api.io/ping is currently down"


# ── full processing ──────────────────────────────────────────────────────────


class TestProcess:
    @pytest.mark.asyncio
    async def test_up_stays_up_without_alert(self, check_log, log_store, notifier) -> None:
        store = RecordingStore()
        check = validate_check(make_record(state="up", lastChecked=EARLIER))

        result = await _processor(store, check_log, notifier).process(check, Outcome.response(200))

        assert result.state == "up"
        assert result.alert is False
        assert result.persisted and result.logged
        assert result.notified is None
        assert notifier.sent == []
        (_, record_id, saved), = store.updates
        assert record_id == CHECK_ID
        assert saved["state"] == "up"
        assert saved["lastChecked"] == NOW

    @pytest.mark.asyncio
    async def test_up_then_timeout_alerts(self, check_log, log_store, notifier) -> None:
        store = RecordingStore()
        check = validate_check(make_record(state="up", lastChecked=EARLIER, timeoutSeconds=2))

        result = await _processor(store, check_log, notifier).process(check, Outcome.timeout())

        assert result.state == "down"
        assert result.alert is True
        assert result.notified is True
        (destination, message), = notifier.sent
        assert destination == "owner@example.com"
        assert "GET" in message
        assert "http://example.com/health" in message
        assert message.endswith("down")

    @pytest.mark.asyncio
    async def test_first_probe_persists_without_alert(self, check_log, notifier) -> None:
        store = RecordingStore()
        check = validate_check(make_record())

        result = await _processor(store, check_log, notifier).process(check, Outcome.response(503))

        assert result.previous_state == "unknown"
        assert result.state == "down"
        assert result.alert is False
        assert notifier.sent == []
        assert store.updates[0][2]["lastChecked"] == NOW

    @pytest.mark.asyncio
    async def test_self_transition_only_touches_last_checked(self, check_log, notifier) -> None:
        store = RecordingStore()
        check = validate_check(make_record(state="down", lastChecked=EARLIER))

        result = await _processor(store, check_log, notifier).process(check, Outcome.error("refused"))

        assert result.alert is False
        saved = store.updates[0][2]
        assert saved["state"] == "down"
        assert saved["lastChecked"] == NOW
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_log_line_contents(self, check_log, log_store, notifier) -> None:
        store = RecordingStore()
        check = validate_check(make_record(state="up", lastChecked=EARLIER))

        await _processor(store, check_log, notifier).process(check, Outcome.timeout())

        (line,) = log_store.read_lines(CHECK_ID)
        entry = json.loads(line)
        assert entry["outcome"] == {"error": "timeout", "responseCode": None}
        assert entry["state"] == "down"
        assert entry["alert"] is True
        assert entry["time"] == NOW
        assert entry["check"]["state"] == "up"
        assert entry["check"]["target"] == "example.com/health"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [PersistenceError("disk full"), RecordNotFoundError("checks", CHECK_ID)]
    )
    async def test_persistence_failure_skips_log_and_alert(
        self, error, check_log, log_store, notifier
    ) -> None:
        store = RecordingStore(fail=error)
        check = validate_check(make_record(state="up", lastChecked=EARLIER))

        result = await _processor(store, check_log, notifier).process(check, Outcome.timeout())

        assert result.persisted is False
        assert result.alert is True
        assert notifier.sent == []
        assert log_store.read_lines(CHECK_ID) == []

    @pytest.mark.asyncio
    async def test_sms_destination_preferred(self, check_log, notifier) -> None:
        check = validate_check(make_record(state="down", lastChecked=EARLIER, userPhone="+15550001111"))

        await _processor(RecordingStore(), check_log, notifier).process(check, Outcome.response(200))

        assert notifier.sent[0][0] == "+15550001111"
        assert notifier.sent[0][1].endswith("is currently up")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing", [FakeNotifier(result=False), FakeNotifier(raises=RuntimeError("boom"))])
    async def test_notifier_failure_is_not_fatal(self, failing, check_log) -> None:
        store = RecordingStore()
        check = validate_check(make_record(state="down", lastChecked=EARLIER))

        result = await _processor(store, check_log, failing).process(check, Outcome.response(200))

        assert result.persisted is True
        assert result.notified is False
        assert len(failing.sent) == 1

    @pytest.mark.asyncio
    async def test_legacy_keys_are_kept_on_save(self, record_store, check_log, log_store, notifier) -> None:
        raw = make_record(
            owner=..., target=...,
            email="owner@example.com", url="legacy.io/status", userPhone="5550001111",
            state="up", lastChecked=EARLIER,
        )
        record_store.create("checks", CHECK_ID, raw)
        check = validate_check(record_store.read("checks", CHECK_ID))

        await _processor(record_store, check_log, notifier).process(check, Outcome.response(200))

        saved = record_store.read("checks", CHECK_ID)
        assert saved == {**raw, "state": "up", "lastChecked": NOW}
        assert "owner" not in saved and "target" not in saved
        entry = json.loads(log_store.read_lines(CHECK_ID)[0])
        assert entry["check"]["url"] == "legacy.io/status"
