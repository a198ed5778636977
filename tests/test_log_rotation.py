"""Tests for the log store and the log rotator."""

from __future__ import annotations

import asyncio
import threading

import pytest

from monitoring.errors import LogStoreError
from monitoring.log_rotator import LogRotator
from monitoring.log_store import LogStore

TS = 1_760_000_000_000


def _fill(store: LogStore, log_id: str, count: int) -> list:
    lines = [f'{{"n":{i},"log":"{log_id}"}}' for i in range(count)]
    for line in lines:
        store.append(log_id, line)
    return lines


def _live_size(store: LogStore, log_id: str) -> int:
    return (store.base_dir / f"{log_id}.log").stat().st_size


# ── log store ────────────────────────────────────────────────────────────────


class TestLogStore:
    def test_append_keeps_order(self, log_store: LogStore) -> None:
        lines = _fill(log_store, "a", 5)
        assert log_store.read_lines("a") == lines

    def test_append_rejects_multiline(self, log_store: LogStore) -> None:
        with pytest.raises(LogStoreError):
            log_store.append("a", "one\ntwo")

    def test_list_active_and_archives(self, log_store: LogStore) -> None:
        _fill(log_store, "a", 1)
        _fill(log_store, "b", 1)
        log_store.compress("a", "a-1")
        assert log_store.list_active() == ["a", "b"]
        assert log_store.list(include_archives=True) == ["a", "a-1", "b"]

    def test_compress_decompress(self, log_store: LogStore) -> None:
        lines = _fill(log_store, "a", 3)
        log_store.compress("a", "a-1")
        assert log_store.decompress("a-1") == "\n".join(lines) + "\n"

    def test_compress_refuses_to_overwrite(self, log_store: LogStore) -> None:
        _fill(log_store, "a", 1)
        log_store.compress("a", "a-1")
        with pytest.raises(LogStoreError):
            log_store.compress("a", "a-1")

    def test_decompress_missing(self, log_store: LogStore) -> None:
        with pytest.raises(LogStoreError):
            log_store.decompress("nope-1")

    def test_concurrent_appends_are_whole_lines(self, log_store: LogStore) -> None:
        def writer(n: int) -> None:
            for i in range(50):
                log_store.append("a", f'{{"writer":{n},"i":{i},"pad":"{"x" * 200}"}}')

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = log_store.read_lines("a")
        assert len(lines) == 200
        for n in range(4):
            mine = [line for line in lines if f'"writer":{n},' in line]
            assert [f'"i":{i},' in line for i, line in enumerate(mine)] == [True] * 50


# ── rotator ──────────────────────────────────────────────────────────────────


class TestLogRotator:
    @pytest.mark.asyncio
    async def test_rotates_n_records(self, log_store: LogStore) -> None:
        lines = _fill(log_store, "a", 7)
        report = await LogRotator(log_store, clock=lambda: TS).rotate_all()

        assert report.rotated == {"a": f"a-{TS}"}
        assert log_store.decompress(f"a-{TS}").splitlines() == lines
        assert _live_size(log_store, "a") == 0
        assert log_store.list(include_archives=True) == ["a", f"a-{TS}"]

    @pytest.mark.asyncio
    async def test_append_after_rotation_starts_fresh(self, log_store: LogStore) -> None:
        _fill(log_store, "a", 3)
        await LogRotator(log_store, clock=lambda: TS).rotate_all()
        log_store.append("a", '{"fresh":true}')
        assert log_store.read_lines("a") == ['{"fresh":true}']

    @pytest.mark.asyncio
    async def test_empty_log_is_skipped(self, log_store: LogStore) -> None:
        _fill(log_store, "a", 2)
        log_store.truncate("a")
        report = await LogRotator(log_store, clock=lambda: TS).rotate_all()

        assert report.skipped == ["a"]
        assert report.rotated == {}
        assert log_store.list(include_archives=True) == ["a"]

    @pytest.mark.asyncio
    async def test_no_logs_at_all(self, log_store: LogStore) -> None:
        report = await LogRotator(log_store).rotate_all()
        assert report.total == 0

    @pytest.mark.asyncio
    async def test_two_logs_rotate_independently(self, log_store: LogStore) -> None:
        a_lines = _fill(log_store, "a", 4)
        b_lines = _fill(log_store, "b", 9)

        report = await LogRotator(log_store, clock=lambda: TS).rotate_all()

        assert set(report.rotated) == {"a", "b"}
        assert log_store.decompress(f"a-{TS}").splitlines() == a_lines
        assert log_store.decompress(f"b-{TS}").splitlines() == b_lines
        assert _live_size(log_store, "a") == 0
        assert _live_size(log_store, "b") == 0

    @pytest.mark.asyncio
    async def test_failure_on_one_log_does_not_stop_others(self, log_store: LogStore) -> None:
        a_lines = _fill(log_store, "a", 2)
        b_lines = _fill(log_store, "b", 3)
        # архив с тем же id уже есть, compress для "a" упадёт
        (log_store.base_dir / f"a-{TS}.gz.b64").write_bytes(b"taken")

        report = await LogRotator(log_store, clock=lambda: TS).rotate_all()

        assert "a" in report.failed
        assert "compress" in report.failed["a"]
        assert report.rotated == {"b": f"b-{TS}"}
        assert log_store.read_lines("a") == a_lines
        assert log_store.decompress(f"b-{TS}").splitlines() == b_lines

    @pytest.mark.asyncio
    async def test_appends_during_rotation_are_not_lost(self, log_store: LogStore) -> None:
        _fill(log_store, "a", 10)
        stop = threading.Event()
        appended = []

        def writer() -> None:
            i = 0
            while not stop.is_set() and i < 500:
                line = f'{{"late":{i}}}'
                log_store.append("a", line)
                appended.append(line)
                i += 1

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            report = await LogRotator(log_store, clock=lambda: TS).rotate_all()
        finally:
            stop.set()
            await asyncio.to_thread(thread.join)

        assert "a" in report.rotated
        archived = log_store.decompress(f"a-{TS}").splitlines()
        live = log_store.read_lines("a")
        late_seen = [line for line in archived + live if line.startswith('{"late"')]
        assert sorted(late_seen) == sorted(appended)
        assert len(archived) + len(live) == 10 + len(appended)
