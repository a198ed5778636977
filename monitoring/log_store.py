#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file monitoring/log_store.py
@brief Файловое хранилище логов проверок
@details <logs_dir>/<logId>.log: живой лог (одна JSON-строка на пробу),
         <logs_dir>/<archiveId>.gz.b64: архив (gzip, затем base64).
         Дозапись, архивация и усечение одного лога сериализуются через lock(logId).
"""

from __future__ import annotations

import base64
import gzip
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Union

from monitoring.errors import LogStoreError
from monitoring.storage import KeyedLocks
from utils.logger import log_debug

PathLike = Union[str, Path]

LOG_SUFFIX = ".log"
ARCHIVE_SUFFIX = ".gz.b64"


class LogStore:
    def __init__(self, base_dir: PathLike) -> None:
        self.base_dir = Path(base_dir)
        self._locks = KeyedLocks()

    @classmethod
    def from_config(cls, config: Dict) -> "LogStore":
        storage_cfg = config.get("storage") or {}
        return cls(storage_cfg.get("logs_dir", ".logs"))

    @contextmanager
    def lock(self, log_id: str) -> Iterator[threading.RLock]:
        lock = self._locks.get(log_id)
        with lock:
            yield lock

    # --- Публичные методы -------------------------------------------------

    def append(self, log_id: str, line: str) -> None:
        """
        Дописывает ровно одну строку. Строка уходит одним write() в O_APPEND-дескриптор,
        поэтому читатель не увидит её частично.
        """
        if "\n" in line:
            raise LogStoreError(f"log line for {log_id} must not contain newlines")
        path = self._log_path(log_id)
        payload = (line + "\n").encode("utf-8")
        with self.lock(log_id):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
                try:
                    written = os.write(fd, payload)
                    if written != len(payload):
                        raise OSError(f"short write {written}/{len(payload)} bytes")
                    os.fsync(fd)
                finally:
                    os.close(fd)
            except OSError as exc:
                raise LogStoreError(f"cannot append to {log_id}: {exc}") from exc

    def list(self, include_archives: bool = False) -> List[str]:
        if not self.base_dir.exists():
            return []
        names: List[str] = []
        try:
            for entry in self.base_dir.iterdir():
                if not entry.is_file():
                    continue
                if entry.name.endswith(LOG_SUFFIX):
                    names.append(entry.name[: -len(LOG_SUFFIX)])
                elif include_archives and entry.name.endswith(ARCHIVE_SUFFIX):
                    names.append(entry.name[: -len(ARCHIVE_SUFFIX)])
        except OSError as exc:
            raise LogStoreError(f"cannot list {self.base_dir}: {exc}") from exc
        return sorted(names)

    def list_active(self) -> List[str]:
        return self.list(include_archives=False)

    def read_lines(self, log_id: str) -> List[str]:
        path = self._log_path(log_id)
        with self.lock(log_id):
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return []
            except OSError as exc:
                raise LogStoreError(f"cannot read {log_id}: {exc}") from exc
        return [line for line in text.split("\n") if line]

    def line_count(self, log_id: str) -> int:
        return len(self.read_lines(log_id))

    def compress(self, log_id: str, archive_id: str) -> Path:
        """
        Пишет архив текущего содержимого лога. Архив появляется под своим именем только
        после fsync (tmp + os.replace); существующий архив не перезаписывается.
        """
        source = self._log_path(log_id)
        target = self._archive_path(archive_id)
        tmp = target.with_name(target.name + ".tmp")
        with self.lock(log_id):
            if target.exists():
                raise LogStoreError(f"archive {archive_id} already exists")
            try:
                raw = source.read_bytes()
                encoded = base64.b64encode(gzip.compress(raw))
                with tmp.open("xb") as f:
                    f.write(encoded)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, target)
            except OSError as exc:
                tmp.unlink(missing_ok=True)
                raise LogStoreError(f"cannot compress {log_id} into {archive_id}: {exc}") from exc
        log_debug(f"[logs] {log_id} archived as {target.name} ({len(raw)} bytes raw)")
        return target

    def decompress(self, archive_id: str) -> str:
        path = self._archive_path(archive_id)
        try:
            encoded = path.read_bytes()
        except FileNotFoundError:
            raise LogStoreError(f"archive {archive_id} not found") from None
        except OSError as exc:
            raise LogStoreError(f"cannot read archive {archive_id}: {exc}") from exc
        try:
            return gzip.decompress(base64.b64decode(encoded)).decode("utf-8")
        except (ValueError, OSError, EOFError) as exc:
            raise LogStoreError(f"archive {archive_id} is corrupt: {exc}") from exc

    def truncate(self, log_id: str) -> None:
        path = self._log_path(log_id)
        with self.lock(log_id):
            try:
                os.truncate(path, 0)
            except OSError as exc:
                raise LogStoreError(f"cannot truncate {log_id}: {exc}") from exc
        log_debug(f"[logs] {log_id} truncated")

    # --- Внутренняя логика ------------------------------------------------

    def _log_path(self, log_id: str) -> Path:
        return self.base_dir / f"{_safe_name(log_id)}{LOG_SUFFIX}"

    def _archive_path(self, archive_id: str) -> Path:
        return self.base_dir / f"{_safe_name(archive_id)}{ARCHIVE_SUFFIX}"


def _safe_name(name: str) -> str:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise LogStoreError(f"invalid log id {name!r}")
    return name
