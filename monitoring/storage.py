#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Union

from monitoring.errors import PersistenceError, RecordNotFoundError
from utils.logger import log_debug, log_error

PathLike = Union[str, Path]


class KeyedLocks:
    """
    Набор блокировок по ключу. Блокировки не удаляются: ключей столько же, сколько проверок.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Any, threading.RLock] = {}

    def get(self, key: Any) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock


class FileRecordStore:
    """
    Хранилище записей в JSON-файлах: <base_dir>/<category>/<id>.json.
    Каждая операция атомарна на уровне одной записи, транзакций между записями нет.
    Конкурентные update() одной записи сериализуются, побеждает последний.
    """

    def __init__(self, base_dir: PathLike) -> None:
        self.base_dir = Path(base_dir)
        self._locks = KeyedLocks()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "FileRecordStore":
        storage_cfg = config.get("storage") or {}
        return cls(storage_cfg.get("data_dir", ".data"))

    # --- Публичные методы -------------------------------------------------

    def list(self, category: str) -> List[str]:
        directory = self.base_dir / category
        try:
            names = sorted(p.stem for p in directory.glob("*.json") if p.is_file())
        except OSError as exc:
            raise PersistenceError(f"cannot list {category}: {exc}") from exc
        log_debug(f"[store] {category}: {len(names)} records")
        return names

    def read(self, category: str, record_id: str) -> Dict[str, Any]:
        path = self._path(category, record_id)
        with self._locks.get((category, record_id)):
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                raise RecordNotFoundError(category, record_id) from None
            except OSError as exc:
                raise PersistenceError(f"cannot read {category}/{record_id}: {exc}") from exc
        return _parse_json_object(text)

    def create(self, category: str, record_id: str, record: Dict[str, Any]) -> None:
        path = self._path(category, record_id)
        with self._locks.get((category, record_id)):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("x", encoding="utf-8") as f:
                    json.dump(record, f, ensure_ascii=False)
            except FileExistsError:
                raise PersistenceError(f"{category}/{record_id} already exists") from None
            except OSError as exc:
                raise PersistenceError(f"cannot create {category}/{record_id}: {exc}") from exc

    def update(self, category: str, record_id: str, record: Dict[str, Any]) -> None:
        """
        Перезаписывает существующую запись через временный файл и os.replace,
        поэтому читатель видит либо старую, либо новую версию целиком.
        """
        path = self._path(category, record_id)
        with self._locks.get((category, record_id)):
            if not path.exists():
                raise RecordNotFoundError(category, record_id)
            tmp = path.with_suffix(".tmp")
            try:
                tmp.write_text(json.dumps(record, ensure_ascii=False), encoding="utf-8")
                tmp.replace(path)
            except OSError as exc:
                log_error(f"[store] failed to write {path}: {exc}")
                tmp.unlink(missing_ok=True)
                raise PersistenceError(f"cannot update {category}/{record_id}: {exc}") from exc

    def delete(self, category: str, record_id: str) -> None:
        path = self._path(category, record_id)
        with self._locks.get((category, record_id)):
            try:
                path.unlink()
            except FileNotFoundError:
                raise RecordNotFoundError(category, record_id) from None
            except OSError as exc:
                raise PersistenceError(f"cannot delete {category}/{record_id}: {exc}") from exc

    def describe(self) -> Dict[str, str]:
        return {"path": str(self.base_dir.resolve()), "format": "json"}

    # --- Внутренняя логика ------------------------------------------------

    def _path(self, category: str, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id in (".", ".."):
            raise PersistenceError(f"invalid record id {record_id!r}")
        return self.base_dir / category / f"{record_id}.json"


def _parse_json_object(text: str) -> Dict[str, Any]:
    # битый JSON читается как пустая запись, дальше её отбросит валидатор
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
