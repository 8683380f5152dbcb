"""File-backed ConfigStore with locking shared across processes."""

import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Mapping, Optional

from admission_gate.core.errors import StoreUnavailable
from admission_gate.state.base import Document, matches

logger = logging.getLogger(__name__)


class JsonConfigStore:
    """Keeps every collection in one JSON file.

    Each operation holds an exclusive flock on a sibling ``.lock`` file for its
    whole read-modify-write, which makes create and compare_and_set atomic
    across processes.
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file).expanduser()
        self._lock_file = self.state_file.with_suffix(".lock")
        self._thread_lock = threading.RLock()

        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            if not self.state_file.exists():
                with self._file_lock():
                    if not self.state_file.exists():
                        self._save_all({})
        except OSError as e:
            raise StoreUnavailable(f"cannot open state file {self.state_file}: {e}") from e

    @contextmanager
    def _file_lock(self):
        """Acquire exclusive file lock for the duration of one operation."""
        with self._thread_lock:
            try:
                self._lock_file.touch(exist_ok=True)
                lock_handle = open(self._lock_file, "r")
            except OSError as e:
                raise StoreUnavailable(f"cannot lock {self._lock_file}: {e}") from e
            with lock_handle:
                try:
                    fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
                    yield
                finally:
                    fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    def _load_all(self) -> dict[str, dict[str, Document]]:
        if not self.state_file.exists():
            return {}
        try:
            with open(self.state_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise StoreUnavailable(f"cannot read {self.state_file}: {e}") from e
        if not isinstance(data, dict):
            raise StoreUnavailable(f"corrupt state file {self.state_file}")
        return data

    def _save_all(self, data: dict):
        tmp_file = self.state_file.with_suffix(".tmp")
        try:
            with open(tmp_file, "w") as f:
                json.dump(data, f, indent=2)
            tmp_file.chmod(0o600)
            os.replace(tmp_file, self.state_file)
        except OSError as e:
            raise StoreUnavailable(f"cannot write {self.state_file}: {e}") from e

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._file_lock():
            return self._load_all().get(collection, {}).get(key)

    def set(self, collection: str, key: str, document: Mapping[str, Any]) -> None:
        with self._file_lock():
            data = self._load_all()
            docs = data.setdefault(collection, {})
            docs.pop(key, None)
            docs[key] = dict(document)
            self._save_all(data)

    def merge(self, collection: str, key: str, updates: Mapping[str, Any]) -> None:
        with self._file_lock():
            data = self._load_all()
            docs = data.setdefault(collection, {})
            docs.setdefault(key, {}).update(updates)
            self._save_all(data)

    def delete(self, collection: str, key: str) -> bool:
        with self._file_lock():
            data = self._load_all()
            docs = data.get(collection, {})
            if key not in docs:
                return False
            del docs[key]
            self._save_all(data)
            return True

    def list(self, collection: str) -> list[Document]:
        with self._file_lock():
            return list(self._load_all().get(collection, {}).values())

    def create(self, collection: str, key: str, document: Mapping[str, Any]) -> bool:
        with self._file_lock():
            data = self._load_all()
            docs = data.setdefault(collection, {})
            if key in docs:
                return False
            docs[key] = dict(document)
            self._save_all(data)
            return True

    def compare_and_set(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> bool:
        with self._file_lock():
            data = self._load_all()
            current = data.get(collection, {}).get(key)
            if not matches(current, expected):
                logger.debug("compare_and_set lost on %s/%s", collection, key)
                return False
            current.update(updates)
            self._save_all(data)
            return True
