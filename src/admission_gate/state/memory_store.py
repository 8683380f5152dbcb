import copy
import threading
from typing import Any, Mapping, Optional

from admission_gate.state.base import Document, matches


class InMemoryConfigStore:
    """Process-local ConfigStore. One lock guards every collection."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._lock:
            doc = self._collection(collection).get(key)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, key: str, document: Mapping[str, Any]) -> None:
        with self._lock:
            docs = self._collection(collection)
            # re-insert so iteration order follows write order
            docs.pop(key, None)
            docs[key] = copy.deepcopy(dict(document))

    def merge(self, collection: str, key: str, updates: Mapping[str, Any]) -> None:
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(key, {})
            current.update(copy.deepcopy(dict(updates)))
            docs[key] = current

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._collection(collection).pop(key, None) is not None

    def list(self, collection: str) -> list[Document]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._collection(collection).values()]

    def create(self, collection: str, key: str, document: Mapping[str, Any]) -> bool:
        with self._lock:
            docs = self._collection(collection)
            if key in docs:
                return False
            docs[key] = copy.deepcopy(dict(document))
            return True

    def compare_and_set(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> bool:
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(key)
            if not matches(current, expected):
                return False
            current.update(copy.deepcopy(dict(updates)))
            return True
