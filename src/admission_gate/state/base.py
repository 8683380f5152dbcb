from typing import Any, Mapping, Optional, Protocol

Document = dict[str, Any]


class ConfigStore(Protocol):
    """Document store the gate keeps its state in.

    Documents are JSON-compatible dicts addressed by (collection, key).
    Transport or backing-store failures raise StoreUnavailable.
    """

    def get(self, collection: str, key: str) -> Optional[Document]: ...

    def set(self, collection: str, key: str, document: Mapping[str, Any]) -> None: ...

    def merge(self, collection: str, key: str, updates: Mapping[str, Any]) -> None: ...

    def delete(self, collection: str, key: str) -> bool: ...

    def list(self, collection: str) -> list[Document]:
        """All documents in the collection, in write order."""
        ...

    def create(self, collection: str, key: str, document: Mapping[str, Any]) -> bool:
        """Write the document only if the key is absent. Returns False if it exists."""
        ...

    def compare_and_set(
        self,
        collection: str,
        key: str,
        expected: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> bool:
        """Merge updates only if every field in expected currently matches.

        Returns False, without writing, when the document is missing or any
        expected field differs.
        """
        ...


def matches(document: Optional[Mapping[str, Any]], expected: Mapping[str, Any]) -> bool:
    if document is None:
        return False
    return all(document.get(k) == v for k, v in expected.items())
