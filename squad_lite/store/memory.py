"""In-memory store backend for tests and single-process use."""

from typing import Any, Iterator

from .base import DocumentCollection


class InMemoryCollection(DocumentCollection):
    """Collection held in a dict keyed by primary key."""

    def __init__(self, name: str, primary_key: str):
        super().__init__(name, primary_key)
        self._documents: dict[Any, dict[str, Any]] = {}

    def _iter_documents(self) -> Iterator[dict[str, Any]]:
        return iter(list(self._documents.values()))

    def _get(self, key: Any) -> dict[str, Any] | None:
        return self._documents.get(key)

    def _put(self, doc: dict[str, Any]) -> None:
        self._documents[doc[self.primary_key]] = doc

    def _clear(self) -> None:
        self._documents.clear()

    def __len__(self) -> int:
        return len(self._documents)
