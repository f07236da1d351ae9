"""Document store adapter for squad-lite.

The store is a set of keyed collections supporting insert, find with
sort/limit, update by filter and upsert. Business logic never talks to a
backend directly: it goes through :class:`RecordCollection`, which validates
every document against its pydantic model on the way in and on the way out.

Filters are dicts of dotted field paths to either a literal (equality) or an
operator dict using ``$in`` / ``$ne``. Sort is a list of ``(field, 1 | -1)``.
"""

import copy
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Generic, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

from ..exceptions import DuplicateKeyError, RecordValidationError, StoreError
from ..types import Record

Filter = dict[str, Any]
Sort = list[tuple[str, int]]
Validator = Callable[[dict[str, Any]], dict[str, Any]]

_MISSING = object()


def get_path(doc: dict[str, Any], path: str, default: Any = _MISSING) -> Any:
    """Get a nested value using dot notation."""
    current: Any = doc
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current


def set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    """Set a nested value using dot notation."""
    keys = path.split(".")
    current = doc
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$in":
                if _normalize(value) not in [_normalize(v) for v in operand]:
                    return False
            elif op == "$ne":
                if _normalize(value) == _normalize(operand):
                    return False
            else:
                raise StoreError(f"Unsupported filter operator: {op}")
        return True
    return _normalize(value) == _normalize(condition)


def matches(doc: dict[str, Any], filter: Filter | None) -> bool:
    """Check whether a document satisfies a filter.

    A missing field compares equal to ``None``.
    """
    if not filter:
        return True
    for path, condition in filter.items():
        value = get_path(doc, path, None)
        if not _matches_condition(value, condition):
            return False
    return True


def sort_documents(docs: list[dict[str, Any]], sort: Sort | None) -> list[dict[str, Any]]:
    """Sort documents by one or more fields. None sorts before any value."""
    if not sort:
        return docs
    result = list(docs)
    # Stable sorts applied from the least significant key
    for path, direction in reversed(sort):
        result.sort(key=lambda d, p=path: _sort_key(d, p), reverse=direction < 0)
    return result


def _sort_key(doc: dict[str, Any], path: str) -> tuple[bool, Any]:
    value = _normalize(get_path(doc, path, None))
    return (value is not None, value if value is not None else 0)


def _to_plain(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_document()
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


class DocumentCollection(ABC):
    """Abstract base class for a keyed document collection backend."""

    def __init__(self, name: str, primary_key: str):
        self.name = name
        self.primary_key = primary_key
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def _iter_documents(self) -> Iterator[dict[str, Any]]:
        """Iterate over stored documents (may yield internal references)."""
        pass

    @abstractmethod
    def _get(self, key: Any) -> dict[str, Any] | None:
        """Fetch a document by primary key."""
        pass

    @abstractmethod
    def _put(self, doc: dict[str, Any]) -> None:
        """Store a document under its primary key, replacing any existing one."""
        pass

    @abstractmethod
    def _clear(self) -> None:
        """Remove every document."""
        pass

    # -------------------------------------------------------------------------
    # Query operations
    # -------------------------------------------------------------------------

    async def insert_one(self, doc: dict[str, Any]) -> dict[str, Any]:
        key = doc.get(self.primary_key)
        if key is None:
            raise StoreError(f"Document for '{self.name}' is missing '{self.primary_key}'")
        with self._lock:
            if self._get(key) is not None:
                raise DuplicateKeyError(self.name, self.primary_key, key)
            stored = copy.deepcopy(doc)
            self._put(stored)
            return copy.deepcopy(stored)

    async def find_one(self, filter: Filter | None = None, sort: Sort | None = None) -> dict[str, Any] | None:
        docs = await self.find(filter, sort=sort, limit=1)
        return docs[0] if docs else None

    async def find(
        self,
        filter: Filter | None = None,
        sort: Sort | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            docs = [d for d in self._iter_documents() if matches(d, filter)]
            docs = sort_documents(docs, sort)
            if limit is not None:
                docs = docs[:limit]
            return copy.deepcopy(docs)

    async def count(self, filter: Filter | None = None) -> int:
        with self._lock:
            return sum(1 for d in self._iter_documents() if matches(d, filter))

    async def update_one(
        self,
        filter: Filter,
        set_fields: dict[str, Any],
        upsert: bool = False,
        validate: Validator | None = None,
    ) -> bool:
        """Set fields on the first matching document.

        Returns:
            True if a document was updated or inserted.
        """
        with self._lock:
            target = next((d for d in self._iter_documents() if matches(d, filter)), None)
            if target is None:
                if not upsert:
                    return False
                new_doc: dict[str, Any] = {}
                for path, condition in filter.items():
                    if not isinstance(condition, dict):
                        set_path(new_doc, path, condition)
            else:
                new_doc = copy.deepcopy(target)

            for path, value in set_fields.items():
                set_path(new_doc, path, _to_plain(value))

            if validate is not None:
                new_doc = validate(new_doc)
            if new_doc.get(self.primary_key) is None:
                raise StoreError(f"Document for '{self.name}' is missing '{self.primary_key}'")
            self._put(new_doc)
            return True

    async def update_many(
        self,
        filter: Filter,
        set_fields: dict[str, Any],
        validate: Validator | None = None,
    ) -> int:
        with self._lock:
            targets = [copy.deepcopy(d) for d in self._iter_documents() if matches(d, filter)]
            updated = []
            for doc in targets:
                for path, value in set_fields.items():
                    set_path(doc, path, _to_plain(value))
                updated.append(validate(doc) if validate is not None else doc)
            # Validate everything before writing anything
            for doc in updated:
                self._put(doc)
            return len(updated)

    async def delete_all(self) -> None:
        with self._lock:
            self._clear()


T = TypeVar("T", bound=Record)


class RecordCollection(Generic[T]):
    """A collection whose documents are validated against a pydantic model."""

    def __init__(self, backend: DocumentCollection, model: type[T]):
        self._backend = backend
        self._model = model

    @property
    def name(self) -> str:
        return self._backend.name

    @property
    def primary_key(self) -> str:
        return self._backend.primary_key

    @property
    def backend(self) -> DocumentCollection:
        return self._backend

    def _errors(self, exc: ValidationError) -> list[str]:
        return [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        ]

    def validate_document(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Validate a raw document and return its normalized form."""
        try:
            return self._model.model_validate(doc).to_document()
        except ValidationError as e:
            raise RecordValidationError(self.name, self._errors(e)) from e

    def _parse(self, doc: dict[str, Any]) -> T:
        try:
            return self._model.model_validate(doc)
        except ValidationError as e:
            raise RecordValidationError(self.name, self._errors(e)) from e

    async def insert(self, record: T) -> T:
        doc = self.validate_document(record.to_document())
        await self._backend.insert_one(doc)
        return self._parse(doc)

    async def find_one(self, filter: Filter | None = None, sort: Sort | None = None) -> T | None:
        doc = await self._backend.find_one(filter, sort=sort)
        return self._parse(doc) if doc is not None else None

    async def find(
        self,
        filter: Filter | None = None,
        sort: Sort | None = None,
        limit: int | None = None,
    ) -> list[T]:
        docs = await self._backend.find(filter, sort=sort, limit=limit)
        return [self._parse(d) for d in docs]

    async def count(self, filter: Filter | None = None) -> int:
        return await self._backend.count(filter)

    async def update_one(self, filter: Filter, fields: dict[str, Any], upsert: bool = False) -> bool:
        return await self._backend.update_one(
            filter, fields, upsert=upsert, validate=self.validate_document
        )

    async def update_many(self, filter: Filter, fields: dict[str, Any]) -> int:
        return await self._backend.update_many(filter, fields, validate=self.validate_document)

    async def upsert(self, filter: Filter, record: T) -> bool:
        return await self.update_one(filter, record.to_document(), upsert=True)
