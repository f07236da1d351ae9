"""File-based store backend for persistence across coordinator restarts."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from ..exceptions import StoreError
from .base import DocumentCollection

_DATETIME_TAG = "$date"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


class FileCollection(DocumentCollection):
    """Collection stored as one JSON file per document."""

    def __init__(self, name: str, primary_key: str, base_dir: str | Path):
        super().__init__(name, primary_key)
        self._dir = Path(base_dir) / name
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: Any) -> Path:
        # Sanitize key for filesystem
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in str(key))
        return self._dir / f"{safe_key}.json"

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with open(path) as f:
                return json.load(f, object_hook=_decode)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt document {path}: {e}") from e

    def _iter_documents(self) -> Iterator[dict[str, Any]]:
        for path in sorted(self._dir.glob("*.json")):
            yield self._read(path)

    def _get(self, key: Any) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        return self._read(path)

    def _put(self, doc: dict[str, Any]) -> None:
        path = self._path(doc[self.primary_key])

        # Write atomically
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(doc, f, indent=2, default=_encode)
        temp_path.replace(path)

    def _clear(self) -> None:
        for path in self._dir.glob("*.json"):
            path.unlink()
