"""
JSON file storage adapter for the grading service.
Simple file-based storage for local runs, demos and testing.
Only safe for a single process (locking is in-process).
"""
import json
import threading
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional

from adapters.base import StorageError, UpdateResult
from adapters.query import apply_update, matches, select, validate_update


class JsonStore:
    """
    JSON file-based document store.
    Stores each collection in its own JSON file under the data directory.
    Uses atomic file operations for basic consistency.
    """

    def __init__(self, data_dir: str = "data"):
        """
        Initialize the JSON store.

        Args:
            data_dir: Directory to store JSON files
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _file(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _read_file(self, collection: str) -> List[Dict[str, Any]]:
        """Read and parse a collection file."""
        filepath = self._file(collection)
        if not filepath.exists():
            return []
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError("read", collection, str(e)) from e

    def _write_file(self, collection: str, data: List[Dict[str, Any]]) -> None:
        """Write a collection file atomically."""
        filepath = self._file(collection)
        tmp_file = filepath.with_suffix(".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            # Atomic rename
            tmp_file.replace(filepath)
        except OSError as e:
            raise StorageError("write", collection, str(e)) from e

    # ========== Reads ==========

    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return select(self._read_file(collection), filter)

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        found = self.find(collection, filter)
        return found[0] if found else None

    # ========== Writes ==========

    def insert_one(self, collection: str, doc: Dict[str, Any]) -> str:
        record = dict(doc)
        record.setdefault("id", str(uuid.uuid4()))

        with self._lock:
            docs = self._read_file(collection)
            if any(d.get("id") == record["id"] for d in docs):
                raise StorageError("insert", collection, f"duplicate id {record['id']}")
            docs.append(record)
            self._write_file(collection, docs)

        return record["id"]

    def _update(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any], many: bool) -> UpdateResult:
        validate_update(update)
        matched = modified = 0

        with self._lock:
            docs = self._read_file(collection)
            for doc in docs:
                if not matches(doc, filter):
                    continue
                matched += 1
                if apply_update(doc, update):
                    modified += 1
                if not many:
                    break

            if modified:
                self._write_file(collection, docs)

        return UpdateResult(matched_count=matched, modified_count=modified)

    def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        return self._update(collection, filter, update, many=False)

    def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        return self._update(collection, filter, update, many=True)
