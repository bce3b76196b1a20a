"""
Storage adapter interface for the grading service.
Defines the document-store contract that all storage backends must implement.
"""

from dataclasses import dataclass
from typing import Protocol, List, Dict, Any, Optional


class StorageError(RuntimeError):
    """
    Raised by a backend when the underlying storage is unavailable
    or a read/write could not be completed.

    Business code never sees backend-specific exceptions
    (OSError, SQLAlchemyError, ...), only this one.
    """

    def __init__(self, operation: str, collection: str, reason: str):
        super().__init__(f"{operation} on '{collection}' failed: {reason}")
        self.operation = operation
        self.collection = collection
        self.reason = reason


@dataclass(frozen=True)
class UpdateResult:
    """Feedback from an update call."""
    matched_count: int
    modified_count: int


class DocumentStore(Protocol):
    """
    Protocol defining the interface for all storage adapters.

    This allows swapping between the JSON file store and SQLite
    without changing the lifecycle / workflow code.

    NOTE:
    - Documents are plain dicts keyed by "id".
    - Filters and updates use a small MongoDB-style dialect
      (see adapters/query.py for the supported operators).
    - A single-document update is atomic. Nothing spans documents.
    """

    # ========== Reads ==========

    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Return every document of `collection` matching `filter`.

        Returns:
            List of document copies (mutating them does not touch storage).
        """
        ...

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Return the first document matching `filter`, or None.
        """
        ...

    # ========== Writes ==========

    def insert_one(self, collection: str, doc: Dict[str, Any]) -> str:
        """
        Persist a new document.

        Args:
            collection: Target collection name (e.g. "tests")
            doc: Document body. An "id" is generated when missing.

        Returns:
            The document id.
        """
        ...

    def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        """
        Apply `update` to the first document matching `filter`.

        Returns:
            UpdateResult with matched_count in {0, 1}.
        """
        ...

    def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        """
        Apply `update` to every document matching `filter`.
        Each document is updated atomically; the batch as a whole is not.
        """
        ...
