"""
Document store protocol.

Defines the interface for path-addressed JSON stores (Firebase Realtime
Database, the SQL fallback, the in-memory store). Business logic only talks
to this protocol, so backends can be swapped without touching it.

Paths are "/"-separated strings ("users/u1/subscription"). Reading a path
returns the whole subtree stored beneath it, like Firebase does.

There are no transactions across paths.
"""
import time
import uuid
from typing import Protocol, Dict, Any, Optional


class DocumentStore(Protocol):
    """
    Protocol for document stores.

    Implementations must handle:
    - Whole-document reads and overwrites
    - Shallow merges and deletes
    - Auto-keyed appends (error logs)
    - Child lookups by field value (email lookup)
    """

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Read the document at path.

        Returns:
            The stored document (including nested children), or None
        """
        ...

    def set(self, path: str, value: Dict[str, Any]) -> None:
        """Overwrite the document at path (children not in value are removed)."""
        ...

    def update(self, path: str, values: Dict[str, Any]) -> None:
        """Shallow-merge values into the document at path, creating it if missing."""
        ...

    def delete(self, path: str) -> None:
        """Delete the document at path. No-op when missing."""
        ...

    def push(self, path: str, value: Dict[str, Any]) -> str:
        """
        Append value as a new child of path under a generated key.

        Returns:
            The generated child key
        """
        ...

    def children(self, path: str) -> Dict[str, Dict[str, Any]]:
        """All direct children of path, keyed by child key."""
        ...

    def find_by_child(self, path: str, child: str, value: Any) -> Dict[str, Dict[str, Any]]:
        """Direct children of path whose `child` field equals value."""
        ...


class DocumentStoreError(Exception):
    """Raised when a store read or write fails."""
    pass


def split_path(path: str) -> list:
    """Normalize a path into its segments, rejecting empty ones."""
    segments = [s for s in path.strip("/").split("/") if s]
    if not segments:
        raise DocumentStoreError(f"Invalid document path: {path!r}")
    return segments


def generate_push_key() -> str:
    """Chronologically sortable child key (millisecond prefix + random suffix)."""
    return f"{int(time.time() * 1000):013d}-{uuid.uuid4().hex[:12]}"
