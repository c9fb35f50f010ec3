"""
In-memory document store.

Used when neither Firebase nor DATABASE_URL is configured (local dev, tests).
Holds a single nested dict tree, so reads return whole subtrees exactly like
the Realtime Database does. Values are deep-copied in and out; callers never
share references with the tree.
"""
import copy
import threading
from typing import Dict, Any, Optional

from quizzical.features.store.provider import generate_push_key, split_path


class InMemoryDocumentStore:
    """Dict-tree implementation of DocumentStore protocol."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._root: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def _node(self, segments, create: bool = False):
        node = self._root
        for segment in segments:
            child = node.get(segment) if isinstance(node, dict) else None
            if not isinstance(child, dict):
                if not create:
                    return None
                child = {}
                node[segment] = child
            node = child
        return node

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        segments = split_path(path)
        with self._lock:
            parent = self._node(segments[:-1])
            if parent is None or segments[-1] not in parent:
                return None
            return copy.deepcopy(parent[segments[-1]])

    def set(self, path: str, value: Dict[str, Any]) -> None:
        segments = split_path(path)
        with self._lock:
            parent = self._node(segments[:-1], create=True)
            parent[segments[-1]] = copy.deepcopy(value)

    def update(self, path: str, values: Dict[str, Any]) -> None:
        segments = split_path(path)
        with self._lock:
            node = self._node(segments, create=True)
            node.update(copy.deepcopy(values))

    def delete(self, path: str) -> None:
        segments = split_path(path)
        with self._lock:
            parent = self._node(segments[:-1])
            if parent is not None:
                parent.pop(segments[-1], None)

    def push(self, path: str, value: Dict[str, Any]) -> str:
        key = generate_push_key()
        self.set(f"{path.rstrip('/')}/{key}", value)
        return key

    def children(self, path: str) -> Dict[str, Dict[str, Any]]:
        node = self.get(path)
        if not isinstance(node, dict):
            return {}
        return {k: v for k, v in node.items() if isinstance(v, dict)}

    def find_by_child(self, path: str, child: str, value: Any) -> Dict[str, Dict[str, Any]]:
        return {k: v for k, v in self.children(path).items() if v.get(child) == value}

    def dump(self) -> Dict[str, Any]:
        """Snapshot of the whole tree (tests and debugging)."""
        with self._lock:
            return copy.deepcopy(self._root)
