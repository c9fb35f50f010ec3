"""
SQL-backed document store.

Persists the document tree in the `documents` table for deployments that run
on DATABASE_URL instead of Firebase. Each row holds the subtree written at
its path; reads assemble a path's row together with every descendant row.

Every write materializes the affected subtree into a single row at the
written path: descendant rows are folded in and the path is pruned out of
ancestor rows, so exactly one row owns any given field.
"""
import copy
from typing import Dict, Any, Optional, List

from sqlalchemy import select, insert, delete, update, or_
from sqlalchemy.exc import SQLAlchemyError

from quizzical.core.database import get_db_session, documents
from quizzical.features.store.provider import (
    DocumentStoreError,
    generate_push_key,
    split_path,
)


def _join(segments: List[str]) -> str:
    return "/".join(segments)


def _set_nested(target: Dict[str, Any], segments: List[str], value: Any) -> None:
    node = target
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


class SqlDocumentStore:
    """SQLAlchemy implementation of DocumentStore protocol."""

    def _subtree_clause(self, path: str):
        return or_(
            documents.c.path == path,
            documents.c.path.startswith(path + "/", autoescape=True),
        )

    def _nested_in_ancestor(self, session, segments: List[str]) -> Optional[Any]:
        # Only the nearest existing ancestor row can hold fields below this path
        for depth in range(len(segments) - 1, 0, -1):
            ancestor = session.execute(
                select(documents.c.value).where(documents.c.path == _join(segments[:depth]))
            ).fetchone()
            if ancestor is None:
                continue
            node = ancestor.value
            for segment in segments[depth:]:
                if not isinstance(node, dict) or segment not in node:
                    return None
                node = node[segment]
            return copy.deepcopy(node)
        return None

    def _read(self, session, segments: List[str]) -> Optional[Any]:
        path = _join(segments)
        rows = session.execute(
            select(documents.c.path, documents.c.value).where(self._subtree_clause(path))
        ).fetchall()

        result = self._nested_in_ancestor(session, segments)
        # Shallow rows first so deeper rows overlay them
        for row in sorted(rows, key=lambda r: r.path.count("/")):
            if row.path == path:
                result = copy.deepcopy(row.value)
                continue
            if not isinstance(result, dict):
                result = {}
            _set_nested(result, row.path[len(path) + 1:].split("/"), copy.deepcopy(row.value))
        return result

    def _prune_ancestors(self, session, segments: List[str]) -> None:
        for depth in range(len(segments) - 1, 0, -1):
            ancestor_path = _join(segments[:depth])
            row = session.execute(
                select(documents.c.value).where(documents.c.path == ancestor_path)
            ).fetchone()
            if row is None or not isinstance(row.value, dict):
                continue
            value = copy.deepcopy(row.value)
            node = value
            rel = segments[depth:]
            for segment in rel[:-1]:
                node = node.get(segment) if isinstance(node, dict) else None
                if node is None:
                    break
            if isinstance(node, dict) and rel[-1] in node:
                node.pop(rel[-1])
                session.execute(
                    update(documents).where(documents.c.path == ancestor_path).values(value=value)
                )

    def _write(self, session, segments: List[str], value: Optional[Dict[str, Any]]) -> None:
        path = _join(segments)
        session.execute(delete(documents).where(self._subtree_clause(path)))
        self._prune_ancestors(session, segments)
        if value is not None:
            session.execute(
                insert(documents).values(
                    path=path,
                    parent=_join(segments[:-1]),
                    value=copy.deepcopy(value),
                )
            )

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        segments = split_path(path)
        try:
            with get_db_session() as session:
                return self._read(session, segments)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Read failed for {path}: {e}")

    def set(self, path: str, value: Dict[str, Any]) -> None:
        segments = split_path(path)
        try:
            with get_db_session() as session:
                self._write(session, segments, value)
                session.commit()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Write failed for {path}: {e}")

    def update(self, path: str, values: Dict[str, Any]) -> None:
        segments = split_path(path)
        try:
            with get_db_session() as session:
                current = self._read(session, segments)
                merged = dict(current) if isinstance(current, dict) else {}
                merged.update(copy.deepcopy(values))
                self._write(session, segments, merged)
                session.commit()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Update failed for {path}: {e}")

    def delete(self, path: str) -> None:
        segments = split_path(path)
        try:
            with get_db_session() as session:
                self._write(session, segments, None)
                session.commit()
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"Delete failed for {path}: {e}")

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
