"""In-memory document store."""

import copy
import threading
import uuid
from typing import Any, Iterable

from coop_loans.exceptions import EntityNotFoundError
from coop_loans.store.base import Filter, matches, normalize_filters


class InMemoryDocumentStore:
    """Dict-of-dicts store for tests, scripts and the walkthrough scenario.

    Documents are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Get a document by id, or None."""
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Add a document under a generated id and return the id."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or replace a document."""
        with self._lock:
            self._collection(collection)[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise EntityNotFoundError(f"{collection}/{doc_id} not found")
            docs[doc_id].update(copy.deepcopy(changes))

    def query(
        self, collection: str, filters: Iterable[Filter] = ()
    ) -> list[dict[str, Any]]:
        """Documents matching every filter, in no particular order."""
        normalized = normalize_filters(filters)
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collection(collection).values()
                if matches(doc, normalized)
            ]

    def summary(self) -> dict[str, int]:
        """Return document counts per collection."""
        with self._lock:
            return {name: len(docs) for name, docs in self._collections.items()}
