import copy
import threading
import uuid
from collections import defaultdict
from typing import Callable, Iterable, List, Optional, Tuple

from errors import StoreError
from storage.base import FILTER_OPS, health_document, merge_fields
from storage.collections import HEALTH_CHECKS


def _matches(doc: dict, filters) -> bool:
    for field, op, value in filters:
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter operator: {op}")
        if field not in doc:
            return False
        current = doc[field]
        if op != "==" and (current is None or value is None):
            return False
        try:
            if not FILTER_OPS[op](current, value):
                return False
        except TypeError:
            return False
    return True


class _MemoryTransaction:
    def __init__(self, store):
        self._store = store
        self.writes = []

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        return self._store.get(collection, doc_id)

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False):
        self.writes.append(("set", collection, doc_id, data, merge))

    def update(self, collection: str, doc_id: str, data: dict):
        self.writes.append(("update", collection, doc_id, data, True))


class MemoryStore:
    """In-process store with the same contract as FirestoreStore.

    Used for local development (STORE_BACKEND=memory) and the test suite.
    A single re-entrant lock serializes writes and whole transactions, and
    transaction writes are staged and committed together.
    """

    def __init__(self):
        self._collections = defaultdict(dict)
        self._lock = threading.RLock()

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    def add(self, collection: str, data: dict) -> str:
        doc_id = self.new_id(collection)
        self.set(collection, doc_id, data)
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._collections[collection].get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False):
        with self._lock:
            current = self._collections[collection].get(doc_id) if merge else None
            self._collections[collection][doc_id] = merge_fields(current, data)

    def query(
        self,
        collection: str,
        filters: Iterable[Tuple[str, str, object]] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Tuple[str, dict]]:
        filters = list(filters or ())
        with self._lock:
            rows = [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in self._collections[collection].items()
                if _matches(doc, filters)
            ]
        if order_by:
            rows = [row for row in rows if row[1].get(order_by) is not None]
            rows.sort(key=lambda row: row[1][order_by], reverse=descending)
        if offset:
            rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, collection: str, filters: Iterable[Tuple[str, str, object]] = ()) -> int:
        return len(self.query(collection, filters))

    def run_transaction(self, fn: Callable):
        with self._lock:
            transaction = _MemoryTransaction(self)
            result = fn(transaction)

            staged = {}
            for op, collection, doc_id, data, merge in transaction.writes:
                key = (collection, doc_id)
                current = staged[key] if key in staged else self._collections[collection].get(doc_id)
                if op == "update" and current is None:
                    raise StoreError(f"No document to update: {collection}/{doc_id}")
                staged[key] = merge_fields(current if merge else None, data)

            for (collection, doc_id), doc in staged.items():
                self._collections[collection][doc_id] = doc
            return result

    def ping(self, environment: str = "unknown") -> dict:
        self.set(HEALTH_CHECKS, "test", health_document(environment))
        return {"ok": True, "message": "Memory store write/read OK"}

    def close(self):
        with self._lock:
            self._collections.clear()
