import logging
from typing import Callable, Iterable, List, Optional, Tuple

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError

from errors import StoreError
from storage.base import FILTER_OPS, Increment, health_document
from storage.collections import HEALTH_CHECKS

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, object]


def _to_firestore(data: dict) -> dict:
    """Swaps Increment sentinels for Firestore field transforms."""
    return {
        key: firestore.Increment(value.value) if isinstance(value, Increment) else value
        for key, value in data.items()
    }


class _FirestoreTransaction:
    """Collection/document addressed view over a google-cloud-firestore transaction."""

    def __init__(self, db, transaction):
        self._db = db
        self._transaction = transaction

    def _doc(self, collection: str, doc_id: str):
        return self._db.collection(collection).document(doc_id)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self._doc(collection, doc_id).get(transaction=self._transaction)
        return snapshot.to_dict() if snapshot.exists else None

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False):
        self._transaction.set(self._doc(collection, doc_id), _to_firestore(data), merge=merge)

    def update(self, collection: str, doc_id: str, data: dict):
        self._transaction.update(self._doc(collection, doc_id), _to_firestore(data))


class FirestoreStore:
    """Store backed by Cloud Firestore.

    Transactions use optimistic concurrency with the client's built-in retry:
    every document read inside ``run_transaction`` is checked again at commit,
    so two writers racing on the same document never lose an update. A
    transaction that keeps aborting past the retry limit raises StoreError.
    """

    def __init__(self, client):
        self._db = client

    def _wrap(self, action: str, exc: Exception) -> StoreError:
        logger.error("Firestore %s failed: %s", action, exc)
        return StoreError(f"Firestore {action} failed")

    def _query(self, collection, filters, order_by=None, descending=False, limit=None, offset=None):
        query = self._db.collection(collection)
        for field, op, value in filters or ():
            if op not in FILTER_OPS:
                raise ValueError(f"Unsupported filter operator: {op}")
            query = query.where(filter=firestore.FieldFilter(field, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query

    def new_id(self, collection: str) -> str:
        return self._db.collection(collection).document().id

    def add(self, collection: str, data: dict) -> str:
        try:
            _, ref = self._db.collection(collection).add(_to_firestore(data))
        except GoogleAPIError as e:
            raise self._wrap(f"add to {collection}", e) from e
        return ref.id

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            snapshot = self._db.collection(collection).document(doc_id).get()
        except GoogleAPIError as e:
            raise self._wrap(f"read of {collection}/{doc_id}", e) from e
        return snapshot.to_dict() if snapshot.exists else None

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False):
        try:
            self._db.collection(collection).document(doc_id).set(_to_firestore(data), merge=merge)
        except GoogleAPIError as e:
            raise self._wrap(f"write of {collection}/{doc_id}", e) from e

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Tuple[str, dict]]:
        query = self._query(collection, filters, order_by, descending, limit, offset)
        try:
            return [(doc.id, doc.to_dict()) for doc in query.stream()]
        except GoogleAPIError as e:
            raise self._wrap(f"query of {collection}", e) from e

    def count(self, collection: str, filters: Iterable[Filter] = ()) -> int:
        query = self._query(collection, filters)
        try:
            results = query.count().get()
        except GoogleAPIError as e:
            raise self._wrap(f"count of {collection}", e) from e
        return int(results[0][0].value)

    def run_transaction(self, fn: Callable):
        transaction = self._db.transaction()

        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreTransaction(self._db, transaction))

        try:
            return _run(transaction)
        except (GoogleAPIError, ValueError) as e:
            # ValueError: commit still aborted after the client's retries
            raise self._wrap("transaction", e) from e

    def ping(self, environment: str = "unknown") -> dict:
        logger.debug("Running Firestore health check")
        try:
            self._db.collection(HEALTH_CHECKS).document("test").set(health_document(environment))
        except Exception as e:
            logger.error("Firestore health check failed: %s", e)
            return {"ok": False, "message": str(e)}
        return {"ok": True, "message": "Firestore write/read OK"}

    def close(self):
        from storage.client import close_firestore
        close_firestore(self._db)
