"""In-memory entity store.

Reference implementation of ``EntityStore`` used by the HTTP app in
development and by the test-suite. Every operation yields to the event loop
before touching state, so concurrent coroutines interleave the way they would
against a remote store, while each individual primitive stays atomic.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional

from career_portal.core.errors import ConflictError, NotFoundError, TransientStoreError
from career_portal.core.models import new_id
from career_portal.store.base import (
    Document,
    EntityStore,
    Filter,
    OrderBy,
    SnapshotEvent,
    Subscription,
    matches,
    sort_documents,
)
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class MemorySubscription(Subscription):
    """Queue-backed live query."""

    def __init__(
        self,
        store: "InMemoryEntityStore",
        collection: str,
        filters: Optional[List[Filter]],
        order_by: Optional[List[OrderBy]],
    ):
        self.store = store
        self.collection = collection
        self.filters = list(filters or [])
        self.order_by = list(order_by or [])
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, event: SnapshotEvent) -> None:
        if self.closed:
            return
        self._queue.put_nowait(event)
        if event.is_error:
            # Listener terminates after reporting an error
            self._close()

    def unsubscribe(self) -> None:
        if not self.closed:
            self._close()

    def _close(self) -> None:
        self.closed = True
        self.store._detach(self)
        self._queue.put_nowait(_CLOSED)

    async def __anext__(self) -> SnapshotEvent:
        event = await self._queue.get()
        if event is _CLOSED:
            raise StopAsyncIteration
        return event


class InMemoryEntityStore(EntityStore):
    """Dict-backed store with live subscriptions and fault injection."""

    def __init__(self, latency: float = 0.0):
        self.logger = logger.bind(component="memory_store")
        self.latency = latency
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._subscriptions: List[MemorySubscription] = []
        self._failures: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, count: int = 1) -> None:
        """Make the next ``count`` calls of ``operation`` raise ``TransientStoreError``."""
        self._failures[operation] = self._failures.get(operation, 0) + count

    def emit_error(self, collection: str, error: Optional[Exception] = None) -> int:
        """Deliver an error event to every live query on ``collection``."""
        error = error or TransientStoreError("Listener connection lost", collection=collection)
        targets = [sub for sub in self._subscriptions if sub.collection == collection]
        for subscription in targets:
            subscription.push(SnapshotEvent(error=error))
        return len(targets)

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def _enter(self, operation: str) -> None:
        await asyncio.sleep(self.latency)
        remaining = self._failures.get(operation, 0)
        if remaining:
            self._failures[operation] = remaining - 1
            self.logger.debug("Injected store failure", operation=operation)
            raise TransientStoreError(f"Store operation '{operation}' failed", operation=operation)

    # ------------------------------------------------------------------
    # EntityStore
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._collections.setdefault(name, {})

    def _require(self, collection: str, entity_id: str) -> Document:
        try:
            return self._collection(collection)[entity_id]
        except KeyError:
            raise NotFoundError(collection, entity_id) from None

    def _select(
        self,
        collection: str,
        filters: Optional[List[Filter]],
        order_by: Optional[List[OrderBy]],
    ) -> List[Document]:
        selected = [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if matches(doc, filters)
        ]
        return sort_documents(selected, order_by)

    async def get(self, collection: str, entity_id: str) -> Document:
        await self._enter("get")
        return copy.deepcopy(self._require(collection, entity_id))

    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[OrderBy]] = None,
    ) -> List[Document]:
        await self._enter("query")
        return self._select(collection, filters, order_by)

    def subscribe(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[OrderBy]] = None,
    ) -> Subscription:
        subscription = MemorySubscription(self, collection, filters, order_by)
        self._subscriptions.append(subscription)
        subscription.push(SnapshotEvent(documents=self._select(collection, filters, order_by)))
        return subscription

    async def create(self, collection: str, data: Document, entity_id: Optional[str] = None) -> str:
        await self._enter("create")
        entity_id = entity_id or data.get("id") or new_id()
        documents = self._collection(collection)
        if entity_id in documents:
            raise ConflictError(f"{collection} '{entity_id}' already exists", entity_id=entity_id)
        document = copy.deepcopy(data)
        document["id"] = entity_id
        documents[entity_id] = document
        self._publish(collection)
        return entity_id

    async def update(self, collection: str, entity_id: str, data: Document) -> None:
        await self._enter("update")
        document = self._require(collection, entity_id)
        document.update(copy.deepcopy(data))
        document["id"] = entity_id
        self._publish(collection)

    async def delete(self, collection: str, entity_id: str) -> None:
        await self._enter("delete")
        self._require(collection, entity_id)
        del self._collection(collection)[entity_id]
        self._publish(collection)

    async def atomic_increment(self, collection: str, entity_id: str, field_name: str, delta: int) -> None:
        await self._enter("atomic_increment")
        document = self._require(collection, entity_id)
        document[field_name] = (document.get(field_name) or 0) + delta
        self._publish(collection)

    async def compare_and_set(
        self, collection: str, entity_id: str, field_name: str, expected: Any, value: Any
    ) -> bool:
        await self._enter("compare_and_set")
        document = self._require(collection, entity_id)
        if document.get(field_name) != expected:
            return False
        document[field_name] = value
        self._publish(collection)
        return True

    # ------------------------------------------------------------------
    # Live queries
    # ------------------------------------------------------------------

    def _publish(self, collection: str) -> None:
        for subscription in list(self._subscriptions):
            if subscription.collection != collection:
                continue
            subscription.push(
                SnapshotEvent(documents=self._select(collection, subscription.filters, subscription.order_by))
            )

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
