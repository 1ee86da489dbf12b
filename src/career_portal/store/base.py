"""Entity store interface consumed by the engine.

The persistent document store is an external collaborator. The engine only
relies on the primitives declared here: keyed CRUD, filtered queries, live
subscriptions that yield whole-result snapshots, and two serialized counter
primitives (atomic increment and compare-and-set).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from career_portal.core.errors import TransientStoreError
from career_portal.core.models import utcnow

# (field, operator, value)
Filter = Tuple[str, str, Any]
# (field, descending)
OrderBy = Tuple[str, bool]

Document = Dict[str, Any]


class Collections:
    """Collection names used by the engine."""
    CANDIDATES = "candidates"
    OPPORTUNITIES = "opportunities"
    APPLICATIONS = "applications"
    ORGANIZATIONS = "organizations"
    ADMISSIONS = "admissions"
    NOTIFICATIONS = "notifications"


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda actual, expected: actual == expected,
    "!=": lambda actual, expected: actual != expected,
    "<": lambda actual, expected: actual is not None and actual < expected,
    "<=": lambda actual, expected: actual is not None and actual <= expected,
    ">": lambda actual, expected: actual is not None and actual > expected,
    ">=": lambda actual, expected: actual is not None and actual >= expected,
    "in": lambda actual, expected: actual in expected,
    "not_in": lambda actual, expected: actual not in expected,
    "contains": lambda actual, expected: actual is not None and expected in actual,
}


def matches(document: Document, filters: Optional[Iterable[Filter]]) -> bool:
    """Check a document against every filter (logical AND)."""
    for field_name, operator, expected in filters or ():
        try:
            compare = _OPERATORS[operator]
        except KeyError:
            raise ValueError(f"Unsupported filter operator: {operator}") from None
        if not compare(document.get(field_name), expected):
            return False
    return True


def sort_documents(documents: List[Document], order_by: Optional[Sequence[OrderBy]]) -> List[Document]:
    """Stable multi-key sort; missing values sort first."""
    for field_name, descending in reversed(list(order_by or ())):
        documents.sort(
            key=lambda doc: (0,) if doc.get(field_name) is None else (1, doc.get(field_name)),
            reverse=descending,
        )
    return documents


@dataclass
class SnapshotEvent:
    """One delivery from a live query: the full result set, or an error."""
    documents: List[Document] = field(default_factory=list)
    error: Optional[Exception] = None
    received_at: datetime = field(default_factory=utcnow)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_empty(self) -> bool:
        return not self.is_error and not self.documents


class Subscription(ABC):
    """Cancellable stream of snapshot events for one live query.

    Iteration ends after ``unsubscribe()`` or after an error event; a
    terminated subscription is never resumed, callers subscribe again.
    """

    collection: str
    filters: List[Filter]

    def __aiter__(self) -> "Subscription":
        return self

    @abstractmethod
    async def __anext__(self) -> SnapshotEvent:
        ...

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering events and release the listener."""


class EntityStore(ABC):
    """Async document store adapter."""

    @abstractmethod
    async def get(self, collection: str, entity_id: str) -> Document:
        """Fetch one document; raises ``NotFoundError`` when absent."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[OrderBy]] = None,
    ) -> List[Document]:
        """Return every document matching all filters."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[OrderBy]] = None,
    ) -> Subscription:
        """Open a live query; the first event is the current result set."""

    @abstractmethod
    async def create(self, collection: str, data: Document, entity_id: Optional[str] = None) -> str:
        """Insert a document and return its id."""

    @abstractmethod
    async def update(self, collection: str, entity_id: str, data: Document) -> None:
        """Merge fields into an existing document."""

    @abstractmethod
    async def delete(self, collection: str, entity_id: str) -> None:
        """Remove a document."""

    @abstractmethod
    async def atomic_increment(self, collection: str, entity_id: str, field_name: str, delta: int) -> None:
        """Add ``delta`` to a numeric field without a read-modify-write race."""

    @abstractmethod
    async def compare_and_set(
        self, collection: str, entity_id: str, field_name: str, expected: Any, value: Any
    ) -> bool:
        """Set ``field_name`` to ``value`` only if it currently equals ``expected``."""


async def call_with_timeout(awaitable: Awaitable[Any], timeout: float, operation: str) -> Any:
    """Run a store call under the client timeout policy."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransientStoreError(
            f"Store operation '{operation}' timed out after {timeout}s",
            operation=operation,
        ) from e
