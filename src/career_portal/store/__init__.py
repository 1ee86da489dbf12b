"""Entity store adapter interface and in-memory implementation."""

from .base import (
    Collections,
    Document,
    EntityStore,
    Filter,
    OrderBy,
    SnapshotEvent,
    Subscription,
    call_with_timeout,
)
from .memory import InMemoryEntityStore, MemorySubscription

__all__ = [
    "Collections",
    "Document",
    "EntityStore",
    "Filter",
    "OrderBy",
    "SnapshotEvent",
    "Subscription",
    "call_with_timeout",
    "InMemoryEntityStore",
    "MemorySubscription",
]
