"""Live dashboard views over store subscriptions.

Each dashboard registers several named live queries. Snapshots from the
store are folded into a per-query ``ViewState`` with a no-flicker policy:

- a non-empty snapshot replaces the whole view
- an empty snapshot never clears a non-empty view
- an error snapshot never clears a view; it only marks it stale

Because of that policy a view that legitimately becomes empty keeps showing
its last rows until ``refresh()`` is called, which replaces the view
unconditionally.

Queries registered with ``keep_alive=True`` stay subscribed across
``close()`` so notification feeds keep updating after a dashboard is torn
down; ``close(force=True)`` ends them too.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from career_portal.config import settings
from career_portal.core.errors import CareerPortalError
from career_portal.core.models import utcnow
from career_portal.store.base import (
    Document,
    EntityStore,
    Filter,
    OrderBy,
    SnapshotEvent,
    Subscription,
    call_with_timeout,
)
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ViewState:
    """What a dashboard currently shows for one live query."""
    key: str
    documents: List[Document] = field(default_factory=list)
    stale: bool = False
    last_error: Optional[Exception] = None
    updated_at: Optional[datetime] = None
    loaded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.documents


@dataclass
class LiveQuery:
    """A registered query and the task feeding it."""
    key: str
    collection: str
    filters: List[Filter] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    keep_alive: bool = False
    task: Optional[asyncio.Task] = None
    subscription: Optional[Subscription] = None
    resubscriptions: int = 0

    @property
    def attached(self) -> bool:
        return self.task is not None and not self.task.done()


ViewListener = Callable[[str, ViewState], None]


class LiveViewSynchronizer:
    """Keeps a dashboard's views in step with the store."""

    def __init__(
        self,
        store: EntityStore,
        resubscribe_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.logger = logger.bind(component="live_view")
        self.store = store
        self.resubscribe_delay = (
            settings.resubscribe_delay_seconds if resubscribe_delay is None else resubscribe_delay
        )
        self.timeout = timeout or settings.store_timeout_seconds

        self.queries: Dict[str, LiveQuery] = {}
        self.views: Dict[str, ViewState] = {}
        self._listeners: List[ViewListener] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        key: str,
        collection: str,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[List[OrderBy]] = None,
        keep_alive: bool = False,
    ) -> ViewState:
        """Declare a named query; its view starts empty and unloaded."""
        if key in self.queries:
            raise ValueError(f"Live query '{key}' is already registered")
        self.queries[key] = LiveQuery(
            key=key,
            collection=collection,
            filters=list(filters or []),
            order_by=list(order_by or []),
            keep_alive=keep_alive,
        )
        self.views[key] = ViewState(key=key)
        return self.views[key]

    def state(self, key: str) -> ViewState:
        try:
            return self.views[key]
        except KeyError:
            raise KeyError(f"Unknown live query '{key}'") from None

    def add_listener(self, listener: ViewListener) -> None:
        """Call ``listener(key, state)`` whenever a view changes."""
        self._listeners.append(listener)

    def _emit(self, key: str, state: ViewState) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, state)
            except Exception as e:
                self.logger.error("View listener failed", key=key, error=str(e))

    # ------------------------------------------------------------------
    # Snapshot folding
    # ------------------------------------------------------------------

    def on_snapshot(self, key: str, event: SnapshotEvent) -> ViewState:
        """Fold one snapshot into the view for ``key``."""
        state = self.state(key)

        if event.is_error:
            state.stale = True
            state.last_error = event.error
            self.logger.warning(
                "Live query error, keeping last view",
                key=key,
                rows=len(state.documents),
                error=str(event.error)
            )
            self._emit(key, state)
            return state

        if event.is_empty and not state.is_empty:
            self.logger.debug("Ignoring empty snapshot", key=key, rows=len(state.documents))
            return state

        state.documents = list(event.documents)
        state.stale = False
        state.last_error = None
        state.updated_at = event.received_at
        state.loaded = True
        self._emit(key, state)
        return state

    async def refresh(self, key: str) -> ViewState:
        """Re-read the query once and replace the view, even with no rows.

        Store errors propagate; the view is left untouched in that case.
        """
        query = self.queries.get(key)
        if query is None:
            raise KeyError(f"Unknown live query '{key}'")

        documents = await call_with_timeout(
            self.store.query(query.collection, query.filters, query.order_by),
            self.timeout,
            "refresh_view",
        )

        state = self.views[key]
        state.documents = documents
        state.stale = False
        state.last_error = None
        state.updated_at = utcnow()
        state.loaded = True
        self.logger.debug("View refreshed", key=key, rows=len(documents))
        self._emit(key, state)
        return state

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def attach(self, key: str) -> LiveQuery:
        """Start feeding the view from a live subscription.

        Must be called from a running event loop.
        """
        query = self.queries.get(key)
        if query is None:
            raise KeyError(f"Unknown live query '{key}'")
        if query.attached:
            return query

        query.task = asyncio.create_task(self._consume(query), name=f"live-view:{key}")
        self.logger.info(
            "Live query attached",
            key=key,
            collection=query.collection,
            keep_alive=query.keep_alive
        )
        return query

    async def _consume(self, query: LiveQuery) -> None:
        while True:
            try:
                await self._follow(query)
            except CareerPortalError as e:
                # Listener setup or delivery failed outside the event stream
                self.on_snapshot(query.key, SnapshotEvent(error=e))

            # Stream ended without being cancelled: subscribe again from scratch
            query.resubscriptions += 1
            self.logger.info(
                "Re-subscribing live query",
                key=query.key,
                attempt=query.resubscriptions,
                delay=self.resubscribe_delay
            )
            await asyncio.sleep(self.resubscribe_delay)

    async def _follow(self, query: LiveQuery) -> None:
        """Feed one subscription into the view until it ends or reports an error."""
        subscription = self.store.subscribe(query.collection, query.filters, query.order_by)
        query.subscription = subscription
        try:
            async for event in subscription:
                self.on_snapshot(query.key, event)
                if event.is_error:
                    break
        finally:
            subscription.unsubscribe()
            query.subscription = None

    async def detach(self, key: str) -> None:
        """Cancel the feeding task and release the subscription."""
        query = self.queries.get(key)
        if query is None or query.task is None:
            return

        task = query.task
        query.task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        if query.subscription is not None:
            query.subscription.unsubscribe()
            query.subscription = None
        self.logger.info("Live query detached", key=key)

    async def close(self, force: bool = False) -> List[str]:
        """Detach every query except keep-alive ones (unless forced).

        Returns:
            Keys of queries left running
        """
        left_active = []
        for key, query in list(self.queries.items()):
            if query.keep_alive and not force:
                if query.attached:
                    left_active.append(key)
                continue
            await self.detach(key)

        self.logger.info("Live views closed", force=force, left_active=left_active)
        return left_active
