"""Live view synchronization."""

from .live_view import LiveQuery, LiveViewSynchronizer, ViewState

__all__ = ["LiveQuery", "LiveViewSynchronizer", "ViewState"]
