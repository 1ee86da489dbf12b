"""Candidate notification recording."""

from .notifier import Notifier, StoreNotifier

__all__ = ["Notifier", "StoreNotifier"]
