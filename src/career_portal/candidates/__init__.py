"""Candidate profiles."""

from .profiles import ProfileService

__all__ = ["ProfileService"]
