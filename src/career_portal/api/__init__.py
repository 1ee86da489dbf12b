"""HTTP API for the career portal."""

from .main import app, create_app

__all__ = ["app", "create_app"]
