"""Typed errors raised by the application and matching engine.

Business outcomes (ineligible submissions, illegal transitions, missing
permissions) are raised as these specific types so callers can render a
precise message. Infrastructure failures from the store surface as
``TransientStoreError``.
"""

from typing import Any, Dict, Optional


class CareerPortalError(Exception):
    """Base class for all engine errors."""

    code = "career_portal_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(CareerPortalError):
    """Referenced entity is absent (or hidden from the caller)."""

    code = "not_found"

    def __init__(self, collection: str, entity_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"{collection} '{entity_id}' not found",
            collection=collection,
            entity_id=entity_id,
        )
        self.collection = collection
        self.entity_id = entity_id


class IneligibleError(CareerPortalError):
    """Eligibility check failed; ``reason`` is an ``IneligibilityReason``."""

    code = "ineligible"

    def __init__(self, reason: Any, message: Optional[str] = None):
        reason_value = getattr(reason, "value", reason)
        super().__init__(message or f"Application not allowed: {reason_value}")
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["reason"] = getattr(self.reason, "value", self.reason)
        return payload


class InvalidTransitionError(CareerPortalError):
    """Illegal state change attempted."""

    code = "invalid_transition"

    def __init__(self, current: Any, target: Any, message: Optional[str] = None):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            message or f"Cannot move from '{current_value}' to '{target_value}'",
            current=current_value,
            target=target_value,
        )
        self.current = current
        self.target = target


class ForbiddenError(CareerPortalError):
    """Actor lacks permission for the requested mutation."""

    code = "forbidden"


class ConflictError(CareerPortalError):
    """Concurrent write could not be serialized after retries."""

    code = "conflict"


class TransientStoreError(CareerPortalError):
    """Store call failed for infrastructure reasons (network, timeout)."""

    code = "store_unavailable"
