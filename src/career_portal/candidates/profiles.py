"""Candidate profile storage."""

from typing import Any, Optional

from career_portal.config import settings
from career_portal.core.errors import NotFoundError
from career_portal.core.models import Candidate, utcnow
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)


class ProfileService:
    """Reads and saves the profiles the evaluator and scorer work from."""

    def __init__(self, store: EntityStore, timeout: Optional[float] = None):
        self.logger = logger.bind(component="profile_service")
        self.store = store
        self.timeout = timeout or settings.store_timeout_seconds

    async def _call(self, awaitable, operation: str) -> Any:
        return await call_with_timeout(awaitable, self.timeout, operation)

    async def get_profile(self, candidate_id: str) -> Candidate:
        document = await self._call(
            self.store.get(Collections.CANDIDATES, candidate_id), "get_profile"
        )
        return Candidate.model_validate(document)

    async def find_profile(self, candidate_id: str) -> Optional[Candidate]:
        """Like ``get_profile`` but returns None for unknown candidates."""
        try:
            return await self.get_profile(candidate_id)
        except NotFoundError:
            return None

    async def save_profile(self, candidate: Candidate) -> Candidate:
        """Create the profile on first save, merge on later saves."""
        existing = await self.find_profile(candidate.id)
        if existing is None:
            await self._call(
                self.store.create(Collections.CANDIDATES, candidate.model_dump(), candidate.id),
                "create_profile",
            )
            self.logger.info("Profile created", candidate_id=candidate.id)
            return candidate

        changes = candidate.model_dump(exclude={"id", "created_at"})
        changes["updated_at"] = utcnow()
        await self._call(
            self.store.update(Collections.CANDIDATES, candidate.id, changes),
            "update_profile",
        )
        self.logger.info("Profile updated", candidate_id=candidate.id)
        return existing.model_copy(update=changes)
