"""Opportunity catalog: posting, closing and candidate-visible listings."""

from datetime import datetime
from typing import Any, Iterable, List, Optional

from career_portal.config import settings
from career_portal.core.errors import ForbiddenError, NotFoundError
from career_portal.core.models import (
    OWNER_KIND,
    Actor,
    ApprovalState,
    EducationLevel,
    Opportunity,
    OpportunityKind,
    OpportunityStatus,
    Organization,
)
from career_portal.organizations.approval import is_candidate_visible
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger, log_actor

logger = get_logger(__name__)


class OpportunityCatalog:
    """Course and job postings as organizations and candidates see them."""

    def __init__(self, store: EntityStore, timeout: Optional[float] = None):
        self.logger = logger.bind(component="opportunity_catalog")
        self.store = store
        self.timeout = timeout or settings.store_timeout_seconds

    async def _call(self, awaitable, operation: str) -> Any:
        return await call_with_timeout(awaitable, self.timeout, operation)

    async def _get_organization(self, organization_id: str) -> Organization:
        document = await self._call(
            self.store.get(Collections.ORGANIZATIONS, organization_id), "get_organization"
        )
        return Organization.model_validate(document)

    async def get_opportunity(self, opportunity_id: str) -> Opportunity:
        """Unfiltered read, for the owning organization and admins."""
        document = await self._call(
            self.store.get(Collections.OPPORTUNITIES, opportunity_id), "get_opportunity"
        )
        return Opportunity.model_validate(document)

    async def create_opportunity(
        self,
        actor: Actor,
        organization_id: str,
        kind: OpportunityKind,
        title: str,
        required_skills: Optional[Iterable[str]] = None,
        min_education: Optional[EducationLevel] = None,
        prerequisites: Optional[str] = None,
        capacity: Optional[int] = None,
        deadline: Optional[datetime] = None,
    ) -> Opportunity:
        """
        Post a course (institutions) or a job (companies).

        Raises:
            ForbiddenError: actor is not staff of the organization, or the
                organization kind cannot offer this opportunity kind
            NotFoundError: organization does not exist
        """
        if actor is None or not actor.acts_for(organization_id):
            raise ForbiddenError(
                "Only staff of the organization may post opportunities",
                organization_id=organization_id,
            )
        organization = await self._get_organization(organization_id)
        kind = OpportunityKind(kind)
        if organization.kind != OWNER_KIND[kind]:
            raise ForbiddenError(
                f"A {organization.kind.value} cannot post a {kind.value}",
                organization_id=organization_id,
            )

        opportunity = Opportunity(
            kind=kind,
            organization_id=organization_id,
            title=title,
            required_skills=set(required_skills or ()),
            min_education=min_education,
            prerequisites=prerequisites,
            capacity=capacity,
            deadline=deadline,
        )
        await self._call(
            self.store.create(Collections.OPPORTUNITIES, opportunity.model_dump(), opportunity.id),
            "create_opportunity",
        )
        self.logger.info(
            "Opportunity posted",
            opportunity_id=opportunity.id,
            organization_id=organization_id,
            kind=kind.value,
            title=title,
            **log_actor(actor)
        )
        return opportunity

    async def close_opportunity(self, opportunity_id: str, actor: Actor) -> Opportunity:
        """Stop accepting applications; existing applications are kept."""
        opportunity = await self.get_opportunity(opportunity_id)
        if actor is None or not actor.acts_for(opportunity.organization_id):
            raise ForbiddenError(
                "Only the owning organization may close an opportunity",
                opportunity_id=opportunity_id,
            )
        await self._call(
            self.store.update(
                Collections.OPPORTUNITIES, opportunity_id, {"status": OpportunityStatus.CLOSED}
            ),
            "close_opportunity",
        )
        self.logger.info("Opportunity closed", opportunity_id=opportunity_id, **log_actor(actor))
        return opportunity.model_copy(update={"status": OpportunityStatus.CLOSED})

    async def list_organization_opportunities(
        self, organization_id: str, kind: Optional[OpportunityKind] = None
    ) -> List[Opportunity]:
        filters = [("organization_id", "==", organization_id)]
        if kind:
            filters.append(("kind", "==", OpportunityKind(kind)))
        documents = await self._call(
            self.store.query(Collections.OPPORTUNITIES, filters, order_by=[("created_at", True)]),
            "list_organization_opportunities",
        )
        return [Opportunity.model_validate(doc) for doc in documents]

    async def _visible_organization_ids(self) -> set:
        documents = await self._call(
            self.store.query(
                Collections.ORGANIZATIONS,
                [("approval_state", "==", ApprovalState.APPROVED), ("is_active", "==", True)],
            ),
            "visible_organizations",
        )
        return {doc["id"] for doc in documents}

    async def list_visible_opportunities(self, kind: Optional[OpportunityKind] = None) -> List[Opportunity]:
        """Active opportunities of approved, active organizations."""
        filters = [("status", "==", OpportunityStatus.ACTIVE)]
        if kind:
            filters.append(("kind", "==", OpportunityKind(kind)))
        visible = await self._visible_organization_ids()
        if not visible:
            return []
        filters.append(("organization_id", "in", visible))
        documents = await self._call(
            self.store.query(Collections.OPPORTUNITIES, filters, order_by=[("created_at", True)]),
            "list_visible_opportunities",
        )
        return [Opportunity.model_validate(doc) for doc in documents]

    async def get_visible_opportunity(self, opportunity_id: str) -> Opportunity:
        """Candidate read; hidden organizations make the opportunity not found."""
        opportunity = await self.get_opportunity(opportunity_id)
        try:
            organization = await self._get_organization(opportunity.organization_id)
        except NotFoundError:
            organization = None
        if not is_candidate_visible(organization):
            raise NotFoundError(Collections.OPPORTUNITIES, opportunity_id)
        return opportunity
