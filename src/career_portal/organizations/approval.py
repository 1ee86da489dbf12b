"""Admin approval workflow for institutions and companies."""

from typing import Any, Dict, FrozenSet, List, Optional

from career_portal.config import settings
from career_portal.core.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from career_portal.core.models import (
    Actor,
    ApprovalState,
    Organization,
    OrganizationKind,
    utcnow,
)
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger, log_actor

logger = get_logger(__name__)

APPROVAL_TRANSITIONS: Dict[ApprovalState, FrozenSet[ApprovalState]] = {
    ApprovalState.PENDING: frozenset({ApprovalState.APPROVED, ApprovalState.REJECTED}),
    ApprovalState.APPROVED: frozenset(),
    ApprovalState.REJECTED: frozenset(),
}

# Decisions an admin may reverse explicitly
OVERRIDE_TRANSITIONS: Dict[ApprovalState, FrozenSet[ApprovalState]] = {
    ApprovalState.APPROVED: frozenset({ApprovalState.REJECTED}),
    ApprovalState.REJECTED: frozenset({ApprovalState.APPROVED}),
}


def is_candidate_visible(organization: Optional[Organization]) -> bool:
    """Opportunities are listed only for approved, active organizations."""
    return (
        organization is not None
        and organization.approval_state == ApprovalState.APPROVED
        and organization.is_active
    )


class ApprovalWorkflowManager:
    """Owns organization onboarding state and the active/suspended flag."""

    def __init__(self, store: EntityStore, timeout: Optional[float] = None):
        self.logger = logger.bind(component="approval_workflow")
        self.store = store
        self.timeout = timeout or settings.store_timeout_seconds

    async def _call(self, awaitable, operation: str) -> Any:
        return await call_with_timeout(awaitable, self.timeout, operation)

    def _require_admin(self, actor: Actor, action: str) -> None:
        if actor is None or not actor.is_admin:
            raise ForbiddenError(f"Only administrators may {action} organizations", action=action)

    async def register_organization(
        self,
        kind: OrganizationKind,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        website: Optional[str] = None,
    ) -> Organization:
        """Self-registration: the organization starts pending and active."""
        organization = Organization(
            kind=kind,
            name=name,
            email=email,
            phone=phone,
            address=address,
            website=website,
        )
        await self._call(
            self.store.create(Collections.ORGANIZATIONS, organization.model_dump(), organization.id),
            "register_organization",
        )
        self.logger.info(
            "Organization registered",
            organization_id=organization.id,
            kind=organization.kind.value,
            name=name
        )
        return organization

    async def get_organization(self, organization_id: str) -> Organization:
        document = await self._call(
            self.store.get(Collections.ORGANIZATIONS, organization_id), "get_organization"
        )
        return Organization.model_validate(document)

    async def list_organizations(self, kind: Optional[OrganizationKind] = None) -> List[Organization]:
        filters = [("kind", "==", kind)] if kind else None
        documents = await self._call(
            self.store.query(Collections.ORGANIZATIONS, filters, order_by=[("created_at", True)]),
            "list_organizations",
        )
        return [Organization.model_validate(doc) for doc in documents]

    async def list_pending_approvals(self) -> List[Organization]:
        """Active organizations still waiting for an admin decision."""
        documents = await self._call(
            self.store.query(
                Collections.ORGANIZATIONS,
                [("approval_state", "==", ApprovalState.PENDING), ("is_active", "==", True)],
                order_by=[("created_at", False)],
            ),
            "list_pending_approvals",
        )
        return [Organization.model_validate(doc) for doc in documents]

    async def approve(self, organization_id: str, actor: Actor, override: bool = False) -> Organization:
        return await self._decide(organization_id, ApprovalState.APPROVED, actor, override)

    async def reject(self, organization_id: str, actor: Actor, override: bool = False) -> Organization:
        return await self._decide(organization_id, ApprovalState.REJECTED, actor, override)

    async def _decide(
        self,
        organization_id: str,
        target: ApprovalState,
        actor: Actor,
        override: bool,
    ) -> Organization:
        self._require_admin(actor, "approve or reject")
        organization = await self.get_organization(organization_id)
        current = organization.approval_state

        allowed = APPROVAL_TRANSITIONS[current]
        if override:
            allowed = allowed | OVERRIDE_TRANSITIONS.get(current, frozenset())
        if target not in allowed:
            raise InvalidTransitionError(current, target)

        now = utcnow()
        changes: Dict[str, Any] = {"approval_state": target}
        if target == ApprovalState.APPROVED:
            changes["approved_at"] = now
        else:
            changes["rejected_at"] = now

        await self._call(
            self.store.update(Collections.ORGANIZATIONS, organization_id, changes),
            "decide_organization",
        )
        self.logger.info(
            "Organization decision recorded",
            organization_id=organization_id,
            previous=current.value,
            decision=target.value,
            override=override,
            **log_actor(actor)
        )
        return organization.model_copy(update=changes)

    async def set_active(self, organization_id: str, active: bool, actor: Actor) -> Organization:
        """Suspend or reactivate an organization, independent of approval."""
        self._require_admin(actor, "suspend or reactivate")
        organization = await self.get_organization(organization_id)
        changes = {"is_active": active, "status_updated_at": utcnow()}
        await self._call(
            self.store.update(Collections.ORGANIZATIONS, organization_id, changes),
            "set_organization_active",
        )
        self.logger.info(
            "Organization activation changed",
            organization_id=organization_id,
            active=active,
            **log_actor(actor)
        )
        return organization.model_copy(update=changes)

    async def is_visible(self, organization_id: str) -> bool:
        """Visibility of an organization's opportunities to candidates."""
        try:
            organization = await self.get_organization(organization_id)
        except NotFoundError:
            return False
        return is_candidate_visible(organization)
