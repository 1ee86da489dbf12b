"""API routes for the career portal."""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from career_portal.api.models import (
    ActivationRequest,
    ApprovalDecisionRequest,
    CountResponse,
    HealthCheck,
    OpportunityCreateRequest,
    OpportunityMatchResponse,
    OrganizationRegistration,
    ProfileRequest,
    PublishAdmissionsRequest,
    RankedApplicantResponse,
    StatusChangeRequest,
)
from career_portal.api.services import PortalServices
from career_portal.core.errors import ForbiddenError
from career_portal.core.models import (
    Actor,
    ActorRole,
    AdmissionRecord,
    Application,
    Candidate,
    Notification,
    Opportunity,
    OpportunityKind,
    Organization,
    OrganizationKind,
)
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)

# Initialized in main.py
services: Optional[PortalServices] = None

# Create routers
organizations_router = APIRouter(prefix="/organizations", tags=["organizations"])
opportunities_router = APIRouter(prefix="/opportunities", tags=["opportunities"])
applications_router = APIRouter(prefix="/applications", tags=["applications"])
candidates_router = APIRouter(prefix="/candidates", tags=["candidates"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
health_router = APIRouter(prefix="/health", tags=["health"])


def get_services() -> PortalServices:
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def get_actor(
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    role: Optional[str] = Header(None, alias="X-Actor-Role"),
    actor_organization_id: Optional[str] = Header(None, alias="X-Organization-Id"),
) -> Optional[Actor]:
    """Caller identity as forwarded by the authentication gateway."""
    if not actor_id or not role:
        return None
    try:
        actor_role = ActorRole(role.lower())
    except ValueError:
        raise ForbiddenError(f"Unknown actor role '{role}'") from None
    return Actor(id=actor_id, role=actor_role, organization_id=actor_organization_id)


def require_student(actor: Optional[Actor]) -> Actor:
    if actor is None or actor.role != ActorRole.STUDENT:
        raise ForbiddenError("This action is available to students only")
    return actor


def require_admin(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.is_admin:
        raise ForbiddenError("This action is available to administrators only")
    return actor


# Organizations

@organizations_router.post("", response_model=Organization, status_code=201)
async def register_organization(
    request: OrganizationRegistration,
    svc: PortalServices = Depends(get_services),
):
    """Register an institution or company; it starts pending approval."""
    return await svc.approvals.register_organization(**request.model_dump())


@organizations_router.get("", response_model=List[Organization])
async def list_organizations(
    kind: Optional[OrganizationKind] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    """All registered organizations, newest first."""
    require_admin(actor)
    return await svc.approvals.list_organizations(kind)


@organizations_router.get("/pending", response_model=List[Organization])
async def list_pending_approvals(
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    require_admin(actor)
    return await svc.approvals.list_pending_approvals()


@organizations_router.get("/{organization_id}", response_model=Organization)
async def get_organization(organization_id: str, svc: PortalServices = Depends(get_services)):
    return await svc.approvals.get_organization(organization_id)


@organizations_router.post("/{organization_id}/approve", response_model=Organization)
async def approve_organization(
    organization_id: str,
    request: Optional[ApprovalDecisionRequest] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.approvals.approve(organization_id, actor, override=bool(request and request.override))


@organizations_router.post("/{organization_id}/reject", response_model=Organization)
async def reject_organization(
    organization_id: str,
    request: Optional[ApprovalDecisionRequest] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.approvals.reject(organization_id, actor, override=bool(request and request.override))


@organizations_router.post("/{organization_id}/activation", response_model=Organization)
async def set_organization_activation(
    organization_id: str,
    request: ActivationRequest,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.approvals.set_active(organization_id, request.active, actor)


@organizations_router.get("/{organization_id}/opportunities", response_model=List[Opportunity])
async def list_organization_opportunities(
    organization_id: str,
    kind: Optional[OpportunityKind] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    """Every posting of the organization, closed ones included."""
    if actor is None or not actor.acts_for(organization_id):
        raise ForbiddenError("Only staff of the organization may list all its postings")
    return await svc.catalog.list_organization_opportunities(organization_id, kind)


@organizations_router.get("/{organization_id}/applications", response_model=List[Application])
async def list_organization_applications(
    organization_id: str,
    kind: Optional[OpportunityKind] = None,
    status: Optional[str] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.lifecycle.list_organization_applications(
        organization_id, actor, kind=kind, status=status
    )


@organizations_router.post("/{organization_id}/admissions", response_model=AdmissionRecord)
async def publish_admissions(
    organization_id: str,
    request: PublishAdmissionsRequest,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.lifecycle.publish_admissions(organization_id, request.period, actor)


@organizations_router.get("/{organization_id}/admissions/stats")
async def get_admission_stats(
    organization_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    if actor is None or not actor.acts_for(organization_id):
        raise ForbiddenError("Only the institution may view its admission statistics")
    return await svc.lifecycle.admission_stats(organization_id)


@organizations_router.get("/{organization_id}/analytics")
async def get_company_analytics(
    organization_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    if actor is None or not actor.acts_for(organization_id):
        raise ForbiddenError("Only the company may view its analytics")
    return await svc.lifecycle.company_analytics(organization_id)


# Opportunities

@opportunities_router.get("", response_model=List[Opportunity])
async def list_opportunities(
    kind: Optional[OpportunityKind] = None,
    svc: PortalServices = Depends(get_services),
):
    """Active opportunities of approved, active organizations."""
    return await svc.catalog.list_visible_opportunities(kind)


@opportunities_router.get("/{opportunity_id}", response_model=Opportunity)
async def get_opportunity(opportunity_id: str, svc: PortalServices = Depends(get_services)):
    return await svc.catalog.get_visible_opportunity(opportunity_id)


@opportunities_router.post("", response_model=Opportunity, status_code=201)
async def create_opportunity(
    request: OpportunityCreateRequest,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    fields = request.model_dump()
    organization_id = fields.pop("organization_id") or (actor.organization_id if actor else None)
    if not organization_id:
        raise ForbiddenError("Posting requires an organization")
    return await svc.catalog.create_opportunity(actor, organization_id, **fields)


@opportunities_router.post("/{opportunity_id}/close", response_model=Opportunity)
async def close_opportunity(
    opportunity_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.catalog.close_opportunity(opportunity_id, actor)


@opportunities_router.post("/{opportunity_id}/applications", response_model=Application, status_code=201)
async def submit_application(
    opportunity_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    """Apply to an opportunity as the calling student."""
    student = require_student(actor)
    candidate = await svc.profiles.get_profile(student.id)
    return await svc.lifecycle.submit_application(candidate, opportunity_id)


@opportunities_router.get("/{opportunity_id}/ranking", response_model=List[RankedApplicantResponse])
async def rank_applicants(
    opportunity_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    ranked = await svc.scorer.rank_applicants(opportunity_id, actor)
    return [
        RankedApplicantResponse(
            application_id=entry.application.id,
            candidate_id=entry.candidate.id,
            candidate_name=entry.candidate.name,
            status=entry.application.status.value,
            submitted_at=entry.application.submitted_at,
            score=entry.score,
            breakdown=entry.breakdown.to_dict(),
        )
        for entry in ranked
    ]


# Applications

@applications_router.get("/mine", response_model=List[Application])
async def list_my_applications(
    kind: Optional[OpportunityKind] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    student = require_student(actor)
    return await svc.lifecycle.list_candidate_applications(student.id, kind)


@applications_router.post("/{application_id}/status", response_model=Application)
async def change_application_status(
    application_id: str,
    request: StatusChangeRequest,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    return await svc.lifecycle.transition_status(application_id, request.status, actor)


@applications_router.delete("/{application_id}", status_code=204)
async def withdraw_application(
    application_id: str,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    await svc.lifecycle.withdraw(application_id, actor)


# Candidates

@candidates_router.put("/me/profile", response_model=Candidate)
async def save_profile(
    request: ProfileRequest,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    student = require_student(actor)
    return await svc.profiles.save_profile(Candidate(id=student.id, **request.model_dump()))


@candidates_router.get("/me/profile", response_model=Candidate)
async def get_profile(
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    student = require_student(actor)
    return await svc.profiles.get_profile(student.id)


@candidates_router.get("/me/matches", response_model=List[OpportunityMatchResponse])
async def match_opportunities(
    kind: Optional[OpportunityKind] = None,
    limit: Optional[int] = None,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    """Visible opportunities ranked by match score for the calling student."""
    student = require_student(actor)
    candidate = await svc.profiles.get_profile(student.id)
    matches = await svc.scorer.match_opportunities(candidate, kind=kind, limit=limit)
    return [
        OpportunityMatchResponse(
            opportunity_id=match.opportunity.id,
            title=match.opportunity.title,
            kind=match.opportunity.kind,
            organization_id=match.opportunity.organization_id,
            score=match.score,
            breakdown=match.breakdown.to_dict(),
        )
        for match in matches
    ]


@candidates_router.get("/me/notifications", response_model=List[Notification])
async def list_notifications(
    unread_only: bool = False,
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    student = require_student(actor)
    return await svc.notifier.list_for_candidate(student.id, unread_only=unread_only)


@candidates_router.post("/me/notifications/read", response_model=CountResponse)
async def mark_all_notifications_read(
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    student = require_student(actor)
    return CountResponse(count=await svc.notifier.mark_all_as_read(student.id))


# Admin

@admin_router.get("/stats")
async def get_system_stats(
    actor: Optional[Actor] = Depends(get_actor),
    svc: PortalServices = Depends(get_services),
):
    """Platform-wide counts for the admin dashboard."""
    return await svc.lifecycle.system_stats(actor)


@health_router.get("/", response_model=HealthCheck)
async def health_check():
    """Health check endpoint."""
    components = {
        "store": "healthy" if services else "unavailable",
    }
    overall_status = "healthy" if all(status == "healthy" for status in components.values()) else "degraded"

    return HealthCheck(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        components=components
    )


# Export all routers
all_routers = [
    organizations_router,
    opportunities_router,
    applications_router,
    candidates_router,
    admin_router,
    health_router
]
