"""API models for request/response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from career_portal.core.models import (
    EducationLevel,
    OpportunityKind,
    OrganizationKind,
)


class OrganizationRegistration(BaseModel):
    """Self-registration of an institution or company."""
    kind: OrganizationKind = Field(..., description="Institution or company")
    name: str = Field(..., min_length=1, description="Organization name")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact phone")
    address: Optional[str] = Field(None, description="Postal address")
    website: Optional[str] = Field(None, description="Website URL")


class ApprovalDecisionRequest(BaseModel):
    """Admin approval or rejection."""
    override: bool = Field(False, description="Reverse an earlier decision")


class ActivationRequest(BaseModel):
    """Suspend or reactivate an organization."""
    active: bool = Field(..., description="New activation flag")


class OpportunityCreateRequest(BaseModel):
    """Course or job posting."""
    kind: OpportunityKind = Field(..., description="Course or job")
    title: str = Field(..., min_length=1, description="Course name or job title")
    organization_id: Optional[str] = Field(None, description="Owning organization, defaults to the actor's")
    required_skills: List[str] = Field(default_factory=list, description="Required skills")
    min_education: Optional[EducationLevel] = Field(None, description="Minimum education (jobs)")
    prerequisites: Optional[str] = Field(None, description="Entry requirements (courses)")
    capacity: Optional[int] = Field(None, ge=1, description="Seat limit (courses)")
    deadline: Optional[datetime] = Field(None, description="Application deadline")


class StatusChangeRequest(BaseModel):
    """Organization-driven application status change."""
    status: str = Field(..., description="Target status")


class PublishAdmissionsRequest(BaseModel):
    """Finalize admissions for a period."""
    period: str = Field(..., min_length=1, description="Admission period, e.g. 2025/2026")


class ProfileRequest(BaseModel):
    """Candidate profile save."""
    email: str = Field(..., description="Contact email")
    name: str = Field(..., min_length=1, description="Display name")
    education_level: Optional[EducationLevel] = Field(None, description="Highest education level")
    skills: List[str] = Field(default_factory=list, description="Declared skills")
    certificate_count: int = Field(0, ge=0, description="Number of certificates")
    experience_years: float = Field(0, ge=0, description="Prior experience in years")
    academic_performance: Optional[float] = Field(None, ge=0, le=100, description="Academic score (0-100)")


class RankedApplicantResponse(BaseModel):
    """One row of an applicant ranking."""
    application_id: str = Field(..., description="Application identifier")
    candidate_id: str = Field(..., description="Candidate identifier")
    candidate_name: str = Field(..., description="Candidate name")
    status: str = Field(..., description="Application status")
    submitted_at: datetime = Field(..., description="Submission time")
    score: int = Field(..., ge=0, le=100, description="Match score")
    breakdown: Dict[str, Any] = Field(..., description="Per-category points")


class OpportunityMatchResponse(BaseModel):
    """One opportunity scored for the calling candidate."""
    opportunity_id: str = Field(..., description="Opportunity identifier")
    title: str = Field(..., description="Course name or job title")
    kind: OpportunityKind = Field(..., description="Course or job")
    organization_id: str = Field(..., description="Owning organization")
    score: int = Field(..., ge=0, le=100, description="Match score")
    breakdown: Dict[str, Any] = Field(..., description="Per-category points")


class CountResponse(BaseModel):
    """Number of records affected."""
    count: int = Field(..., ge=0, description="Affected records")


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Check timestamp")
    version: str = Field(..., description="Service version")
    components: Dict[str, str] = Field(..., description="Component status")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    reason: Optional[str] = Field(None, description="Eligibility failure reason")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")
