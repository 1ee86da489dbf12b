"""Core data models for the career portal."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set, Type, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every stamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class EducationLevel(str, Enum):
    """Ordered education levels, lowest first."""
    HIGH_SCHOOL = "high_school"
    DIPLOMA = "diploma"
    BACHELORS = "bachelors"
    MASTERS = "masters"
    PHD = "phd"

    @property
    def rank(self) -> int:
        return list(EducationLevel).index(self)

    # str already defines the rich comparisons, so all four are spelled out
    def __lt__(self, other):
        if isinstance(other, EducationLevel):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, EducationLevel):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, EducationLevel):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, EducationLevel):
            return self.rank >= other.rank
        return NotImplemented


class OpportunityKind(str, Enum):
    """A course seat offered by an institution or a job posted by a company."""
    COURSE = "course"
    JOB = "job"


class OpportunityStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class CourseApplicationStatus(str, Enum):
    PENDING = "pending"
    ADMITTED = "admitted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class JobApplicationStatus(str, Enum):
    NEW = "new"
    SHORTLISTED = "shortlisted"
    INTERVIEW = "interview"
    REJECTED = "rejected"
    HIRED = "hired"


ApplicationStatus = Union[CourseApplicationStatus, JobApplicationStatus]


def status_enum_for(kind: OpportunityKind) -> Type[Enum]:
    """Status vocabulary used by applications of the given kind."""
    if OpportunityKind(kind) == OpportunityKind.COURSE:
        return CourseApplicationStatus
    return JobApplicationStatus


def initial_status_for(kind: OpportunityKind) -> ApplicationStatus:
    if OpportunityKind(kind) == OpportunityKind.COURSE:
        return CourseApplicationStatus.PENDING
    return JobApplicationStatus.NEW


class OrganizationKind(str, Enum):
    INSTITUTION = "institution"
    COMPANY = "company"


class ApprovalState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ActorRole(str, Enum):
    STUDENT = "student"
    INSTITUTION = "institution"
    COMPANY = "company"
    ADMIN = "admin"


# Organization kind that owns each opportunity kind
OWNER_KIND = {
    OpportunityKind.COURSE: OrganizationKind.INSTITUTION,
    OpportunityKind.JOB: OrganizationKind.COMPANY,
}


class Actor(BaseModel):
    """Caller of a mutation, as established by the identity layer."""
    id: str = Field(..., description="Actor identifier")
    role: ActorRole = Field(..., description="Actor role")
    organization_id: Optional[str] = Field(None, description="Organization the staff member acts for")

    @classmethod
    def admin(cls, actor_id: str = "admin") -> "Actor":
        return cls(id=actor_id, role=ActorRole.ADMIN)

    @classmethod
    def student(cls, candidate_id: str) -> "Actor":
        return cls(id=candidate_id, role=ActorRole.STUDENT)

    @classmethod
    def staff(cls, organization: "Organization", actor_id: Optional[str] = None) -> "Actor":
        role = ActorRole.INSTITUTION if organization.kind == OrganizationKind.INSTITUTION else ActorRole.COMPANY
        return cls(id=actor_id or organization.id, role=role, organization_id=organization.id)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    def acts_for(self, organization_id: str) -> bool:
        """Whether this actor is staff of (or admin over) the organization."""
        if self.is_admin:
            return True
        return (
            self.role in (ActorRole.INSTITUTION, ActorRole.COMPANY)
            and self.organization_id == organization_id
        )


class Candidate(BaseModel):
    """Student profile used for eligibility and matching."""
    id: str = Field(default_factory=new_id, description="Candidate identifier")
    email: str = Field(..., description="Contact email")
    name: str = Field(..., description="Display name")
    education_level: Optional[EducationLevel] = Field(None, description="Highest education level")
    skills: Set[str] = Field(default_factory=set, description="Declared skills")
    certificate_count: int = Field(0, ge=0, description="Number of certificates")
    experience_years: float = Field(0, ge=0, description="Prior experience in years")
    academic_performance: Optional[float] = Field(None, ge=0, le=100, description="Academic score (0-100)")
    created_at: datetime = Field(default_factory=utcnow, description="Profile creation time")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update time")


class Organization(BaseModel):
    """Institution or company that owns opportunities."""
    id: str = Field(default_factory=new_id, description="Organization identifier")
    kind: OrganizationKind = Field(..., description="Institution or company")
    name: str = Field(..., description="Organization name")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact phone")
    address: Optional[str] = Field(None, description="Postal address")
    website: Optional[str] = Field(None, description="Website URL")
    approval_state: ApprovalState = Field(ApprovalState.PENDING, description="Admin approval state")
    is_active: bool = Field(True, description="False while suspended")
    created_at: datetime = Field(default_factory=utcnow, description="Registration time")
    approved_at: Optional[datetime] = Field(None, description="Approval time")
    rejected_at: Optional[datetime] = Field(None, description="Rejection time")
    status_updated_at: Optional[datetime] = Field(None, description="Last activation change")


class Opportunity(BaseModel):
    """Course seat or job posting candidates apply to."""
    id: str = Field(default_factory=new_id, description="Opportunity identifier")
    kind: OpportunityKind = Field(..., description="Course or job")
    organization_id: str = Field(..., description="Owning organization")
    title: str = Field(..., description="Course name or job title")
    required_skills: Set[str] = Field(default_factory=set, description="Skills the opportunity asks for")
    min_education: Optional[EducationLevel] = Field(None, description="Minimum education (jobs)")
    prerequisites: Optional[str] = Field(None, description="Entry requirements text (courses)")
    capacity: Optional[int] = Field(None, ge=1, description="Seat limit (courses only)")
    current_application_count: int = Field(0, ge=0, description="Applications received")
    status: OpportunityStatus = Field(OpportunityStatus.ACTIVE, description="Listing status")
    deadline: Optional[datetime] = Field(None, description="Application deadline")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")

    @field_validator("deadline", "created_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_capacity(self) -> "Opportunity":
        if self.kind == OpportunityKind.COURSE and self.capacity is None:
            raise ValueError("courses require a capacity")
        if self.kind == OpportunityKind.JOB and self.capacity is not None:
            raise ValueError("job postings have no capacity")
        return self

    @property
    def is_course(self) -> bool:
        return self.kind == OpportunityKind.COURSE


class Application(BaseModel):
    """A candidate's claim on one opportunity."""
    id: str = Field(default_factory=new_id, description="Application identifier")
    kind: OpportunityKind = Field(..., description="Course or job application")
    candidate_id: str = Field(..., description="Applying candidate")
    opportunity_id: str = Field(..., description="Target opportunity")
    organization_id: str = Field(..., description="Owning organization of the opportunity")
    status: ApplicationStatus = Field(..., description="Kind-specific status")
    submitted_at: datetime = Field(default_factory=utcnow, description="Submission time")
    last_updated_at: datetime = Field(default_factory=utcnow, description="Last status change")
    last_updated_by: Optional[str] = Field(None, description="Actor of the last change")

    # Display fields captured at submission time
    candidate_name: Optional[str] = Field(None, description="Candidate name at submission")
    candidate_email: Optional[str] = Field(None, description="Candidate email at submission")
    opportunity_title: Optional[str] = Field(None, description="Opportunity title at submission")
    organization_name: Optional[str] = Field(None, description="Organization name at submission")

    @model_validator(mode="before")
    @classmethod
    def _coerce_status(cls, data: Any) -> Any:
        if isinstance(data, dict) and "kind" in data and "status" in data:
            data = dict(data)
            data["status"] = status_enum_for(data["kind"])(getattr(data["status"], "value", data["status"]))
        return data

    @property
    def is_rejected(self) -> bool:
        return self.status.value == "rejected"


class AdmissionRecord(BaseModel):
    """Finalization marker for one institution and admission period."""
    id: str = Field(default_factory=new_id, description="Record identifier")
    organization_id: str = Field(..., description="Publishing institution")
    period: str = Field(..., description="Admission period, e.g. academic year")
    published_at: datetime = Field(default_factory=utcnow, description="Publication time")
    published_by: Optional[str] = Field(None, description="Publishing actor")
    admitted: int = Field(0, ge=0, description="Admitted applications at publication")
    rejected: int = Field(0, ge=0, description="Rejected applications at publication")
    pending: int = Field(0, ge=0, description="Applications still pending at publication")

    @field_validator("period")
    @classmethod
    def _period_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("period must not be blank")
        return value.strip()


class Notification(BaseModel):
    """Candidate-facing notice handed to the delivery layer."""
    id: str = Field(default_factory=new_id, description="Notification identifier")
    candidate_id: str = Field(..., description="Recipient")
    category: str = Field("info", description="Notice category")
    message: str = Field(..., description="Human-readable message")
    data: Dict[str, Any] = Field(default_factory=dict, description="Structured payload")
    read: bool = Field(False, description="Whether the candidate has read it")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")
    read_at: Optional[datetime] = Field(None, description="Read time")
