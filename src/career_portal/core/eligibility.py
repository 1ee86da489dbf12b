"""Eligibility and capacity rules for new applications.

Everything here is pure: callers pass in the opportunity and the candidate's
existing applications, nothing touches the store.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from career_portal.core.models import Application, Opportunity, OpportunityStatus, utcnow

DEFAULT_ORGANIZATION_LIMIT = 2


class IneligibilityReason(str, Enum):
    """Why an application may not be created."""
    OPPORTUNITY_INACTIVE = "opportunity_inactive"
    DEADLINE_PASSED = "deadline_passed"
    ALREADY_APPLIED = "already_applied"
    ORGANIZATION_LIMIT_REACHED = "organization_limit_reached"
    OPPORTUNITY_FULL = "opportunity_full"


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of an eligibility check."""
    allowed: bool
    reason: Optional[IneligibilityReason] = None

    @classmethod
    def allow(cls) -> "EligibilityDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: IneligibilityReason) -> "EligibilityDecision":
        return cls(allowed=False, reason=reason)


def has_active_application(
    candidate_id: str,
    opportunity_id: str,
    applications: Iterable[Application],
    exclude_id: Optional[str] = None,
) -> bool:
    """Whether a non-rejected application exists for the pair."""
    return any(
        app.candidate_id == candidate_id
        and app.opportunity_id == opportunity_id
        and not app.is_rejected
        and app.id != exclude_id
        for app in applications
    )


def count_active_course_applications(
    candidate_id: str,
    organization_id: str,
    applications: Iterable[Application],
    exclude_id: Optional[str] = None,
) -> int:
    """Non-rejected course applications a candidate holds at one institution."""
    return sum(
        1
        for app in applications
        if app.candidate_id == candidate_id
        and app.organization_id == organization_id
        and app.kind.value == "course"
        and not app.is_rejected
        and app.id != exclude_id
    )


def is_open(opportunity: Opportunity, now: datetime) -> Optional[IneligibilityReason]:
    """Status and deadline gate; exactly-at-deadline still counts as open."""
    if opportunity.status != OpportunityStatus.ACTIVE:
        return IneligibilityReason.OPPORTUNITY_INACTIVE
    if opportunity.deadline is not None and now > opportunity.deadline:
        return IneligibilityReason.DEADLINE_PASSED
    return None


def can_apply(
    candidate_id: str,
    opportunity: Opportunity,
    existing_applications: Iterable[Application],
    now: Optional[datetime] = None,
    organization_limit: int = DEFAULT_ORGANIZATION_LIMIT,
) -> EligibilityDecision:
    """
    Decide whether ``candidate_id`` may apply to ``opportunity``.

    Checks run in order and the first failure wins:

    1. opportunity active and deadline not passed (evaluation time)
    2. no non-rejected application for the same opportunity
    3. courses: fewer than ``organization_limit`` non-rejected applications
       at the owning institution
    4. courses: counter below capacity

    Args:
        candidate_id: Applying candidate
        opportunity: Freshly read opportunity
        existing_applications: The candidate's current applications
        now: Evaluation time, defaults to the current UTC time
        organization_limit: Per-institution cap for course applications

    Returns:
        Decision with the failing reason, if any
    """
    applications = list(existing_applications)

    closed_reason = is_open(opportunity, now or utcnow())
    if closed_reason is not None:
        return EligibilityDecision.deny(closed_reason)

    if has_active_application(candidate_id, opportunity.id, applications):
        return EligibilityDecision.deny(IneligibilityReason.ALREADY_APPLIED)

    if opportunity.is_course:
        held = count_active_course_applications(candidate_id, opportunity.organization_id, applications)
        if held >= organization_limit:
            return EligibilityDecision.deny(IneligibilityReason.ORGANIZATION_LIMIT_REACHED)

        if opportunity.current_application_count >= opportunity.capacity:
            return EligibilityDecision.deny(IneligibilityReason.OPPORTUNITY_FULL)

    return EligibilityDecision.allow()
