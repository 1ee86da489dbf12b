"""Status transition tables for course and job applications."""

from typing import Dict, FrozenSet, Union

from career_portal.core.errors import InvalidTransitionError
from career_portal.core.models import (
    ApplicationStatus,
    CourseApplicationStatus,
    JobApplicationStatus,
    OpportunityKind,
    status_enum_for,
)

Course = CourseApplicationStatus
Job = JobApplicationStatus

# Staff-driven moves. Withdrawal is candidate-driven and handled separately.
COURSE_TRANSITIONS: Dict[CourseApplicationStatus, FrozenSet[CourseApplicationStatus]] = {
    Course.PENDING: frozenset({Course.ADMITTED, Course.REJECTED}),
    # Decisions can be reopened until admissions are published
    Course.ADMITTED: frozenset({Course.PENDING}),
    Course.REJECTED: frozenset({Course.PENDING}),
    Course.WITHDRAWN: frozenset(),
}

JOB_TRANSITIONS: Dict[JobApplicationStatus, FrozenSet[JobApplicationStatus]] = {
    Job.NEW: frozenset({Job.SHORTLISTED, Job.REJECTED}),
    Job.SHORTLISTED: frozenset({Job.INTERVIEW, Job.REJECTED}),
    Job.INTERVIEW: frozenset({Job.HIRED, Job.REJECTED}),
    Job.REJECTED: frozenset(),
    Job.HIRED: frozenset(),
}

TRANSITIONS = {
    OpportunityKind.COURSE: COURSE_TRANSITIONS,
    OpportunityKind.JOB: JOB_TRANSITIONS,
}


def parse_status(kind: OpportunityKind, value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    """Map a raw status onto the vocabulary of ``kind``."""
    raw = getattr(value, "value", value)
    try:
        return status_enum_for(kind)(raw)
    except ValueError:
        raise InvalidTransitionError(
            None, raw, message=f"'{raw}' is not a {OpportunityKind(kind).value} application status"
        ) from None


def allowed_targets(kind: OpportunityKind, current: ApplicationStatus) -> FrozenSet[ApplicationStatus]:
    return TRANSITIONS[OpportunityKind(kind)].get(current, frozenset())


def is_legal(kind: OpportunityKind, current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in allowed_targets(kind, current)


def is_terminal(kind: OpportunityKind, status: ApplicationStatus) -> bool:
    return not allowed_targets(kind, status)


def is_reopen(kind: OpportunityKind, current: ApplicationStatus, target: ApplicationStatus) -> bool:
    """Course decision sent back to review."""
    return (
        OpportunityKind(kind) == OpportunityKind.COURSE
        and current in (Course.ADMITTED, Course.REJECTED)
        and target == Course.PENDING
    )


def ensure_legal(kind: OpportunityKind, current: ApplicationStatus, target: ApplicationStatus) -> None:
    if not is_legal(kind, current, target):
        raise InvalidTransitionError(current, target)
