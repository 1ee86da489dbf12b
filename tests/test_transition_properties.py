"""Property-based tests for application status transitions."""

import asyncio

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from career_portal.applications.lifecycle import ApplicationLifecycleManager
from career_portal.applications.transitions import (
    COURSE_TRANSITIONS,
    JOB_TRANSITIONS,
    allowed_targets,
    is_legal,
    is_reopen,
    is_terminal,
    parse_status,
)
from career_portal.core.errors import InvalidTransitionError
from career_portal.core.models import (
    Actor,
    CourseApplicationStatus,
    JobApplicationStatus,
    OpportunityKind,
    OrganizationKind,
)
from career_portal.store.base import Collections
from career_portal.store.memory import InMemoryEntityStore
from factories import make_candidate, seed_opportunity, seed_organization


class TestTransitionTables:
    """Static checks on the transition tables."""

    def test_every_status_has_an_entry(self):
        assert set(COURSE_TRANSITIONS) == set(CourseApplicationStatus)
        assert set(JOB_TRANSITIONS) == set(JobApplicationStatus)

    def test_terminal_states(self):
        assert is_terminal(OpportunityKind.JOB, JobApplicationStatus.HIRED)
        assert is_terminal(OpportunityKind.JOB, JobApplicationStatus.REJECTED)
        assert is_terminal(OpportunityKind.COURSE, CourseApplicationStatus.WITHDRAWN)
        assert not is_terminal(OpportunityKind.COURSE, CourseApplicationStatus.REJECTED)

    def test_non_terminal_job_states_can_reject(self):
        for status in (JobApplicationStatus.NEW, JobApplicationStatus.SHORTLISTED, JobApplicationStatus.INTERVIEW):
            assert is_legal(OpportunityKind.JOB, status, JobApplicationStatus.REJECTED)

    def test_rejected_course_cannot_be_admitted(self):
        assert not is_legal(
            OpportunityKind.COURSE, CourseApplicationStatus.REJECTED, CourseApplicationStatus.ADMITTED
        )

    def test_reopen_detection(self):
        assert is_reopen(OpportunityKind.COURSE, CourseApplicationStatus.ADMITTED, CourseApplicationStatus.PENDING)
        assert not is_reopen(OpportunityKind.COURSE, CourseApplicationStatus.PENDING, CourseApplicationStatus.ADMITTED)
        assert not is_reopen(OpportunityKind.JOB, JobApplicationStatus.REJECTED, JobApplicationStatus.NEW)

    def test_parse_status_rejects_other_vocabulary(self):
        assert parse_status(OpportunityKind.JOB, "interview") == JobApplicationStatus.INTERVIEW
        with pytest.raises(InvalidTransitionError):
            parse_status(OpportunityKind.COURSE, "interview")


class TestTransitionProperties:
    """Property-based tests for transition_status against the store."""

    @given(path=st.lists(st.sampled_from(list(JobApplicationStatus)), min_size=1, max_size=6))
    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_job_transition_legality_property(self, path):
        """
        Property: Transition Legality

        For any sequence of requested job statuses:
        1. Legal moves are applied and stored
        2. Illegal moves raise InvalidTransitionError
        3. A failed move leaves the stored status unchanged
        """
        async def run_test():
            store = InMemoryEntityStore()
            lifecycle = ApplicationLifecycleManager(store)
            company = await seed_organization(store, kind=OrganizationKind.COMPANY)
            posting = await seed_opportunity(store, company)
            application = await lifecycle.submit_application(make_candidate("cand-1"), posting)
            staff = Actor.staff(company)

            current = JobApplicationStatus.NEW
            for target in path:
                if target in allowed_targets(OpportunityKind.JOB, current):
                    await lifecycle.transition_status(application.id, target, staff)
                    current = target
                else:
                    with pytest.raises(InvalidTransitionError):
                        await lifecycle.transition_status(application.id, target, staff)

                stored = await store.get(Collections.APPLICATIONS, application.id)
                assert stored["status"] == current

        asyncio.run(run_test())

    @given(
        path=st.lists(
            st.sampled_from(
                [CourseApplicationStatus.PENDING, CourseApplicationStatus.ADMITTED, CourseApplicationStatus.REJECTED]
            ),
            min_size=1,
            max_size=6,
        )
    )
    @settings(max_examples=30, deadline=None)
    def test_course_transition_legality_property(self, path):
        """
        Property: Course Decisions

        Before admissions are published, course decisions move only through
        the table; rejected never jumps straight to admitted.
        """
        async def run_test():
            store = InMemoryEntityStore()
            lifecycle = ApplicationLifecycleManager(store)
            institution = await seed_organization(store)
            course = await seed_opportunity(store, institution)
            application = await lifecycle.submit_application(make_candidate("cand-1"), course)
            staff = Actor.staff(institution)

            current = CourseApplicationStatus.PENDING
            for target in path:
                if is_legal(OpportunityKind.COURSE, current, target):
                    await lifecycle.transition_status(application.id, target, staff)
                    current = target
                else:
                    with pytest.raises(InvalidTransitionError):
                        await lifecycle.transition_status(application.id, target, staff)

                stored = await store.get(Collections.APPLICATIONS, application.id)
                assert stored["status"] == current

            document = await store.get(Collections.OPPORTUNITIES, course.id)
            assert document["current_application_count"] == 1

        asyncio.run(run_test())


if __name__ == "__main__":
    pytest.main([__file__])
