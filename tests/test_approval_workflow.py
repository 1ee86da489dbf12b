"""Tests for the organization approval workflow and catalog visibility."""

import pytest
from hypothesis import given, settings, strategies as st

from career_portal.core.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from career_portal.core.models import (
    Actor,
    ApprovalState,
    OpportunityKind,
    OpportunityStatus,
    Organization,
    OrganizationKind,
)
from career_portal.opportunities.catalog import OpportunityCatalog
from career_portal.organizations.approval import ApprovalWorkflowManager, is_candidate_visible
from career_portal.store.memory import InMemoryEntityStore
from factories import seed_opportunity, seed_organization


class TestVisibilityRule:
    """Property-based tests for candidate visibility."""

    @given(
        approval_state=st.sampled_from(list(ApprovalState)),
        is_active=st.booleans(),
    )
    @settings(max_examples=20)
    def test_visibility_property(self, approval_state, is_active):
        """
        Property: Visibility Gating

        An organization is visible to candidates only when approved and active.
        """
        organization = Organization(
            kind=OrganizationKind.COMPANY,
            name="Acme",
            approval_state=approval_state,
            is_active=is_active,
        )
        expected = approval_state == ApprovalState.APPROVED and is_active
        assert is_candidate_visible(organization) is expected

    def test_missing_organization_is_hidden(self):
        assert is_candidate_visible(None) is False


class TestApprovalWorkflow:
    """Admin decisions on organizations."""

    @pytest.fixture
    def store(self):
        return InMemoryEntityStore()

    @pytest.fixture
    def approvals(self, store):
        return ApprovalWorkflowManager(store)

    @pytest.mark.asyncio
    async def test_registration_starts_pending_and_active(self, approvals):
        organization = await approvals.register_organization(
            OrganizationKind.INSTITUTION, "National University", email="info@nul.ac.ls"
        )

        stored = await approvals.get_organization(organization.id)
        assert stored.approval_state == ApprovalState.PENDING
        assert stored.is_active is True
        assert not is_candidate_visible(stored)

    @pytest.mark.asyncio
    async def test_pending_list_and_approval(self, approvals):
        first = await approvals.register_organization(OrganizationKind.INSTITUTION, "First")
        second = await approvals.register_organization(OrganizationKind.COMPANY, "Second")

        pending = await approvals.list_pending_approvals()
        assert {o.id for o in pending} == {first.id, second.id}

        approved = await approvals.approve(first.id, Actor.admin())
        assert approved.approval_state == ApprovalState.APPROVED
        assert approved.approved_at is not None
        assert [o.id for o in await approvals.list_pending_approvals()] == [second.id]

    @pytest.mark.asyncio
    async def test_suspended_pending_organization_not_listed(self, approvals):
        organization = await approvals.register_organization(OrganizationKind.COMPANY, "Dormant")
        await approvals.set_active(organization.id, False, Actor.admin())

        assert await approvals.list_pending_approvals() == []

    @pytest.mark.asyncio
    async def test_reject_stamps_time(self, approvals):
        organization = await approvals.register_organization(OrganizationKind.COMPANY, "Shady")
        rejected = await approvals.reject(organization.id, Actor.admin())

        assert rejected.approval_state == ApprovalState.REJECTED
        assert rejected.rejected_at is not None

    @pytest.mark.asyncio
    async def test_reversal_requires_override(self, approvals):
        organization = await approvals.register_organization(OrganizationKind.COMPANY, "Acme")
        admin = Actor.admin()
        await approvals.approve(organization.id, admin)

        with pytest.raises(InvalidTransitionError):
            await approvals.reject(organization.id, admin)
        with pytest.raises(InvalidTransitionError):
            await approvals.approve(organization.id, admin)

        reversed_ = await approvals.reject(organization.id, admin, override=True)
        assert reversed_.approval_state == ApprovalState.REJECTED

        restored = await approvals.approve(organization.id, admin, override=True)
        assert restored.approval_state == ApprovalState.APPROVED

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, approvals):
        organization = await approvals.register_organization(OrganizationKind.COMPANY, "Acme")

        for actor in (Actor.staff(organization), Actor.student("cand-1"), None):
            with pytest.raises(ForbiddenError):
                await approvals.approve(organization.id, actor)
            with pytest.raises(ForbiddenError):
                await approvals.set_active(organization.id, False, actor)

        stored = await approvals.get_organization(organization.id)
        assert stored.approval_state == ApprovalState.PENDING

    @pytest.mark.asyncio
    async def test_activation_is_independent_of_approval(self, approvals):
        organization = await approvals.register_organization(OrganizationKind.INSTITUTION, "Campus")
        admin = Actor.admin()
        await approvals.approve(organization.id, admin)

        suspended = await approvals.set_active(organization.id, False, admin)
        assert suspended.approval_state == ApprovalState.APPROVED
        assert suspended.status_updated_at is not None
        assert not await approvals.is_visible(organization.id)

        await approvals.set_active(organization.id, True, admin)
        assert await approvals.is_visible(organization.id)

    @pytest.mark.asyncio
    async def test_unknown_organization(self, approvals):
        with pytest.raises(NotFoundError):
            await approvals.approve("missing", Actor.admin())
        assert await approvals.is_visible("missing") is False


class TestOpportunityCatalog:
    """Posting, closing and candidate-facing listings."""

    @pytest.fixture
    def store(self):
        return InMemoryEntityStore()

    @pytest.fixture
    def catalog(self, store):
        return OpportunityCatalog(store)

    @pytest.mark.asyncio
    async def test_listing_hides_unapproved_and_suspended(self, store, catalog):
        visible = await seed_organization(store, name="Visible")
        pending = await seed_organization(store, approval_state=ApprovalState.PENDING)
        suspended = await seed_organization(store, is_active=False)
        shown = await seed_opportunity(store, visible)
        hidden = [await seed_opportunity(store, pending), await seed_opportunity(store, suspended)]

        listed = await catalog.list_visible_opportunities()

        assert [o.id for o in listed] == [shown.id]
        for opportunity in hidden:
            with pytest.raises(NotFoundError):
                await catalog.get_visible_opportunity(opportunity.id)
        assert (await catalog.get_visible_opportunity(shown.id)).id == shown.id

    @pytest.mark.asyncio
    async def test_listing_filters_kind_and_closed(self, store, catalog):
        institution = await seed_organization(store)
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)
        course = await seed_opportunity(store, institution)
        job = await seed_opportunity(store, company)
        await seed_opportunity(store, company, status=OpportunityStatus.CLOSED)

        assert {o.id for o in await catalog.list_visible_opportunities()} == {course.id, job.id}
        assert [o.id for o in await catalog.list_visible_opportunities(OpportunityKind.JOB)] == [job.id]

    @pytest.mark.asyncio
    async def test_no_visible_organizations(self, store, catalog):
        pending = await seed_organization(store, approval_state=ApprovalState.PENDING)
        await seed_opportunity(store, pending)

        assert await catalog.list_visible_opportunities() == []

    @pytest.mark.asyncio
    async def test_create_and_close(self, store, catalog):
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)
        staff = Actor.staff(company)

        posting = await catalog.create_opportunity(
            staff, company.id, OpportunityKind.JOB, "Data Analyst", required_skills=["SQL", "Python"]
        )
        assert posting.required_skills == {"SQL", "Python"}
        assert posting.current_application_count == 0

        closed = await catalog.close_opportunity(posting.id, staff)
        assert closed.status == OpportunityStatus.CLOSED
        assert await catalog.list_visible_opportunities() == []

    @pytest.mark.asyncio
    async def test_create_requires_matching_organization_kind(self, store, catalog):
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)

        with pytest.raises(ForbiddenError):
            await catalog.create_opportunity(
                Actor.staff(company), company.id, OpportunityKind.COURSE, "Law", capacity=20
            )

    @pytest.mark.asyncio
    async def test_create_requires_staff(self, store, catalog):
        institution = await seed_organization(store)
        other = await seed_organization(store, name="Other")

        with pytest.raises(ForbiddenError):
            await catalog.create_opportunity(
                Actor.staff(other), institution.id, OpportunityKind.COURSE, "Law", capacity=20
            )
        with pytest.raises(ForbiddenError):
            await catalog.create_opportunity(
                Actor.student("cand-1"), institution.id, OpportunityKind.COURSE, "Law", capacity=20
            )

    @pytest.mark.asyncio
    async def test_close_requires_owner(self, store, catalog):
        institution = await seed_organization(store)
        course = await seed_opportunity(store, institution)

        with pytest.raises(ForbiddenError):
            await catalog.close_opportunity(course.id, Actor.student("cand-1"))
