"""Property-based tests for match scoring and ranking."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from career_portal.applications.lifecycle import ApplicationLifecycleManager
from career_portal.candidates.profiles import ProfileService
from career_portal.core.errors import ForbiddenError
from career_portal.core.models import (
    Actor,
    Application,
    Candidate,
    EducationLevel,
    JobApplicationStatus,
    Opportunity,
    OpportunityKind,
    OrganizationKind,
)
from career_portal.matching.scorer import (
    MatchScorer,
    RankedApplicant,
    compute_breakdown,
    determine_fit_level,
    rank,
    score,
)
from career_portal.store.memory import InMemoryEntityStore
from factories import make_candidate, seed_candidate, seed_opportunity, seed_organization

BASE_TIME = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
SKILLS = ["React", "Node.js", "Python", "SQL", "Docker", "Communication", "AWS"]


@st.composite
def candidate_strategy(draw):
    """Generate candidate profiles for testing."""
    return Candidate(
        id=draw(st.text(alphabet="abcdef0123456789", min_size=4, max_size=8)),
        name=draw(st.text(min_size=1, max_size=20)),
        email="student@example.com",
        education_level=draw(st.one_of(st.none(), st.sampled_from(list(EducationLevel)))),
        skills=set(draw(st.lists(st.sampled_from(SKILLS + [s.lower() for s in SKILLS]), max_size=7))),
        certificate_count=draw(st.integers(min_value=0, max_value=20)),
        experience_years=draw(st.floats(min_value=0, max_value=40, allow_nan=False)),
        academic_performance=draw(st.one_of(st.none(), st.floats(min_value=0, max_value=100, allow_nan=False))),
    )


@st.composite
def opportunity_strategy(draw):
    """Generate courses and job postings."""
    kind = draw(st.sampled_from(list(OpportunityKind)))
    return Opportunity(
        kind=kind,
        organization_id="org-1",
        title=draw(st.text(min_size=1, max_size=20)),
        required_skills=set(draw(st.lists(st.sampled_from(SKILLS), max_size=5))),
        min_education=draw(st.one_of(st.none(), st.sampled_from(list(EducationLevel)))),
        capacity=draw(st.integers(min_value=1, max_value=100)) if kind == OpportunityKind.COURSE else None,
    )


class TestMatchScoringProperties:
    """Property-based tests for the scoring formula."""

    @given(candidate=candidate_strategy(), opportunity=opportunity_strategy())
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_score_bounds_and_determinism_property(self, candidate, opportunity):
        """
        Property: Score Determinism

        For any candidate and opportunity:
        1. The score is an integer in [0, 100]
        2. Scoring twice gives the same value
        3. The breakdown categories respect their caps
        """
        first = score(candidate, opportunity)
        second = score(candidate, opportunity)
        breakdown = compute_breakdown(candidate, opportunity)

        assert isinstance(first, int)
        assert 0 <= first <= 100
        assert first == second == breakdown.score
        assert 0 <= breakdown.skills <= 40
        assert 0 <= breakdown.academics <= 30
        assert 0 <= breakdown.certificates <= 15
        assert 0 <= breakdown.experience <= 15
        assert breakdown.fit_level == determine_fit_level(first)

    @given(candidate=candidate_strategy(), opportunity=opportunity_strategy())
    @settings(max_examples=50)
    def test_education_never_scores_property(self, candidate, opportunity):
        """
        Property: Education Is Reported, Not Scored

        Changing the candidate's education level never changes the score.
        """
        baseline = score(candidate, opportunity)
        for level in EducationLevel:
            assert score(candidate.model_copy(update={"education_level": level}), opportunity) == baseline

    @given(candidate=candidate_strategy(), opportunity=opportunity_strategy())
    @settings(max_examples=50)
    def test_skill_case_insensitivity_property(self, candidate, opportunity):
        """
        Property: Skill Matching Ignores Case
        """
        shouted = candidate.model_copy(update={"skills": {s.upper() for s in candidate.skills}})
        assert score(shouted, opportunity) == score(candidate, opportunity)

    @given(extra=st.sampled_from(SKILLS), candidate=candidate_strategy(), opportunity=opportunity_strategy())
    @settings(max_examples=50)
    def test_more_skills_never_lower_score_property(self, extra, candidate, opportunity):
        """
        Property: Monotonic Skills

        Adding a skill to a candidate never lowers the score.
        """
        richer = candidate.model_copy(update={"skills": set(candidate.skills) | {extra}})
        assert score(richer, opportunity) >= score(candidate, opportunity)


class TestScoringExamples:
    """Worked examples of the formula."""

    def test_react_node_example_scores_44(self):
        opportunity = Opportunity(
            kind=OpportunityKind.JOB,
            organization_id="comp-1",
            title="Full-stack Developer",
            required_skills={"React", "Node.js"},
        )
        candidate = make_candidate(skills={"React"}, academic_performance=80)

        breakdown = compute_breakdown(candidate, opportunity)

        assert breakdown.skills == 20
        assert breakdown.score == 44
        assert breakdown.matched_skills == ["react"]
        assert breakdown.missing_skills == ["node.js"]
        assert breakdown.fit_level == "fair"

    def test_caps_and_maximum(self):
        opportunity = Opportunity(
            kind=OpportunityKind.JOB, organization_id="comp-1", title="Dev", required_skills={"Python"}
        )
        candidate = make_candidate(
            skills={"python"}, academic_performance=100, certificate_count=50, experience_years=30
        )
        assert score(candidate, opportunity) == 100

    def test_no_required_skills_gives_no_skill_points(self):
        opportunity = Opportunity(kind=OpportunityKind.COURSE, organization_id="inst-1", title="Art", capacity=5)
        candidate = make_candidate(skills={"Drawing"}, certificate_count=2, experience_years=1)

        breakdown = compute_breakdown(candidate, opportunity)

        assert breakdown.skills == 0
        assert breakdown.score == 11

    def test_rounds_half_up(self):
        opportunity = Opportunity(kind=OpportunityKind.JOB, organization_id="c", title="Dev")
        # 0.5 years -> 2.5 points
        assert score(make_candidate(experience_years=0.5), opportunity) == 3

    def test_minimum_education_reported(self):
        opportunity = Opportunity(
            kind=OpportunityKind.JOB,
            organization_id="c",
            title="Dev",
            min_education=EducationLevel.BACHELORS,
        )
        below = compute_breakdown(make_candidate(education_level=EducationLevel.DIPLOMA), opportunity)
        above = compute_breakdown(make_candidate(education_level=EducationLevel.MASTERS), opportunity)
        unknown = compute_breakdown(make_candidate(), opportunity)

        assert below.meets_min_education is False
        assert above.meets_min_education is True
        assert unknown.meets_min_education is False
        assert below.score == above.score


class TestRanking:
    """Applicant ordering and the store-backed scorer."""

    def _entry(self, application_id, points, submitted_offset):
        candidate = make_candidate(f"cand-{application_id}")
        application = Application(
            id=application_id,
            kind=OpportunityKind.JOB,
            candidate_id=candidate.id,
            opportunity_id="job-1",
            organization_id="comp-1",
            status=JobApplicationStatus.NEW,
            submitted_at=BASE_TIME + timedelta(seconds=submitted_offset),
        )
        breakdown = compute_breakdown(candidate, Opportunity(kind=OpportunityKind.JOB, organization_id="c", title="x"))
        breakdown.score = points
        return RankedApplicant(application=application, candidate=candidate, breakdown=breakdown)

    def test_ties_break_on_submission_time_then_id(self):
        entries = [
            self._entry("b", 50, 10),
            self._entry("a", 50, 10),
            self._entry("c", 50, 0),
            self._entry("d", 90, 20),
        ]
        assert [e.application.id for e in rank(entries)] == ["d", "c", "a", "b"]

    @pytest.mark.asyncio
    async def test_rank_applicants_skips_missing_profiles(self):
        store = InMemoryEntityStore()
        lifecycle = ApplicationLifecycleManager(store)
        scorer = MatchScorer(store)
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)
        posting = await seed_opportunity(store, company, required_skills=["React", "Node.js"])

        strong = await seed_candidate(store, "strong", skills={"React", "Node.js"}, academic_performance=90)
        weak = await seed_candidate(store, "weak", skills={"React"}, academic_performance=80)
        ghost = make_candidate("ghost", skills={"React", "Node.js"})
        for candidate in (weak, ghost, strong):
            await lifecycle.submit_application(candidate, posting)

        ranked = await scorer.rank_applicants(posting.id, Actor.staff(company))

        assert [entry.candidate.id for entry in ranked] == ["strong", "weak"]
        assert [entry.score for entry in ranked] == [67, 44]

    @pytest.mark.asyncio
    async def test_rank_applicants_requires_owner(self):
        store = InMemoryEntityStore()
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)
        posting = await seed_opportunity(store, company)

        with pytest.raises(ForbiddenError):
            await MatchScorer(store).rank_applicants(posting.id, Actor.student("cand-1"))

    @pytest.mark.asyncio
    async def test_match_opportunities_orders_visible_by_score(self):
        store = InMemoryEntityStore()
        scorer = MatchScorer(store)
        company = await seed_organization(store, kind=OrganizationKind.COMPANY)
        hidden_company = await seed_organization(store, kind=OrganizationKind.COMPANY, is_active=False)
        python_job = await seed_opportunity(store, company, required_skills=["Python"], title="Python")
        java_job = await seed_opportunity(store, company, required_skills=["Java"], title="Java")
        await seed_opportunity(store, hidden_company, required_skills=["Python"], title="Hidden")
        candidate = make_candidate("cand-1", skills={"python"})

        matches = await scorer.match_opportunities(candidate, OpportunityKind.JOB)

        assert [m.opportunity.id for m in matches] == [python_job.id, java_job.id]
        summary = scorer.get_match_summary(matches)
        assert summary["total"] == 2
        assert summary["top_matches"][0]["score"] == 40

    @pytest.mark.asyncio
    async def test_profile_save_creates_then_merges(self):
        store = InMemoryEntityStore()
        profiles = ProfileService(store)

        created = await profiles.save_profile(make_candidate("cand-1", skills={"SQL"}))
        updated = await profiles.save_profile(make_candidate("cand-1", skills={"SQL", "Python"}, certificate_count=2))

        stored = await profiles.get_profile("cand-1")
        assert stored.skills == {"SQL", "Python"}
        assert stored.certificate_count == 2
        assert stored.created_at == created.created_at
        assert updated.updated_at >= created.updated_at
        assert await profiles.find_profile("nobody") is None


if __name__ == "__main__":
    pytest.main([__file__])
