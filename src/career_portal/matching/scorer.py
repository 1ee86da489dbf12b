"""Deterministic match scoring and applicant ranking."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from career_portal.candidates.profiles import ProfileService
from career_portal.config import settings
from career_portal.core.errors import ForbiddenError
from career_portal.core.models import (
    Actor,
    Application,
    Candidate,
    Opportunity,
    OpportunityKind,
)
from career_portal.opportunities.catalog import OpportunityCatalog
from career_portal.store.base import Collections, EntityStore, call_with_timeout
from career_portal.utils.logging import get_logger

logger = get_logger(__name__)

# Maximum points per category; they add up to 100
SKILLS_WEIGHT = 40
ACADEMICS_WEIGHT = 30
CERTIFICATE_POINTS = 3
CERTIFICATES_CAP = 15
EXPERIENCE_POINTS_PER_YEAR = 5
EXPERIENCE_CAP = 15


def normalize_skills(skills: Iterable[str]) -> Set[str]:
    """Case-insensitive skill set with surrounding whitespace removed."""
    return {skill.strip().lower() for skill in skills if skill and skill.strip()}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def determine_fit_level(score: int) -> str:
    """Bucket a 0-100 score for display."""
    if score >= 80:
        return "excellent"
    elif score >= 60:
        return "good"
    elif score >= 40:
        return "fair"
    else:
        return "poor"


@dataclass
class MatchBreakdown:
    """Per-category points behind a match score."""
    skills: float
    academics: float
    certificates: float
    experience: float
    score: int
    matched_skills: List[str] = field(default_factory=list)
    missing_skills: List[str] = field(default_factory=list)
    meets_min_education: Optional[bool] = None

    @property
    def fit_level(self) -> str:
        return determine_fit_level(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "fit_level": self.fit_level,
            "skills": round(self.skills, 2),
            "academics": round(self.academics, 2),
            "certificates": round(self.certificates, 2),
            "experience": round(self.experience, 2),
            "matched_skills": self.matched_skills,
            "missing_skills": self.missing_skills,
            "meets_min_education": self.meets_min_education,
        }


def compute_breakdown(candidate: Candidate, opportunity: Opportunity) -> MatchBreakdown:
    """
    Score a candidate against an opportunity.

    The same formula applies to courses and jobs:

    - skills: share of required skills the candidate has, times 40
    - academics: performance (0-100) scaled to 30, missing counts as 0
    - certificates: 3 points each, at most 15
    - experience: 5 points per year, at most 15

    The sum is clamped to 0-100 and rounded half up. Education is reported
    but never adds points.
    """
    required = normalize_skills(opportunity.required_skills)
    held = normalize_skills(candidate.skills)
    matched = required & held

    skills_points = len(matched) / len(required) * SKILLS_WEIGHT if required else 0.0

    performance = candidate.academic_performance or 0
    performance = min(max(performance, 0), 100)
    academics_points = performance / 100 * ACADEMICS_WEIGHT

    certificate_points = min(max(candidate.certificate_count, 0) * CERTIFICATE_POINTS, CERTIFICATES_CAP)
    experience_points = min(max(candidate.experience_years, 0) * EXPERIENCE_POINTS_PER_YEAR, EXPERIENCE_CAP)

    total = skills_points + academics_points + certificate_points + experience_points
    score = min(max(round_half_up(total), 0), 100)

    meets_min_education = None
    if opportunity.min_education is not None:
        meets_min_education = (
            candidate.education_level is not None
            and candidate.education_level >= opportunity.min_education
        )

    return MatchBreakdown(
        skills=skills_points,
        academics=academics_points,
        certificates=float(certificate_points),
        experience=float(experience_points),
        score=score,
        matched_skills=sorted(matched),
        missing_skills=sorted(required - held),
        meets_min_education=meets_min_education,
    )


def score(candidate: Candidate, opportunity: Opportunity) -> int:
    """Match score in [0, 100]."""
    return compute_breakdown(candidate, opportunity).score


@dataclass
class RankedApplicant:
    """An application with the applicant's profile and score."""
    application: Application
    candidate: Candidate
    breakdown: MatchBreakdown

    @property
    def score(self) -> int:
        return self.breakdown.score


@dataclass
class OpportunityMatch:
    """An opportunity scored for one candidate."""
    opportunity: Opportunity
    breakdown: MatchBreakdown

    @property
    def score(self) -> int:
        return self.breakdown.score


def rank(applicants: Iterable[RankedApplicant]) -> List[RankedApplicant]:
    """Highest score first; ties go to the earlier application, then the lower id."""
    return sorted(
        applicants,
        key=lambda entry: (-entry.score, entry.application.submitted_at, entry.application.id),
    )


class MatchScorer:
    """Ranks applicants for organizations and opportunities for candidates."""

    def __init__(
        self,
        store: EntityStore,
        profiles: Optional[ProfileService] = None,
        catalog: Optional[OpportunityCatalog] = None,
        timeout: Optional[float] = None,
    ):
        self.logger = logger.bind(component="match_scorer")
        self.store = store
        self.timeout = timeout or settings.store_timeout_seconds
        self.profiles = profiles or ProfileService(store, timeout=self.timeout)
        self.catalog = catalog or OpportunityCatalog(store, timeout=self.timeout)

    async def rank_applicants(self, opportunity_id: str, actor: Actor) -> List[RankedApplicant]:
        """
        Score every applicant of an opportunity and rank them.

        Applicants without a stored profile are skipped.

        Args:
            opportunity_id: Opportunity whose applicants are ranked
            actor: Staff of the owning organization or an admin

        Returns:
            Ranked applicants, best first
        """
        opportunity = await self.catalog.get_opportunity(opportunity_id)
        if actor is None or not actor.acts_for(opportunity.organization_id):
            raise ForbiddenError(
                "Only the owning organization may rank applicants",
                opportunity_id=opportunity_id,
            )

        documents = await call_with_timeout(
            self.store.query(Collections.APPLICATIONS, [("opportunity_id", "==", opportunity_id)]),
            self.timeout,
            "list_applicants",
        )

        entries = []
        skipped = 0
        for document in documents:
            application = Application.model_validate(document)
            candidate = await self.profiles.find_profile(application.candidate_id)
            if candidate is None:
                skipped += 1
                continue
            entries.append(
                RankedApplicant(
                    application=application,
                    candidate=candidate,
                    breakdown=compute_breakdown(candidate, opportunity),
                )
            )

        ranked = rank(entries)
        self.logger.info(
            "Applicants ranked",
            opportunity_id=opportunity_id,
            ranked=len(ranked),
            skipped_without_profile=skipped
        )
        return ranked

    async def match_opportunities(
        self,
        candidate: Candidate,
        kind: Optional[OpportunityKind] = None,
        limit: Optional[int] = None,
    ) -> List[OpportunityMatch]:
        """Candidate-visible active opportunities, best match first."""
        opportunities = await self.catalog.list_visible_opportunities(kind)
        matches = [
            OpportunityMatch(opportunity=opportunity, breakdown=compute_breakdown(candidate, opportunity))
            for opportunity in opportunities
        ]
        matches.sort(key=lambda match: (-match.score, match.opportunity.id))

        self.logger.info(
            "Opportunities matched",
            candidate_id=candidate.id,
            kind=getattr(kind, "value", kind),
            total=len(matches)
        )
        return matches[:limit] if limit else matches

    def get_match_summary(self, matches: List[OpportunityMatch]) -> Dict[str, Any]:
        """Summary statistics for a candidate's matches."""
        if not matches:
            return {"total": 0, "average_score": 0, "fit_distribution": {}, "top_matches": []}

        fit_counts = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
        for match in matches:
            fit_counts[match.breakdown.fit_level] += 1

        return {
            "total": len(matches),
            "average_score": sum(m.score for m in matches) / len(matches),
            "fit_distribution": fit_counts,
            "top_matches": [
                {
                    "opportunity_id": m.opportunity.id,
                    "title": m.opportunity.title,
                    "score": m.score,
                    "fit_level": m.breakdown.fit_level,
                }
                for m in matches[:5]
            ],
        }
