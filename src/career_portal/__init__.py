"""
Career Portal: application and matching engine.

Candidates apply to course seats and job postings; institutions and companies
move those applications through their status machines; administrators gate
which organizations candidates can see. Applicants are ranked with one
deterministic weighted score, and dashboards follow the store through live
views that never flicker.
"""

__version__ = "0.1.0"

from career_portal.applications.lifecycle import ApplicationLifecycleManager
from career_portal.core.eligibility import EligibilityDecision, can_apply
from career_portal.matching.scorer import MatchScorer, score
from career_portal.organizations.approval import ApprovalWorkflowManager
from career_portal.store.memory import InMemoryEntityStore
from career_portal.sync.live_view import LiveViewSynchronizer

__all__ = [
    "ApplicationLifecycleManager",
    "ApprovalWorkflowManager",
    "EligibilityDecision",
    "InMemoryEntityStore",
    "LiveViewSynchronizer",
    "MatchScorer",
    "can_apply",
    "score",
]
