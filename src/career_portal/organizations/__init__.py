"""Organization onboarding and approval."""

from .approval import ApprovalWorkflowManager, is_candidate_visible

__all__ = ["ApprovalWorkflowManager", "is_candidate_visible"]
