"""Match scoring and ranking."""

from .scorer import MatchBreakdown, MatchScorer, compute_breakdown, rank, score

__all__ = ["MatchBreakdown", "MatchScorer", "compute_breakdown", "rank", "score"]
