"""Scoring module."""

from .engine import ExplosionScorer, ScoringConfig, TierRule, ranking_key

__all__ = ["ExplosionScorer", "ScoringConfig", "TierRule", "ranking_key"]
