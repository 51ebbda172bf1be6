"""Explosion scoring: composite 0-100 score and recommendation tiers."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from ..core.enums import RecommendationTier, RiskLevel
from ..core.models import Recommendation, ScoreBreakdown, TickerSnapshot

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0
PRICE_DECIMALS = 8

# (exclusive lower bound, points), checked top-down
Staircase = Sequence[Tuple[float, float]]
# (exclusive low, exclusive high, points), first match wins
BandTable = Sequence[Tuple[float, float, float]]


@dataclass(frozen=True)
class TierRule:
    """One row of the recommendation table."""
    min_score: float
    tier: RecommendationTier
    action: str
    confidence: str
    target_multiplier: Optional[float]
    stop_multiplier: Optional[float]
    risk: RiskLevel
    timeframe: str


DEFAULT_TIERS: Tuple[TierRule, ...] = (
    TierRule(80, RecommendationTier.STRONG_BUY, "STRONG BUY", "VERY HIGH", 1.25, 0.85, RiskLevel.HIGH, "1-6 hours"),
    TierRule(60, RecommendationTier.MODERATE_BUY, "MODERATE BUY", "HIGH", 1.15, 0.90, RiskLevel.MEDIUM, "6-24 hours"),
    TierRule(40, RecommendationTier.WATCH, "WATCH", "MEDIUM", 1.10, 0.95, RiskLevel.MEDIUM, "1-3 days"),
)

AVOID_RULE = TierRule(
    float("-inf"), RecommendationTier.AVOID, "AVOID", "LOW", None, None, RiskLevel.HIGH, "not recommended"
)


@dataclass(frozen=True)
class ScoringConfig:
    """Point tables for each score component."""
    price_steps: Staircase = ((20, 30), (15, 25), (10, 20), (5, 15), (0, 10))
    volume_steps: Staircase = (
        (50_000_000, 25), (20_000_000, 20), (10_000_000, 15), (5_000_000, 10), (1_000_000, 5),
    )
    momentum_cap: float = 20.0
    price_bands: BandTable = ((0.001, 10, 15), (0.0001, 50, 10), (0.00001, 100, 5))
    volatility_bonus: float = 10.0
    volatility_band: Tuple[float, float] = (0.0, 100.0)
    tiers: Tuple[TierRule, ...] = field(default=DEFAULT_TIERS)


def _staircase(value: float, steps: Staircase) -> float:
    for bound, points in steps:
        if value > bound:
            return float(points)
    return 0.0


def _band(value: float, bands: BandTable) -> float:
    for low, high, points in bands:
        if low < value < high:
            return float(points)
    return 0.0


def ranking_key(score: float, price_change_percent: float, symbol: str) -> Tuple[float, float, str]:
    """Sort key: score desc, then gain desc, then symbol asc."""
    return (-score, -price_change_percent, symbol)


class ExplosionScorer:
    """
    Scores a ticker on price gain, volume, momentum, price accessibility
    and a volatility bonus, then maps the total to a recommendation.

    Price score and momentum score both read ``price_change_percent``, so a
    large gain is counted twice. The tables reproduce the production
    scoring as-is.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(self, ticker: TickerSnapshot) -> Tuple[ScoreBreakdown, Recommendation]:
        """Return the breakdown and recommendation for one ticker."""
        breakdown = self.score_breakdown(ticker)
        return breakdown, self.recommend(breakdown.total_score, ticker.last_price)

    def score_breakdown(self, ticker: TickerSnapshot) -> ScoreBreakdown:
        cfg = self.config
        change = ticker.price_change_percent

        price_score = _staircase(change, cfg.price_steps)
        volume_score = _staircase(ticker.quote_volume, cfg.volume_steps)
        momentum_score = min(cfg.momentum_cap, max(0.0, change))
        accessibility = _band(ticker.last_price, cfg.price_bands)
        low, high = cfg.volatility_band
        volatility_bonus = cfg.volatility_bonus if low < change < high else 0.0

        raw_total = price_score + volume_score + momentum_score + accessibility + volatility_bonus
        total = min(MAX_SCORE, max(0.0, raw_total))

        return ScoreBreakdown(
            price_score=price_score,
            volume_score=volume_score,
            momentum_score=momentum_score,
            price_accessibility=accessibility,
            volatility_bonus=volatility_bonus,
            total_score=total,
        )

    def recommend(self, total_score: float, last_price: float) -> Recommendation:
        """Map a total score onto the tier table."""
        rule = next(
            (tier for tier in self.config.tiers if total_score >= tier.min_score),
            AVOID_RULE,
        )
        if rule.target_multiplier is None or rule.stop_multiplier is None:
            return Recommendation(
                tier=rule.tier,
                action=rule.action,
                confidence=rule.confidence,
                risk=rule.risk,
                timeframe=rule.timeframe,
            )

        return Recommendation(
            tier=rule.tier,
            action=rule.action,
            confidence=rule.confidence,
            buy_price=last_price,
            sell_target=round(last_price * rule.target_multiplier, PRICE_DECIMALS),
            stop_loss=round(last_price * rule.stop_multiplier, PRICE_DECIMALS),
            risk=rule.risk,
            timeframe=rule.timeframe,
        )
