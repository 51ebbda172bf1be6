"""Core data models for the scanner."""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, validator

from .enums import MarketSentiment, RecommendationTier, RiskLevel, Trend


# Raw upstream key -> model field
TICKER_FIELD_MAP = {
    'symbol': 'symbol',
    'lastPrice': 'last_price',
    'priceChangePercent': 'price_change_percent',
    'quoteVolume': 'quote_volume',
    'priceChange': 'price_change',
    'count': 'trade_count',
}

REQUIRED_TICKER_KEYS = ('symbol', 'lastPrice', 'priceChangePercent', 'quoteVolume')


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class TickerSnapshot(BaseModel):
    """24h ticker for one symbol, parsed from the raw upstream record."""

    symbol: str = Field(min_length=1, description="Exchange pair id, e.g. BTCUSDT")
    last_price: float = Field(description="Last traded price")
    price_change_percent: float = Field(description="24h price change in percent")
    quote_volume: float = Field(description="24h volume in quote currency")
    price_change: float = Field(default=0.0, description="24h absolute price change")
    trade_count: float = Field(default=0.0, description="Number of trades in the window")

    class Config:
        frozen = True

    @validator('last_price', 'price_change_percent', 'quote_volume', 'price_change', 'trade_count')
    def validate_finite(cls, v):
        if not math.isfinite(v):
            raise ValueError("Numeric ticker fields must be finite")
        return v

    @classmethod
    def from_raw(cls, record: Mapping[str, Any]) -> "TickerSnapshot":
        """Build a snapshot from a raw Binance-style ticker record.

        Raises:
            ValueError: a required key is missing/None or a value fails validation.
        """
        missing = [key for key in REQUIRED_TICKER_KEYS if record.get(key) is None]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        values: Dict[str, Any] = {}
        for raw_key, field_name in TICKER_FIELD_MAP.items():
            value = record.get(raw_key)
            if value is None and raw_key == 'count':
                value = record.get('tradeCount')
            if value is not None:
                values[field_name] = value
        return cls(**values)


class IndicatorSnapshot(BaseModel):
    """Technical indicators derived from a symbol's candle history."""

    rsi: float = Field(default=50.0, ge=0.0, le=100.0, description="Relative strength index")
    volatility: float = Field(default=0.0, ge=0.0, description="Std of returns, in percent")
    volume_spike_ratio: float = Field(default=1.0, description="Last volume / average volume")
    trend: Trend = Field(default=Trend.NEUTRAL, description="Short-term trend")
    samples: int = Field(default=0, ge=0, description="Number of candles used")
    flags: List[str] = Field(default_factory=list, description="Threshold crossings")


class ScoreBreakdown(BaseModel):
    """Per-factor sub-scores and their clamped total."""

    price_score: float = Field(ge=0.0, description="Price-gain staircase score")
    volume_score: float = Field(ge=0.0, description="Quote volume staircase score")
    momentum_score: float = Field(ge=0.0, description="Capped percent gain")
    price_accessibility: float = Field(ge=0.0, description="Price band score")
    volatility_bonus: float = Field(ge=0.0, description="Bonus for controlled moves")
    total_score: float = Field(ge=0.0, le=100.0, description="Sum of components, clamped to 0-100")


class Recommendation(BaseModel):
    """Trading recommendation derived from a total score."""

    tier: RecommendationTier = Field(description="Recommendation tier")
    action: str = Field(description="Action label")
    confidence: str = Field(description="Confidence label")
    buy_price: Optional[float] = Field(default=None, description="Reference entry price")
    sell_target: Optional[float] = Field(default=None, description="Take-profit price")
    stop_loss: Optional[float] = Field(default=None, description="Stop-loss price")
    risk: RiskLevel = Field(description="Qualitative risk")
    timeframe: str = Field(description="Suggested holding horizon")

    @property
    def is_actionable(self) -> bool:
        return self.sell_target is not None


class ScoredCandidate(BaseModel):
    """A ranked result row."""

    symbol: str
    price: float
    price_change_percent: float
    volume: float
    trade_count: float = 0.0
    score: float = Field(ge=0.0, le=100.0)
    breakdown: ScoreBreakdown
    recommendation: Recommendation
    indicators: Optional[IndicatorSnapshot] = None
    is_new: bool = False
    note: Optional[str] = Field(default=None, description="Alert or reason text")
    timestamp: datetime = Field(default_factory=utcnow)


class MarketStats(BaseModel):
    """Breadth statistics over the scanned universe."""

    total_tokens: int = 0
    positive_tokens: int = 0
    bullish_percentage: float = 0.0
    avg_change: float = 0.0


class MarketOverview(BaseModel):
    """Explosion alerts, steady movers and market sentiment in one payload."""

    explosion_alerts: List[ScoredCandidate] = Field(default_factory=list)
    safe_investments: List[ScoredCandidate] = Field(default_factory=list)
    market_sentiment: MarketSentiment = MarketSentiment.NEUTRAL
    stats: MarketStats = Field(default_factory=MarketStats)
    timestamp: datetime = Field(default_factory=utcnow)
