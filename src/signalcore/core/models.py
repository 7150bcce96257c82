"""Core domain models using Pydantic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# Enums
# =============================================================================


class Timeframe(str, Enum):
    """Supported bar timeframes."""
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1wk"

    @property
    def expiry_window(self) -> timedelta:
        """How long a pattern detected on this timeframe stays live."""
        return _EXPIRY_WINDOWS[self]


_EXPIRY_WINDOWS: dict[Timeframe, timedelta] = {
    Timeframe.M1: timedelta(minutes=30),
    Timeframe.M5: timedelta(hours=2),
    Timeframe.M15: timedelta(hours=4),
    Timeframe.M30: timedelta(hours=6),
    Timeframe.H1: timedelta(hours=8),
    Timeframe.H4: timedelta(days=2),
    Timeframe.D1: timedelta(days=5),
    Timeframe.W1: timedelta(days=14),
}


class PatternDirection(str, Enum):
    """Pattern signal direction."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    @property
    def opposite(self) -> "PatternDirection":
        if self is PatternDirection.BULLISH:
            return PatternDirection.BEARISH
        if self is PatternDirection.BEARISH:
            return PatternDirection.BULLISH
        return PatternDirection.NEUTRAL


class PatternCategory(str, Enum):
    """Detector pass that produces a pattern."""
    CANDLESTICK = "candlestick"
    CHART = "chart"
    TECHNICAL = "technical"


class PatternType(str, Enum):
    """Every pattern the detector can emit."""
    # Candlestick - single bar
    DOJI = "doji"
    HAMMER = "hammer"
    INVERTED_HAMMER = "inverted_hammer"
    SHOOTING_STAR = "shooting_star"
    MARUBOZU = "marubozu"

    # Candlestick - dual bar
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"
    BULLISH_HARAMI = "bullish_harami"
    BEARISH_HARAMI = "bearish_harami"
    PIERCING_LINE = "piercing_line"
    DARK_CLOUD_COVER = "dark_cloud_cover"

    # Candlestick - triple bar
    MORNING_STAR = "morning_star"
    EVENING_STAR = "evening_star"
    THREE_WHITE_SOLDIERS = "three_white_soldiers"
    THREE_BLACK_CROWS = "three_black_crows"

    # Chart
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"

    # Technical setups
    GOLDEN_CROSS = "golden_cross"
    DEATH_CROSS = "death_cross"
    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"
    BOLLINGER_SQUEEZE = "bollinger_squeeze"
    VOLUME_BREAKOUT = "volume_breakout"
    MACD_CROSS_UP = "macd_cross_up"
    MACD_CROSS_DOWN = "macd_cross_down"

    @property
    def category(self) -> PatternCategory:
        if self in _CHART_TYPES:
            return PatternCategory.CHART
        if self in _TECHNICAL_TYPES:
            return PatternCategory.TECHNICAL
        return PatternCategory.CANDLESTICK


_CHART_TYPES = frozenset({
    PatternType.DOUBLE_TOP,
    PatternType.DOUBLE_BOTTOM,
    PatternType.HEAD_AND_SHOULDERS,
    PatternType.INVERSE_HEAD_AND_SHOULDERS,
})

_TECHNICAL_TYPES = frozenset({
    PatternType.GOLDEN_CROSS,
    PatternType.DEATH_CROSS,
    PatternType.RSI_OVERSOLD,
    PatternType.RSI_OVERBOUGHT,
    PatternType.BOLLINGER_SQUEEZE,
    PatternType.VOLUME_BREAKOUT,
    PatternType.MACD_CROSS_UP,
    PatternType.MACD_CROSS_DOWN,
})


class PatternStatus(str, Enum):
    """Lifecycle status of a tracked pattern."""
    ACTIVE = "active"
    PLAYING_OUT = "playing_out"
    HIT_TARGET = "hit_target"
    HIT_STOP = "hit_stop"
    EXPIRED = "expired"
    INVALIDATED = "invalidated"

    @property
    def is_terminal(self) -> bool:
        return self not in (PatternStatus.ACTIVE, PatternStatus.PLAYING_OUT)


class MarketRegime(str, Enum):
    """Market regime. Declaration order is the classifier's tie-break order."""
    TRENDING = "trending"
    VOL_EXPANSION = "vol_expansion"
    MEAN_REVERSION = "mean_reversion"
    CHOPPY = "choppy"


class TradeDirection(str, Enum):
    """Simulated trade side."""
    LONG = "long"
    SHORT = "short"


class SimulationStatus(str, Enum):
    """Simulated trade tracking status."""
    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class TradeOutcome(str, Enum):
    """Final (or current) outcome of a simulated trade."""
    OPEN = "open"
    HIT_TARGET1 = "hit_target1"
    HIT_TARGET2 = "hit_target2"
    HIT_STOP = "hit_stop"
    EXPIRED = "expired"
    MANUAL_CLOSE = "manual_close"

    @property
    def is_win(self) -> bool:
        return self in (TradeOutcome.HIT_TARGET1, TradeOutcome.HIT_TARGET2)

    @property
    def is_loss(self) -> bool:
        return self is TradeOutcome.HIT_STOP


# =============================================================================
# Market Data Models
# =============================================================================


class Candle(BaseModel):
    """Single OHLCV bar."""
    model_config = ConfigDict(frozen=True)

    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, v: datetime) -> datetime:
        return to_utc(v)

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def is_doji(self) -> bool:
        return self.range > 0 and self.body / self.range < 0.1

    @property
    def mid_point(self) -> float:
        return (self.high + self.low) / 2

    @property
    def body_center(self) -> float:
        return (self.open + self.close) / 2


class FeatureVector(BaseModel):
    """Technical indicator snapshot for one symbol."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    rsi: float
    macd: float
    macd_signal: float
    bollinger_upper: float
    bollinger_middle: float
    bollinger_lower: float
    bollinger_width: float  # percent of SMA20
    atr: float
    atr_percent: float
    sma20: float
    sma50: float
    ema12: float
    ema26: float
    vwap: float
    volume_avg20: int
    sma20_slope: float  # percent over the last 5 SMA values
    current_price: float
    calculated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Pattern Models
# =============================================================================


class PatternResult(BaseModel):
    """Transient detector output."""
    pattern_type: PatternType
    pattern_name: str
    direction: PatternDirection
    confidence: float = Field(ge=0.0, le=100.0)
    historical_win_rate: float = 50.0
    description: str = ""
    timeframe: Timeframe = Timeframe.D1
    start_index: int
    end_index: int
    start_date: datetime
    end_date: datetime
    suggested_entry: float
    suggested_stop: float
    suggested_target: float


class DetectedPattern(BaseModel):
    """A detection accepted by a scan and tracked through its lifecycle."""
    id: str = Field(default_factory=_new_id)
    asset: str
    user_id: str = ""

    pattern_type: PatternType
    pattern_name: str = ""
    direction: PatternDirection
    timeframe: Timeframe = Timeframe.D1
    confidence: float = Field(ge=0.0, le=100.0)
    historical_win_rate: float = 50.0
    description: str = ""

    detected_at_price: float
    suggested_entry: float
    suggested_stop: float
    suggested_target: float
    pattern_start_date: Optional[datetime] = None
    pattern_end_date: Optional[datetime] = None

    status: PatternStatus = PatternStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    current_price: Optional[float] = None
    high_water_mark: Optional[float] = None
    low_water_mark: Optional[float] = None

    resolved_at: Optional[datetime] = None
    resolution_price: Optional[float] = None
    was_correct: Optional[bool] = None
    actual_pnl_percent: Optional[float] = None

    ai_analysis: Optional[str] = None
    ai_confidence: Optional[float] = None
    generated_trade_id: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return not self.status.is_terminal

    @classmethod
    def from_result(
        cls,
        result: PatternResult,
        asset: str,
        detected_at_price: float,
        timeframe: Optional[Timeframe] = None,
        now: Optional[datetime] = None,
        user_id: str = "",
    ) -> "DetectedPattern":
        """Create a tracked pattern from a detector result."""
        created = to_utc(now) if now else utcnow()
        tf = timeframe or result.timeframe
        return cls(
            asset=asset,
            user_id=user_id,
            pattern_type=result.pattern_type,
            pattern_name=result.pattern_name,
            direction=result.direction,
            timeframe=tf,
            confidence=result.confidence,
            historical_win_rate=result.historical_win_rate,
            description=result.description,
            detected_at_price=detected_at_price,
            suggested_entry=result.suggested_entry,
            suggested_stop=result.suggested_stop,
            suggested_target=result.suggested_target,
            pattern_start_date=result.start_date,
            pattern_end_date=result.end_date,
            created_at=created,
            updated_at=created,
            expires_at=created + tf.expiry_window,
        )


# =============================================================================
# Regime Models
# =============================================================================


class RegimeResult(BaseModel):
    """Winning regime for one classification call."""
    symbol: str
    regime: MarketRegime
    confidence: float = Field(ge=0.0, le=100.0)
    rationale: list[str] = Field(default_factory=list)
    features: FeatureVector
    detected_at: datetime = Field(default_factory=utcnow)


class RegimeHistory(BaseModel):
    """Append-only record of a classification."""
    id: str = Field(default_factory=_new_id)
    symbol: str
    regime: MarketRegime
    confidence: float
    detected_at: datetime
    features_json: Optional[str] = None

    @classmethod
    def from_result(cls, result: RegimeResult) -> "RegimeHistory":
        return cls(
            symbol=result.symbol,
            regime=result.regime,
            confidence=result.confidence,
            detected_at=result.detected_at,
            features_json=result.features.model_dump_json(),
        )


# =============================================================================
# Risk Models
# =============================================================================


class RiskInput(BaseModel):
    """Parameters for a risk assessment."""
    symbol: str = ""
    entry_price: float
    stop_loss: float
    target1: float
    target2: Optional[float] = None
    portfolio_size: float
    risk_percent: Optional[float] = None
    is_short: bool = False
    win_rate: Optional[float] = None  # percent


class RiskAssessment(BaseModel):
    """Position sizing and policy check for one trade idea."""
    symbol: str = ""
    entry_price: float
    stop_loss: float
    target1: float
    target2: Optional[float] = None
    portfolio_size: float
    risk_percent: float

    risk_per_share: float = 0.0
    reward_per_share1: float = 0.0
    reward_per_share2: Optional[float] = None
    risk_reward_ratio1: float = 0.0
    risk_reward_ratio2: Optional[float] = None

    risk_amount_dollars: float = 0.0
    share_count: int = 0
    position_size: float = 0.0
    position_value: float = 0.0
    position_percent_of_portfolio: float = 0.0

    max_loss: float = 0.0
    potential_gain1: float = 0.0
    potential_gain2: Optional[float] = None

    kelly_percent: Optional[float] = None
    kelly_position_size: Optional[float] = None

    passes_risk_check: bool = True
    violations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Simulation Models
# =============================================================================


class TradeContext(BaseModel):
    """Optional pattern and alignment tags attached to a trade at creation."""
    pattern_type: Optional[PatternType] = None
    pattern_direction: Optional[PatternDirection] = None
    pattern_timeframe: Optional[Timeframe] = None
    pattern_confidence: Optional[float] = None
    timeframe_alignment: Optional[str] = None  # "All Bullish", "Conflicting", ...
    regime_alignment: Optional[str] = None
    ma_alignment: Optional[str] = None
    volume_profile: Optional[str] = None  # "Breakout", "Normal", ...
    rsi_at_entry: Optional[float] = None


class TradeSignal(BaseModel):
    """An accepted trade idea that becomes a simulated trade."""
    id: str = Field(default_factory=_new_id)
    asset: str
    direction: TradeDirection
    entry_price: float = Field(gt=0)
    stop_loss: float = Field(gt=0)
    target1: float = Field(gt=0)
    target2: Optional[float] = None
    regime: MarketRegime = MarketRegime.CHOPPY
    share_count: Optional[int] = None
    position_value: Optional[float] = None
    max_risk: Optional[float] = None
    ai_confidence: Optional[float] = None
    ai_recommended_action: Optional[str] = None
    detected_pattern_id: Optional[str] = None
    user_id: str = ""


class SimulatedTrade(BaseModel):
    """Paper trade tracked from activation to resolution."""
    id: str = Field(default_factory=_new_id)
    signal_id: Optional[str] = None
    detected_pattern_id: Optional[str] = None
    user_id: str = ""

    asset: str
    direction: TradeDirection
    entry_price: float
    stop_loss: float
    target1: float
    target2: Optional[float] = None

    regime_at_entry: MarketRegime = MarketRegime.CHOPPY
    pattern_type: Optional[PatternType] = None
    pattern_direction: Optional[PatternDirection] = None
    pattern_timeframe: Optional[Timeframe] = None
    pattern_confidence: Optional[float] = None
    ai_confidence: Optional[float] = None
    ai_recommended_action: Optional[str] = None
    timeframe_alignment: Optional[str] = None
    regime_alignment: Optional[str] = None
    ma_alignment: Optional[str] = None
    volume_profile: Optional[str] = None
    rsi_at_entry: Optional[float] = None

    share_count: Optional[int] = None
    position_value: Optional[float] = None
    max_risk: Optional[float] = None

    status: SimulationStatus = SimulationStatus.PENDING
    outcome: TradeOutcome = TradeOutcome.OPEN
    created_at: datetime = Field(default_factory=utcnow)
    activated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    days_held: int = 0
    max_expiration_days: int = 30

    highest_price_seen: Optional[float] = None
    lowest_price_seen: Optional[float] = None
    exit_price: Optional[float] = None

    pnl_dollars: Optional[float] = None
    pnl_percent: Optional[float] = None
    r_multiple: Optional[float] = None
    max_drawdown_percent: Optional[float] = None

    @property
    def is_long(self) -> bool:
        return self.direction is TradeDirection.LONG

    @property
    def performance_key(self) -> Optional["PerformanceKey"]:
        """Aggregation key, or None when the trade carries no pattern metadata."""
        if self.pattern_type is None or self.pattern_direction is None:
            return None
        return PerformanceKey(
            pattern_type=self.pattern_type,
            direction=self.pattern_direction,
            timeframe=self.pattern_timeframe or Timeframe.D1,
            regime=self.regime_at_entry,
            user_id=self.user_id,
        )


class PerformanceKey(BaseModel):
    """Identity of a PatternPerformance row."""
    model_config = ConfigDict(frozen=True)

    pattern_type: PatternType
    direction: PatternDirection
    timeframe: Timeframe = Timeframe.D1
    regime: MarketRegime
    user_id: str = ""

    def as_id(self) -> str:
        return "|".join((
            self.user_id,
            self.pattern_type.value,
            self.direction.value,
            self.timeframe.value,
            self.regime.value,
        ))


class PatternPerformance(BaseModel):
    """Aggregated outcome statistics for one performance key."""
    key: PerformanceKey

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    expired: int = 0
    win_rate: float = 0.0

    avg_win_percent: float = 0.0
    avg_loss_percent: float = 0.0
    avg_r_multiple: float = 0.0
    best_trade_percent: float = 0.0
    worst_trade_percent: float = 0.0
    total_pnl_percent: float = 0.0
    profit_factor: float = 0.0

    win_rate_when_aligned: float = 0.0
    trades_when_aligned: int = 0
    win_rate_when_conflicting: float = 0.0
    trades_when_conflicting: int = 0
    win_rate_with_breakout_vol: float = 0.0
    trades_with_breakout_vol: int = 0

    avg_days_held: float = 0.0
    last_trade_date: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)


class TradingStats(BaseModel):
    """Overall stats across a set of resolved trades."""
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    avg_r_multiple: float = 0.0
    total_pnl_percent: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    avg_days_held: float = 0.0
    long_win_rate: float = 0.0
    short_win_rate: float = 0.0
    aligned_win_rate: float = 0.0
    conflicting_win_rate: float = 0.0


# =============================================================================
# Scanner & Advisory Models
# =============================================================================


class WatchlistItem(BaseModel):
    """A symbol scanned periodically in the background."""
    id: str = Field(default_factory=_new_id)
    symbol: str
    user_id: str = ""
    is_active: bool = True
    enable_ai: bool = True
    min_confidence: float = 60.0
    scan_interval_minutes: int = Field(default=30, ge=5, le=1440)
    timeframe: Timeframe = Timeframe.D1
    last_scanned_at: Optional[datetime] = None
    last_pattern_count: int = 0
    last_bias: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)

    def is_due(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if self.last_scanned_at is None:
            return True
        elapsed = to_utc(now) - to_utc(self.last_scanned_at)
        return elapsed >= timedelta(minutes=self.scan_interval_minutes)


class PatternVerdict(BaseModel):
    """Advisory verdict on one pattern."""
    pattern_name: str = ""
    is_valid: bool = False
    grade: str = ""
    one_line_reason: str = ""
    entry: Optional[float] = None
    stop: Optional[float] = None
    target: Optional[float] = None


class AdvisoryAnalysis(BaseModel):
    """Synthesis of all patterns on a symbol, from the advisory or the math fallback."""
    symbol: str = ""
    overall_bias: str = "Neutral"
    overall_confidence: float = 0.0
    summary: str = ""
    recommended_action: str = "Watch"
    recommended_entry: Optional[float] = None
    recommended_stop: Optional[float] = None
    recommended_target: Optional[float] = None
    risk_reward: str = ""
    pattern_verdicts: list[PatternVerdict] = Field(default_factory=list)
    source: str = "ai"

    @property
    def has_levels(self) -> bool:
        return (
            self.recommended_entry is not None
            and self.recommended_stop is not None
            and self.recommended_target is not None
            and self.recommended_entry > 0
        )

    @property
    def is_long(self) -> bool:
        bias = self.overall_bias.lower()
        action = self.recommended_action.lower()
        return "bullish" in bias or "buy" in action or "long" in action


class AdvisoryRecord(BaseModel):
    """Persisted advisory output for one scan."""
    id: str = Field(default_factory=_new_id)
    symbol: str
    user_id: str = ""
    analysis: AdvisoryAnalysis
    created_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScanReport(BaseModel):
    """Summary of one watchlist scan."""
    symbol: str
    pattern_count: int = 0
    current_price: Optional[float] = None
    regime: Optional[MarketRegime] = None
    top_pattern: Optional[str] = None
    top_pattern_confidence: Optional[float] = None
    overall_bias: Optional[str] = None
    ai_confidence: Optional[float] = None
    recommended_action: Optional[str] = None
    advisory_source: Optional[str] = None
    is_alert: bool = False
    alert_message: Optional[str] = None
    created_trade_id: Optional[str] = None
    error: Optional[str] = None
    scanned_at: datetime = Field(default_factory=utcnow)
