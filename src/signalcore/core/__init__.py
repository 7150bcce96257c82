"""Core module exports."""

from .errors import (
    AdvisoryError,
    AdvisoryParseError,
    ExternalServiceError,
    InputValidationError,
    InsufficientDataError,
    MarketDataError,
    Result,
    RiskThresholdExceededError,
    SignalCoreError,
    TradeNotFoundError,
    safe_div,
)
from .models import (
    AdvisoryAnalysis,
    Candle,
    DetectedPattern,
    FeatureVector,
    MarketRegime,
    PatternCategory,
    PatternDirection,
    PatternPerformance,
    PatternResult,
    PatternStatus,
    PatternType,
    PerformanceKey,
    RegimeResult,
    RiskAssessment,
    RiskInput,
    ScanReport,
    SimulatedTrade,
    SimulationStatus,
    Timeframe,
    TradeContext,
    TradeDirection,
    TradeOutcome,
    TradeSignal,
    TradingStats,
    WatchlistItem,
)

__all__ = [
    "Timeframe",
    "PatternDirection",
    "PatternCategory",
    "PatternType",
    "PatternStatus",
    "MarketRegime",
    "TradeDirection",
    "SimulationStatus",
    "TradeOutcome",
    "Candle",
    "FeatureVector",
    "PatternResult",
    "DetectedPattern",
    "RegimeResult",
    "RiskInput",
    "RiskAssessment",
    "TradeContext",
    "TradeSignal",
    "SimulatedTrade",
    "PerformanceKey",
    "PatternPerformance",
    "TradingStats",
    "WatchlistItem",
    "AdvisoryAnalysis",
    "ScanReport",
    "SignalCoreError",
    "InputValidationError",
    "InsufficientDataError",
    "ExternalServiceError",
    "MarketDataError",
    "AdvisoryError",
    "AdvisoryParseError",
    "RiskThresholdExceededError",
    "TradeNotFoundError",
    "Result",
    "safe_div",
]
