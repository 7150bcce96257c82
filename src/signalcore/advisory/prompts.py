"""Prompt construction for multi-pattern synthesis."""

from typing import Optional, Sequence

from signalcore.core.models import (
    Candle,
    PatternDirection,
    PatternPerformance,
    PatternResult,
    TradingStats,
)

PRICE_CONTEXT_BARS = 10

RESPONSE_FORMAT = """{
  "overallBias": "<Strong Bullish/Bullish/Neutral/Bearish/Strong Bearish>",
  "overallConfidence": <number 0-100>,
  "summary": "<2-3 sentence synthesis of all patterns>",
  "recommendedAction": "<Buy/Sell/Wait/Watch>",
  "recommendedEntry": <price or null>,
  "recommendedStop": <price or null>,
  "recommendedTarget": <price or null>,
  "riskReward": "<e.g. 1:2.5>",
  "patternVerdicts": [
    {
      "patternName": "<name>",
      "isValid": <true/false>,
      "grade": "<A+/A/B+/B/C/D/F>",
      "oneLineReason": "<brief reason>"
    }
  ]
}"""


def price_context(candles: Sequence[Candle], bars: int = PRICE_CONTEXT_BARS) -> str:
    """Fixed-width table of the last ``bars`` candles."""
    lines = [
        "Date       | Open     | High     | Low      | Close    | Volume",
        "-----------|----------|----------|----------|----------|----------",
    ]
    for c in list(candles)[-bars:]:
        arrow = "up" if c.is_bullish else "down"
        lines.append(
            f"{c.time:%Y-%m-%d} | {c.open:8.2f} | {c.high:8.2f} | {c.low:8.2f} | "
            f"{c.close:8.2f} | {c.volume:>10,.0f} {arrow}"
        )
    return "\n".join(lines)


def track_record(
    stats: Optional[TradingStats],
    performance: Sequence[PatternPerformance] = (),
) -> str:
    """Summary of past simulated results, empty when there is no history."""
    lines: list[str] = []
    if stats is not None and stats.total_trades > 0:
        lines.append(
            f"Simulated trades: {stats.total_trades} | Win rate: {stats.win_rate:.1f}% | "
            f"Avg R: {stats.avg_r_multiple:.2f} | Total P&L: {stats.total_pnl_percent:.1f}%"
        )
        lines.append(
            f"Long win rate: {stats.long_win_rate:.1f}% | Short win rate: {stats.short_win_rate:.1f}% | "
            f"Aligned: {stats.aligned_win_rate:.1f}% | Conflicting: {stats.conflicting_win_rate:.1f}%"
        )
    for p in performance:
        k = p.key
        lines.append(
            f"- {k.pattern_type.value} {k.direction.value} {k.timeframe.value} in {k.regime.value}: "
            f"{p.total_trades} trades, {p.win_rate:.1f}% win rate, avg R {p.avg_r_multiple:.2f}"
        )
    return "\n".join(lines)


def build_synthesis_prompt(
    symbol: str,
    patterns: Sequence[PatternResult],
    candles: Sequence[Candle],
    stats: Optional[TradingStats] = None,
    performance: Sequence[PatternPerformance] = (),
) -> str:
    """
    Build the prompt asking the advisory model to reconcile all detected patterns.

    Args:
        symbol: Ticker symbol
        patterns: Detected patterns, any order
        candles: Recent bars; the last close is quoted as the current price
        stats: Overall simulated trading stats, if any
        performance: Per-pattern performance rows relevant to ``patterns``

    Returns:
        Prompt text requesting a raw JSON response
    """
    current_price = candles[-1].close if candles else 0.0
    bullish = sum(1 for p in patterns if p.direction is PatternDirection.BULLISH)
    bearish = sum(1 for p in patterns if p.direction is PatternDirection.BEARISH)

    pattern_lines = []
    for p in patterns:
        pattern_lines.append(
            f"- {p.pattern_name} ({p.direction.value}, Confidence: {p.confidence:.0f}%, "
            f"Win Rate: {p.historical_win_rate:g}%)"
        )
        pattern_lines.append(
            f"  Entry: {p.suggested_entry:.2f} | Stop: {p.suggested_stop:.2f} | Target: {p.suggested_target:.2f}"
        )

    sections = [
        f"You are a senior technical analyst. Multiple patterns have been detected on {symbol}. "
        "Synthesize them into a unified trading recommendation.",
        "",
        f"SYMBOL: {symbol}",
        f"CURRENT PRICE: {current_price:.2f}",
        f"TOTAL PATTERNS FOUND: {len(patterns)}",
        f"BULLISH PATTERNS: {bullish}",
        f"BEARISH PATTERNS: {bearish}",
        "",
        "DETECTED PATTERNS:",
        *pattern_lines,
        "",
        f"RECENT PRICE ACTION (last {PRICE_CONTEXT_BARS} candles):",
        price_context(candles),
    ]

    record = track_record(stats, performance)
    if record:
        sections += ["", "OUR TRACK RECORD ON SIMILAR SETUPS:", record]

    sections += [
        "",
        "Analyze ALL patterns together. Consider:",
        "1. Do the patterns confirm or contradict each other?",
        "2. Which patterns are strongest and most reliable?",
        "3. What is the overall market bias?",
        "4. What is the best trade setup considering all signals?",
        "",
        "Respond in this EXACT JSON format (no markdown, no code blocks, just raw JSON):",
        RESPONSE_FORMAT,
    ]
    return "\n".join(sections)
