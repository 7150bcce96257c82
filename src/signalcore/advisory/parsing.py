"""Parsing advisory responses and the deterministic math-only fallback."""

import json
from typing import Any, Optional, Sequence

from signalcore.core.errors import AdvisoryParseError
from signalcore.core.models import (
    AdvisoryAnalysis,
    PatternDirection,
    PatternResult,
    PatternVerdict,
)

DEFAULT_AI_CONFIDENCE = 50.0


def _extract_json(text: str) -> dict[str, Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise AdvisoryParseError("No JSON object found in advisory response")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise AdvisoryParseError(f"Invalid JSON in advisory response: {e}") from e
    if not isinstance(data, dict):
        raise AdvisoryParseError("Advisory response JSON is not an object")
    return data


def _number(value: Any) -> Optional[float]:
    # bool is an int subclass; JSON true/false are not prices
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def parse_advisory(text: str, symbol: str = "") -> AdvisoryAnalysis:
    """
    Parse a synthesis response into an AdvisoryAnalysis.

    The model may wrap its JSON in prose or code fences; everything between
    the first ``{`` and the last ``}`` is decoded. Price levels are kept only
    when they are JSON numbers.

    Raises:
        AdvisoryParseError: No decodable JSON object in the response
    """
    data = _extract_json(text)

    confidence = _number(data.get("overallConfidence"))
    if confidence is None:
        confidence = DEFAULT_AI_CONFIDENCE

    verdicts = []
    raw_verdicts = data.get("patternVerdicts")
    if isinstance(raw_verdicts, list):
        for v in raw_verdicts:
            if not isinstance(v, dict):
                continue
            verdicts.append(PatternVerdict(
                pattern_name=_text(v.get("patternName"), ""),
                is_valid=v.get("isValid") is True,
                grade=_text(v.get("grade"), "C"),
                one_line_reason=_text(v.get("oneLineReason"), ""),
            ))

    return AdvisoryAnalysis(
        symbol=symbol,
        overall_bias=_text(data.get("overallBias"), "Neutral"),
        overall_confidence=min(max(confidence, 0.0), 100.0),
        summary=_text(data.get("summary"), ""),
        recommended_action=_text(data.get("recommendedAction"), "Wait"),
        recommended_entry=_number(data.get("recommendedEntry")),
        recommended_stop=_number(data.get("recommendedStop")),
        recommended_target=_number(data.get("recommendedTarget")),
        risk_reward=_text(data.get("riskReward"), "N/A"),
        pattern_verdicts=verdicts,
        source="ai",
    )


def math_only_analysis(symbol: str, patterns: Sequence[PatternResult]) -> AdvisoryAnalysis:
    """
    Deterministic analysis used when the advisory is unavailable.

    Bias follows the highest-confidence pattern and its suggested levels are
    reused. Confidence is the mean pattern confidence.
    """
    if not patterns:
        return AdvisoryAnalysis(
            symbol=symbol,
            summary="No patterns detected.",
            recommended_action="Wait",
            risk_reward="N/A",
            source="math",
        )

    top = max(patterns, key=lambda p: p.confidence)
    bullish = sum(1 for p in patterns if p.direction is PatternDirection.BULLISH)
    bearish = sum(1 for p in patterns if p.direction is PatternDirection.BEARISH)

    if top.direction is PatternDirection.BULLISH:
        bias, action = "Bullish", "Watch"
    elif top.direction is PatternDirection.BEARISH:
        bias, action = "Bearish", "Watch"
    else:
        bias, action = "Neutral", "Wait"

    risk = abs(top.suggested_entry - top.suggested_stop)
    reward = abs(top.suggested_target - top.suggested_entry)
    risk_reward = f"1:{reward / risk:.1f}" if risk > 0 else "N/A"

    return AdvisoryAnalysis(
        symbol=symbol,
        overall_bias=bias,
        overall_confidence=round(sum(p.confidence for p in patterns) / len(patterns), 1),
        summary=(
            f"AI synthesis unavailable, showing math-only analysis. Found {bullish} bullish and "
            f"{bearish} bearish patterns; strongest is {top.pattern_name} ({top.confidence:.0f}%)."
        ),
        recommended_action=action,
        recommended_entry=top.suggested_entry,
        recommended_stop=top.suggested_stop,
        recommended_target=top.suggested_target,
        risk_reward=risk_reward,
        source="math",
    )
