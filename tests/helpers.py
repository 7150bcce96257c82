"""Candle builders and advisory doubles shared by the test modules."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from signalcore.advisory.base import AdvisoryProvider
from signalcore.core.models import Candle

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candle(day: int, open_: float, high: float, low: float, close: float, volume: float = 1_000_000) -> Candle:
    """Daily candle ``day`` days after 2024-01-01."""
    return Candle(time=START + timedelta(days=day), open=open_, high=high, low=low, close=close, volume=volume)


def flat_candles(n: int, price: float = 100.0, start_day: int = 0) -> list[Candle]:
    """Quiet bars: tiny alternating bodies around ``price``."""
    candles = []
    for i in range(n):
        o, c = (price - 0.2, price + 0.2) if i % 2 == 0 else (price + 0.2, price - 0.2)
        candles.append(make_candle(start_day + i, o, price + 1.0, price - 1.0, c))
    return candles


def series_candles(closes, start_day: int = 0, spread: float = 0.5, volume: float = 1_000_000) -> list[Candle]:
    """Candles whose open is the previous close, with a fixed wick spread."""
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        o = prev
        candles.append(make_candle(start_day + i, o, max(o, close) + spread, min(o, close) - spread, close, volume))
        prev = close
    return candles


class ScriptedAdvisoryProvider(AdvisoryProvider):
    """Returns canned text (or raises) and records every prompt."""

    def __init__(self, response: str = "", error: Optional[Exception] = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def name(self) -> str:
        return "scripted"

    async def get_advisory(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.response
        finally:
            self.in_flight -= 1


def advisory_json(**overrides) -> str:
    """A well-formed synthesis response."""
    body = {
        "overallBias": "Bullish",
        "overallConfidence": 82,
        "summary": "Patterns agree on upside.",
        "recommendedAction": "Buy",
        "recommendedEntry": 100.0,
        "recommendedStop": 95.0,
        "recommendedTarget": 110.0,
        "riskReward": "1:2.0",
        "patternVerdicts": [
            {"patternName": "Hammer", "isValid": True, "grade": "A", "oneLineReason": "Clean rejection"},
        ],
    }
    body.update(overrides)
    return json.dumps(body)
