"""Advisory synthesis with a deterministic fallback."""

import asyncio
from typing import Optional, Sequence

from signalcore.config import get_logger, get_settings
from signalcore.core.errors import ExternalServiceError
from signalcore.core.models import (
    AdvisoryAnalysis,
    AdvisoryRecord,
    Candle,
    PatternPerformance,
    PatternResult,
    TradingStats,
)
from signalcore.data.stores.base import PatternStore

from .base import AdvisoryProvider
from .parsing import math_only_analysis, parse_advisory
from .prompts import build_synthesis_prompt

logger = get_logger("advisory")


class Advisor:
    """
    Runs the advisory synthesis for one symbol.

    Never raises for collaborator problems: transport errors, timeouts and
    unparsable responses all degrade to ``math_only_analysis``.
    """

    def __init__(
        self,
        provider: Optional[AdvisoryProvider],
        store: Optional[PatternStore] = None,
        timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.store = store
        self.timeout = timeout if timeout is not None else get_settings().AI_TIMEOUT_SECONDS

    async def synthesize(
        self,
        symbol: str,
        patterns: Sequence[PatternResult],
        candles: Sequence[Candle],
        stats: Optional[TradingStats] = None,
        performance: Sequence[PatternPerformance] = (),
        user_id: str = "",
    ) -> AdvisoryAnalysis:
        """
        Ask the advisory provider to reconcile ``patterns``.

        Args:
            symbol: Ticker symbol
            patterns: Detected patterns (already confidence-filtered)
            candles: Recent bars for price context
            stats: Overall simulated trading stats for the prompt
            performance: Relevant per-pattern performance for the prompt
            user_id: Owner recorded on the advisory log entry

        Returns:
            The parsed AI analysis (source "ai") or the math fallback (source "math")
        """
        analysis = await self._ask(symbol, patterns, candles, stats, performance)
        await asyncio.to_thread(self._record, symbol, user_id, analysis, len(patterns))
        return analysis

    async def _ask(
        self,
        symbol: str,
        patterns: Sequence[PatternResult],
        candles: Sequence[Candle],
        stats: Optional[TradingStats],
        performance: Sequence[PatternPerformance],
    ) -> AdvisoryAnalysis:
        if self.provider is None or not patterns:
            return math_only_analysis(symbol, patterns)

        prompt = build_synthesis_prompt(symbol, patterns, candles, stats, performance)
        try:
            text = await asyncio.wait_for(self.provider.get_advisory(prompt), timeout=self.timeout)
            return parse_advisory(text, symbol)
        except asyncio.TimeoutError:
            logger.info(f"Advisory timed out for {symbol} after {self.timeout}s, using math-only analysis")
        except ExternalServiceError as e:
            logger.info(f"Advisory unavailable for {symbol}, using math-only analysis: {e}")
        except Exception as e:
            logger.warning(f"Advisory failed for {symbol}, using math-only analysis: {e!r}", exc_info=True)
        return math_only_analysis(symbol, patterns)

    def _record(self, symbol: str, user_id: str, analysis: AdvisoryAnalysis, pattern_count: int) -> None:
        if self.store is None:
            return
        record = AdvisoryRecord(
            symbol=symbol,
            user_id=user_id,
            analysis=analysis,
            metadata={"pattern_count": pattern_count, "source": analysis.source},
        )
        result = self.store.add_advisory_record(record)
        if not result.ok:
            logger.warning(f"Advisory history not saved for {symbol}: {result.error}")
