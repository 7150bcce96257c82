"""Tests for the watchlist scanner, advisory throttle and scan scheduler."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from signalcore.advisory import Advisor
from signalcore.core.errors import AdvisoryError
from signalcore.core.models import (
    DetectedPattern,
    MarketRegime,
    PatternDirection,
    PatternStatus,
    PatternType,
    SimulatedTrade,
    SimulationStatus,
    TradeDirection,
    TradeSignal,
    WatchlistItem,
)
from signalcore.features.detector import detect_all
from signalcore.lifecycle.performance import is_aligned, is_conflicting
from signalcore.scanner import AdvisoryThrottle, ScanScheduler, WatchlistScanner, select_due_items
from signalcore.scanner.watchlist import regime_alignment, signal_alignment

from helpers import ScriptedAdvisoryProvider, advisory_json, flat_candles, make_candle

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)

# Levels that pass the default risk policy on a 100k simulated portfolio
SAFE_LEVELS = dict(recommendedEntry=100.0, recommendedStop=90.0, recommendedTarget=120.0)


def hammer_series() -> list:
    """Quiet bars ending on a bearish bar, then a 90%-confidence hammer."""
    candles = flat_candles(60)
    candles.append(make_candle(60, 99.5, 100.1, 97.0, 100.0))
    return candles


def _scanner(provider, store, settings, advisory=None) -> WatchlistScanner:
    advisor = Advisor(advisory, store, timeout=5)
    return WatchlistScanner(provider, store, advisor, settings=settings)


@pytest.fixture
def loaded_provider(provider):
    provider.add_candles("AAPL", hammer_series())
    return provider


class TestDueItems:
    """Test due-item selection."""

    def test_select_due_items_order_and_limit(self):
        never = WatchlistItem(symbol="NEW")
        old = WatchlistItem(symbol="OLD", last_scanned_at=NOW - timedelta(hours=5))
        older = WatchlistItem(symbol="OLDER", last_scanned_at=NOW - timedelta(hours=9))
        fresh = WatchlistItem(symbol="FRESH", last_scanned_at=NOW - timedelta(minutes=1))
        inactive = WatchlistItem(symbol="OFF", is_active=False)

        due = select_due_items([old, fresh, never, older, inactive], NOW, limit=5)
        assert [i.symbol for i in due] == ["NEW", "OLDER", "OLD"]

        assert [i.symbol for i in select_due_items([old, never, older], NOW, limit=2)] == ["NEW", "OLDER"]

    def test_is_due_respects_interval(self):
        item = WatchlistItem(symbol="AAPL", scan_interval_minutes=30, last_scanned_at=NOW - timedelta(minutes=29))
        assert not item.is_due(NOW)
        assert item.is_due(NOW + timedelta(minutes=1))


class TestWatchlistScanner:
    """Test a single item scan."""

    @pytest.mark.asyncio
    async def test_alert_opens_trade(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(advisory_json(**SAFE_LEVELS))
        item = WatchlistItem(symbol="AAPL")
        store.save_watchlist_item(item)

        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(item, now=NOW)

        assert report.error is None
        assert report.top_pattern == "Hammer"
        assert report.top_pattern_confidence == pytest.approx(90.0)
        assert report.advisory_source == "ai"
        assert report.is_alert
        assert report.alert_message == "AAPL: Hammer (90%), advisory says Buy"
        assert report.created_trade_id is not None

        trade = store.get_trade(report.created_trade_id)
        assert trade.status == SimulationStatus.ACTIVE
        assert trade.entry_price == 100.0
        assert trade.share_count == 200
        assert trade.pattern_type == PatternType.HAMMER
        assert trade.ai_recommended_action == "Buy"

        hammer = next(p for p in store.list_patterns("AAPL") if p.pattern_type == PatternType.HAMMER)
        assert hammer.generated_trade_id == trade.id
        assert hammer.ai_confidence == 82.0
        assert hammer.ai_analysis == "[A] Clean rejection"
        assert trade.detected_pattern_id == hammer.id

        saved_item = store.list_watchlist()[0]
        assert saved_item.last_scanned_at == NOW
        assert saved_item.last_pattern_count == report.pattern_count
        assert saved_item.last_bias == "Bullish"
        assert len(store.list_advisory_records("AAPL")) == 1

    @pytest.mark.asyncio
    async def test_no_duplicate_trade_within_a_day(self, loaded_provider, store, settings):
        scanner = _scanner(loaded_provider, store, settings, ScriptedAdvisoryProvider(advisory_json(**SAFE_LEVELS)))
        item = WatchlistItem(symbol="AAPL")

        first = await scanner.scan_item(item, now=NOW)
        second = await scanner.scan_item(item, now=NOW + timedelta(hours=1))

        assert first.created_trade_id is not None
        assert second.is_alert
        assert second.created_trade_id is None
        assert len(store.list_active_trades("AAPL")) == 1

    @pytest.mark.asyncio
    async def test_risk_check_failure_skips_trade(self, loaded_provider, store, settings):
        # 400 shares at 100 is 40% of the portfolio
        advisory = ScriptedAdvisoryProvider(advisory_json())
        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(
            WatchlistItem(symbol="AAPL"), now=NOW
        )

        assert report.is_alert
        assert report.created_trade_id is None
        assert store.list_trades() == []

    @pytest.mark.asyncio
    async def test_low_ai_confidence_no_alert(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(advisory_json(overallConfidence=55, **SAFE_LEVELS))
        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(
            WatchlistItem(symbol="AAPL"), now=NOW
        )

        assert not report.is_alert
        assert report.alert_message is None
        assert report.created_trade_id is None

    @pytest.mark.asyncio
    async def test_math_fallback_never_trades(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(error=AdvisoryError("offline"))
        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(
            WatchlistItem(symbol="AAPL"), now=NOW
        )

        assert report.advisory_source == "math"
        assert report.created_trade_id is None
        assert all(p.ai_confidence is None for p in store.list_patterns("AAPL"))

    @pytest.mark.asyncio
    async def test_ai_disabled(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(advisory_json(**SAFE_LEVELS))
        item = WatchlistItem(symbol="AAPL", enable_ai=False)

        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(item, use_ai=False, now=NOW)

        assert advisory.prompts == []
        assert report.pattern_count >= 1
        assert report.advisory_source is None
        assert not report.is_alert
        assert store.list_watchlist()[0].last_bias is None
        assert store.list_advisory_records("AAPL") == []

    @pytest.mark.asyncio
    async def test_min_confidence_filter(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(advisory_json(**SAFE_LEVELS))
        item = WatchlistItem(symbol="AAPL", min_confidence=95.0)

        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(item, now=NOW)

        assert report.pattern_count == 0
        assert advisory.prompts == []
        assert store.list_patterns("AAPL") == []

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_item_due(self, provider, store, settings):
        provider.fail_symbol("AAPL")
        item = WatchlistItem(symbol="AAPL")
        store.save_watchlist_item(item)

        report = await _scanner(provider, store, settings).scan_item(item, now=NOW)

        assert report.error
        assert store.list_watchlist()[0].last_scanned_at is None

    @pytest.mark.asyncio
    async def test_contradicted_patterns_invalidated(self, loaded_provider, store, settings):
        old = DetectedPattern(
            asset="AAPL", pattern_type=PatternType.SHOOTING_STAR, direction=PatternDirection.BEARISH,
            confidence=70.0, detected_at_price=101.0, suggested_entry=100.0, suggested_stop=103.0,
            suggested_target=95.0, created_at=NOW - timedelta(days=1), expires_at=NOW + timedelta(days=4),
        )
        store.save_pattern(old)

        await _scanner(loaded_provider, store, settings).scan_item(
            WatchlistItem(symbol="AAPL"), use_ai=False, now=NOW
        )

        assert store.get_pattern(old.id).status == PatternStatus.INVALIDATED

    @pytest.mark.asyncio
    async def test_alignment_tags_reach_performance(self, loaded_provider, store, settings):
        # Bullish hammer against a bearish advisory call
        advisory = ScriptedAdvisoryProvider(advisory_json(
            overallBias="Bearish", recommendedAction="Sell",
            recommendedEntry=100.0, recommendedStop=110.0, recommendedTarget=80.0,
        ))
        scanner = _scanner(loaded_provider, store, settings, advisory)

        report = await scanner.scan_item(WatchlistItem(symbol="AAPL"), now=NOW)

        trade = store.get_trade(report.created_trade_id)
        assert trade.direction == TradeDirection.SHORT
        assert trade.timeframe_alignment == "Conflicting"
        assert trade.regime_alignment in ("Aligned", "Conflicting", "Mixed")

        loaded_provider.add_candles("AAPL", [make_candle(65, 99.0, 100.0, 78.0, 79.0)])
        resolved = scanner.simulation.resolve_active_trades(now=NOW + timedelta(days=2))

        assert [t.id for t in resolved] == [trade.id]
        perf = store.list_performance()[0]
        assert perf.total_trades == 1
        assert perf.trades_when_conflicting == 1
        assert perf.win_rate_when_conflicting == 100.0
        assert perf.trades_when_aligned == 0

    @pytest.mark.asyncio
    async def test_unexpected_advisory_error_still_persists(self, loaded_provider, store, settings):
        advisory = ScriptedAdvisoryProvider(error=RuntimeError("connection pool exhausted"))
        item = WatchlistItem(symbol="AAPL")
        store.save_watchlist_item(item)

        report = await _scanner(loaded_provider, store, settings, advisory).scan_item(item, now=NOW)

        assert report.error is None
        assert report.advisory_source == "math"
        assert report.created_trade_id is None
        assert len(store.list_patterns("AAPL")) == report.pattern_count >= 1
        assert store.list_watchlist()[0].last_scanned_at == NOW

    @pytest.mark.asyncio
    async def test_blocking_work_runs_off_event_loop(self, loaded_provider, store, settings, monkeypatch):
        loop_thread = threading.get_ident()
        seen = {}

        def spy_detect(*args, **kwargs):
            seen["detect"] = threading.get_ident()
            return detect_all(*args, **kwargs)

        save_item = store.save_watchlist_item

        def spy_save(item):
            seen["save"] = threading.get_ident()
            return save_item(item)

        monkeypatch.setattr("signalcore.scanner.watchlist.detect_all", spy_detect)
        monkeypatch.setattr(store, "save_watchlist_item", spy_save)

        await _scanner(loaded_provider, store, settings).scan_item(
            WatchlistItem(symbol="AAPL"), use_ai=False, now=NOW
        )

        assert seen["detect"] != loop_thread
        assert seen["save"] != loop_thread

    @pytest.mark.asyncio
    async def test_regime_recorded(self, loaded_provider, store, settings):
        report = await _scanner(loaded_provider, store, settings).scan_item(
            WatchlistItem(symbol="AAPL"), use_ai=False, now=NOW
        )

        history = store.list_regime_history("AAPL")
        assert len(history) == 1
        assert report.regime == history[0].regime


class TestAlignmentTags:
    """Test the agreement tags attached to auto-created trades."""

    @pytest.mark.parametrize("direction,ma_tag,bias,expected", [
        (PatternDirection.BULLISH, "Bullish", "Bullish", "All Bullish"),
        (PatternDirection.BEARISH, "Bearish", "Bearish", "All Bearish"),
        (PatternDirection.BULLISH, "Bearish", "Bullish", "Conflicting"),
        (PatternDirection.BULLISH, "Mixed", "Bearish", "Conflicting"),
        (PatternDirection.BULLISH, "Mixed", "Bullish", "Mixed"),
        (PatternDirection.BULLISH, None, "Bullish", "Mixed"),
        (PatternDirection.NEUTRAL, "Bullish", "Bullish", "Mixed"),
    ])
    def test_signal_alignment(self, direction, ma_tag, bias, expected):
        assert signal_alignment(direction, ma_tag, bias) == expected

    def test_regime_alignment(self):
        assert regime_alignment(MarketRegime.TRENDING, TradeDirection.LONG, "Bullish") == "Aligned"
        assert regime_alignment(MarketRegime.TRENDING, TradeDirection.SHORT, "Bullish") == "Conflicting"
        assert regime_alignment(MarketRegime.TRENDING, TradeDirection.SHORT, "Bearish") == "Aligned"
        assert regime_alignment(MarketRegime.TRENDING, TradeDirection.LONG, "Mixed") == "Mixed"
        assert regime_alignment(MarketRegime.CHOPPY, TradeDirection.LONG, "Bullish") == "Mixed"

    def test_aligned_tag_counts_as_aligned(self):
        trade = SimulatedTrade(
            asset="AAPL", direction=TradeDirection.LONG, entry_price=100.0, stop_loss=90.0, target1=120.0,
            timeframe_alignment=signal_alignment(PatternDirection.BULLISH, "Bullish", "Bullish"),
        )
        assert is_aligned(trade)
        assert not is_conflicting(trade)


class TestAdvisoryThrottle:
    """Test concurrency limiting and the market-hours pause."""

    @pytest.mark.asyncio
    async def test_limits_concurrency(self):
        throttle = AdvisoryThrottle(max_concurrent=2, delay_ms=0)

        async def work():
            async with throttle.slot():
                await asyncio.sleep(0.01)

        await asyncio.gather(*(work() for _ in range(6)))

        assert throttle.peak_in_flight == 2
        assert throttle.in_flight == 0

    @pytest.mark.asyncio
    async def test_delay_holds_slot(self):
        throttle = AdvisoryThrottle(max_concurrent=1, delay_ms=50)
        loop = asyncio.get_running_loop()
        started = []

        async def work():
            async with throttle.slot():
                started.append(loop.time())

        await asyncio.gather(work(), work())

        assert started[1] - started[0] >= 0.045

    def test_market_hours_pause(self):
        throttle = AdvisoryThrottle(pause_during_market_hours=True)

        assert throttle.is_paused(NOW.replace(hour=14))
        assert throttle.is_paused(NOW.replace(hour=20, minute=59))
        assert not throttle.is_paused(NOW.replace(hour=21))
        assert not throttle.is_paused(NOW.replace(hour=13))

    def test_pause_disabled(self):
        assert not AdvisoryThrottle().is_paused(NOW.replace(hour=15))

    def test_from_settings(self, settings):
        throttle = AdvisoryThrottle.from_settings(settings)
        assert throttle.max_concurrent == settings.MAX_CONCURRENT_AI_CALLS
        assert throttle.delay_ms == 0


class TestScanScheduler:
    """Test tick orchestration."""

    def _scheduler(self, provider, store, settings, advisory=None):
        return ScanScheduler(_scanner(provider, store, settings, advisory), store, settings=settings)

    @pytest.mark.asyncio
    async def test_tick_scans_due_items(self, provider, store, settings):
        advisory = ScriptedAdvisoryProvider(advisory_json(overallConfidence=40), delay=0.01)
        for symbol in ("AAPL", "MSFT", "NVDA"):
            provider.add_candles(symbol, hammer_series())
            store.save_watchlist_item(WatchlistItem(symbol=symbol))
        store.save_watchlist_item(WatchlistItem(symbol="FRESH", last_scanned_at=NOW))

        summary = await self._scheduler(provider, store, settings, advisory).tick(now=NOW)

        assert sorted(r.symbol for r in summary.reports) == ["AAPL", "MSFT", "NVDA"]
        assert summary.alerts == []
        assert not summary.cancelled
        assert advisory.peak_in_flight == 1
        assert len(advisory.prompts) == 3

    @pytest.mark.asyncio
    async def test_tick_respects_max_scans(self, provider, store, settings):
        settings.MAX_SCANS_PER_TICK = 2
        for symbol in ("A", "B", "C"):
            provider.add_candles(symbol, hammer_series())
            store.save_watchlist_item(WatchlistItem(symbol=symbol, enable_ai=False))

        summary = await self._scheduler(provider, store, settings).tick(now=NOW)

        assert len(summary.reports) == 2

    @pytest.mark.asyncio
    async def test_tick_resolves_trades_first(self, provider, store, settings):
        scheduler = self._scheduler(provider, store, settings)
        provider.add_candles("AAPL", [make_candle(64, 101.0, 125.0, 100.0, 121.0)])
        scheduler.simulation.open_trade(
            TradeSignal(asset="AAPL", direction=TradeDirection.LONG, entry_price=100.0,
                        stop_loss=90.0, target1=120.0),
            now=NOW - timedelta(days=1),
        )

        summary = await scheduler.tick(now=NOW)

        assert summary.resolved_trades == 1
        assert summary.lifecycle is not None

    @pytest.mark.asyncio
    async def test_paused_ai_skips_advisory(self, provider, store, settings):
        settings.PAUSE_AI_DURING_MARKET_HOURS = True
        advisory = ScriptedAdvisoryProvider(advisory_json(**SAFE_LEVELS))
        provider.add_candles("AAPL", hammer_series())
        store.save_watchlist_item(WatchlistItem(symbol="AAPL"))

        summary = await self._scheduler(provider, store, settings, advisory).tick(now=NOW.replace(hour=15))

        assert summary.ai_paused
        assert advisory.prompts == []
        assert summary.reports[0].advisory_source is None

    @pytest.mark.asyncio
    async def test_stop_event_cancels(self, provider, store, settings):
        provider.add_candles("AAPL", hammer_series())
        store.save_watchlist_item(WatchlistItem(symbol="AAPL"))
        stop = asyncio.Event()
        stop.set()

        summary = await self._scheduler(provider, store, settings).tick(stop, now=NOW)

        assert summary.cancelled
        assert summary.reports == []
        assert store.list_watchlist()[0].last_scanned_at is None

    @pytest.mark.asyncio
    async def test_overlapping_tick_skipped(self, provider, store, settings):
        scheduler = self._scheduler(provider, store, settings)

        async with scheduler._lock:
            assert scheduler.is_running_tick
            assert await scheduler.tick(now=NOW) is None

        assert await scheduler.tick(now=NOW) is not None

    @pytest.mark.asyncio
    async def test_scan_exception_becomes_error_report(self, provider, store, settings, monkeypatch):
        provider.add_candles("AAPL", hammer_series())
        store.save_watchlist_item(WatchlistItem(symbol="AAPL"))
        scheduler = self._scheduler(provider, store, settings)

        async def boom(*args, **kwargs):
            raise RuntimeError("detector exploded")

        monkeypatch.setattr(scheduler.scanner, "scan_item", boom)
        summary = await scheduler.tick(now=NOW)

        assert summary.reports[0].error == "detector exploded"

    @pytest.mark.asyncio
    async def test_run_stops_on_event(self, provider, store, settings):
        settings.TICK_INTERVAL_SECONDS = 1
        scheduler = self._scheduler(provider, store, settings)
        stop = asyncio.Event()

        async def stopper():
            await asyncio.sleep(0.05)
            stop.set()

        await asyncio.wait_for(asyncio.gather(scheduler.run(stop), stopper()), timeout=5)
        assert stop.is_set()
