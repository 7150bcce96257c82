"""
SQLite-backed store.

Features:
- One table per entity, with the filter columns broken out and the full
  model kept as a JSON payload
- Thread-local connections in WAL mode, safe for concurrent readers
- Schema created on first use
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from signalcore.config import get_logger, get_settings
from signalcore.core.errors import Result, TradeNotFoundError
from signalcore.core.models import (
    AdvisoryRecord,
    DetectedPattern,
    PatternPerformance,
    PatternStatus,
    PerformanceKey,
    RegimeHistory,
    SimulatedTrade,
    SimulationStatus,
    WatchlistItem,
    to_utc,
)

from .base import PatternStore

logger = get_logger("data.sqlite")

LIVE_STATUSES = (PatternStatus.ACTIVE.value, PatternStatus.PLAYING_OUT.value)


def _ts(dt) -> float:
    return to_utc(dt).timestamp()


class SQLiteStore(PatternStore):
    """
    Store persisted to a single SQLite database file.

    Pass ``":memory:"`` for a throwaway database; it is then held on one
    shared connection since each in-memory connection is its own database.
    """

    def __init__(self, db_path: Optional[Path | str] = None):
        """
        Initialize the store.

        Args:
            db_path: Database file (defaults to Settings.DATABASE_PATH)
        """
        if db_path is None:
            db_path = get_settings().DATABASE_PATH
        self._memory = str(db_path) == ":memory:"
        if self._memory:
            self.db_path = Path(":memory:")
            self._shared = sqlite3.connect(":memory:", check_same_thread=False)
            self._shared.row_factory = sqlite3.Row
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._shared = None

        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._init_schema()
        logger.info(f"SQLite store initialized at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if self._shared is not None:
            return self._shared
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=30.0,
            )
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS patterns (
                id TEXT PRIMARY KEY,
                asset TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at REAL NOT NULL,
                payload TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_patterns_asset_status ON patterns(asset, status);

            CREATE TABLE IF NOT EXISTS trades (
                id TEXT PRIMARY KEY,
                asset TEXT NOT NULL,
                status TEXT NOT NULL,
                user_id TEXT NOT NULL,
                created_at REAL NOT NULL,
                payload TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_trades_status_asset ON trades(status, asset);

            CREATE TABLE IF NOT EXISTS performance (
                key TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                payload TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS regime_history (
                id TEXT PRIMARY KEY,
                symbol TEXT NOT NULL,
                detected_at REAL NOT NULL,
                payload TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_regime_symbol_ts ON regime_history(symbol, detected_at);

            CREATE TABLE IF NOT EXISTS watchlist (
                id TEXT PRIMARY KEY,
                is_active INTEGER NOT NULL,
                payload TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS advisory_log (
                id TEXT PRIMARY KEY,
                symbol TEXT NOT NULL,
                created_at REAL NOT NULL,
                payload TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_advisory_symbol_ts ON advisory_log(symbol, created_at);
        """)
        conn.commit()

    def _write(self, sql: str, params: tuple) -> None:
        conn = self._get_connection()
        with self._write_lock:
            conn.execute(sql, params)
            conn.commit()

    # =========================================================================
    # Patterns
    # =========================================================================

    def save_pattern(self, pattern: DetectedPattern) -> None:
        self._write(
            "INSERT OR REPLACE INTO patterns (id, asset, status, created_at, payload) VALUES (?, ?, ?, ?, ?)",
            (pattern.id, pattern.asset, pattern.status.value, _ts(pattern.created_at), pattern.model_dump_json()),
        )

    def get_pattern(self, pattern_id: str) -> Optional[DetectedPattern]:
        row = self._get_connection().execute(
            "SELECT payload FROM patterns WHERE id = ?", (pattern_id,)
        ).fetchone()
        return DetectedPattern.model_validate_json(row["payload"]) if row else None

    def list_patterns(
        self,
        asset: Optional[str] = None,
        status: Optional[PatternStatus] = None,
    ) -> list[DetectedPattern]:
        query = "SELECT payload FROM patterns WHERE 1 = 1"
        params: list = []
        if asset is not None:
            query += " AND asset = ?"
            params.append(asset)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at ASC"
        rows = self._get_connection().execute(query, params).fetchall()
        return [DetectedPattern.model_validate_json(r["payload"]) for r in rows]

    def list_live_patterns(self, asset: Optional[str] = None) -> list[DetectedPattern]:
        query = "SELECT payload FROM patterns WHERE status IN (?, ?)"
        params: list = list(LIVE_STATUSES)
        if asset is not None:
            query += " AND asset = ?"
            params.append(asset)
        query += " ORDER BY created_at ASC"
        rows = self._get_connection().execute(query, params).fetchall()
        return [DetectedPattern.model_validate_json(r["payload"]) for r in rows]

    # =========================================================================
    # Trades
    # =========================================================================

    def save_trade(self, trade: SimulatedTrade) -> None:
        self._write(
            "INSERT OR REPLACE INTO trades (id, asset, status, user_id, created_at, payload) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                trade.id,
                trade.asset,
                trade.status.value,
                trade.user_id,
                _ts(trade.created_at),
                trade.model_dump_json(),
            ),
        )

    def get_trade(self, trade_id: str) -> SimulatedTrade:
        row = self._get_connection().execute(
            "SELECT payload FROM trades WHERE id = ?", (trade_id,)
        ).fetchone()
        if row is None:
            raise TradeNotFoundError(f"Trade {trade_id} not found")
        return SimulatedTrade.model_validate_json(row["payload"])

    def list_trades(
        self,
        status: Optional[SimulationStatus] = None,
        asset: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[SimulatedTrade]:
        query = "SELECT payload FROM trades WHERE 1 = 1"
        params: list = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if asset is not None:
            query += " AND asset = ?"
            params.append(asset)
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at ASC"
        rows = self._get_connection().execute(query, params).fetchall()
        return [SimulatedTrade.model_validate_json(r["payload"]) for r in rows]

    # =========================================================================
    # Performance
    # =========================================================================

    def get_performance(self, key: PerformanceKey) -> Optional[PatternPerformance]:
        row = self._get_connection().execute(
            "SELECT payload FROM performance WHERE key = ?", (key.as_id(),)
        ).fetchone()
        return PatternPerformance.model_validate_json(row["payload"]) if row else None

    def save_performance(self, performance: PatternPerformance) -> None:
        self._write(
            "INSERT OR REPLACE INTO performance (key, user_id, payload) VALUES (?, ?, ?)",
            (performance.key.as_id(), performance.key.user_id, performance.model_dump_json()),
        )

    def list_performance(self, user_id: Optional[str] = None) -> list[PatternPerformance]:
        if user_id is None:
            rows = self._get_connection().execute("SELECT payload FROM performance").fetchall()
        else:
            rows = self._get_connection().execute(
                "SELECT payload FROM performance WHERE user_id = ?", (user_id,)
            ).fetchall()
        return [PatternPerformance.model_validate_json(r["payload"]) for r in rows]

    # =========================================================================
    # Regime history
    # =========================================================================

    def add_regime_history(self, history: RegimeHistory) -> None:
        self._write(
            "INSERT INTO regime_history (id, symbol, detected_at, payload) VALUES (?, ?, ?, ?)",
            (history.id, history.symbol, _ts(history.detected_at), history.model_dump_json()),
        )

    def list_regime_history(self, symbol: str, limit: Optional[int] = None) -> list[RegimeHistory]:
        query = "SELECT payload FROM regime_history WHERE symbol = ? ORDER BY detected_at DESC"
        params: list = [symbol]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._get_connection().execute(query, params).fetchall()
        return [RegimeHistory.model_validate_json(r["payload"]) for r in rows]

    # =========================================================================
    # Watchlist
    # =========================================================================

    def save_watchlist_item(self, item: WatchlistItem) -> None:
        self._write(
            "INSERT OR REPLACE INTO watchlist (id, is_active, payload) VALUES (?, ?, ?)",
            (item.id, int(item.is_active), item.model_dump_json()),
        )

    def list_watchlist(self, active_only: bool = True) -> list[WatchlistItem]:
        query = "SELECT payload FROM watchlist"
        if active_only:
            query += " WHERE is_active = 1"
        rows = self._get_connection().execute(query).fetchall()
        return [WatchlistItem.model_validate_json(r["payload"]) for r in rows]

    # =========================================================================
    # Advisory log
    # =========================================================================

    def add_advisory_record(self, record: AdvisoryRecord) -> Result[AdvisoryRecord]:
        try:
            self._write(
                "INSERT INTO advisory_log (id, symbol, created_at, payload) VALUES (?, ?, ?, ?)",
                (record.id, record.symbol, _ts(record.created_at), record.model_dump_json()),
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to store advisory record for {record.symbol}: {e}")
            return Result.failure(str(e))
        return Result.success(record)

    def list_advisory_records(self, symbol: str, limit: Optional[int] = None) -> list[AdvisoryRecord]:
        query = "SELECT payload FROM advisory_log WHERE symbol = ? ORDER BY created_at DESC"
        params: list = [symbol]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self._get_connection().execute(query, params).fetchall()
        return [AdvisoryRecord.model_validate_json(r["payload"]) for r in rows]

    def close(self) -> None:
        """Close this thread's connection."""
        conn = self._shared or getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
        self._local.conn = None
        self._shared = None
