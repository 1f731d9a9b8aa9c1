# anchor/storage/sqlite.py
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from . import RateDecision, RateLimiter


class SQLiteRateLimiter(RateLimiter):
    """Rate-limit windows in a SQLite file, shared by every process that opens it."""

    def __init__(
        self,
        db_path: str | Path,
        limit: int,
        window_s: float,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(limit, window_s, clock)
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        # one connection shared by request threads; serializes the transaction below
        self._lock = threading.Lock()
        self._connect()

    def _connect(self):
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._create_schema()

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS rate_windows (
                caller_key      TEXT    PRIMARY KEY,
                window_start    REAL    NOT NULL,
                hit_count       INTEGER NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_window_start ON rate_windows(window_start)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Rate limit store is closed")
        return self._conn

    def hit(self, key: str) -> RateDecision:
        now = self.clock()
        expired_before = now - self.window_s
        with self._lock:
            conn = self.conn
            # IMMEDIATE takes the write lock up front: read-modify-write stays atomic across processes
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute("DELETE FROM rate_windows WHERE window_start <= ?", (expired_before,))
                row = conn.execute(
                    "SELECT window_start, hit_count FROM rate_windows WHERE caller_key = ?", (key,)
                ).fetchone()
                if row is None:
                    start, count = now, 1
                    conn.execute(
                        "INSERT INTO rate_windows (caller_key, window_start, hit_count) VALUES (?, ?, ?)",
                        (key, start, count),
                    )
                else:
                    start, count = row[0], row[1] + 1
                    conn.execute(
                        "UPDATE rate_windows SET hit_count = ? WHERE caller_key = ?", (count, key)
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return RateDecision(count <= self.limit, count, self.limit, start + self.window_s)

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
