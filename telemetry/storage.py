"""
Snapshot Storage

Secondary persistent store for the snapshot cache.

PRINCIPLES:
===========
1. Only the latest snapshot is kept - this is not a system of record
2. The latest snapshot is replaced atomically
3. Refresh cycles are logged as first-class data
4. Nothing here is required for correctness; callers treat it as advisory
"""

from __future__ import annotations
from typing import Dict, List, Optional
from datetime import datetime
from pathlib import Path
import json
import os
import sqlite3
from contextlib import contextmanager

from .contracts import Snapshot


class SnapshotStore:
    """
    Persistent storage for the latest snapshot and the refresh log.

    Uses a JSON file for the snapshot and SQLite for the cycle log.
    """

    def __init__(self, base_path: Path):
        self._base_path = Path(base_path)
        self._latest_path = self._base_path / 'latest.json'
        self._db_path = self._base_path / 'snapshots.db'

        self._base_path.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_conn() as conn:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS refresh_cycles (
                    cycle_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    snapshot_id TEXT NOT NULL,
                    extraction_time TEXT NOT NULL,
                    recorded_at TEXT NOT NULL,
                    alert_count INTEGER DEFAULT 0,
                    failure_count INTEGER DEFAULT 0,
                    statuses TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_refresh_cycles_time ON refresh_cycles(extraction_time);
            ''')

    @contextmanager
    def _get_conn(self):
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @property
    def latest_path(self) -> Path:
        return self._latest_path

    # =========================================================================
    # LATEST SNAPSHOT
    # =========================================================================

    def save_persisted(self, snapshot: Snapshot) -> str:
        """Replace the persisted snapshot. Returns file path."""
        tmp_path = self._latest_path.with_suffix('.json.tmp')
        tmp_path.write_text(
            json.dumps(snapshot.to_dict(), indent=2),
            encoding='utf-8'
        )
        os.replace(tmp_path, self._latest_path)
        return str(self._latest_path)

    def load_persisted(self) -> Optional[Snapshot]:
        """Load the persisted snapshot, or None if there is none."""
        if not self._latest_path.exists():
            return None
        data = json.loads(self._latest_path.read_text(encoding='utf-8'))
        return Snapshot.from_dict(data)

    # =========================================================================
    # REFRESH LOG
    # =========================================================================

    def record_cycle(
        self,
        snapshot: Snapshot,
        alert_count: int = 0,
        statuses: Optional[Dict[str, str]] = None
    ):
        """Append one refresh cycle to the log."""
        with self._get_conn() as conn:
            conn.execute('''
                INSERT INTO refresh_cycles
                (snapshot_id, extraction_time, recorded_at, alert_count, failure_count, statuses)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (
                snapshot.snapshot_id,
                snapshot.extraction_time.isoformat(),
                datetime.now(snapshot.extraction_time.tzinfo).isoformat(),
                alert_count,
                len(snapshot.failures),
                json.dumps(statuses or {}, sort_keys=True)
            ))

    def recent_cycles(self, limit: int = 50) -> List[dict]:
        """Most recent cycles first."""
        with self._get_conn() as conn:
            rows = conn.execute('''
                SELECT * FROM refresh_cycles
                ORDER BY cycle_id DESC
                LIMIT ?
            ''', (limit,)).fetchall()

        cycles = []
        for row in rows:
            cycle = dict(row)
            cycle['statuses'] = json.loads(cycle['statuses'] or '{}')
            cycles.append(cycle)
        return cycles

    def get_stats(self) -> dict:
        """Get storage statistics."""
        with self._get_conn() as conn:
            cycle_count = conn.execute('SELECT COUNT(*) FROM refresh_cycles').fetchone()[0]
            failed_cycles = conn.execute(
                'SELECT COUNT(*) FROM refresh_cycles WHERE failure_count > 0'
            ).fetchone()[0]

        return {
            'cycles': cycle_count,
            'cycles_with_failures': failed_cycles,
            'has_latest': self._latest_path.exists()
        }
