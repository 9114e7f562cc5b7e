"""
SQLite persistence - one database file holding versions, sync state, sync
records, the conflict queue and the resolution audit list.

Rows keep the columns needed for filtering plus a JSON document with the
full entity, written through the entities' ``to_dict``/``from_dict``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ctsync.core.domain.entities import (
    ConflictEntry,
    ResolutionRecord,
    SyncRecord,
    SyncState,
    Version,
)
from ctsync.core.domain.enums import SyncStatus, VersionOrigin
from ctsync.core.ports.persistence import (
    ConflictStorePort,
    SyncHistoryQuery,
    SyncRecordStorePort,
    SyncStateStorePort,
    VersionStorePort,
)


DEFAULT_BUSY_TIMEOUT_MS = 30000

SCHEMA = """
CREATE TABLE IF NOT EXISTS versions (
    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
    type_key TEXT NOT NULL,
    hash TEXT NOT NULL,
    origin TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    data_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_versions_key ON versions (type_key, origin);

CREATE TABLE IF NOT EXISTS sync_states (
    type_key TEXT PRIMARY KEY,
    sync_status TEXT NOT NULL,
    data_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_records (
    id TEXT PRIMARY KEY,
    type_key TEXT NOT NULL,
    target_platform TEXT NOT NULL,
    status TEXT NOT NULL,
    deployment_id TEXT,
    started_at TEXT NOT NULL,
    data_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sync_records_key ON sync_records (type_key, started_at);

CREATE TABLE IF NOT EXISTS conflicts (
    id TEXT PRIMARY KEY,
    type_key TEXT NOT NULL,
    status TEXT NOT NULL,
    flagged_at TEXT NOT NULL,
    data_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS resolutions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conflict_id TEXT NOT NULL,
    resolved_at TEXT NOT NULL,
    data_json TEXT NOT NULL
);
"""


def configure_sqlite_connection(
    connection: sqlite3.Connection, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> None:
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode=WAL")
    connection.execute("PRAGMA synchronous=NORMAL")
    connection.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, default=str)


class SQLiteSyncStore(VersionStorePort, SyncStateStorePort, SyncRecordStorePort, ConflictStorePort):
    """
    Implements every row-oriented persistence port on a single connection.

    Pass ``":memory:"`` for a throwaway database. Access is serialized with
    a lock so the store can be shared with worker threads.
    """

    def __init__(self, database: str | Path = ":memory:", busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
        self.database = str(database)
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(
            self.database,
            check_same_thread=False,
            timeout=max(1.0, busy_timeout_ms / 1000),
        )
        configure_sqlite_connection(self._connection, busy_timeout_ms)
        self._lock = threading.RLock()
        self.logger = logging.getLogger("SQLiteSyncStore")

        with self._lock, self._connection:
            self._connection.executescript(SCHEMA)
        self.logger.debug(f"Opened sync store at {self.database}")

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> SQLiteSyncStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        with self._lock, self._connection:
            cursor = self._connection.execute(sql, params)
            return cursor.rowcount

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    def append_version(self, version: Version) -> Version:
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "INSERT INTO versions (type_key, hash, origin, timestamp, data_json) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    version.type_key,
                    version.hash,
                    version.origin.value,
                    version.timestamp.isoformat(),
                    _dumps(version.to_dict()),
                ),
            )
            sequence = int(cursor.lastrowid or 0)
        return Version.from_dict({**version.to_dict(), "sequence": sequence})

    def get_versions(self, type_key: str, origin: VersionOrigin | None = None) -> list[Version]:
        if origin is None:
            rows = self._query(
                "SELECT sequence, data_json FROM versions WHERE type_key = ? ORDER BY sequence",
                (type_key,),
            )
        else:
            rows = self._query(
                "SELECT sequence, data_json FROM versions "
                "WHERE type_key = ? AND origin = ? ORDER BY sequence",
                (type_key, origin.value),
            )
        return [
            Version.from_dict({**json.loads(row["data_json"]), "sequence": row["sequence"]})
            for row in rows
        ]

    def list_type_keys(self) -> list[str]:
        rows = self._query("SELECT DISTINCT type_key FROM versions ORDER BY type_key")
        return [row["type_key"] for row in rows]

    # -------------------------------------------------------------------------
    # Sync State
    # -------------------------------------------------------------------------

    def get_state(self, type_key: str) -> SyncState | None:
        rows = self._query("SELECT data_json FROM sync_states WHERE type_key = ?", (type_key,))
        return SyncState.from_dict(json.loads(rows[0]["data_json"])) if rows else None

    def save_state(self, state: SyncState) -> None:
        self._write(
            "INSERT INTO sync_states (type_key, sync_status, data_json) VALUES (?, ?, ?) "
            "ON CONFLICT(type_key) DO UPDATE SET "
            "sync_status = excluded.sync_status, data_json = excluded.data_json",
            (state.type_key, state.sync_status.value, _dumps(state.to_dict())),
        )

    def list_states(self, status: SyncStatus | None = None) -> list[SyncState]:
        if status is None:
            rows = self._query("SELECT data_json FROM sync_states ORDER BY type_key")
        else:
            rows = self._query(
                "SELECT data_json FROM sync_states WHERE sync_status = ? ORDER BY type_key",
                (status.value,),
            )
        return [SyncState.from_dict(json.loads(row["data_json"])) for row in rows]

    def delete_state(self, type_key: str) -> bool:
        return self._write("DELETE FROM sync_states WHERE type_key = ?", (type_key,)) > 0

    # -------------------------------------------------------------------------
    # Sync Records
    # -------------------------------------------------------------------------

    def save_record(self, record: SyncRecord) -> None:
        self._write(
            "INSERT INTO sync_records "
            "(id, type_key, target_platform, status, deployment_id, started_at, data_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET status = excluded.status, data_json = excluded.data_json",
            (
                record.id,
                record.type_key,
                record.target_platform,
                record.status.value,
                record.deployment_id,
                record.started_at.isoformat(),
                _dumps(record.to_dict()),
            ),
        )

    def get_record(self, record_id: str) -> SyncRecord | None:
        rows = self._query("SELECT data_json FROM sync_records WHERE id = ?", (record_id,))
        return SyncRecord.from_dict(json.loads(rows[0]["data_json"])) if rows else None

    def query_records(self, query: SyncHistoryQuery) -> list[SyncRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if query.type_key is not None:
            clauses.append("type_key = ?")
            params.append(query.type_key)
        if query.target_platform is not None:
            clauses.append("target_platform = ?")
            params.append(query.target_platform)
        if query.status is not None:
            clauses.append("status = ?")
            params.append(query.status.value)
        if query.deployment_id is not None:
            clauses.append("deployment_id = ?")
            params.append(query.deployment_id)
        if query.after is not None:
            clauses.append("started_at >= ?")
            params.append(query.after.isoformat())
        if query.before is not None:
            clauses.append("started_at <= ?")
            params.append(query.before.isoformat())

        sql = "SELECT data_json FROM sync_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY started_at DESC, rowid DESC"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(int(query.limit))

        return [SyncRecord.from_dict(json.loads(row["data_json"])) for row in self._query(sql, tuple(params))]

    # -------------------------------------------------------------------------
    # Conflicts
    # -------------------------------------------------------------------------

    def save_conflict(self, entry: ConflictEntry) -> None:
        self._write(
            "INSERT INTO conflicts (id, type_key, status, flagged_at, data_json) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET status = excluded.status, data_json = excluded.data_json",
            (
                entry.id,
                entry.type_key,
                entry.status.value,
                entry.flagged_at.isoformat(),
                _dumps(entry.to_dict()),
            ),
        )

    def get_conflict(self, conflict_id: str) -> ConflictEntry | None:
        rows = self._query("SELECT data_json FROM conflicts WHERE id = ?", (conflict_id,))
        return ConflictEntry.from_dict(json.loads(rows[0]["data_json"])) if rows else None

    def list_conflicts(self) -> list[ConflictEntry]:
        rows = self._query("SELECT data_json FROM conflicts ORDER BY flagged_at, id")
        return [ConflictEntry.from_dict(json.loads(row["data_json"])) for row in rows]

    def delete_conflicts(self, conflict_ids: list[str]) -> int:
        if not conflict_ids:
            return 0
        placeholders = ", ".join("?" for _ in conflict_ids)
        return self._write(f"DELETE FROM conflicts WHERE id IN ({placeholders})", tuple(conflict_ids))

    def add_resolution(self, record: ResolutionRecord, keep: int) -> None:
        with self._lock, self._connection:
            self._connection.execute(
                "INSERT INTO resolutions (conflict_id, resolved_at, data_json) VALUES (?, ?, ?)",
                (record.conflict_id, record.resolved_at.isoformat(), _dumps(record.to_dict())),
            )
            self._connection.execute(
                "DELETE FROM resolutions WHERE id NOT IN "
                "(SELECT id FROM resolutions ORDER BY id DESC LIMIT ?)",
                (max(0, keep),),
            )

    def list_resolutions(self) -> list[ResolutionRecord]:
        rows = self._query("SELECT data_json FROM resolutions ORDER BY id DESC")
        return [ResolutionRecord.from_dict(json.loads(row["data_json"])) for row in rows]
