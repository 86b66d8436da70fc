from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .errors import StorageError
from .models import PendingOperation, Resource, resource_id

_LOGGER = logging.getLogger(__name__)


def _dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


class DocSyncStore:
    """SQLite database holding the resource mirror and the pending operation queue."""

    def __init__(self, path: str | Path) -> None:
        self._is_memory = str(path) == ":memory:"
        self.path = Path(path)
        self._shared_conn: sqlite3.Connection | None = None
        if not self._is_memory:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as err:
                raise StorageError(f"cannot create store directory {self.path.parent}: {err}") from err
        self._ensure_schema()
        self.mirror = LocalMirrorStore(self)
        self.queue = PendingOperationQueue(self)

    # ------------------------------------------------------------------
    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        try:
            if self._is_memory:
                if self._shared_conn is None:
                    self._shared_conn = sqlite3.connect(":memory:")
                    self._shared_conn.row_factory = sqlite3.Row
                yield self._shared_conn
            else:
                conn = sqlite3.connect(self.path)
                conn.row_factory = sqlite3.Row
                try:
                    yield conn
                finally:
                    conn.close()
        except sqlite3.Error as err:
            _LOGGER.error("Local store %s failed: %s", self.path, err)
            raise StorageError(f"local store unavailable: {err}") from err

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None

    def _ensure_schema(self) -> None:
        with self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS mirror_entries (
                    id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    mirrored_at TEXT NOT NULL,
                    saved_at TEXT
                );

                CREATE TABLE IF NOT EXISTS pending_operations (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    op_id TEXT NOT NULL UNIQUE,
                    operation TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    ts REAL NOT NULL,
                    attempts INTEGER DEFAULT 0,
                    last_error TEXT,
                    last_attempt_ts TEXT
                );

                CREATE TABLE IF NOT EXISTS doc_categories (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            conn.commit()


class LocalMirrorStore:
    """Persistent ``id -> resource`` cache backing offline reads.

    Entries never expire; they are overwritten by later writes and removed only
    through :meth:`delete`. Entries can additionally be pinned ("saved for
    offline"), which records when the user asked to keep them.
    """

    def __init__(self, store: DocSyncStore) -> None:
        self._store = store

    def get(self, resource_id_: str) -> Resource | None:
        with self._store.connection() as conn:
            row = conn.execute("SELECT payload FROM mirror_entries WHERE id = ?", (resource_id_,)).fetchone()
        if not row:
            return None
        return json.loads(row["payload"])

    def get_all(self) -> list[Resource]:
        with self._store.connection() as conn:
            rows = conn.execute("SELECT payload FROM mirror_entries ORDER BY rowid ASC").fetchall()
        return [json.loads(row["payload"]) for row in rows]

    def put(self, resource: Mapping[str, Any]) -> None:
        self.put_many([resource])

    def put_many(self, resources: Iterable[Mapping[str, Any]]) -> int:
        now = datetime.now(tz=UTC).isoformat()
        rows = [(resource_id(item), _dumps(dict(item)), now) for item in resources]
        if not rows:
            return 0
        with self._store.connection() as conn:
            conn.executemany(
                """
                INSERT INTO mirror_entries(id, payload, mirrored_at)
                VALUES(?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, mirrored_at = excluded.mirrored_at
                """,
                rows,
            )
            conn.commit()
        return len(rows)

    def delete(self, resource_id_: str) -> bool:
        with self._store.connection() as conn:
            cursor = conn.execute("DELETE FROM mirror_entries WHERE id = ?", (resource_id_,))
            conn.commit()
        return cursor.rowcount > 0

    def count(self) -> int:
        with self._store.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM mirror_entries").fetchone()
        return int(row["total"]) if row and row["total"] is not None else 0

    # ------------------------------------------------------------------
    def pin(self, resource_id_: str, *, saved_at: datetime | None = None) -> bool:
        stamp = (saved_at or datetime.now(tz=UTC)).isoformat()
        with self._store.connection() as conn:
            cursor = conn.execute(
                "UPDATE mirror_entries SET saved_at = COALESCE(saved_at, ?) WHERE id = ?",
                (stamp, resource_id_),
            )
            conn.commit()
        return cursor.rowcount > 0

    def unpin(self, resource_id_: str) -> bool:
        with self._store.connection() as conn:
            cursor = conn.execute(
                "UPDATE mirror_entries SET saved_at = NULL WHERE id = ? AND saved_at IS NOT NULL",
                (resource_id_,),
            )
            conn.commit()
        return cursor.rowcount > 0

    def pinned(self) -> list[dict[str, Any]]:
        """Return pinned entries with their ``saved_at`` timestamp and byte size."""

        with self._store.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, payload, saved_at, LENGTH(CAST(payload AS BLOB)) AS size
                  FROM mirror_entries
                 WHERE saved_at IS NOT NULL
                 ORDER BY saved_at ASC, rowid ASC
                """
            ).fetchall()
        return [
            {
                "id": row["id"],
                "resource": json.loads(row["payload"]),
                "saved_at": row["saved_at"],
                "size": int(row["size"] or 0),
            }
            for row in rows
        ]

    def pinned_ids(self) -> list[str]:
        return [item["id"] for item in self.pinned()]

    def is_pinned(self, resource_id_: str) -> bool:
        with self._store.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM mirror_entries WHERE id = ? AND saved_at IS NOT NULL",
                (resource_id_,),
            ).fetchone()
        return row is not None

    def storage_usage(self) -> int:
        """Return the number of bytes of serialised resources and categories."""

        with self._store.connection() as conn:
            row = conn.execute(
                """
                SELECT COALESCE((SELECT SUM(LENGTH(CAST(payload AS BLOB))) FROM mirror_entries), 0)
                     + COALESCE((SELECT SUM(LENGTH(CAST(payload AS BLOB))) FROM doc_categories), 0) AS total
                """
            ).fetchone()
        return int(row["total"]) if row and row["total"] is not None else 0

    # ------------------------------------------------------------------
    def put_categories(self, categories: Iterable[Mapping[str, Any]]) -> None:
        """Replace the cached category tree."""

        now = datetime.now(tz=UTC).isoformat()
        rows = []
        for position, category in enumerate(categories):
            category_id = str(category.get("id") or "").strip()
            if not category_id:
                continue
            rows.append((category_id, position, _dumps(dict(category)), now))
        with self._store.connection() as conn:
            conn.execute("DELETE FROM doc_categories")
            conn.executemany(
                "INSERT INTO doc_categories(id, position, payload, updated_at) VALUES(?, ?, ?, ?)",
                rows,
            )
            conn.commit()

    def get_categories(self) -> list[dict[str, Any]]:
        with self._store.connection() as conn:
            rows = conn.execute("SELECT payload FROM doc_categories ORDER BY position ASC").fetchall()
        return [json.loads(row["payload"]) for row in rows]


class PendingOperationQueue:
    """Durable, timestamp-ordered log of mutations recorded while offline."""

    def __init__(self, store: DocSyncStore) -> None:
        self._store = store

    def add(self, operation: PendingOperation) -> None:
        try:
            with self._store.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO pending_operations(op_id, operation, payload, ts, attempts, last_error)
                    VALUES(?, ?, ?, ?, ?, ?)
                    """,
                    (
                        operation.op_id,
                        operation.operation.value,
                        _dumps(operation.payload),
                        operation.timestamp,
                        operation.attempts,
                        operation.last_error,
                    ),
                )
                conn.commit()
        except StorageError as err:
            if isinstance(err.__cause__, sqlite3.IntegrityError):
                raise StorageError(f"pending operation {operation.op_id} already queued") from err.__cause__
            raise

    def get_all(self) -> list[PendingOperation]:
        """Return queued operations in replay order (timestamp, then insertion)."""

        with self._store.connection() as conn:
            rows = conn.execute(
                """
                SELECT op_id, operation, payload, ts, attempts, last_error
                  FROM pending_operations
                 ORDER BY ts ASC, seq ASC
                """
            ).fetchall()
        return [
            PendingOperation.from_dict(
                {
                    "id": row["op_id"],
                    "operation": row["operation"],
                    "payload": json.loads(row["payload"]),
                    "timestamp": row["ts"],
                    "attempts": row["attempts"],
                    "last_error": row["last_error"],
                }
            )
            for row in rows
        ]

    def remove(self, op_id: str) -> bool:
        with self._store.connection() as conn:
            cursor = conn.execute("DELETE FROM pending_operations WHERE op_id = ?", (op_id,))
            conn.commit()
        return cursor.rowcount > 0

    def mark_attempt(self, op_id: str, error: str | None = None) -> None:
        with self._store.connection() as conn:
            conn.execute(
                """
                UPDATE pending_operations
                   SET attempts = attempts + 1, last_error = ?, last_attempt_ts = ?
                 WHERE op_id = ?
                """,
                (error, datetime.now(tz=UTC).isoformat(), op_id),
            )
            conn.commit()

    def retarget(self, old_id: str, new_id: str) -> int:
        """Point queued operations for ``old_id`` at ``new_id``.

        Used once a provisional resource receives its server id so that later
        updates or deletes survive a partially failed replay.
        """

        changed = 0
        with self._store.connection() as conn:
            rows = conn.execute("SELECT op_id, operation, payload FROM pending_operations").fetchall()
            for row in rows:
                if row["operation"] == "create":
                    continue
                payload = json.loads(row["payload"])
                if str(payload.get("id")) != old_id:
                    continue
                payload["id"] = new_id
                conn.execute(
                    "UPDATE pending_operations SET payload = ? WHERE op_id = ?",
                    (_dumps(payload), row["op_id"]),
                )
                changed += 1
            conn.commit()
        return changed

    def size(self) -> int:
        with self._store.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM pending_operations").fetchone()
        return int(row["total"]) if row and row["total"] is not None else 0

    def latest_timestamp(self) -> float | None:
        with self._store.connection() as conn:
            row = conn.execute("SELECT MAX(ts) AS latest FROM pending_operations").fetchone()
        return float(row["latest"]) if row and row["latest"] is not None else None


__all__ = ["DocSyncStore", "LocalMirrorStore", "PendingOperationQueue"]
