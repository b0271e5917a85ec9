"""SQLite-backed durable store for asset records.

Every public operation is a coroutine. The blocking SQLite call runs in a
worker thread under the store's lock, and writes return only after their
transaction has committed, so a ``get`` issued after ``put`` returns always
observes the new row.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar

from MediaVault.errors import AssetNotFoundError, NotInitializedError, StorageError
from MediaVault.migrations import SCHEMA_VERSION, apply_migrations
from MediaVault.models import ArtifactRecord, StoreStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COLUMNS = (
    "id, project_id, hash, uploaded, mime, size, filename, created_at, original_path, payload"
)


class ContentStore:
    """Durable, project-scoped persistence of :class:`ArtifactRecord` rows.

    The table is shared by all projects; rows are keyed by ``(project_id, id)``
    so identical content imported into two projects yields two records with
    the same id. Single-record operations act on the project the store was
    constructed for.
    """

    def __init__(
        self,
        path: str | Path,
        project_id: str,
        *,
        wal_mode: bool = True,
        schema_version: int = SCHEMA_VERSION,
    ):
        """Prepare a store; nothing is opened until :meth:`init`.

        Args:
            path: SQLite file path, or ``":memory:"``
            project_id: Project that single-record operations are scoped to
            wal_mode: If True, enable WAL journaling
            schema_version: Highest migration to apply (older layouts for tests)
        """
        self.path = str(path)
        self.project_id = project_id
        self.wal_mode = wal_mode
        self.schema_version = schema_version
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def initialized(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and apply pending migrations. Idempotent."""
        if self._conn is not None:
            return
        try:
            self._conn = await asyncio.to_thread(self._open)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open asset store at {self.path}: {exc}", operation="init") from exc
        logger.info("Initialized asset store at %s for project %s", self.path, self.project_id)

    def _open(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.path, check_same_thread=False, timeout=30.0, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            if self.wal_mode and self.path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=4000")
            with self._lock:
                apply_migrations(conn, target_version=self.schema_version)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    async def close(self) -> None:
        """Close the connection. Further calls raise NotInitializedError."""
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            await asyncio.to_thread(conn.close)
            logger.debug("Asset store connection closed")

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotInitializedError("ContentStore")
        return self._conn

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._require()

        def locked() -> T:
            with self._lock:
                return fn(conn)

        try:
            return await asyncio.to_thread(locked)
        except sqlite3.Error as exc:
            logger.error("Asset store %s failed: %s", operation, exc)
            raise StorageError(f"Asset store {operation} failed: {exc}", operation=operation) from exc

    @staticmethod
    def _write(conn: sqlite3.Connection, sql: str, params: Iterable = ()) -> int:
        conn.execute("BEGIN IMMEDIATE")
        try:
            cursor = conn.execute(sql, tuple(params))
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, record: ArtifactRecord) -> None:
        """Insert or update ``record`` atomically.

        On conflict only metadata changes: ``payload``, ``hash`` and
        ``created_at`` keep their stored values and ``uploaded`` never goes
        from true back to false.
        """
        params = self._record_params(record)

        def op(conn: sqlite3.Connection) -> None:
            self._write(
                conn,
                f"""
                INSERT INTO assets ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id, id) DO UPDATE SET
                    mime = excluded.mime,
                    filename = excluded.filename,
                    original_path = excluded.original_path,
                    uploaded = MAX(assets.uploaded, excluded.uploaded)
                """,
                params,
            )

        await self._run("put", op)

    async def register_or_get(self, record: ArtifactRecord) -> tuple[ArtifactRecord, bool]:
        """Insert ``record`` unless ``(project_id, id)`` exists (idempotent).

        Returns:
            ``(stored_record, created)`` where ``stored_record`` is the row as
            persisted and ``created`` tells whether this call inserted it.
        """
        params = self._record_params(record)

        def op(conn: sqlite3.Connection) -> tuple[ArtifactRecord, bool]:
            created = (
                self._write(
                    conn,
                    f"INSERT OR IGNORE INTO assets ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    params,
                )
                > 0
            )
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM assets WHERE project_id = ? AND id = ?",
                (record.project_id, record.id),
            ).fetchone()
            if row is None:
                raise sqlite3.DatabaseError("Failed to retrieve registered asset")
            return self._row_to_record(row), created

        return await self._run("register_or_get", op)

    async def mark_uploaded(self, asset_ids: Iterable[str], project_id: Optional[str] = None) -> int:
        """Set ``uploaded`` on the given ids. Returns the number of rows changed."""
        ids = list(asset_ids)
        if not ids:
            return 0
        scope = project_id or self.project_id
        placeholders = ", ".join("?" for _ in ids)

        def op(conn: sqlite3.Connection) -> int:
            return self._write(
                conn,
                f"UPDATE assets SET uploaded = 1 WHERE project_id = ? AND uploaded = 0 AND id IN ({placeholders})",
                [scope, *ids],
            )

        return await self._run("mark_uploaded", op)

    async def update_metadata(
        self,
        asset_id: str,
        *,
        filename: Optional[str] = None,
        mime: Optional[str] = None,
    ) -> Optional[ArtifactRecord]:
        """Change display metadata. Returns the updated record, or None if absent."""
        assignments = []
        params: list = []
        if filename is not None:
            assignments.append("filename = ?")
            params.append(filename)
        if mime is not None:
            assignments.append("mime = ?")
            params.append(mime)
        if assignments:
            sql = f"UPDATE assets SET {', '.join(assignments)} WHERE project_id = ? AND id = ?"

            def op(conn: sqlite3.Connection) -> int:
                return self._write(conn, sql, [*params, self.project_id, asset_id])

            await self._run("update_metadata", op)
        return await self.get(asset_id)

    async def delete(self, asset_id: str) -> bool:
        """Delete the record; returns False when nothing was stored under ``asset_id``."""

        def op(conn: sqlite3.Connection) -> int:
            return self._write(
                conn,
                "DELETE FROM assets WHERE project_id = ? AND id = ?",
                (self.project_id, asset_id),
            )

        return await self._run("delete", op) > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, asset_id: str) -> Optional[ArtifactRecord]:
        return await self._fetch_one(
            "get",
            f"SELECT {_COLUMNS} FROM assets WHERE project_id = ? AND id = ?",
            (self.project_id, asset_id),
        )

    async def require(self, asset_id: str) -> ArtifactRecord:
        """Like :meth:`get`, but a miss raises :class:`AssetNotFoundError`."""
        record = await self.get(asset_id)
        if record is None:
            raise AssetNotFoundError(asset_id, project_id=self.project_id)
        return record

    async def has(self, asset_id: str) -> bool:
        def op(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT 1 FROM assets WHERE project_id = ? AND id = ?",
                (self.project_id, asset_id),
            ).fetchone()
            return row is not None

        return await self._run("has", op)

    async def find_by_hash(
        self, sha256: str, project_id: Optional[str] = None
    ) -> Optional[ArtifactRecord]:
        """Dedup lookup: the oldest record with ``sha256`` in the given project."""
        return await self._fetch_one(
            "find_by_hash",
            f"""
            SELECT {_COLUMNS} FROM assets
            WHERE hash = ? AND project_id = ?
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (sha256, project_id or self.project_id),
        )

    async def find_by_id_any_project(self, asset_id: str) -> Optional[ArtifactRecord]:
        """Return a record with ``asset_id`` from any project (for payload reuse)."""
        return await self._fetch_one(
            "find_by_id_any_project",
            f"SELECT {_COLUMNS} FROM assets WHERE id = ? ORDER BY created_at ASC LIMIT 1",
            (asset_id,),
        )

    async def list_by_project(self, project_id: Optional[str]) -> List[ArtifactRecord]:
        """All records of ``project_id``; ``[]`` when no project is given."""
        if not project_id:
            return []
        return await self._fetch_all(
            "list_by_project",
            f"SELECT {_COLUMNS} FROM assets WHERE project_id = ? ORDER BY created_at ASC",
            (project_id,),
        )

    async def list_pending(self, project_id: Optional[str] = None) -> List[ArtifactRecord]:
        """Records of the project not yet uploaded."""
        scope = project_id or self.project_id
        if not scope:
            return []
        return await self._fetch_all(
            "list_pending",
            f"""
            SELECT {_COLUMNS} FROM assets
            WHERE project_id = ? AND uploaded = 0
            ORDER BY created_at ASC
            """,
            (scope,),
        )

    async def all_ids(self) -> List[str]:
        def op(conn: sqlite3.Connection) -> List[str]:
            rows = conn.execute(
                "SELECT id FROM assets WHERE project_id = ? ORDER BY created_at ASC",
                (self.project_id,),
            ).fetchall()
            return [row[0] for row in rows]

        return await self._run("all_ids", op)

    async def stats(self) -> StoreStats:
        def op(conn: sqlite3.Connection) -> StoreStats:
            row = conn.execute(
                """
                SELECT COUNT(*), COALESCE(SUM(uploaded), 0), COALESCE(SUM(size), 0)
                FROM assets WHERE project_id = ?
                """,
                (self.project_id,),
            ).fetchone()
            total, uploaded, total_size = row[0], row[1], row[2]
            return StoreStats(
                total=total,
                pending=total - uploaded,
                uploaded=uploaded,
                total_size=total_size,
            )

        return await self._run("stats", op)

    async def _fetch_one(self, operation: str, sql: str, params: tuple) -> Optional[ArtifactRecord]:
        def op(conn: sqlite3.Connection) -> Optional[ArtifactRecord]:
            row = conn.execute(sql, params).fetchone()
            return self._row_to_record(row) if row is not None else None

        return await self._run(operation, op)

    async def _fetch_all(self, operation: str, sql: str, params: tuple) -> List[ArtifactRecord]:
        def op(conn: sqlite3.Connection) -> List[ArtifactRecord]:
            return [self._row_to_record(row) for row in conn.execute(sql, params).fetchall()]

        return await self._run(operation, op)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _record_params(record: ArtifactRecord) -> tuple:
        return (
            record.id,
            record.project_id,
            record.hash,
            1 if record.uploaded else 0,
            record.mime,
            record.size,
            record.filename,
            record.created_at.isoformat(),
            record.original_path,
            sqlite3.Binary(record.payload),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ArtifactRecord:
        """Convert a database row to an ArtifactRecord."""
        return ArtifactRecord(
            id=row["id"],
            project_id=row["project_id"],
            payload=bytes(row["payload"]),
            mime=row["mime"],
            size=row["size"],
            hash=row["hash"],
            filename=row["filename"],
            original_path=row["original_path"],
            created_at=datetime.fromisoformat(row["created_at"]),
            uploaded=bool(row["uploaded"]),
        )

    async def __aenter__(self) -> "ContentStore":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
