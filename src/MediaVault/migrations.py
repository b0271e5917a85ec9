# === NAVMAP v1 ===
# {
#   "module": "MediaVault.migrations",
#   "purpose": "Idempotent migration runner for the SQLite asset store schema",
#   "sections": [
#     {"id": "types", "name": "Data Types & Constants", "anchor": "TYP", "kind": "models"},
#     {"id": "migrations", "name": "Migration Definitions", "anchor": "MIG", "kind": "data"},
#     {"id": "runner", "name": "Migration Runner", "anchor": "RUN", "kind": "api"},
#     {"id": "queries", "name": "Schema Queries", "anchor": "QRY", "kind": "infra"}
#   ]
# }
# === /NAVMAP ===

"""Idempotent migration runner for the SQLite asset store schema.

Migrations are applied in order, once each, and recorded in the
``schema_version`` table. Opening a database created by an older release
only runs the migrations it lacks, so secondary indexes are added in place
without touching existing rows.

The connection is expected to be in autocommit mode (``isolation_level=None``);
the runner issues its own ``BEGIN IMMEDIATE``/``COMMIT``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# ============================================================================
# DATA TYPES & CONSTANTS (TYP)
# ============================================================================


@dataclass
class MigrationResult:
    """Result of applying a migration."""

    version: int
    migration_name: str
    applied: bool
    error: Optional[str] = None


# ============================================================================
# MIGRATION DEFINITIONS (MIG)
# ============================================================================

MIGRATIONS: List[Tuple[int, str, Sequence[str]]] = [
    (
        1,
        "0001_assets",
        (
            """
            CREATE TABLE IF NOT EXISTS assets (
                id            TEXT NOT NULL,
                project_id    TEXT NOT NULL,
                hash          TEXT NOT NULL,
                uploaded      INTEGER NOT NULL DEFAULT 0,
                mime          TEXT NOT NULL,
                size          INTEGER NOT NULL,
                filename      TEXT,
                created_at    TEXT NOT NULL,
                original_path TEXT,
                payload       BLOB NOT NULL,
                PRIMARY KEY (project_id, id)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_assets_project_id ON assets(project_id)",
            "CREATE INDEX IF NOT EXISTS idx_assets_hash ON assets(hash)",
            "CREATE INDEX IF NOT EXISTS idx_assets_id ON assets(id)",
        ),
    ),
    (
        2,
        "0002_upload_state_indexes",
        (
            "CREATE INDEX IF NOT EXISTS idx_assets_uploaded ON assets(uploaded)",
            "CREATE INDEX IF NOT EXISTS idx_assets_project_uploaded ON assets(project_id, uploaded)",
        ),
    ),
]

SCHEMA_VERSION = MIGRATIONS[-1][0]

_VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version        INTEGER PRIMARY KEY,
    migration_name TEXT NOT NULL,
    applied_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
)
"""


# ============================================================================
# MIGRATION RUNNER (RUN)
# ============================================================================


def get_applied_versions(conn: sqlite3.Connection) -> set[int]:
    """Return the set of applied migration versions (empty for a new file)."""
    try:
        rows = conn.execute("SELECT version FROM schema_version").fetchall()
    except sqlite3.OperationalError:
        return set()
    return {row[0] for row in rows}


def apply_migrations(
    conn: sqlite3.Connection,
    target_version: int = SCHEMA_VERSION,
) -> List[MigrationResult]:
    """Apply pending migrations up to ``target_version`` in one transaction.

    Args:
        conn: Autocommit-mode SQLite connection
        target_version: Highest migration version to apply

    Returns:
        One MigrationResult per migration at or below ``target_version``

    Raises:
        sqlite3.Error: If any migration fails; the transaction is rolled back
    """
    conn.execute(_VERSION_TABLE_SQL)
    applied = get_applied_versions(conn)
    wanted = [m for m in MIGRATIONS if m[0] <= target_version]
    pending = [name for version, name, _ in wanted if version not in applied]

    if not pending:
        logger.debug("Asset store schema up to date (version %s)", max(applied, default=0))
        return [MigrationResult(version, name, False) for version, name, _ in wanted]

    logger.info("Applying %d pending migrations: %s", len(pending), pending)
    results: List[MigrationResult] = []

    conn.execute("BEGIN IMMEDIATE")
    try:
        for version, name, statements in wanted:
            if version in applied:
                results.append(MigrationResult(version, name, False))
                continue
            for statement in statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, migration_name) VALUES (?, ?)",
                (version, name),
            )
            results.append(MigrationResult(version, name, True))
            logger.info("Applied migration: %s", name)
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        conn.execute("ROLLBACK")
        logger.error("Migration transaction failed: %s", exc)
        raise

    return results


# ============================================================================
# SCHEMA QUERIES (QRY)
# ============================================================================


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none)."""
    return max(get_applied_versions(conn), default=0)


def list_indexes(conn: sqlite3.Connection, table: str = "assets") -> set[str]:
    """Return the names of explicitly created indexes on ``table``."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? AND sql IS NOT NULL",
        (table,),
    ).fetchall()
    return {row[0] for row in rows}
