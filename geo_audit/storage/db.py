"""
SQLite storage for GEO Audit records.

Schema-versioned database with one row per audit, one row per provider
result and one row per citation. All timestamps are ISO 8601 with a 'Z'
suffix (UTC).

Tables:
- audits: One row per saved audit with request fields and summary metrics
- model_results: Per-provider outcome and brand signals
- citations: Flat citation rows, queryable by domain

Example:
    >>> store = SQLiteAuditStore("./output/geo_audit.db")
    >>> saved_id = store.save_audit(record)
    >>> store.save_citations(saved_id, citation_rows(record))
    4

Security:
    - ALL queries use parameterized statements
    - No credentials are ever stored
"""

import json
import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..exceptions import PersistenceError
from ..utils.time import utc_timestamp

if TYPE_CHECKING:
    from geo_audit.audit.assembler import AuditRecord
    from geo_audit.extractor.parser import ModelResult

logger = logging.getLogger(__name__)

# Current schema version - increment when migrations are added
CURRENT_SCHEMA_VERSION = 2


def init_db_if_needed(db_path: str) -> None:
    """
    Create the database and bring its schema up to CURRENT_SCHEMA_VERSION.

    Idempotent: a database already at the current version is left untouched.

    Raises:
        sqlite3.Error: If creation or a migration fails
        ValueError: If the database was written by a newer schema version
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)
        conn.commit()

        current_version = get_schema_version(conn)

        if current_version < CURRENT_SCHEMA_VERSION:
            logger.info(
                f"Database schema upgrade needed: "
                f"v{current_version} -> v{CURRENT_SCHEMA_VERSION}"
            )
            apply_migrations(conn, current_version, CURRENT_SCHEMA_VERSION)
        elif current_version > CURRENT_SCHEMA_VERSION:
            raise ValueError(
                f"Database schema version {current_version} is newer than "
                f"expected {CURRENT_SCHEMA_VERSION}. Use a different database file."
            )


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Highest applied schema version, 0 for a fresh database."""
    result = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    return result if result is not None else 0


def apply_migrations(
    conn: sqlite3.Connection, from_version: int, to_version: int
) -> None:
    """
    Apply migrations from_version+1 .. to_version, one transaction each.

    Raises:
        ValueError: If asked to downgrade
        sqlite3.Error: If a migration fails (that migration is rolled back)
    """
    if from_version > to_version:
        raise ValueError(
            f"Cannot downgrade schema from v{from_version} to v{to_version}"
        )

    migrations = {1: _migrate_to_v1, 2: _migrate_to_v2}

    for target_version in range(from_version + 1, to_version + 1):
        logger.info(f"Applying migration to schema version {target_version}")
        try:
            conn.execute("BEGIN")
            migration = migrations.get(target_version)
            if migration is None:
                raise ValueError(f"No migration defined for version {target_version}")
            migration(conn)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (target_version, utc_timestamp()),
            )
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(
                f"Migration to version {target_version} failed: {e}", exc_info=True
            )
            raise sqlite3.Error(
                f"Failed to migrate database to version {target_version}: {e}"
            ) from e


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    """Initial tables: audits, model_results, citations."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audits (
            audit_id TEXT PRIMARY KEY,
            timestamp_utc TEXT NOT NULL,
            query TEXT NOT NULL,
            brand_name TEXT NOT NULL,
            location_code INTEGER NOT NULL,
            share_of_voice INTEGER NOT NULL,
            average_rank REAL,
            total_citations INTEGER NOT NULL,
            visibility_score INTEGER NOT NULL,
            trust_index INTEGER NOT NULL,
            total_cost REAL DEFAULT 0.0,
            agreement TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS model_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            audit_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            kind TEXT NOT NULL,
            success INTEGER NOT NULL,
            error_type TEXT,
            error TEXT,
            answer_text TEXT NOT NULL,
            latency_ms INTEGER NOT NULL,
            cost REAL DEFAULT 0.0,
            attempts INTEGER NOT NULL,
            brand_mentioned INTEGER NOT NULL,
            mention_count INTEGER NOT NULL,
            rank_position INTEGER,
            sentiment TEXT NOT NULL,
            winner TEXT,
            is_cited INTEGER NOT NULL,
            authority_tier TEXT NOT NULL,
            competitors_json TEXT,
            FOREIGN KEY (audit_id) REFERENCES audits(audit_id),
            UNIQUE(audit_id, provider)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS citations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            audit_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            url TEXT NOT NULL,
            domain TEXT NOT NULL,
            title TEXT,
            position INTEGER NOT NULL,
            is_brand_owned INTEGER NOT NULL,
            inferred INTEGER NOT NULL,
            FOREIGN KEY (audit_id) REFERENCES audits(audit_id),
            UNIQUE(audit_id, provider, domain)
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_audits_timestamp
        ON audits(timestamp_utc)
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_citations_domain
        ON citations(domain)
    """)

    logger.debug("Created schema v1 tables and indexes")


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    """Ownership columns on audits for multi-client databases."""
    for column in ("client_id", "campaign_id", "prompt_id"):
        conn.execute(f"ALTER TABLE audits ADD COLUMN {column} TEXT")
    conn.execute("ALTER TABLE audits ADD COLUMN prompt_category TEXT DEFAULT 'custom'")

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_audits_client
        ON audits(client_id, campaign_id)
    """)

    logger.debug("Added ownership columns to audits table (schema v2)")


def insert_audit(conn: sqlite3.Connection, record: "AuditRecord") -> None:
    """
    Insert the audit row. Re-saving the same audit_id is a no-op.

    Security:
        Uses parameterized query to prevent SQL injection.
    """
    request = record.request
    summary = record.summary
    conn.execute(
        """
        INSERT OR IGNORE INTO audits (
            audit_id, timestamp_utc, query, brand_name, location_code,
            share_of_voice, average_rank, total_citations, visibility_score,
            trust_index, total_cost, agreement,
            client_id, campaign_id, prompt_id, prompt_category
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.audit_id,
            record.timestamp,
            request.query,
            request.brand_name,
            request.location_code,
            summary.share_of_voice,
            summary.average_rank,
            summary.total_citations,
            summary.visibility_score,
            summary.trust_index,
            summary.total_cost,
            record.agreement,
            request.client_id,
            request.campaign_id,
            request.prompt_id,
            request.prompt_category,
        ),
    )


def insert_model_result(
    conn: sqlite3.Connection, audit_id: str, result: "ModelResult"
) -> None:
    competitors = [
        {"name": c.name, "count": c.count, "rank": c.rank, "sentiment": c.sentiment}
        for c in result.competitors
    ]
    conn.execute(
        """
        INSERT OR IGNORE INTO model_results (
            audit_id, provider, kind, success, error_type, error, answer_text,
            latency_ms, cost, attempts, brand_mentioned, mention_count,
            rank_position, sentiment, winner, is_cited, authority_tier,
            competitors_json
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            audit_id,
            result.provider_id,
            str(result.kind),
            int(result.success),
            result.error_type,
            result.error,
            result.text,
            result.latency_ms,
            result.cost,
            result.attempts,
            int(result.brand_mentioned),
            result.mention_count,
            result.rank,
            result.sentiment,
            result.winner or None,
            int(result.is_cited),
            result.authority_tier,
            json.dumps(competitors) if competitors else None,
        ),
    )


def insert_citation(
    conn: sqlite3.Connection, audit_id: str, row: dict[str, Any]
) -> bool:
    """Insert one citation row; returns False when it was already stored."""
    cursor = conn.execute(
        """
        INSERT OR IGNORE INTO citations (
            audit_id, provider, url, domain, title, position,
            is_brand_owned, inferred
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            audit_id,
            row["provider"],
            row["url"],
            row["domain"],
            row.get("title"),
            row.get("position", 0),
            int(bool(row.get("is_brand_owned"))),
            int(bool(row.get("inferred"))),
        ),
    )
    return cursor.rowcount > 0


def get_audit_summary(conn: sqlite3.Connection, audit_id: str) -> dict | None:
    """
    Stored summary of one audit, None if audit_id does not exist.

    Example:
        >>> get_audit_summary(conn, "2025-11-02T08-00-00Z-1a2b3c4d")["visibility_score"]
        64
    """
    cursor = conn.execute(
        """
        SELECT audit_id, timestamp_utc, query, brand_name, share_of_voice,
               average_rank, total_citations, visibility_score, trust_index,
               total_cost, agreement
        FROM audits
        WHERE audit_id = ?
        """,
        (audit_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return None

    return {
        "audit_id": row[0],
        "timestamp_utc": row[1],
        "query": row[2],
        "brand_name": row[3],
        "share_of_voice": row[4],
        "average_rank": row[5],
        "total_citations": row[6],
        "visibility_score": row[7],
        "trust_index": row[8],
        "total_cost": row[9],
        "agreement": row[10],
    }


class SQLiteAuditStore:
    """AuditStore backed by a schema-versioned SQLite file."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db_if_needed(db_path)

    def save_audit(self, record: "AuditRecord") -> str:
        """
        Insert the audit row and one row per provider result.

        Raises:
            PersistenceError: If the database rejects the write
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("PRAGMA foreign_keys = ON")
                insert_audit(conn, record)
                for result in record.model_results:
                    insert_model_result(conn, record.audit_id, result)
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save audit {record.audit_id}: {e}") from e

        logger.debug(
            f"Stored audit {record.audit_id} with {len(record.model_results)} results"
        )
        return record.audit_id

    def save_citations(self, audit_id: str, rows: Sequence[dict[str, Any]]) -> int:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("PRAGMA foreign_keys = ON")
                written = sum(1 for row in rows if insert_citation(conn, audit_id, row))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save citations for {audit_id}: {e}") from e
        return written
