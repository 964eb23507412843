"""Database migrations with schema_version tracking."""

from __future__ import annotations

import sqlite3

MIGRATIONS: list[str] = [
    # Version 1: videos with derived asset references
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL,
        applied_at TEXT DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS videos (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        title TEXT,
        original_filename TEXT,
        mime_type TEXT,
        file_size_bytes INTEGER,
        source_key TEXT NOT NULL,
        source_url TEXT,
        proxy_key TEXT,
        proxy_url TEXT,
        thumbnail_key TEXT,
        thumbnail_url TEXT,
        sprite_key TEXT,
        sprite_url TEXT,
        sprite_vtt_key TEXT,
        sprite_vtt_url TEXT,
        duration_sec REAL,
        width INTEGER,
        height INTEGER,
        fps REAL,
        bitrate INTEGER,
        status TEXT NOT NULL DEFAULT 'uploaded'
            CHECK (status IN ('uploaded', 'processing', 'ready', 'failed')),
        error_message TEXT,
        created_at TEXT DEFAULT (datetime('now')),
        updated_at TEXT DEFAULT (datetime('now'))
    );
    CREATE INDEX IF NOT EXISTS idx_videos_project ON videos(project_id);
    CREATE INDEX IF NOT EXISTS idx_videos_status ON videos(status);
    """,
    # Version 2: streaming-high derivative + claim timestamp for stale runs
    """
    ALTER TABLE videos ADD COLUMN streaming_high_key TEXT;
    ALTER TABLE videos ADD COLUMN streaming_high_url TEXT;
    ALTER TABLE videos ADD COLUMN processing_started_at TEXT;
    """,
    # Version 3: per-run claim token so a superseded run cannot overwrite the row
    """
    ALTER TABLE videos ADD COLUMN claim_token TEXT;
    """,
]


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        return row[0] or 0 if row else 0
    except sqlite3.OperationalError:
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Run pending migrations. Returns the final schema version."""
    current = get_schema_version(conn)

    for i, sql in enumerate(MIGRATIONS, start=1):
        if i <= current:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (i,))
        conn.commit()

    return len(MIGRATIONS)
