from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

Migration = Callable[[Connection], None]


def _table_exists(connection: Connection, table_name: str) -> bool:
    row = connection.execute(
        text(
            "SELECT 1 FROM sqlite_master "
            "WHERE type='table' AND name=:table_name LIMIT 1"
        ),
        {"table_name": table_name},
    ).first()
    return row is not None


def get_schema_version(connection: Connection) -> int:
    if not _table_exists(connection, "schema_meta"):
        return 0

    value = connection.execute(
        text("SELECT value FROM schema_meta WHERE key='schema_version' LIMIT 1")
    ).scalar_one_or_none()

    if value is None:
        return 0

    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _set_schema_version(connection: Connection, version: int) -> None:
    connection.execute(
        text(
            "INSERT INTO schema_meta(key, value) VALUES('schema_version', :version) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value"
        ),
        {"version": str(version)},
    )


def _migration_v1(connection: Connection) -> None:
    statements = (
        """
        CREATE TABLE IF NOT EXISTS schema_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_keys (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            component TEXT NOT NULL,
            xkey TEXT NOT NULL,
            source TEXT NOT NULL DEFAULT '',
            ctime TEXT NOT NULL,
            mtime TEXT NOT NULL
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_xlate_keys_component_xkey
        ON xlate_keys(component, xkey)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_xlate_keys_xkey
        ON xlate_keys(xkey)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_translations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key_id INTEGER NOT NULL,
            lang TEXT NOT NULL,
            text TEXT NOT NULL,
            status INTEGER NOT NULL DEFAULT 1,
            reviewed INTEGER NOT NULL DEFAULT 0,
            mtime TEXT NOT NULL,
            FOREIGN KEY(key_id) REFERENCES xlate_keys(id) ON DELETE CASCADE
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_xlate_translations_key_lang
        ON xlate_translations(key_id, lang)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_key_course (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            key_id INTEGER NOT NULL,
            course_id INTEGER NOT NULL,
            context TEXT NOT NULL DEFAULT '',
            mtime TEXT NOT NULL,
            FOREIGN KEY(key_id) REFERENCES xlate_keys(id) ON DELETE CASCADE
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_xlate_key_course_key_course
        ON xlate_key_course(key_id, course_id)
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_xlate_key_course_course
        ON xlate_key_course(course_id, id)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_course_config (
            course_id INTEGER PRIMARY KEY,
            source_lang TEXT NOT NULL,
            target_langs_json TEXT NOT NULL DEFAULT '[]',
            mtime TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_course_jobs (
            id TEXT PRIMARY KEY,
            course_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL,
            total INTEGER NOT NULL DEFAULT 0,
            processed INTEGER NOT NULL DEFAULT 0,
            batch_size INTEGER NOT NULL,
            options_json TEXT NOT NULL DEFAULT '{}',
            last_id INTEGER NOT NULL DEFAULT 0,
            failed_languages_json TEXT NOT NULL DEFAULT '{}',
            last_error TEXT,
            ctime TEXT NOT NULL,
            mtime TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_xlate_course_jobs_course
        ON xlate_course_jobs(course_id, ctime)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_task_queue (
            id TEXT PRIMARY KEY,
            job_id TEXT NOT NULL,
            status TEXT NOT NULL,
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            seq INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_xlate_task_queue_status_seq
        ON xlate_task_queue(status, seq)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_token_batches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timecreated TEXT NOT NULL,
            lang TEXT NOT NULL,
            batchsize INTEGER NOT NULL DEFAULT 0,
            model TEXT NOT NULL DEFAULT '',
            input_tokens INTEGER NOT NULL DEFAULT 0,
            cached_input_tokens INTEGER NOT NULL DEFAULT 0,
            output_tokens INTEGER NOT NULL DEFAULT 0,
            total_tokens INTEGER NOT NULL DEFAULT 0,
            input_cost REAL NOT NULL DEFAULT 0.0,
            cached_input_cost REAL NOT NULL DEFAULT 0.0,
            output_cost REAL NOT NULL DEFAULT 0.0,
            total_cost REAL NOT NULL DEFAULT 0.0,
            response_ms INTEGER NOT NULL DEFAULT 0,
            job_id TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_glossary (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source_lang TEXT NOT NULL,
            source_text TEXT NOT NULL,
            target_lang TEXT NOT NULL,
            target_text TEXT NOT NULL,
            created_by INTEGER NOT NULL DEFAULT 0,
            ctime TEXT NOT NULL,
            mtime TEXT NOT NULL
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_xlate_glossary_pair_source
        ON xlate_glossary(source_lang, target_lang, source_text)
        """,
        """
        CREATE TABLE IF NOT EXISTS xlate_bundle_versions (
            lang TEXT PRIMARY KEY,
            version TEXT NOT NULL,
            mtime TEXT NOT NULL
        )
        """,
    )

    for statement in statements:
        connection.exec_driver_sql(statement)


def _column_exists(connection: Connection, table_name: str, column_name: str) -> bool:
    rows = connection.exec_driver_sql(f"PRAGMA table_info({table_name})").all()
    return any(row[1] == column_name for row in rows)


def _migration_v2(connection: Connection) -> None:
    # Task kinds, payloads and claim leases on the work queue.
    columns = (
        ("kind", "TEXT NOT NULL DEFAULT 'course_job'"),
        ("payload_json", "TEXT"),
        ("claimed_at", "TEXT"),
    )
    for name, definition in columns:
        if not _column_exists(connection, "xlate_task_queue", name):
            connection.exec_driver_sql(f"ALTER TABLE xlate_task_queue ADD COLUMN {name} {definition}")


MIGRATIONS: dict[int, Migration] = {
    1: _migration_v1,
    2: _migration_v2,
}


def migrate_to_latest(engine: Engine) -> int:
    current_version = 0

    with engine.begin() as connection:
        current_version = get_schema_version(connection)

        for target_version in sorted(MIGRATIONS):
            if target_version <= current_version:
                continue
            MIGRATIONS[target_version](connection)
            _set_schema_version(connection, target_version)
            current_version = target_version

    return current_version
