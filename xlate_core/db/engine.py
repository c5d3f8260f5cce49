from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

# Orchestrator steps and the sweep may write from separate worker processes.
SQLITE_BUSY_TIMEOUT_MS = 30000


def create_sqlite_engine(db_path: Path) -> Engine:
    db_path = Path(db_path).expanduser().resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db_url = f"sqlite+pysqlite:///{db_path.as_posix()}"
    engine = create_engine(db_url, future=True)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
        cursor.close()

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

    return engine
