from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlmodel import Session

from xlate_core.db.schema import initialize_database


@contextmanager
def session_for_db(db_path: Path) -> Iterator[Session]:
    """Yield a SQLModel session for a site SQLite database."""

    engine = initialize_database(Path(db_path))
    try:
        with Session(engine) as session:
            yield session
    finally:
        engine.dispose()
