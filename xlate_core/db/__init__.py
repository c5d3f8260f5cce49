"""Database helpers for the per-site SQLite file."""

from xlate_core.db.migrations import migrate_to_latest
from xlate_core.db.schema import initialize_database
from xlate_core.db.session import session_for_db

__all__ = ["initialize_database", "migrate_to_latest", "session_for_db"]
