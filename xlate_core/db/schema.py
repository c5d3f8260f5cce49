from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.engine import Engine

from xlate_core.constants import CURRENT_SCHEMA_VERSION
from xlate_core.db.engine import create_sqlite_engine
from xlate_core.db.migrations import get_schema_version, migrate_to_latest

logger = logging.getLogger(__name__)


def initialize_database(db_path: Path) -> Engine:
    """Open the site database, applying pending migrations first.

    A database written by a newer release is refused rather than migrated.
    """

    engine = create_sqlite_engine(db_path)
    with engine.connect() as connection:
        found_version = get_schema_version(connection)

    if found_version > CURRENT_SCHEMA_VERSION:
        engine.dispose()
        raise RuntimeError(
            f"Site database {db_path} has schema v{found_version}; "
            f"this release supports up to v{CURRENT_SCHEMA_VERSION}"
        )

    if found_version < CURRENT_SCHEMA_VERSION:
        applied = migrate_to_latest(engine)
        logger.debug("Migrated %s from schema v%d to v%d", db_path, found_version, applied)
    return engine


def read_schema_version(db_path: Path) -> int:
    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as connection:
            return get_schema_version(connection)
    finally:
        engine.dispose()
