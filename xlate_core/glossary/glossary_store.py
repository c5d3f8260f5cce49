from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection

from xlate_core.constants import GLOSSARY_LOOKUP_LIMIT
from xlate_core.db.schema import initialize_database
from xlate_core.translation.types import GlossaryPair


@dataclass(slots=True, frozen=True)
class GlossaryRecord:
    id: int
    source_lang: str
    source_text: str
    target_lang: str
    target_text: str
    created_by: int


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def save_glossary_translation(
    *,
    db_path: Path,
    source_lang: str,
    source_text: str,
    target_lang: str,
    target_text: str,
    created_by: int = 0,
) -> int:
    source_lang = str(source_lang or "").strip()
    target_lang = str(target_lang or "").strip()
    source_text = str(source_text or "").strip()
    target_text = str(target_text or "").strip()
    if not source_lang or not target_lang:
        raise ValueError("source_lang and target_lang are required")
    if not source_text:
        raise ValueError("source_text must not be empty")

    now = _utc_now_iso()
    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    INSERT INTO xlate_glossary(
                        source_lang, source_text, target_lang, target_text, created_by, ctime, mtime
                    ) VALUES (
                        :source_lang, :source_text, :target_lang, :target_text, :created_by, :now, :now
                    )
                    ON CONFLICT(source_lang, target_lang, source_text) DO UPDATE SET
                        target_text = excluded.target_text,
                        mtime = excluded.mtime
                    """
                ),
                {
                    "source_lang": source_lang,
                    "source_text": source_text,
                    "target_lang": target_lang,
                    "target_text": target_text,
                    "created_by": created_by,
                    "now": now,
                },
            )
            entry_id = connection.execute(
                text(
                    """
                    SELECT id FROM xlate_glossary
                    WHERE source_lang = :source_lang
                      AND target_lang = :target_lang
                      AND source_text = :source_text
                    """
                ),
                {
                    "source_lang": source_lang,
                    "target_lang": target_lang,
                    "source_text": source_text,
                },
            ).scalar_one()
    finally:
        engine.dispose()

    return int(entry_id)


def _pairs_on_connection(
    connection: Connection,
    *,
    source_lang: str,
    target_lang: str,
    limit: int,
) -> list[GlossaryPair]:
    rows = connection.execute(
        text(
            """
            SELECT source_text, target_text
            FROM xlate_glossary
            WHERE source_lang = :source_lang AND target_lang = :target_lang
            ORDER BY id
            """
        ),
        {"source_lang": source_lang, "target_lang": target_lang},
    ).all()

    pairs: list[GlossaryPair] = []
    for row in rows:
        term = str(row[0] or "").strip()
        replacement = str(row[1] or "").strip()
        if not term or not replacement:
            continue
        pairs.append(GlossaryPair(term=term, replacement=replacement))
        if len(pairs) >= limit:
            break
    return pairs


def get_pairs_for_language_pair(
    *,
    source_lang: str,
    target_lang: str,
    limit: int = GLOSSARY_LOOKUP_LIMIT,
    db_path: Path | None = None,
    connection: Connection | None = None,
) -> list[GlossaryPair]:
    source_lang = str(source_lang or "").strip()
    target_lang = str(target_lang or "").strip()
    if not source_lang or not target_lang:
        return []

    if connection is not None:
        return _pairs_on_connection(
            connection,
            source_lang=source_lang,
            target_lang=target_lang,
            limit=limit,
        )

    if db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as local_connection:
            return _pairs_on_connection(
                local_connection,
                source_lang=source_lang,
                target_lang=target_lang,
                limit=limit,
            )
    finally:
        engine.dispose()


def lookup_glossary(
    *,
    db_path: Path,
    source: str,
    source_lang: str,
    target_lang: str,
) -> list[GlossaryRecord]:
    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as connection:
            rows = connection.execute(
                text(
                    """
                    SELECT id, source_lang, source_text, target_lang, target_text, created_by
                    FROM xlate_glossary
                    WHERE source_lang = :source_lang
                      AND target_lang = :target_lang
                      AND source_text = :source_text
                    ORDER BY id
                    LIMIT 10
                    """
                ),
                {
                    "source_lang": source_lang,
                    "target_lang": target_lang,
                    "source_text": str(source or "").strip(),
                },
            ).mappings().all()
    finally:
        engine.dispose()

    return [
        GlossaryRecord(
            id=int(row["id"]),
            source_lang=str(row["source_lang"]),
            source_text=str(row["source_text"]),
            target_lang=str(row["target_lang"]),
            target_text=str(row["target_text"]),
            created_by=int(row["created_by"] or 0),
        )
        for row in rows
    ]
