from __future__ import annotations

import hashlib
import html
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection

from xlate_core.constants import ASSOCIATION_CHUNK_SIZE
from xlate_core.db.schema import initialize_database

logger = logging.getLogger(__name__)

ASSOCIATION_CREATED = "created_and_associated"
ASSOCIATION_ADDED = "associated"
ASSOCIATION_EXISTS = "exists"
ASSOCIATION_ERROR = "error"

_ESCAPED_CLOSING_TAG = re.compile(r"<\\/([a-z0-9]+)>", re.IGNORECASE)
_ESCAPED_SELF_CLOSING_TAG = re.compile(r"<([a-z0-9]+)\\/>", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class KeyRecord:
    id: int
    component: str
    xkey: str
    source: str
    ctime: str
    mtime: str


@dataclass(slots=True, frozen=True)
class AssociationResult:
    component: str
    xkey: str
    status: str
    key_id: int | None = None
    error: str | None = None


def _utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def normalize_inline_markup(value: str) -> str:
    """Decode entities and undo JSON-style escaping of inline tags."""

    if not value:
        return value
    decoded = html.unescape(value)
    decoded = _ESCAPED_CLOSING_TAG.sub(r"</\1>", decoded)
    decoded = _ESCAPED_SELF_CLOSING_TAG.sub(r"<\1/>", decoded)
    return decoded.replace('\\"', '"')


def _require(value: str, name: str) -> str:
    normalized = str(value or "").strip()
    if not normalized:
        raise ValueError(f"{name} must not be empty")
    return normalized


def _row_to_key(row: Mapping[str, object]) -> KeyRecord:
    return KeyRecord(
        id=int(row["id"]),
        component=str(row["component"]),
        xkey=str(row["xkey"]),
        source=str(row["source"] or ""),
        ctime=str(row["ctime"]),
        mtime=str(row["mtime"]),
    )


def _get_key_on_connection(connection: Connection, *, component: str, xkey: str) -> KeyRecord | None:
    row = connection.execute(
        text(
            """
            SELECT id, component, xkey, source, ctime, mtime
            FROM xlate_keys
            WHERE component = :component AND xkey = :xkey
            LIMIT 1
            """
        ),
        {"component": component, "xkey": xkey},
    ).mappings().first()
    if row is None:
        return None
    return _row_to_key(row)


def _create_or_update_key_on_connection(
    connection: Connection,
    *,
    component: str,
    xkey: str,
    source: str,
) -> int:
    now = _utc_now_iso()
    connection.execute(
        text(
            """
            INSERT INTO xlate_keys(component, xkey, source, ctime, mtime)
            VALUES(:component, :xkey, :source, :now, :now)
            ON CONFLICT(component, xkey) DO UPDATE SET
                source = CASE WHEN excluded.source != '' THEN excluded.source ELSE xlate_keys.source END,
                mtime = excluded.mtime
            """
        ),
        {"component": component, "xkey": xkey, "source": source, "now": now},
    )
    key_id = connection.execute(
        text("SELECT id FROM xlate_keys WHERE component = :component AND xkey = :xkey"),
        {"component": component, "xkey": xkey},
    ).scalar_one()
    return int(key_id)


def _save_translation_on_connection(
    connection: Connection,
    *,
    key_id: int,
    lang: str,
    translation: str,
    status: int,
    reviewed: int,
) -> None:
    connection.execute(
        text(
            """
            INSERT INTO xlate_translations(key_id, lang, text, status, reviewed, mtime)
            VALUES(:key_id, :lang, :text, :status, :reviewed, :mtime)
            ON CONFLICT(key_id, lang) DO UPDATE SET
                text = excluded.text,
                status = excluded.status,
                reviewed = excluded.reviewed,
                mtime = excluded.mtime
            """
        ),
        {
            "key_id": key_id,
            "lang": lang,
            "text": translation,
            "status": status,
            "reviewed": reviewed,
            "mtime": _utc_now_iso(),
        },
    )


def _associate_on_connection(
    connection: Connection,
    *,
    key_id: int,
    course_id: int,
    context: str,
) -> bool:
    result = connection.execute(
        text(
            """
            INSERT INTO xlate_key_course(key_id, course_id, context, mtime)
            VALUES(:key_id, :course_id, :context, :mtime)
            ON CONFLICT(key_id, course_id) DO NOTHING
            """
        ),
        {
            "key_id": key_id,
            "course_id": course_id,
            "context": context,
            "mtime": _utc_now_iso(),
        },
    )
    return bool(result.rowcount)


def update_bundle_version(connection: Connection, *, lang: str) -> str:
    max_mtime = connection.execute(
        text(
            """
            SELECT MAX(mtime) FROM (
                SELECT MAX(k.mtime) AS mtime
                FROM xlate_keys k
                JOIN xlate_translations t ON t.key_id = k.id
                WHERE t.lang = :lang AND t.status = 1
                UNION ALL
                SELECT MAX(t.mtime) AS mtime
                FROM xlate_translations t
                WHERE t.lang = :lang AND t.status = 1
            )
            """
        ),
        {"lang": lang},
    ).scalar_one_or_none()
    version = hashlib.sha1(f"{lang}:{max_mtime or ''}".encode("utf-8")).hexdigest()
    connection.execute(
        text(
            """
            INSERT INTO xlate_bundle_versions(lang, version, mtime)
            VALUES(:lang, :version, :mtime)
            ON CONFLICT(lang) DO UPDATE SET
                version = excluded.version,
                mtime = excluded.mtime
            """
        ),
        {"lang": lang, "version": version, "mtime": _utc_now_iso()},
    )
    return version


def get_bundle_version(*, db_path: Path, lang: str) -> str | None:
    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as connection:
            value = connection.execute(
                text("SELECT version FROM xlate_bundle_versions WHERE lang = :lang"),
                {"lang": lang},
            ).scalar_one_or_none()
    finally:
        engine.dispose()
    return str(value) if value is not None else None


def get_key(
    *,
    component: str,
    xkey: str,
    db_path: Path | None = None,
    connection: Connection | None = None,
) -> KeyRecord | None:
    if connection is not None:
        return _get_key_on_connection(connection, component=component, xkey=xkey)

    if db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as local_connection:
            return _get_key_on_connection(local_connection, component=component, xkey=xkey)
    finally:
        engine.dispose()


def create_or_update_key(*, db_path: Path, component: str, xkey: str, source: str = "") -> int:
    component = _require(component, "component")
    xkey = _require(xkey, "xkey")

    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as connection:
            return _create_or_update_key_on_connection(
                connection,
                component=component,
                xkey=xkey,
                source=source,
            )
    finally:
        engine.dispose()


def save_translation(
    *,
    db_path: Path,
    key_id: int,
    lang: str,
    translation: str,
    status: int = 1,
    reviewed: int = 0,
) -> None:
    lang = _require(lang, "lang")

    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as connection:
            _save_translation_on_connection(
                connection,
                key_id=key_id,
                lang=lang,
                translation=translation,
                status=status,
                reviewed=reviewed,
            )
            update_bundle_version(connection, lang=lang)
    finally:
        engine.dispose()


def delete_translation(*, db_path: Path, key_id: int, lang: str) -> bool:
    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as connection:
            result = connection.execute(
                text("DELETE FROM xlate_translations WHERE key_id = :key_id AND lang = :lang"),
                {"key_id": key_id, "lang": lang},
            )
            if result.rowcount:
                update_bundle_version(connection, lang=lang)
            return bool(result.rowcount)
    finally:
        engine.dispose()


def _save_key_with_translation_on_connection(
    connection: Connection,
    *,
    component: str,
    xkey: str,
    source: str,
    lang: str,
    translation: str,
    reviewed: int,
    course_id: int,
    context: str,
) -> int:
    source = normalize_inline_markup(source)
    translation = normalize_inline_markup(translation)
    if source == "":
        source = translation

    key_id = _create_or_update_key_on_connection(
        connection,
        component=component,
        xkey=xkey,
        source=source,
    )
    _save_translation_on_connection(
        connection,
        key_id=key_id,
        lang=lang,
        translation=translation,
        status=1,
        reviewed=reviewed,
    )
    if course_id > 0:
        _associate_on_connection(connection, key_id=key_id, course_id=course_id, context=context)
    update_bundle_version(connection, lang=lang)
    return key_id


def save_key_with_translation(
    *,
    component: str,
    xkey: str,
    source: str,
    lang: str,
    translation: str,
    reviewed: int = 0,
    course_id: int = 0,
    context: str = "",
    db_path: Path | None = None,
    connection: Connection | None = None,
) -> int:
    """Upsert a key and its translation for ``lang`` in one transaction.

    When ``course_id`` is positive the key is also associated with that
    course. Returns the key id.
    """

    component = _require(component, "component")
    xkey = _require(xkey, "xkey")
    lang = _require(lang, "lang")

    kwargs = {
        "component": component,
        "xkey": xkey,
        "source": source,
        "lang": lang,
        "translation": translation,
        "reviewed": int(reviewed),
        "course_id": int(course_id),
        "context": context,
    }

    if connection is not None:
        return _save_key_with_translation_on_connection(connection, **kwargs)

    if db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    engine = initialize_database(Path(db_path))
    try:
        with engine.begin() as local_connection:
            return _save_key_with_translation_on_connection(local_connection, **kwargs)
    finally:
        engine.dispose()


def associate_keys_with_course(
    *,
    db_path: Path,
    course_id: int,
    keys: Iterable[Mapping[str, object]],
    context: str = "",
) -> list[AssociationResult]:
    """Link captured keys to a course, creating keys that do not exist yet.

    Each mapping carries ``component``, ``xkey`` and optionally ``source``.
    Work is committed in chunks so one bad chunk does not discard the rest.
    """

    if course_id <= 0:
        raise ValueError("course_id must be positive")

    entries = list(keys)
    results: list[AssociationResult] = []

    engine = initialize_database(Path(db_path))
    try:
        for offset in range(0, len(entries), ASSOCIATION_CHUNK_SIZE):
            chunk = entries[offset : offset + ASSOCIATION_CHUNK_SIZE]
            with engine.begin() as connection:
                for entry in chunk:
                    results.append(
                        _associate_entry(
                            connection,
                            course_id=course_id,
                            entry=entry,
                            context=context,
                        )
                    )
    finally:
        engine.dispose()

    logger.info("Associated %d keys with course %d", len(results), course_id)
    return results


def _associate_entry(
    connection: Connection,
    *,
    course_id: int,
    entry: Mapping[str, object],
    context: str,
) -> AssociationResult:
    component = str(entry.get("component") or "").strip()
    xkey = str(entry.get("xkey") or entry.get("key") or "").strip()
    if not component or not xkey:
        return AssociationResult(
            component=component,
            xkey=xkey,
            status=ASSOCIATION_ERROR,
            error="component and xkey are required",
        )

    existing = _get_key_on_connection(connection, component=component, xkey=xkey)
    if existing is None:
        source = normalize_inline_markup(str(entry.get("source") or ""))
        key_id = _create_or_update_key_on_connection(
            connection,
            component=component,
            xkey=xkey,
            source=source,
        )
        _associate_on_connection(connection, key_id=key_id, course_id=course_id, context=context)
        return AssociationResult(
            component=component,
            xkey=xkey,
            status=ASSOCIATION_CREATED,
            key_id=key_id,
        )

    added = _associate_on_connection(
        connection,
        key_id=existing.id,
        course_id=course_id,
        context=context,
    )
    return AssociationResult(
        component=component,
        xkey=xkey,
        status=ASSOCIATION_ADDED if added else ASSOCIATION_EXISTS,
        key_id=existing.id,
    )


def count_course_keys(
    *,
    course_id: int,
    db_path: Path | None = None,
    connection: Connection | None = None,
) -> int:
    query = text("SELECT COUNT(*) FROM xlate_key_course WHERE course_id = :course_id")
    if connection is not None:
        return int(connection.execute(query, {"course_id": course_id}).scalar_one())

    if db_path is None:
        raise ValueError("db_path is required when connection is not provided")

    engine = initialize_database(Path(db_path))
    try:
        with engine.connect() as local_connection:
            return int(local_connection.execute(query, {"course_id": course_id}).scalar_one())
    finally:
        engine.dispose()
