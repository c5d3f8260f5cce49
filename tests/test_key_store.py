from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from xlate_core.glossary.glossary_store import (
    get_pairs_for_language_pair,
    lookup_glossary,
    save_glossary_translation,
)
from xlate_core.site.create_site import create_site
from xlate_core.store.courses import get_course_config, list_associated_courses, set_course_config
from xlate_core.store.keys import (
    associate_keys_with_course,
    count_course_keys,
    create_or_update_key,
    delete_translation,
    get_bundle_version,
    get_key,
    normalize_inline_markup,
    save_key_with_translation,
    save_translation,
)
from xlate_core.translation.types import GlossaryPair


def _db(tmp_path: Path) -> Path:
    return create_site("Store Test", root=tmp_path / "site").db_path


def _translation_rows(db_path: Path) -> list[tuple[int, str, str, int, int]]:
    with sqlite3.connect(db_path) as connection:
        return connection.execute(
            "SELECT key_id, lang, text, status, reviewed FROM xlate_translations ORDER BY key_id, lang"
        ).fetchall()


def test_create_or_update_key_keeps_identity(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    first = create_or_update_key(db_path=db_path, component="core", xkey="hello", source="Hello")
    second = create_or_update_key(db_path=db_path, component="core", xkey="hello", source="Hello there")
    third = create_or_update_key(db_path=db_path, component="core", xkey="hello", source="")

    assert first == second == third
    key = get_key(db_path=db_path, component="core", xkey="hello")
    assert key is not None
    assert key.source == "Hello there"
    assert get_key(db_path=db_path, component="core", xkey="missing") is None


def test_save_translation_is_idempotent_upsert(tmp_path: Path) -> None:
    db_path = _db(tmp_path)
    key_id = create_or_update_key(db_path=db_path, component="core", xkey="hello", source="Hello")

    save_translation(db_path=db_path, key_id=key_id, lang="de", translation="Hallo")
    save_translation(db_path=db_path, key_id=key_id, lang="de", translation="Hallo")
    save_translation(db_path=db_path, key_id=key_id, lang="de", translation="Servus", reviewed=1)

    assert _translation_rows(db_path) == [(key_id, "de", "Servus", 1, 1)]
    assert get_bundle_version(db_path=db_path, lang="de") is not None

    assert delete_translation(db_path=db_path, key_id=key_id, lang="de") is True
    assert delete_translation(db_path=db_path, key_id=key_id, lang="de") is False
    assert _translation_rows(db_path) == []


def test_save_key_with_translation_associates_course_and_bumps_bundle(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    key_id = save_key_with_translation(
        db_path=db_path,
        component="region_main",
        xkey="abc123",
        source="",
        lang="de",
        translation="Willkommen &amp; hallo",
        course_id=7,
    )

    key = get_key(db_path=db_path, component="region_main", xkey="abc123")
    assert key is not None and key.id == key_id
    assert key.source == "Willkommen & hallo"
    assert _translation_rows(db_path) == [(key_id, "de", "Willkommen & hallo", 1, 0)]
    assert count_course_keys(db_path=db_path, course_id=7) == 1
    first_version = get_bundle_version(db_path=db_path, lang="de")

    save_key_with_translation(
        db_path=db_path,
        component="region_main",
        xkey="abc123",
        source="Welcome & hello",
        lang="de",
        translation="Willkommen und hallo",
        course_id=7,
    )

    assert count_course_keys(db_path=db_path, course_id=7) == 1
    assert len(_translation_rows(db_path)) == 1
    assert get_bundle_version(db_path=db_path, lang="de") is not None
    assert first_version is not None


def test_save_key_with_translation_requires_identity(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    with pytest.raises(ValueError):
        save_key_with_translation(
            db_path=db_path,
            component="",
            xkey="abc",
            source="x",
            lang="de",
            translation="y",
        )


def test_normalize_inline_markup_unescapes_tags() -> None:
    assert normalize_inline_markup("<b>bold<\\/b>") == "<b>bold</b>"
    assert normalize_inline_markup("line<br\\/>") == "line<br/>"
    assert normalize_inline_markup('say \\"hi\\"') == 'say "hi"'
    assert normalize_inline_markup("") == ""


def test_associate_keys_reports_per_key_status(tmp_path: Path) -> None:
    db_path = _db(tmp_path)
    create_or_update_key(db_path=db_path, component="core", xkey="existing", source="Existing")

    first = associate_keys_with_course(
        db_path=db_path,
        course_id=3,
        keys=[
            {"component": "core", "xkey": "existing"},
            {"component": "core", "xkey": "fresh", "source": "Fresh"},
            {"component": "", "xkey": "broken"},
        ],
    )
    second = associate_keys_with_course(
        db_path=db_path,
        course_id=3,
        keys=[{"component": "core", "xkey": "fresh"}],
    )

    assert [result.status for result in first] == ["associated", "created_and_associated", "error"]
    assert [result.status for result in second] == ["exists"]
    assert count_course_keys(db_path=db_path, course_id=3) == 2
    assert list_associated_courses(db_path=db_path) == [3]


def test_associate_keys_spans_multiple_chunks(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    results = associate_keys_with_course(
        db_path=db_path,
        course_id=9,
        keys=[{"component": "core", "xkey": f"k{index}", "source": f"S{index}"} for index in range(450)],
    )

    assert len(results) == 450
    assert count_course_keys(db_path=db_path, course_id=9) == 450


def test_course_config_round_trip_drops_source_from_targets(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    assert get_course_config(db_path=db_path, course_id=5) is None
    set_course_config(db_path=db_path, course_id=5, source_lang="en", target_langs=["de", "en", "fr", "de"])

    config = get_course_config(db_path=db_path, course_id=5)
    assert config is not None
    assert config.source_lang == "en"
    assert config.target_langs == ["de", "fr"]


def test_glossary_store_upserts_and_filters_blank_pairs(tmp_path: Path) -> None:
    db_path = _db(tmp_path)

    first_id = save_glossary_translation(
        db_path=db_path,
        source_lang="en",
        source_text=" course ",
        target_lang="de",
        target_text="Lehrgang",
    )
    second_id = save_glossary_translation(
        db_path=db_path,
        source_lang="en",
        source_text="course",
        target_lang="de",
        target_text="Kurs",
    )
    save_glossary_translation(
        db_path=db_path,
        source_lang="en",
        source_text="quiz",
        target_lang="de",
        target_text="",
    )

    assert first_id == second_id
    assert get_pairs_for_language_pair(db_path=db_path, source_lang="en", target_lang="de") == [
        GlossaryPair(term="course", replacement="Kurs")
    ]
    assert get_pairs_for_language_pair(db_path=db_path, source_lang="en", target_lang="") == []

    [record] = lookup_glossary(db_path=db_path, source=" course", source_lang="en", target_lang="de")
    assert record.target_text == "Kurs"

    with pytest.raises(ValueError):
        save_glossary_translation(
            db_path=db_path,
            source_lang="",
            source_text="x",
            target_lang="de",
            target_text="y",
        )
