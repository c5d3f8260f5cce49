from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from xlate_core.errors import RATE_LIMITED, ProviderError
from xlate_core.glossary.glossary_store import save_glossary_translation
from xlate_core.jobs.batch_task import (
    BatchTaskPayload,
    enqueue_batch_task,
    run_batch_task,
)
from xlate_core.jobs.progress import get_item_progress
from xlate_core.jobs.queue import TASK_KIND_BATCH, InMemoryWorkQueue, SqliteWorkQueue
from xlate_core.jobs.runner import run_queued_tasks
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.llm.provider_mock import MockProvider
from xlate_core.site.create_site import create_site
from xlate_core.translation.types import BatchRequest, ProviderReply

ITEMS = [
    {"id": "region_main:abc123", "source_text": "Welcome", "component": "region_main", "key": "abc123", "courseid": 9},
    {"component": "region_side", "key": "abc123", "source_text": "Sidebar"},
    {"id": "loose", "source_text": "No key here"},
]


class _RateLimitedFor(TranslationProvider):
    def __init__(self, lang: str) -> None:
        self.lang = lang
        self._delegate = MockProvider()

    def translate(self, request: BatchRequest) -> ProviderReply:
        if request.target_lang == self.lang:
            raise ProviderError(RATE_LIMITED)
        return self._delegate.translate(request)


def _payload(**overrides: object) -> BatchTaskPayload:
    raw: dict[str, object] = {"requestid": "rb_test", "sourcelang": "en", "targetlangs": ["de"], "items": ITEMS}
    raw.update(overrides)
    return BatchTaskPayload.from_mapping(raw)


def test_payload_accepts_single_target_and_builds_composite_ids() -> None:
    payload = _payload(targetlangs=None, targetlang="fr")

    assert payload.target_langs == ["fr"]
    assert [item.id for item in payload.items] == ["region_main:abc123", "region_side:abc123", "loose"]
    assert payload.items[0].course_id == 9
    assert payload.glossary is None

    restored = BatchTaskPayload.from_mapping(payload.to_dict())
    assert restored.items == payload.items
    assert restored.request_id == "rb_test"


def test_payload_generates_request_id_when_missing() -> None:
    payload = BatchTaskPayload.from_mapping({"targetlangs": ["de"], "items": ITEMS})

    assert payload.request_id.startswith("rb_")
    assert payload.source_lang == "en"


def test_enqueue_rejects_empty_batches() -> None:
    queue = InMemoryWorkQueue()

    with pytest.raises(ValueError, match="no translatable items"):
        enqueue_batch_task(queue=queue, payload={"targetlangs": ["de"], "items": [{"source_text": "x"}]})
    with pytest.raises(ValueError, match="no target languages"):
        enqueue_batch_task(queue=queue, payload={"items": ITEMS})
    assert len(queue) == 0


def test_run_batch_task_saves_keyed_items_per_language(tmp_path: Path) -> None:
    created = create_site("Batch", root=tmp_path / "site")
    provider = MockProvider()

    summary = run_batch_task(
        site_path=created.site_path,
        payload=_payload(targetlangs=["de", "fr"]),
        provider=provider,
    )

    assert summary.saved == {"de": 2, "fr": 2}
    assert summary.unmatched == 2
    assert summary.failed_languages == {}
    assert [request.request_id for request in provider.requests] == ["rb_test", "rb_test"]

    items = get_item_progress(
        db_path=created.db_path,
        target_lang="fr",
        item_ids=["region_main:abc123", "region_side:abc123", "loose"],
    )
    assert [item.translation for item in items] == ["[fr] Welcome", "[fr] Sidebar", None]
    with sqlite3.connect(created.db_path) as connection:
        courses = connection.execute("SELECT course_id FROM xlate_key_course").fetchall()
    assert courses == [(9,)]


def test_rate_limited_language_is_skipped(tmp_path: Path) -> None:
    created = create_site("Batch", root=tmp_path / "site")

    summary = run_batch_task(
        site_path=created.site_path,
        payload=_payload(targetlangs=["de", "fr"]),
        provider=_RateLimitedFor("de"),
    )

    assert summary.failed_languages == {"de": "rate_limited"}
    assert summary.saved == {"fr": 2}


def test_stored_glossary_is_used_when_batch_has_none(tmp_path: Path) -> None:
    created = create_site("Batch", root=tmp_path / "site")
    save_glossary_translation(
        db_path=created.db_path,
        source_lang="en",
        source_text="Welcome",
        target_lang="de",
        target_text="Willkommen",
    )
    provider = MockProvider()

    run_batch_task(site_path=created.site_path, payload=_payload(), provider=provider)
    run_batch_task(site_path=created.site_path, payload=_payload(glossary=[]), provider=provider)

    assert [pair.replacement for pair in provider.requests[0].glossary] == ["Willkommen"]
    assert provider.requests[1].glossary == []


def test_runner_executes_queued_batches_from_sqlite(tmp_path: Path) -> None:
    created = create_site("Batch", root=tmp_path / "site")
    queue = SqliteWorkQueue(db_path=created.db_path)
    enqueued = enqueue_batch_task(queue=queue, payload=_payload(targetlangs=["de"]))

    claimed = queue.claim_next()
    assert claimed is not None
    assert claimed.kind == TASK_KIND_BATCH
    assert claimed.job_id == enqueued.request_id
    assert claimed.payload is not None and len(claimed.payload["items"]) == 3
    queue.mark_failed(claimed.task_id, "interrupted", retry=True)

    summary = run_queued_tasks(site_path=created.site_path, provider=MockProvider(), queue=queue)

    assert summary.succeeded == 1
    assert summary.steps == []
    [batch] = summary.batches
    assert batch.request_id == "rb_test"
    assert batch.saved == {"de": 2}
    assert queue.count_by_status() == {"done": 1}
