from __future__ import annotations

import pytest

from xlate_core.errors import ERROR_CODES, HTTP_ERROR, ProviderError
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.llm.provider_mock import MockProvider
from xlate_core.qa.postprocess import postprocess_item
from xlate_core.qa.sanitize import clean_text, has_control_chars, strip_control_chars
from xlate_core.translation.batch import assign_wire_ids, translate_batch
from xlate_core.translation.types import (
    BatchMeta,
    BatchRequest,
    GlossaryPair,
    ProviderReply,
    RawResult,
    TranslationItem,
)


class _ScriptedProvider(TranslationProvider):
    def __init__(self, results: list[RawResult]) -> None:
        self._results = results

    def translate(self, request: BatchRequest) -> ProviderReply:
        return ProviderReply(results=list(self._results), meta=BatchMeta(model="scripted"))


class _FailingProvider(TranslationProvider):
    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    def translate(self, request: BatchRequest) -> ProviderReply:
        raise self._exc


def test_glossary_replacement_is_reported_and_text_untouched() -> None:
    translated = "Willkommen im Kurs"
    result = postprocess_item(
        source_text="Welcome to the course",
        translated=translated,
        glossary=[GlossaryPair(term="course", replacement="Kurs")],
    )

    assert result.translated == translated
    assert result.applied_glossary_terms == [GlossaryPair(term="course", replacement="Kurs")]
    assert result.warnings == []


def test_glossary_term_missing_from_translation_warns() -> None:
    result = postprocess_item(
        source_text="Open the Course page",
        translated="Öffne die Lehrgangsseite",
        glossary=[GlossaryPair(term="course", replacement="Kurs")],
    )

    assert result.applied_glossary_terms == []
    assert result.warnings == ["glossary_not_applied:course"]


def test_glossary_matching_respects_word_boundaries() -> None:
    result = postprocess_item(
        source_text="Discourse forum",
        translated="Diskursforum",
        glossary=[GlossaryPair(term="course", replacement="Kurs")],
    )

    assert result.warnings == []
    assert result.applied_glossary_terms == []


def test_missing_placeholder_is_flagged_without_altering_text() -> None:
    translated = "Hallo Welt"
    result = postprocess_item(
        source_text="Hello {name}",
        translated=translated,
        placeholders=("{name}",),
    )

    assert result.translated == translated
    assert result.warnings == ["placeholder_missing:{name}"]


def test_sanitize_strips_controls_but_keeps_whitespace() -> None:
    assert has_control_chars("a\x00b")
    assert not has_control_chars("line\nnext\ttab\r")
    assert strip_control_chars("a\x00b\x85c\n") == "abc\n"
    assert clean_text(b"ok\xff\x07") == "ok\ufffd"
    assert clean_text(None) == ""


def test_engine_attaches_warnings_and_passthrough_fields() -> None:
    provider = _ScriptedProvider(
        [RawResult(id="abc123", translated="Hallo", confidence=0.7, model_tokens={"out": 3})]
    )

    outcome = translate_batch(
        provider=provider,
        request_id="req-1",
        source_lang="en",
        target_lang="de",
        items=[TranslationItem(id="region_main:abc123", source_text="Hello {name}", key="abc123", placeholders=("{name}",))],
    )

    assert outcome.ok is True
    assert outcome.meta is not None and outcome.meta.model == "scripted"
    [item] = outcome.results
    assert item.id == "abc123"
    assert item.translated == "Hallo"
    assert item.warnings == ["placeholder_missing:{name}"]
    assert item.confidence == 0.7
    assert item.model_tokens == {"out": 3}


def test_engine_converts_provider_error_to_failed_outcome() -> None:
    outcome = translate_batch(
        provider=_FailingProvider(ProviderError(HTTP_ERROR, "500: boom")),
        request_id="req-1",
        source_lang="en",
        target_lang="de",
        items=[TranslationItem(id="k1", source_text="Hi")],
    )

    assert outcome.ok is False
    assert outcome.errors == ["http_error"]
    assert outcome.error_detail == "500: boom"
    assert outcome.results == []


def test_engine_lets_unexpected_exceptions_propagate() -> None:
    with pytest.raises(RuntimeError):
        translate_batch(
            provider=_FailingProvider(RuntimeError("socket closed")),
            request_id="req-1",
            source_lang="en",
            target_lang="de",
            items=[TranslationItem(id="k1", source_text="Hi")],
        )


def test_mock_provider_echoes_wire_ids() -> None:
    provider = MockProvider()

    outcome = translate_batch(
        provider=provider,
        request_id="req-1",
        source_lang="en",
        target_lang="fr",
        items=[TranslationItem(id="core:greeting", source_text="Hello")],
    )

    assert outcome.ok is True
    assert [(item.id, item.translated) for item in outcome.results] == [("greeting", "[fr] Hello")]
    assert len(provider.requests) == 1


def test_mock_provider_rejects_empty_batches() -> None:
    outcome = translate_batch(
        provider=MockProvider(),
        request_id="req-1",
        source_lang="en",
        target_lang="fr",
        items=[],
    )

    assert outcome.ok is False
    assert outcome.errors == ["invalid_arguments"]
    assert set(outcome.errors) <= set(ERROR_CODES)


def test_shared_keys_get_distinct_wire_ids() -> None:
    items = [
        TranslationItem(id="region_a:abc", source_text="Apple", component="region_a", key="abc"),
        TranslationItem(id="region_b:abc", source_text="Banana", component="region_b", key="abc"),
        TranslationItem(id="region_a:solo", source_text="Cherry", component="region_a", key="solo"),
        TranslationItem(id="dup", source_text="One"),
        TranslationItem(id="dup", source_text="Two"),
    ]

    assigned = assign_wire_ids(items)

    assert [item.wire_id for item in assigned] == ["region_a:abc", "region_b:abc", "solo", "dup", "dup#4"]
    assert len({item.wire_id for item in assigned}) == len(items)
    assert assigned[2] is items[2]


def test_results_bind_to_the_item_they_were_sent_for() -> None:
    provider = MockProvider()
    items = [
        TranslationItem(id="region_a:abc", source_text="Apple", component="region_a", key="abc"),
        TranslationItem(id="region_b:abc", source_text="Banana", component="region_b", key="abc"),
    ]

    outcome = translate_batch(
        provider=provider,
        request_id="req-1",
        source_lang="en",
        target_lang="de",
        items=items,
    )

    bound = [(result.item.component, result.translated) for result in outcome.results if result.item]
    assert bound == [("region_a", "[de] Apple"), ("region_b", "[de] Banana")]


def test_ambiguous_bare_key_result_is_left_unbound() -> None:
    outcome = translate_batch(
        provider=_ScriptedProvider(
            [RawResult(id="abc", translated="?"), RawResult(id="region_b:abc", translated="B")]
        ),
        request_id="req-1",
        source_lang="en",
        target_lang="de",
        items=[
            TranslationItem(id="region_a:abc", source_text="Apple", component="region_a", key="abc"),
            TranslationItem(id="region_b:abc", source_text="Banana", component="region_b", key="abc"),
        ],
    )

    assert [result.item.component if result.item else None for result in outcome.results] == [None, "region_b"]


def test_duplicate_results_for_one_item_keep_the_first() -> None:
    outcome = translate_batch(
        provider=_ScriptedProvider(
            [RawResult(id="k1", translated="first"), RawResult(id="k1", translated="second")]
        ),
        request_id="req-1",
        source_lang="en",
        target_lang="de",
        items=[TranslationItem(id="core:k1", source_text="Hi", component="core", key="k1")],
    )

    assert [result.translated for result in outcome.results] == ["first"]


def test_mock_provider_keeps_only_recent_requests() -> None:
    provider = MockProvider(history_limit=2)

    for index in range(5):
        translate_batch(
            provider=provider,
            request_id=f"req-{index}",
            source_lang="en",
            target_lang="de",
            items=[TranslationItem(id="k1", source_text="Hi")],
        )

    assert [request.request_id for request in provider.requests] == ["req-3", "req-4"]
