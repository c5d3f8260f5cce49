from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class TranslationItem:
    """One source string submitted for translation.

    ``id`` is whatever the caller uses to refer to the item; it may be a bare
    structural key or a ``component:key`` composite. ``key`` is the bare key
    when the caller knows it. ``alias`` replaces the wire id when two items in
    one batch share a bare key.
    """

    id: str
    source_text: str
    context: str = ""
    placeholders: tuple[str, ...] = ()
    component: str | None = None
    key: str | None = None
    course_id: int = 0
    alias: str | None = None

    @property
    def wire_id(self) -> str:
        """Short id sent to and echoed back by the provider."""

        if self.alias:
            return self.alias
        if self.key:
            return self.key
        return self.id.rsplit(":", 1)[-1]


@dataclass(slots=True, frozen=True)
class GlossaryPair:
    term: str
    replacement: str

    def to_dict(self) -> dict[str, str]:
        return {"term": self.term, "replacement": self.replacement}


@dataclass(slots=True, frozen=True)
class UsageTokens:
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def is_empty(self) -> bool:
        return not (self.prompt or self.completion or self.total)


@dataclass(slots=True)
class BatchOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None
    job_id: str | None = None
    cached_input_tokens: int = 0
    input_cost: float | None = None
    cached_input_cost: float | None = None
    output_cost: float | None = None

    def model_options(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.temperature is not None:
            payload["temperature"] = float(self.temperature)
        if self.max_tokens is not None:
            payload["max_tokens"] = int(self.max_tokens)
        return payload


@dataclass(slots=True)
class BatchRequest:
    request_id: str
    source_lang: str
    target_lang: str
    items: list[TranslationItem]
    glossary: list[GlossaryPair] = field(default_factory=list)
    options: BatchOptions = field(default_factory=BatchOptions)


@dataclass(slots=True, frozen=True)
class RawResult:
    """A single result as echoed by the provider, before post-processing."""

    id: str
    translated: str
    confidence: float | None = None
    model_tokens: dict[str, Any] | None = None


@dataclass(slots=True)
class BatchMeta:
    model: str
    usage_tokens: UsageTokens | None = None
    elapsed_ms: int = 0


@dataclass(slots=True)
class ProviderReply:
    results: list[RawResult]
    meta: BatchMeta


@dataclass(slots=True)
class ItemResult:
    id: str
    translated: str
    applied_glossary_terms: list[GlossaryPair] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    confidence: float | None = None
    model_tokens: dict[str, Any] | None = None
    item: TranslationItem | None = None


@dataclass(slots=True)
class BatchOutcome:
    ok: bool
    results: list[ItemResult] = field(default_factory=list)
    meta: BatchMeta | None = None
    errors: list[str] = field(default_factory=list)
    error_detail: str | None = None
