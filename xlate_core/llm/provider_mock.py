from __future__ import annotations

from xlate_core.errors import INVALID_ARGUMENTS, ProviderError
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.translation.types import BatchMeta, BatchRequest, ProviderReply, RawResult


class MockProvider(TranslationProvider):
    """Offline provider that tags each source string with the target language."""

    def __init__(self, *, model: str = "mock-v1", history_limit: int = 50) -> None:
        self.model = model
        self.history_limit = history_limit
        # Most recent requests only; long CLI runs reuse one instance.
        self.requests: list[BatchRequest] = []

    def translate(self, request: BatchRequest) -> ProviderReply:
        if not request.request_id or not request.target_lang or not request.items:
            raise ProviderError(INVALID_ARGUMENTS)

        self.requests.append(request)
        del self.requests[: -self.history_limit]
        return ProviderReply(
            results=[
                RawResult(id=item.wire_id, translated=f"[{request.target_lang}] {item.source_text}")
                for item in request.items
            ],
            meta=BatchMeta(model=self.model),
        )
