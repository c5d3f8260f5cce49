from __future__ import annotations

from abc import ABC, abstractmethod

from xlate_core.translation.types import BatchRequest, ProviderReply


class TranslationProvider(ABC):
    @abstractmethod
    def translate(self, request: BatchRequest) -> ProviderReply:
        """Run one source->target round trip; raise ProviderError on failure."""
