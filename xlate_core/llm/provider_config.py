from __future__ import annotations

from dataclasses import dataclass, field

from xlate_core.constants import (
    HTTP_CONNECT_TIMEOUT_SECONDS,
    HTTP_MAX_ATTEMPTS,
    HTTP_TIMEOUT_SECONDS,
)
from xlate_core.site.config import PricingConfig


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    endpoint: str
    api_key: str | None
    model: str
    system_prompt: str | None = None
    connect_timeout_seconds: float = HTTP_CONNECT_TIMEOUT_SECONDS
    timeout_seconds: float = HTTP_TIMEOUT_SECONDS
    max_attempts: int = HTTP_MAX_ATTEMPTS
    pricing: PricingConfig = field(default_factory=PricingConfig)

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint.strip()) and bool(self.api_key)
