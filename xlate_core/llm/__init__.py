from __future__ import annotations

from xlate_core.llm.policy import PROVIDERS, build_provider, load_provider_config
from xlate_core.llm.prompts import DEFAULT_SYSTEM_PROMPT, build_system_message
from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.llm.provider_config import ProviderConfig
from xlate_core.llm.provider_mock import MockProvider
from xlate_core.llm.provider_openai import OpenAIChatProvider
from xlate_core.llm.usage import TokenUsageRecorder, UsageSummary, summarize_usage

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "MockProvider",
    "OpenAIChatProvider",
    "PROVIDERS",
    "ProviderConfig",
    "TokenUsageRecorder",
    "TranslationProvider",
    "UsageSummary",
    "build_provider",
    "build_system_message",
    "load_provider_config",
    "summarize_usage",
]
