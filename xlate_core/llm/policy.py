from __future__ import annotations

from pathlib import Path

from xlate_core.llm.provider_base import TranslationProvider
from xlate_core.llm.provider_config import ProviderConfig
from xlate_core.llm.provider_mock import MockProvider
from xlate_core.llm.provider_openai import OpenAIChatProvider
from xlate_core.llm.usage import TokenUsageRecorder
from xlate_core.site.config import read_config
from xlate_core.site.paths import site_config_path, site_db_path
from xlate_core.site.secrets import OPENAI_API_KEY, get_secret

PROVIDERS = ("openai", "mock")


def load_provider_config(site_path: Path) -> ProviderConfig:
    config = read_config(site_config_path(Path(site_path)))
    return ProviderConfig(
        endpoint=config.openai_endpoint,
        api_key=get_secret(OPENAI_API_KEY),
        model=config.openai_model,
        system_prompt=config.openai_prompt,
        pricing=config.pricing,
    )


def build_provider(site_path: Path, *, provider_name: str | None = None) -> TranslationProvider:
    site_path = Path(site_path)
    config = read_config(site_config_path(site_path))
    name = (provider_name or config.provider).strip().lower()

    if name == "mock":
        return MockProvider()
    if name == "openai":
        provider_config = load_provider_config(site_path)
        return OpenAIChatProvider(
            provider_config,
            usage_recorder=TokenUsageRecorder(
                db_path=site_db_path(site_path),
                pricing=provider_config.pricing,
            ),
        )
    raise ValueError(f"Unsupported translation provider '{name}'; expected one of {PROVIDERS}")
