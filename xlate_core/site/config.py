from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from xlate_core.constants import DEFAULT_BATCH_SIZE, DEFAULT_SOURCE_LANGUAGE


class PricingConfig(BaseModel):
    """USD rates per million tokens, used for usage accounting."""

    model_config = ConfigDict(extra="forbid")

    input_per_million: float = 0.0
    cached_input_per_million: float = 0.0
    output_per_million: float = 0.0


class SiteConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    site_name: str
    enabled_languages: list[str] = Field(default_factory=list)
    default_source_language: str = DEFAULT_SOURCE_LANGUAGE
    provider: str = "openai"
    openai_endpoint: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_prompt: str | None = None
    default_batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    autotranslate_task_enabled: bool = False
    autotranslate_task_batchsize: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    log_level: str = "WARNING"


def write_config(config_path: Path, config: SiteConfig) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.model_dump(mode="python"), handle, sort_keys=False)


def read_config(config_path: Path) -> SiteConfig:
    with config_path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    return SiteConfig.model_validate(content)
