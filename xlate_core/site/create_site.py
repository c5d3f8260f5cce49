from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from xlate_core.constants import DEFAULT_SOURCE_LANGUAGE
from xlate_core.db.schema import initialize_database, read_schema_version
from xlate_core.site.config import SiteConfig, read_config, write_config
from xlate_core.site.paths import resolve_site_path, site_config_path, site_db_path


@dataclass(slots=True)
class CreatedSite:
    name: str
    site_path: Path
    db_path: Path
    config_path: Path


@dataclass(slots=True)
class SiteInfo:
    name: str
    site_path: Path
    db_path: Path
    source_language: str
    enabled_languages: list[str]
    provider: str
    schema_version: int


def _unique_ordered(values: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for value in values:
        normalized = value.strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        output.append(normalized)
    return output


def create_site(
    name: str,
    *,
    root: Path | None = None,
    source_language: str = DEFAULT_SOURCE_LANGUAGE,
    enabled_languages: list[str] | None = None,
    provider: str = "openai",
) -> CreatedSite:
    site_path = resolve_site_path(root)
    config_path = site_config_path(site_path)
    if config_path.exists():
        raise FileExistsError(f"Site already initialized: {site_path}")

    site_path.mkdir(parents=True, exist_ok=True)
    config = SiteConfig(
        site_name=name,
        enabled_languages=_unique_ordered([source_language, *(enabled_languages or [])]),
        default_source_language=source_language,
        provider=provider,
    )
    write_config(config_path, config)

    db_path = site_db_path(site_path)
    engine = initialize_database(db_path)
    engine.dispose()

    return CreatedSite(
        name=name,
        site_path=site_path,
        db_path=db_path,
        config_path=config_path,
    )


def load_site_info(root: Path | None = None) -> SiteInfo:
    site_path = resolve_site_path(root)
    config_path = site_config_path(site_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Site does not exist: {site_path}")

    config = read_config(config_path)
    db_path = site_db_path(site_path)
    schema_version = read_schema_version(db_path)

    return SiteInfo(
        name=config.site_name,
        site_path=site_path,
        db_path=db_path,
        source_language=config.default_source_language,
        enabled_languages=list(config.enabled_languages),
        provider=config.provider,
        schema_version=schema_version,
    )
