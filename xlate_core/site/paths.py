from __future__ import annotations

from pathlib import Path

from xlate_core.constants import SITE_CONFIG_FILENAME, SITE_DB_FILENAME, default_site_root


def resolve_site_path(root: Path | None = None) -> Path:
    if root is None:
        return default_site_root()
    return Path(root).expanduser()


def site_db_path(site_path: Path) -> Path:
    return Path(site_path) / SITE_DB_FILENAME


def site_config_path(site_path: Path) -> Path:
    return Path(site_path) / SITE_CONFIG_FILENAME
