from __future__ import annotations

from pathlib import Path

CURRENT_SCHEMA_VERSION = 2
DEFAULT_SITE_DIRNAME = "xlate-site"
SITE_DB_FILENAME = "xlate.db"
SITE_CONFIG_FILENAME = "config.yml"

DEFAULT_SOURCE_LANGUAGE = "en"
DEFAULT_BATCH_SIZE = 50
ASSOCIATION_CHUNK_SIZE = 200
GLOSSARY_LOOKUP_LIMIT = 200
GLOSSARY_PROMPT_LIMIT = 40

HTTP_MAX_ATTEMPTS = 2
HTTP_CONNECT_TIMEOUT_SECONDS = 10.0
HTTP_TIMEOUT_SECONDS = 300.0
LOG_BODY_LIMIT = 10000

TASK_MAX_ATTEMPTS = 3
TASK_LEASE_SECONDS = 900


def default_site_root(cwd: Path | None = None) -> Path:
    base = cwd or Path.cwd()
    return base / DEFAULT_SITE_DIRNAME
