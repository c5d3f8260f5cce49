from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_HANDLER_NAME = "xlate-console"


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """Attach a single stderr handler to the ``xlate_core`` logger tree."""

    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    else:
        resolved = level

    root = logging.getLogger("xlate_core")
    root.setLevel(resolved)

    # Replace rather than reuse: sys.stderr may have been swapped since the last call.
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(resolved)
    root.addHandler(handler)

    return root


def truncate_for_log(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...[truncated]"
