from __future__ import annotations

import re

# C0 controls except tab, newline and carriage return, plus DEL and the C1 range.
_CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")


def has_control_chars(value: str) -> bool:
    return bool(_CONTROL_PATTERN.search(value))


def strip_control_chars(value: str) -> str:
    return _CONTROL_PATTERN.sub("", value)


def clean_text(value: str | bytes | None) -> str:
    """Return valid UTF-8 text with control characters removed."""

    if value is None:
        return ""
    if isinstance(value, bytes):
        decoded = value.decode("utf-8", errors="replace")
    else:
        # Lone surrogates cannot be encoded; replace them instead of failing.
        decoded = value.encode("utf-8", errors="replace").decode("utf-8")
    return strip_control_chars(decoded)
