from __future__ import annotations

import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

KEYRING_SERVICE_NAME = "xlate"
OPENAI_API_KEY = "openai_api_key"
SECRET_LABELS = {
    OPENAI_API_KEY: "OpenAI API Key",
}

logger = logging.getLogger(__name__)


def _keyring_backend_name() -> str | None:
    if not hasattr(keyring, "get_keyring"):
        return keyring.__class__.__name__

    try:
        backend = keyring.get_keyring()
    except KeyringError:
        return None

    if backend.__class__.__module__ == "keyring.backends.fail":
        return None
    return backend.__class__.__name__


def has_secret_backend() -> bool:
    return _keyring_backend_name() is not None


def mask_secret_value(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        return ""
    if len(normalized) <= 4:
        return "*" * len(normalized)
    if len(normalized) <= 8:
        visible = 2
        hidden = len(normalized) - (visible * 2)
        return f"{normalized[:visible]}{'*' * hidden}{normalized[-visible:]}"
    hidden = len(normalized) - 8
    return f"{normalized[:4]}{'*' * hidden}{normalized[-4:]}"


def set_secret(name: str, value: str) -> None:
    normalized = value.strip()
    if not normalized:
        raise ValueError("Secret value must not be empty.")

    if not has_secret_backend():
        raise RuntimeError(
            "No secret backend available. Install a usable python keyring backend."
        )

    try:
        keyring.set_password(KEYRING_SERVICE_NAME, name, normalized)
    except KeyringError as exc:
        raise RuntimeError(f"Secret storage failed: {exc}") from exc


def get_secret(name: str) -> str | None:
    try:
        value = keyring.get_password(KEYRING_SERVICE_NAME, name)
    except KeyringError as exc:
        logger.warning("Keyring lookup for %s failed: %s", name, exc)
        return None

    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def delete_secret(name: str) -> None:
    try:
        keyring.delete_password(KEYRING_SERVICE_NAME, name)
    except PasswordDeleteError:
        return
    except KeyringError as exc:
        raise RuntimeError(f"Secret deletion failed: {exc}") from exc
