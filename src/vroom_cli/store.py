"""
Key-value store for credentials and preferences.

Backed by a JSON object in the user config directory. Writes are atomic and
the file is kept owner-readable only since it holds API keys.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

STORE_FILENAME = "config.json"

API_KEY_NAMES = {
    "huggingface": "huggingfaceApiKey",
    "openai": "openaiApiKey",
    "stability": "stabilityApiKey",
}

API_KEY_ENV = {
    "huggingface": "HF_TOKEN",
    "openai": "OPENAI_API_KEY",
    "stability": "STABILITY_API_KEY",
}

LAST_USED_SERVICE = "lastUsedService"

KNOWN_KEYS = frozenset(API_KEY_NAMES.values()) | {LAST_USED_SERVICE}


def default_config_dir() -> Path:
    override = os.environ.get("VROOM_CONFIG_DIR")
    if override:
        return Path(override)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "vroom"


class ConfigStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = path or default_config_dir() / STORE_FILENAME

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2, ensure_ascii=False)

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        closed = replaced = False
        try:
            os.write(fd, content.encode("utf-8"))
            os.close(fd)
            closed = True
            os.replace(tmp_path, self.path)
            replaced = True
        finally:
            if not closed:
                os.close(fd)
            if not replaced and os.path.exists(tmp_path):
                os.remove(tmp_path)
        self._enforce_permissions()

    def _enforce_permissions(self) -> None:
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.warning("Could not set secure permissions on %s", self.path)

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        if value in (None, ""):
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        if key not in KNOWN_KEYS:
            raise KeyError(f"Unknown config key '{key}'. Known keys: {sorted(KNOWN_KEYS)}")
        data = self._read()
        data[key] = value
        self._write(data)

    def get_api_key(self, provider_id: str) -> Optional[str]:
        env_name = API_KEY_ENV.get(provider_id)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]
        key_name = API_KEY_NAMES.get(provider_id)
        return self.get(key_name) if key_name else None

    def get_last_used_service(self) -> Optional[str]:
        return self.get(LAST_USED_SERVICE)

    def set_last_used_service(self, provider_id: str) -> None:
        self.set(LAST_USED_SERVICE, provider_id)


def mask_secret(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-4:]}"
