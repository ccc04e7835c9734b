"""Application configuration management."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, MutableMapping

CONFIG_DIR_NAME = "MultiAsk"
DEFAULT_FILENAME = "settings.json"
CLIENT_SECTION = "client"

DEFAULT_BACKEND_URL = "http://localhost:5000"
BACKEND_URL_ENV = "MULTIASK_BACKEND_URL"


def get_user_config_dir(app_name: str = CONFIG_DIR_NAME) -> Path:
    """Return the configuration directory for the current user.

    The directory is created on first use. On Windows the directory is
    under ``%APPDATA%``; otherwise the XDG base directory or ``~/.config``
    is used.
    """
    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    config_dir = base_dir / app_name
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


class ConfigManager:
    """Read and write the JSON settings file of the client."""

    def __init__(
        self,
        app_name: str = CONFIG_DIR_NAME,
        *,
        filename: str = DEFAULT_FILENAME,
    ) -> None:
        self.app_name = app_name
        self.config_dir = get_user_config_dir(app_name)
        self.config_path = self.config_dir / filename

    def load(self) -> dict[str, Any]:
        """Return the stored settings, or an empty dictionary when none exist."""
        if not self.config_path.exists():
            return {}
        with self.config_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_path} does not contain a JSON object")
        return data

    def save(self, data: MutableMapping[str, Any]) -> None:
        with self.config_path.open("w", encoding="utf-8") as fh:
            json.dump(dict(data), fh, indent=2, sort_keys=True)
            fh.write("\n")

    def update_section(self, section: str, values: MutableMapping[str, Any]) -> dict[str, Any]:
        """Merge ``values`` into ``section`` and persist the whole file."""
        current = self.load()
        existing = current.get(section)
        merged = dict(existing) if isinstance(existing, dict) else {}
        merged.update(values)
        current[section] = merged
        self.save(current)
        return current

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ConfigManager(app_name={self.app_name!r}, path={self.config_path!s})"


@dataclass(slots=True)
class ClientSettings:
    """Connection settings for the answering backend."""

    backend_url: str = DEFAULT_BACKEND_URL
    timeout: float = 60.0
    max_retries: int = 2
    retry_backoff: float = 0.5

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _section(data: dict[str, Any]) -> dict[str, Any]:
    section = data.get(CLIENT_SECTION)
    if isinstance(section, dict):
        return section
    return {}


def _coerce_float(value: Any, fallback: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return fallback
    return result if result > 0 else fallback


def _coerce_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        return fallback


def load_client_settings(
    manager: ConfigManager | None = None,
    *,
    environ: MutableMapping[str, str] | None = None,
) -> ClientSettings:
    """Return :class:`ClientSettings` from disk with environment overrides.

    ``MULTIASK_BACKEND_URL`` takes precedence over the stored backend URL.
    Invalid values fall back to the defaults instead of raising.
    """

    defaults = ClientSettings()
    stored = _section(manager.load()) if manager is not None else {}
    env = os.environ if environ is None else environ

    backend_url = str(stored.get("backend_url") or defaults.backend_url).strip()
    override = str(env.get(BACKEND_URL_ENV, "") or "").strip()
    if override:
        backend_url = override

    return ClientSettings(
        backend_url=backend_url.rstrip("/") or DEFAULT_BACKEND_URL,
        timeout=_coerce_float(stored.get("timeout"), defaults.timeout),
        max_retries=_coerce_int(stored.get("max_retries"), defaults.max_retries),
        retry_backoff=_coerce_float(stored.get("retry_backoff"), defaults.retry_backoff),
    )


def save_backend_url(manager: ConfigManager, backend_url: str) -> str:
    """Persist ``backend_url`` as the default backend and return the stored value."""

    normalized = backend_url.strip().rstrip("/")
    if not normalized:
        raise ValueError("backend URL must not be empty")
    manager.update_section(CLIENT_SECTION, {"backend_url": normalized})
    return normalized


__all__ = [
    "BACKEND_URL_ENV",
    "ClientSettings",
    "ConfigManager",
    "DEFAULT_BACKEND_URL",
    "get_user_config_dir",
    "load_client_settings",
    "save_backend_url",
]
