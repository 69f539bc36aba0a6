"""Configuration files, atomic writes, and precedence resolution.

This module handles the persisted configuration of the ``fetchflow`` command
line and of clients built from it:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fetchflow/`` on macOS and Windows. See :func:`get_config_dir`.
* **User config** -- A single :class:`~fetchflow.models.ClientConfig` JSON
  file, ``config.json``, in the config directory.
* **Project config** -- An optional ``fetchflow.json`` in the current
  directory whose keys override the user config.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project config and user config into the effective
  :class:`~fetchflow.models.ClientConfig`.

File writes use a temp-file-then-rename strategy (:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from fetchflow.exceptions import ConfigError
from fetchflow.models import ClientConfig

_APP_NAME = "fetchflow"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "fetchflow.json"

ENV_BASE_URL = "FETCHFLOW_BASE_URL"
ENV_TIMEOUT = "FETCHFLOW_TIMEOUT"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fetchflow/`` (default
    ``~/.config/fetchflow/``). On macOS/Windows: ``~/.fetchflow/``.
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".config"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a temp file in the same directory and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def _read_json(path: Path, label: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc


# --- User config ---


def load_client_config() -> ClientConfig:
    """Load the user configuration.

    Returns:
        The deserialised :class:`~fetchflow.models.ClientConfig`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            validation.
    """
    path = config_path()
    if not path.is_file():
        return ClientConfig()
    data = _read_json(path, "config")
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_client_config(config: ClientConfig) -> Path:
    """Persist *config* atomically to the user config file.

    Returns:
        The path written.
    """
    path = config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./fetchflow.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_timeout: Optional[float] = None,
) -> ClientConfig:
    """Resolve the effective client configuration.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_timeout``)
        2. Environment variables (``FETCHFLOW_BASE_URL``, ``FETCHFLOW_TIMEOUT``)
        3. Project config (``./fetchflow.json``)
        4. User config (``config.json`` in :func:`get_config_dir`)
        5. Defaults

    Raises:
        ConfigError: If a file or an environment value is invalid.
    """
    data = load_client_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        data["base_url"] = env_base_url
    env_timeout = os.environ.get(ENV_TIMEOUT)
    if env_timeout:
        try:
            data.setdefault("transport", {})["timeout"] = float(env_timeout)
        except ValueError as exc:
            raise ConfigError(f"{ENV_TIMEOUT} must be a number of seconds, got {env_timeout!r}") from exc

    if cli_base_url is not None:
        data["base_url"] = cli_base_url
    if cli_timeout is not None:
        data.setdefault("transport", {})["timeout"] = cli_timeout

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
