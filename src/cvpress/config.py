"""Configuration loader.

Reads engine settings from a YAML config file with ``${ENV_VAR}``
interpolation.  Paths left empty are resolved from the environment once,
when the config is built, and stored on the ``EngineConfig``.
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import EngineConfig

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${ENV_VAR}`` references in strings."""
    if isinstance(value, str):
        def _replace(m: re.Match) -> str:
            return os.environ.get(m.group(1), "")
        return _ENV_RE.sub(_replace, value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Path defaults
# ---------------------------------------------------------------------------


def default_install_dir() -> Path:
    """Resolve the TinyTeX install directory.

    ``CVPRESS_INSTALL_DIR`` wins; the desktop shell sets ``USER_DATA_PATH``
    and the toolchain lives in its ``tinytex`` subdirectory; otherwise
    ``~/.cvpress/tinytex``.
    """
    explicit = os.getenv("CVPRESS_INSTALL_DIR")
    if explicit:
        return Path(explicit).expanduser()
    user_data = os.getenv("USER_DATA_PATH")
    if user_data:
        return Path(user_data).expanduser() / "tinytex"
    return Path.home() / ".cvpress" / "tinytex"


def default_work_dir() -> Path:
    """Root for attempt directories: ``CVPRESS_WORK_DIR`` or the system temp dir."""
    explicit = os.getenv("CVPRESS_WORK_DIR")
    if explicit:
        return Path(explicit).expanduser()
    return Path(tempfile.gettempdir()) / "cvpress"


def apply_env_fallbacks(config: EngineConfig) -> EngineConfig:
    """Fill empty path settings from the environment and make them absolute."""
    if not config.install_dir:
        config.install_dir = str(default_install_dir())
    if not config.work_dir:
        config.work_dir = str(default_work_dir())
    config.install_dir = str(Path(config.install_dir).expanduser().resolve())
    config.work_dir = str(Path(config.work_dir).expanduser().resolve())
    return config


def load_config(config_path: str | Path) -> EngineConfig:
    """Load an ``EngineConfig`` from a YAML file.

    Environment variables referenced as ``${VAR_NAME}`` are resolved.
    Empty ``install_dir`` / ``work_dir`` fall back to
    :func:`default_install_dir` / :func:`default_work_dir`.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    resolved = _resolve_env_vars(raw)
    config = EngineConfig.model_validate(resolved)
    return apply_env_fallbacks(config)


def load_data(data_path: str | Path) -> dict[str, Any]:
    """Load a placeholder data map from a YAML or JSON file."""
    path = Path(data_path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Data file must contain a mapping, got {type(data).__name__}")
    return data
