from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict


DEFAULT_CONFIG_PATH = Path("config.toml")


def load_raw_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Load the application config file (config.toml by default).

    Returns an empty dict when the file is missing so callers can fall back to
    environment variables and defaults. An explicitly requested file that does
    not exist raises :class:`FileNotFoundError`.
    """
    target = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not target.is_file():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {target}")
        return {}

    with target.open("rb") as handle:
        return tomllib.load(handle)


def pick(
    overrides: Dict[str, Any] | None,
    key: str,
    env: str,
    section: Dict[str, Any],
    toml_key: str,
    default: Any = None,
) -> Any:
    """
    Resolve one setting: CLI override, then environment, then TOML, then default.

    ``None`` means "not supplied" at every level.
    """
    if overrides and overrides.get(key) is not None:
        return overrides[key]
    from_env = os.environ.get(env)
    if from_env is not None:
        return from_env
    if section.get(toml_key) is not None:
        return section[toml_key]
    return default


def as_bool(raw: Any) -> bool:
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


__all__ = ["load_raw_config", "pick", "as_bool", "DEFAULT_CONFIG_PATH"]
