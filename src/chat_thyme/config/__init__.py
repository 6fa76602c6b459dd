"""Application configuration"""

import logging
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from .loader import load_raw_config
from .core import Core
from .cache import Cache

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)


class Config:
    """Resolved settings for one process, built by :func:`load_config`."""

    def __init__(self, core: Core, cache: Cache) -> None:
        self.core = core
        self.cache = cache


def load_config(path: str | Path | None = None, overrides: Dict[str, Any] | None = None) -> Config:
    """
    Build a :class:`Config` from CLI ``overrides``, the environment and the
    TOML file at ``path``.

    Raises :class:`ValueError` listing every missing or invalid setting.
    """
    raw = load_raw_config(path)

    errors: list[str] = []
    sections: dict[str, Any] = {}
    for name, cls in (("core", Core), ("cache", Cache)):
        try:
            sections[name] = cls(raw, overrides)
        except ValueError as exc:
            errors.append(str(exc))
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    return Config(core=sections["core"], cache=sections["cache"])


__all__ = ["Cache", "Config", "Core", "load_config", "load_raw_config"]
