from typing import Any, Dict

from .loader import pick

_DEFAULT_DB_DIR = ".sqlite"


def _positive_int(name: str, raw: Any, errors: list[str]) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        errors.append(f"{name} must be an integer (got {raw!r})")
        return 1
    if value < 1:
        errors.append(f"{name} must be >= 1 (got {value})")
    return value


class Cache:
    def __init__(self, config: dict | None = None, overrides: Dict[str, Any] | None = None) -> None:
        db_cfg = (config or {}).get("chatthyme", {}).get("database", {})

        errors: list[str] = []
        self.DB_DIR: str = str(pick(overrides, "db_dir", "DB_DIR", db_cfg, "dir", _DEFAULT_DB_DIR))
        self.CACHE_SIZE: int = _positive_int(
            "DESIRED_MAX_DB_CONNECTION_CACHE_SIZE",
            pick(
                overrides,
                "db_connection_cache_size",
                "DESIRED_MAX_DB_CONNECTION_CACHE_SIZE",
                db_cfg,
                "connection_cache_size",
                100,
            ),
            errors,
        )
        self.CACHE_TTL_MS: int = _positive_int(
            "DB_CONNECTION_CACHE_TTL_MILLISECONDS",
            pick(
                overrides,
                "db_connection_cache_ttl",
                "DB_CONNECTION_CACHE_TTL_MILLISECONDS",
                db_cfg,
                "connection_cache_ttl",
                3_600_000,
            ),
            errors,
        )
        self.CACHE_CHECK_INTERVAL_MS: int = _positive_int(
            "DB_CONNECTION_CACHE_CHECK_INTERVAL_MILLISECONDS",
            pick(
                overrides,
                "db_connection_cache_check_interval",
                "DB_CONNECTION_CACHE_CHECK_INTERVAL_MILLISECONDS",
                db_cfg,
                "connection_cache_check_interval",
                600_000,
            ),
            errors,
        )
        if errors:
            raise ValueError("; ".join(errors))

    @property
    def ttl_seconds(self) -> float:
        return self.CACHE_TTL_MS / 1000

    @property
    def check_interval_seconds(self) -> float:
        return self.CACHE_CHECK_INTERVAL_MS / 1000
