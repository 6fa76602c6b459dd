"""Per-owner conversation storage: connection cache and SQLite repositories."""

from .cache import CacheEntry, UserDb, UserDbCache

__all__ = ["CacheEntry", "UserDb", "UserDbCache"]
