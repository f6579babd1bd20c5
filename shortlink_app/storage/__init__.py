"""
Click storage module for analytics data.

This module implements the Strategy Pattern for pluggable analytics storage.
Separates transactional data (main DB) from analytical data (specialized DB).
"""

from .strategies import ClickStorageStrategy, SQLiteClickStorage, ClickHouseClickStorage
from .factory import ClickStorageFactory, ClickStorageBackend

__all__ = [
    "ClickStorageStrategy",
    "SQLiteClickStorage",
    "ClickHouseClickStorage",
    "ClickStorageFactory",
    "ClickStorageBackend",
]
