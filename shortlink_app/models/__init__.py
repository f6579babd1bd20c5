"""
Database models for the link registry.

Note: Click events are stored in a separate analytics database (SQLite/ClickHouse),
not in SQLAlchemy models. This separates transactional data from analytical data.
"""

from .counter import Counter
from .link import Link, LinkKey
from .user import User

__all__ = ["Counter", "Link", "LinkKey", "User"]
