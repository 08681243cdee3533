"""
Shared helpers: error taxonomy, input validation and clock access.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Current time as a naive UTC datetime.

    All timestamps are stored naive-UTC so SQLite and PostgreSQL
    columns compare the same way.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
