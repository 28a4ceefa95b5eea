"""Database engine and connection handle.

Usage:
    from db_autoadmin.adapters import Database, create_async_engine_pooled
"""

from db_autoadmin.adapters.engine import Database, create_async_engine_pooled, normalize_url

__all__ = [
    "Database",
    "create_async_engine_pooled",
    "normalize_url",
]
