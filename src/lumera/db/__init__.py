"""PostgreSQL connection pool, table names and migrations."""

from lumera.db.pool import close_pool, get_pool

__all__ = ["close_pool", "get_pool"]
