"""
Database connection layer: asyncpg for all table operations.

supabase-py is used ONLY for Supabase Storage (see mediahub.storage).
Components receive a Database instance explicitly; nothing here is a
process-wide singleton.
"""
import json
import logging
from datetime import date
from typing import Any, Optional

import asyncpg
from supabase import create_client, Client

logger = logging.getLogger(__name__)


class Database:
    """Async Postgres connection pool via asyncpg."""

    def __init__(self, dsn: str, command_timeout: float = 30.0) -> None:
        self._dsn = dsn
        self._command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create the connection pool. Call once at app startup."""
        if self._pool is not None:
            return
        if not self._dsn:
            raise RuntimeError(
                "DATABASE_URL is not set. Get it from Supabase Dashboard > Settings > Database > Connection string."
            )
        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=2,
            max_size=10,
            command_timeout=self._command_timeout,
            statement_cache_size=100,
        )
        logger.info("asyncpg pool created (min=2, max=10)")

    async def close(self) -> None:
        """Close the connection pool. Call at app shutdown."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("asyncpg pool closed")

    def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized, call await db.connect() first")
        return self._pool

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Execute a query and return all rows."""
        pool = self._ensure_pool()
        return await pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Execute a query and return the first row (or None)."""
        pool = self._ensure_pool()
        return await pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Execute a query and return the first column of the first row."""
        pool = self._ensure_pool()
        return await pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a statement (INSERT/UPDATE/DELETE). Returns status string."""
        pool = self._ensure_pool()
        return await pool.execute(query, *args)

    async def executemany(self, query: str, args: list) -> None:
        """Execute a statement for each set of args (batch insert/update)."""
        pool = self._ensure_pool()
        await pool.executemany(query, args)


def affected_rows(status: Optional[str]) -> int:
    """Row count from an asyncpg status string like "UPDATE 1" or "DELETE 0"."""
    if not status:
        return 0
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


def to_jsonb(value: Any) -> Optional[str]:
    """Serialize a value for a `$n::jsonb` parameter (None stays NULL)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def from_jsonb(value: Any) -> Any:
    """Decode a jsonb column returned by asyncpg (text by default)."""
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Could not decode jsonb value (%d chars)", len(value))
            return None
    return value


def to_date(value: Any) -> Optional[date]:
    """Coerce a YYYY-MM-DD string (or date) for a `date` column parameter."""
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Ignoring unparseable date %r", value)
        return None


def create_storage_client(url: str, service_role_key: str) -> Client:
    """Create the supabase-py client used for Storage operations only."""
    return create_client(url, service_role_key)
