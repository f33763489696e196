"""
PostgreSQL client with connection pooling and RLS organization isolation.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation enforced via
PostgreSQL Row Level Security - the active organization ID is read from a
contextvar and set as app.current_organization_id on each connection.

Security: No organization context = see nothing (RLS blocks all rows).
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extensions
import psycopg2.extras
import psycopg2.pool

from utils.org_context import _current_organization_id

logger = logging.getLogger(__name__)

# Global UUID adapter registration flag
_uuid_registered = False


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvar.

    Single statements go through execute()/execute_single()/execute_returning(),
    each committed on its own. Multi-statement atomic units go through
    transaction(), which hands out one cursor on one connection and commits
    only when the block exits cleanly.

    Usage:
        db = PostgresClient(database_url)

        with organization_context("org_123"):
            rows = db.execute("SELECT * FROM invoices")

            with db.transaction() as cur:
                cur.execute("SELECT ... FOR UPDATE", (...))
                cur.execute("UPDATE ...", (...))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _uuid_registered
                if not _uuid_registered:
                    psycopg2.extras.register_uuid()
                    _uuid_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """
        Get connection with RLS context from contextvar.

        If the block raises, the connection is rolled back before it goes
        back to the pool, so the next borrower never inherits an aborted
        transaction.
        """
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            organization_id = _current_organization_id.get()

            with conn.cursor() as cur:
                # set_config(..., false) keeps the setting for the session so it
                # survives the commit of the statements that follow
                cur.execute(
                    "SELECT set_config('app.current_organization_id', %s, false)",
                    (organization_id or "",),
                )
            conn.commit()

            yield conn

        except BaseException:
            if conn:
                conn.rollback()
            raise

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """
        Run a block of statements as one atomic unit.

        Commits when the block exits normally. On any exception the
        connection is rolled back (by get_connection) and the exception
        re-raised. Row locks taken inside (SELECT ... FOR UPDATE) are held
        until the block ends.
        """
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur
            conn.commit()

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
            conn.commit()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, return results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()]
            conn.commit()
            return rows

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
