"""Shared test fixtures for the invoicing test suite."""

import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from utils.org_context import organization_context, clear_current_organization_id


# =============================================================================
# TEST ORGANIZATION CONSTANTS
# =============================================================================

# Primary test organization - use for single-tenant tests
TEST_ORG_ID = "org_test_a"

# Secondary test organization - use for isolation tests
TEST_ORG_B_ID = "org_test_b"


# =============================================================================
# ORGANIZATION CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_org_context():
    """Ensure clean organization context before and after each test."""
    clear_current_organization_id()
    yield
    clear_current_organization_id()


@pytest.fixture
def test_org_id() -> str:
    """The primary test organization's ID."""
    return TEST_ORG_ID


@pytest.fixture
def test_org_b_id() -> str:
    """The secondary test organization's ID (for isolation tests)."""
    return TEST_ORG_B_ID


@pytest.fixture
def as_test_org(test_org_id):
    """Run the test inside the primary organization's context."""
    with organization_context(test_org_id):
        yield test_org_id


# =============================================================================
# IN-MEMORY NUMBERING STORE
# =============================================================================


class FakeNumberingStore:
    """
    In-memory stand-in for the invoice_settings table.

    Understands exactly the statements InvoiceNumberReserver issues and
    emulates PostgreSQL row locks: SELECT ... FOR UPDATE blocks until the
    row's current holder commits or rolls back.
    """

    def __init__(self, delay_seconds: float = 0.0):
        self.rows: dict[str, dict] = {}
        self.executed: list[str] = []
        self.fail_with: Exception | None = None
        self.delay_seconds = delay_seconds
        self._table_lock = threading.Lock()
        self._row_locks: dict[str, threading.Lock] = {}

    def row_lock(self, organization_id: str) -> threading.Lock:
        with self._table_lock:
            return self._row_locks.setdefault(organization_id, threading.Lock())

    def seed(self, organization_id: str, **fields) -> None:
        """Put a settings row in place before the test runs."""
        row = {
            "organization_id": organization_id,
            "prefix_template": "INV-YYYY-",
            "last_prefix": None,
            "next_number": 1,
            "number_padding": 4,
            "default_currency": "USD",
        }
        row.update(fields)
        self.rows[organization_id] = row

    @contextmanager
    def transaction(self):
        cur = FakeCursor(self)
        try:
            yield cur
        except BaseException:
            cur.rollback()
            raise
        cur.commit()


class FakeCursor:
    """Cursor for FakeNumberingStore. One per transaction."""

    def __init__(self, store: FakeNumberingStore):
        self.store = store
        self._result = None
        self._held: dict[str, dict] = {}  # org -> row snapshot for rollback
        self._created: set[str] = set()

    def execute(self, query: str, params=None) -> None:
        normalized = " ".join(query.split())
        self.store.executed.append(normalized)

        if "set_config('lock_timeout'" in normalized:
            self._result = None
        elif normalized.startswith("INSERT INTO invoice_settings"):
            organization_id, template, padding, currency = params[0], params[1], params[2], params[3]
            with self.store._table_lock:
                if organization_id not in self.store.rows:
                    self._created.add(organization_id)
                    self.store.rows[organization_id] = {
                        "organization_id": organization_id,
                        "prefix_template": template,
                        "last_prefix": None,
                        "next_number": 1,
                        "number_padding": padding,
                        "default_currency": currency,
                    }
        elif normalized.endswith("FOR UPDATE"):
            organization_id = params[0]
            if self.store.fail_with is not None:
                raise self.store.fail_with
            if organization_id not in self._held:
                self.store.row_lock(organization_id).acquire()
                self._held[organization_id] = dict(self.store.rows[organization_id])
            self._result = dict(self.store.rows[organization_id])
            if self.store.delay_seconds:
                time.sleep(self.store.delay_seconds)
        elif normalized.startswith("UPDATE invoice_settings"):
            prefix, next_number, _updated_at, organization_id = params
            assert organization_id in self._held, "row updated without holding its lock"
            self.store.rows[organization_id]["last_prefix"] = prefix
            self.store.rows[organization_id]["next_number"] = next_number
        else:
            raise AssertionError(f"Unexpected statement: {normalized}")

    def fetchone(self):
        return self._result

    def _release(self) -> None:
        for organization_id in self._held:
            self.store.row_lock(organization_id).release()
        self._held = {}

    def commit(self) -> None:
        self._release()

    def rollback(self) -> None:
        for organization_id, snapshot in self._held.items():
            self.store.rows[organization_id] = snapshot
        for organization_id in self._created:
            self.store.rows.pop(organization_id, None)
        self._release()


@pytest.fixture
def numbering_store():
    """Empty in-memory invoice_settings table."""
    return FakeNumberingStore()


@pytest.fixture
def slow_numbering_store():
    """In-memory table that holds each row lock briefly, forcing contention."""
    return FakeNumberingStore(delay_seconds=0.001)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


def _database_urls() -> tuple[str, str] | None:
    """(app_url, admin_url) from Vault or the environment, None if unconfigured."""
    if os.getenv("VAULT_ADDR"):
        from clients.vault_client import get_database_url, get_admin_database_url
        return get_database_url(), get_admin_database_url()

    app_url = os.getenv("TEST_DATABASE_URL")
    if app_url:
        return app_url, os.getenv("TEST_DATABASE_ADMIN_URL", app_url)

    return None


@pytest.fixture(scope="session")
def db_urls():
    urls = _database_urls()
    if urls is None:
        pytest.skip("No database configured (set VAULT_ADDR or TEST_DATABASE_URL)")
    return urls


@pytest.fixture(scope="session")
def db_admin(db_urls):
    """Session-scoped admin PostgresClient (bypasses RLS, for schema and cleanup)."""
    from clients.postgres_client import PostgresClient

    client = PostgresClient(db_urls[1])
    schema = (Path(__file__).parent.parent / "sql" / "schema.sql").read_text()
    client.execute(schema)
    yield client
    client.close()


@pytest.fixture(scope="session")
def db(db_urls, db_admin):
    """Session-scoped PostgresClient (application role, RLS enforced)."""
    from clients.postgres_client import PostgresClient

    client = PostgresClient(db_urls[0])
    yield client
    client.close()


@pytest.fixture
def clean_db(db_admin):
    """Empty all invoicing tables before the test."""
    db_admin.execute("TRUNCATE invoice_items, invoices, clients, invoice_settings, audit_log CASCADE")
    yield db_admin
