"""
Shared test fixtures.

Services talk to an in-memory Supabase double that really filters,
orders, pages and counts, so staging and commit behaviour can be
asserted end to end without a database.
"""

import os
import re
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("COMMIT_PAGE_PAUSE_SECONDS", "0")

import copy
import itertools
import pytest
from contextlib import ExitStack
from datetime import datetime, timedelta
from typing import Any, Callable, Generator, Optional
from unittest.mock import patch
from uuid import uuid4

import jwt

from tests.factories import CategoryFactory

TEST_API_KEY = os.environ["API_KEY"]
TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]

# Modules that call get_supabase_client()
CLIENT_MODULES = [
    "config.database",
    "services.category_service",
    "services.product_service",
    "services.preview_service",
    "services.image_service",
]

# Module-level service singletons reset per test
SINGLETONS = [
    "services.category_service._category_service",
    "services.product_service._product_service",
    "services.validation_service._validation_service",
    "services.image_service._image_service",
    "services.preview_service._preview_service",
    "services.catalog_upload_service._catalog_upload_service",
    "services.template_service._template_service",
    "services.commit_service._commit_service",
]


# ===================
# FAKE SUPABASE CLIENT
# ===================

class FakeResponse:
    """Supabase query response."""

    def __init__(self, data: list, count: Optional[int] = None):
        self.data = data
        self.count = count


def _like_to_regex(pattern: str) -> re.Pattern:
    """Translate an (i)like pattern with backslash escapes to a regex."""
    out = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self._filters: list[Callable[[dict], bool]] = []
        self._orders: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count: Optional[str] = None

    # Operations

    def select(self, *columns, count: Optional[str] = None):
        self.operation = "select"
        self._count = count
        return self

    def insert(self, data):
        self.operation = "insert"
        self.payload = data
        return self

    def update(self, data: dict):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # Filters

    def eq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def gt(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] > value)
        return self

    def gte(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def lt(self, column: str, value):
        self._filters.append(lambda row: row.get(column) is not None and row[column] < value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column: str, pattern: str):
        regex = _like_to_regex(pattern)
        self._filters.append(
            lambda row: row.get(column) is not None and regex.fullmatch(str(row[column])) is not None
        )
        return self

    # Modifiers

    def order(self, column: str, desc: bool = False, **kwargs):
        self._orders.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> FakeResponse:
        self._client.check_failure(self)
        rows = self._client.tables.setdefault(self.table, [])

        if self.operation == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in items:
                row = copy.deepcopy(item)
                now = self._client.now()
                row.setdefault("id", str(uuid4()))
                row.setdefault("created_at", now)
                row.setdefault("updated_at", now)
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        matched = [row for row in rows if self.matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
                row["updated_at"] = self._client.now()
            return FakeResponse(copy.deepcopy(matched))

        if self.operation == "delete":
            self._client.tables[self.table] = [row for row in rows if not self.matches(row)]
            return FakeResponse(copy.deepcopy(matched))

        # Stable multi-key sort: apply keys last to first
        for column, desc in reversed(self._orders):
            present = [r for r in matched if r.get(column) is not None]
            missing = [r for r in matched if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=desc)
            matched = present + missing

        total = len(matched)
        if self._range is not None:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[:self._limit]

        return FakeResponse(copy.deepcopy(matched), count=total if self._count else None)


class FakeBucket:
    """Storage bucket double."""

    def __init__(self, storage: "FakeStorage", name: str):
        self._storage = storage
        self.name = name

    def upload(self, path: str, content: bytes, file_options: Optional[dict] = None):
        if self._storage.fail_uploads:
            self._storage.fail_uploads -= 1
            raise Exception("storage unavailable")
        self._storage.objects[(self.name, path)] = content
        return {"path": path}

    def get_public_url(self, path: str) -> str:
        return f"https://storage.test/{self.name}/{path}"

    def remove(self, paths: list[str]):
        if self._storage.fail_removes:
            raise Exception("storage unavailable")
        removed = []
        for path in paths:
            if self._storage.objects.pop((self.name, path), None) is not None:
                removed.append({"name": path})
            self._storage.removed.append(path)
        return removed


class FakeStorage:
    """Supabase storage double."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.removed: list[str] = []
        self.fail_uploads = 0
        self.fail_removes = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        fake_supabase.seed("categories", [CategoryFactory.create(name="Vegetables")])
        fake_supabase.fail_on("products", "insert", when=lambda q: q.payload["name"] == "Bad")
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.storage = FakeStorage()
        self._failures: list[tuple[str, str, Exception, Optional[Callable]]] = []
        self._clock = datetime(2025, 1, 1, 12, 0, 0)
        self._ticks = itertools.count()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, table: str, rows: list[dict]) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(rows))

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def fail_on(
        self,
        table: str,
        operation: str,
        error: Optional[Exception] = None,
        when: Optional[Callable[[FakeQuery], bool]] = None
    ) -> None:
        self._failures.append((table, operation, error or Exception("connection refused"), when))

    def clear_failures(self) -> None:
        self._failures = []

    def check_failure(self, query: FakeQuery) -> None:
        for table, operation, error, when in self._failures:
            if table == query.table and operation == query.operation:
                if when is None or when(query):
                    raise error

    def now(self) -> str:
        # Strictly increasing timestamps keep created_at ordering deterministic
        return (self._clock + timedelta(seconds=next(self._ticks))).isoformat()


# ===================
# FIXTURES
# ===================

@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    """Create an empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def mock_db(fake_supabase) -> Generator:
    """
    Patch the database client everywhere it is used.

    Service singletons are reset so routes pick up the fake too.
    """
    with ExitStack() as stack:
        for module in CLIENT_MODULES:
            stack.enter_context(
                patch(f"{module}.get_supabase_client", return_value=fake_supabase)
            )
        for singleton in SINGLETONS:
            stack.enter_context(patch(singleton, None))
        yield fake_supabase


@pytest.fixture
def supplier_id() -> str:
    return str(uuid4())


@pytest.fixture
def categories(mock_db) -> dict:
    """Seed the categories table; returns {name: row}."""
    rows = [
        CategoryFactory.create(name="Vegetables"),
        CategoryFactory.create(name="Fruits"),
        CategoryFactory.create(name="Dairy_Products"),
        CategoryFactory.create(name="Old Stock", is_active=False),
    ]
    mock_db.seed("categories", rows)
    return {row["name"]: row for row in rows}


# ===================
# API TEST CLIENT
# ===================

def make_token(subject: str, role: str = "supplier", secret: str = TEST_JWT_SECRET, **claims) -> str:
    """Sign a Supabase-style access token."""
    payload = {
        "sub": subject,
        "aud": "authenticated",
        "exp": datetime.utcnow() + timedelta(hours=1),
        "app_metadata": {"role": role},
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def admin_headers() -> dict:
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def supplier_headers(supplier_id) -> dict:
    return {"Authorization": f"Bearer {make_token(supplier_id)}"}


@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    FastAPI test client with the in-memory database.

    Usage:
        def test_endpoint(test_client_with_mock_db, supplier_headers):
            response = test_client_with_mock_db.get(url, headers=supplier_headers)
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
