"""Test configuration for pytest."""

from __future__ import annotations

import io
import itertools
import os
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from aiwear.images import encode_data_url


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "ai: real API tests that may cost money")
    config.addinivalue_line("markers", "slow: tests expected to run longer than ~1 second")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_ai = os.getenv("RUN_AI_TESTS") == "1"
    skip_marker = pytest.mark.skip(reason="Set RUN_AI_TESTS=1 to run AI integration tests.")

    if run_ai:
        return

    for item in items:
        if "ai" in item.keywords:
            item.add_marker(skip_marker)


# ---------------------------------------------------------------------------
# In-memory Supabase double
#
# Covers the slice of the supabase-py surface the services use: table query
# chains, rpc, storage buckets and ``auth.get_user``.


def _coerce(value: str) -> Any:
    return {"true": True, "false": False, "null": None}.get(value, value)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.mode = "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.order_by: Optional[tuple[str, bool]] = None
        self.limit_to: Optional[int] = None
        self.window: Optional[tuple[int, int]] = None

    def select(self, *_columns: str) -> "FakeQuery":
        self.mode = "select"
        return self

    def insert(self, rows: Any) -> "FakeQuery":
        self.mode = "insert"
        self.payload = rows
        return self

    def update(self, fields: Dict[str, Any]) -> "FakeQuery":
        self.mode = "update"
        self.payload = fields
        return self

    def delete(self) -> "FakeQuery":
        self.mode = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def or_(self, expression: str) -> "FakeQuery":
        clauses = []
        for clause in expression.split(","):
            column, _op, value = clause.split(".", 2)
            clauses.append((column, _coerce(value)))
        self.filters.append(lambda row: any(row.get(col) == val for col, val in clauses))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.limit_to = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(check(row) for check in self.filters)

    def execute(self) -> SimpleNamespace:
        if (self.table, self.mode) in self.db.fail_on:
            raise RuntimeError(f"{self.mode} on {self.table} failed")

        rows = self.db.tables.setdefault(self.table, [])
        if self.mode == "insert":
            batch = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.new_row(self.table, row) for row in batch]
            rows.extend(inserted)
            return SimpleNamespace(data=[dict(row) for row in inserted])

        if self.mode == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(dict(row))
            return SimpleNamespace(data=updated)

        if self.mode == "delete":
            removed = [row for row in rows if self._matches(row)]
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=removed)

        selected = [dict(row) for row in rows if self._matches(row)]
        if self.order_by:
            column, desc = self.order_by
            selected.sort(key=lambda row: str(row.get(column) or ""), reverse=desc)
        if self.window:
            start, end = self.window
            selected = selected[start : end + 1]
        if self.limit_to is not None:
            selected = selected[: self.limit_to]
        return SimpleNamespace(data=selected)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]) -> None:
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> SimpleNamespace:
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        return SimpleNamespace(data=handler(self.params) if handler else None)


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str) -> None:
        self.storage = storage
        self.name = name

    def upload(self, path: str, data: bytes, file_options: Optional[Dict[str, str]] = None) -> None:
        if self.storage.fail_uploads:
            raise RuntimeError("storage upload failed")
        self.storage.objects.setdefault(self.name, {})[path] = data
        self.storage.upload_options[(self.name, path)] = dict(file_options or {})

    def remove(self, paths: List[str]) -> None:
        if self.storage.fail_removes:
            raise RuntimeError("storage remove failed")
        objects = self.storage.objects.setdefault(self.name, {})
        for path in paths:
            objects.pop(path, None)
        self.storage.removed.extend((self.name, path) for path in paths)

    def get_public_url(self, path: str) -> str:
        return f"https://test.supabase.co/storage/v1/object/public/{self.name}/{path}"

    def create_signed_url(self, path: str, expires_in: int) -> Dict[str, str]:
        if self.storage.fail_signing:
            raise RuntimeError("signing failed")
        return {"signedURL": f"https://test.supabase.co/storage/v1/object/sign/{self.name}/{path}?token=t"}


class FakeStorage:
    def __init__(self) -> None:
        self.objects: Dict[str, Dict[str, bytes]] = {}
        self.upload_options: Dict[tuple[str, str], Dict[str, str]] = {}
        self.removed: List[tuple[str, str]] = []
        self.fail_uploads = False
        self.fail_removes = False
        self.fail_signing = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeAuth:
    def __init__(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    def get_user(self) -> Optional[SimpleNamespace]:
        if self.user_id is None:
            return None
        return SimpleNamespace(user=SimpleNamespace(id=self.user_id))


class FakeSupabase:
    def __init__(self, user_id: Optional[str] = "user-1") -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_on: set[tuple[str, str]] = set()
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.rpc_calls: List[tuple[str, Dict[str, Any]]] = []
        self.storage = FakeStorage()
        self.auth = FakeAuth(user_id)
        self._ids = itertools.count(1)

    def new_row(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        number = next(self._ids)
        stored = dict(row)
        stored.setdefault("id", f"{table}-{number}")
        stored.setdefault("created_at", f"2000-01-01T00:00:00.{number:06d}+00:00")
        if table == "person_images":
            stored.setdefault("last_used_at", stored["created_at"])
        return stored

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> FakeRpc:
        return FakeRpc(self, name, params or {})

    # Helpers for tests.

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def seed_credits(self, user_id: str, amount: int) -> None:
        self.tables.setdefault("credit_ledger", []).append(
            self.new_row("credit_ledger", {"user_id": user_id, "delta": amount, "reason": "signup_bonus"})
        )

    def ledger(self, user_id: str) -> List[Dict[str, Any]]:
        return [row for row in self.rows("credit_ledger") if row["user_id"] == user_id]


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def anonymous_db() -> FakeSupabase:
    return FakeSupabase(user_id=None)


# ---------------------------------------------------------------------------
# Images


def make_png(width: int = 64, height: int = 96, color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    return make_png


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_data_url(png_bytes: bytes) -> str:
    return encode_data_url(png_bytes, "image/png")
