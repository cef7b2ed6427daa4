"""
Shared fixtures.

Test strategy:
1. Unit tests for models, aggregation and the transfer codec
2. Backend tests against a temp directory (local) or an in-memory
   table (remote)
3. No real API calls in tests (Gemini and Google Sheets are faked)
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from shop_ledger.config import get_settings
from shop_ledger.models.transaction import Transaction, TransactionType, UserIdentity
from shop_ledger.services.storage import (
    LocalSnapshotStorage,
    PersistenceError,
    RemoteTable,
    SnapshotFile,
)
from shop_ledger.session import SessionContext


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point every snapshot at the test's own directory; never read a real .env."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOCAL_SNAPSHOT_DATA_DIR", os.fspath(tmp_path / "data"))
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def snapshot(tmp_path: Path) -> SnapshotFile:
    return SnapshotFile(tmp_path / "data")


@pytest.fixture
def local_storage(snapshot: SnapshotFile) -> LocalSnapshotStorage:
    return LocalSnapshotStorage(snapshot=snapshot)


@pytest.fixture
def alice() -> UserIdentity:
    return UserIdentity(id="user-alice", name="Alice", email="alice@example.com")


@pytest.fixture
def bob() -> UserIdentity:
    return UserIdentity(id="user-bob", name="Bob", email="bob@example.com")


@pytest.fixture
def session(alice: UserIdentity) -> SessionContext:
    ctx = SessionContext()
    ctx.establish(alice)
    return ctx


def make_tx(
    description: str = "Sale",
    amount: str = "100",
    type: TransactionType = TransactionType.INCOME,
    date: str = "2024-06-01",
    user_id: str = "user-alice",
    category: str = "sales",
    **extra: Any,
) -> Transaction:
    """Build a Transaction with sensible defaults."""
    return Transaction(
        description=description,
        amount=Decimal(amount),
        type=type,
        category=category,
        date=date,
        user_id=user_id,
        **extra,
    )


class InMemoryTable(RemoteTable):
    """
    RemoteTable fake with the same equality-filter semantics as the
    Google Sheets table.
    """

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.fail_next: str | None = None
        self.calls: list[tuple[str, str, Any]] = []

    def _maybe_fail(self, op: str) -> None:
        if self.fail_next == op:
            self.fail_next = None
            raise PersistenceError(f"{op} failed: network unreachable")

    async def select(self, table, filters):
        self.calls.append(("select", table, dict(filters)))
        self._maybe_fail("select")
        return [
            dict(row) for row in self.tables.get(table, [])
            if all(row.get(k) == v for k, v in filters.items())
        ]

    async def insert(self, table, rows):
        self.calls.append(("insert", table, len(rows)))
        self._maybe_fail("insert")
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)
        return rows

    async def delete_where(self, table, filters):
        self.calls.append(("delete_where", table, dict(filters)))
        self._maybe_fail("delete_where")
        rows = self.tables.get(table, [])
        kept = [r for r in rows if not all(r.get(k) == v for k, v in filters.items())]
        self.tables[table] = kept
        return len(rows) - len(kept)


class FakeGeminiResponse:
    def __init__(self, text: str):
        self.text = text


class FakeGeminiModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text: str = "Sell more.", error: Exception | None = None):
        self._text = text
        self._error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt: str):
        self.prompts.append(prompt)
        if self._error is not None:
            raise self._error
        return FakeGeminiResponse(self._text)


@pytest.fixture
def memory_table() -> InMemoryTable:
    return InMemoryTable()
