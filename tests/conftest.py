import pytest
from fastapi.testclient import TestClient

from taskdesk.backend.config import Settings
from taskdesk.backend.domain import StoreError
from taskdesk.backend.identity import LocalIdentityProvider
from taskdesk.backend.main import create_app
from taskdesk.backend.store import MemoryStore


class FlakyStore(MemoryStore):
    """MemoryStore that raises StoreError for the operations listed in ``failing``."""

    def __init__(self):
        super().__init__()
        self.failing = set()
        self.calls = []

    def _check(self, op):
        self.calls.append(op)
        if op in self.failing:
            raise StoreError(f"simulated {op} failure")

    def select(self, table, filters, order_by=None, descending=False, limit=None):
        self._check("select")
        return super().select(table, filters, order_by, descending, limit)

    def insert(self, table, row):
        self._check("insert")
        return super().insert(table, row)

    def update(self, table, filters, changes):
        self._check("update")
        return super().update(table, filters, changes)

    def delete(self, table, filters):
        self._check("delete")
        return super().delete(table, filters)

    def row_count(self):
        return sum(len(rows) for rows in self.tables.values())


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def identity():
    return LocalIdentityProvider()


@pytest.fixture
def settings():
    return Settings(backend="memory")


@pytest.fixture
def app(settings, store, identity):
    return create_app(settings, store=store, identity=identity)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def alice(identity):
    return bearer(identity.issue_token("user-a", "alice@example.com"))


@pytest.fixture
def bob(identity):
    return bearer(identity.issue_token("user-b", "bob@example.com"))
