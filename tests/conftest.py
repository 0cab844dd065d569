"""Test doubles for the submission core.

FakePool: stands in for an asyncpg pool backing PendingSubmissionStore
FakeRemote: records upserts like the hosted database would apply them
StaticConnectivity: a reachability flag the test flips by hand
"""
import json

import httpx
import pytest

from retail_sync.db import PendingSubmissionStore
from retail_sync.errors import RemoteError
from retail_sync.utils.supabase import UpsertResult


class FakeConnection:
    def __init__(self, pool):
        self.pool = pool

    def _check(self):
        if self.pool.fail_with is not None:
            raise self.pool.fail_with

    async def execute(self, sql, *args):
        self._check()
        self.pool.statements.append(sql)
        if "INSERT INTO" in sql:
            submission_id, type_, store_id, session_id, payload, created_at = args
            self.pool.rows[submission_id] = {
                "id": submission_id,
                "type": type_,
                "store_id": store_id,
                "session_id": session_id,
                "payload": payload,
                "created_at": created_at,
            }
            return "INSERT 0 1"
        if "DELETE FROM" in sql:
            removed = self.pool.rows.pop(args[0], None)
            return f"DELETE {1 if removed else 0}"
        return "CREATE TABLE"

    async def fetchrow(self, sql, *args):
        self._check()
        self.pool.statements.append(sql)
        row = self.pool.rows.get(args[0])
        return dict(row) if row else None

    async def fetch(self, sql, *args):
        self._check()
        self.pool.statements.append(sql)
        return [dict(row) for row in self.pool.rows.values()]

    async def fetchval(self, sql, *args):
        self._check()
        self.pool.statements.append(sql)
        if "DELETE FROM" in sql:
            removed = len(self.pool.rows)
            self.pool.rows.clear()
            return removed
        return len(self.pool.rows)


class _Acquire:
    def __init__(self, pool):
        self.pool = pool

    async def __aenter__(self):
        return FakeConnection(self.pool)

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    def __init__(self):
        self.rows = {}
        self.statements = []
        self.fail_with = None
        self.closed = False

    def acquire(self):
        return _Acquire(self)

    async def close(self):
        self.closed = True

    def insert_raw(self, **row):
        """Puts a row in as-is, bypassing the store."""
        self.rows[row["id"]] = row

    def payload_of(self, submission_id):
        return json.loads(self.rows[submission_id]["payload"])


class FakeRemote:
    """Applies upserts to in-memory tables keyed by their conflict columns."""

    def __init__(self, configured=True):
        self.configured = configured
        self.tables = {}
        self.calls = []
        self.errors = {}
        self.raises = {}
        self.deleted = []

    def fail(self, table, message, **kwargs):
        self.errors[table] = RemoteError(message, **kwargs)

    async def upsert(self, table, records, on_conflict):
        self.calls.append(("start", table, on_conflict))
        if table in self.raises:
            raise self.raises[table]
        if table in self.errors:
            self.calls.append(("end", table, on_conflict))
            return UpsertResult(error=self.errors[table])
        rows = records if isinstance(records, list) else [records]
        columns = on_conflict.split(",")
        store = self.tables.setdefault(table, {})
        for row in rows:
            key = tuple(row.get(column) for column in columns)
            store[key] = {**store.get(key, {}), **row}
        self.calls.append(("end", table, on_conflict))
        return UpsertResult()

    async def select_column(self, table, column, session_id):
        return [row.get(column) for row in self.tables.get(table, {}).values()
                if row.get("session_id") == session_id]

    async def delete_where_in(self, table, column, values, session_id):
        values = set(values)
        store = self.tables.get(table, {})
        for key, row in list(store.items()):
            if row.get("session_id") == session_id and row.get(column) in values:
                del store[key]
                self.deleted.append((table, row.get(column)))

    def upserted_tables(self):
        return [call[1] for call in self.calls if call[0] == "start"]


class StaticConnectivity:
    def __init__(self, online=True):
        self.is_online = online


class SwitchableTransport(httpx.MockTransport):
    """Reachability endpoint whose link can be cut and restored."""

    def __init__(self):
        self.up = False
        super().__init__(self.handle)

    def handle(self, request):
        if not self.up:
            raise httpx.ConnectError("network is unreachable", request=request)
        return httpx.Response(200, json={})


class Clock:
    """Monotonic millisecond clock for deterministic submission ids."""

    def __init__(self, start=1704067200000):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def store(pool):
    return PendingSubmissionStore(pool)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def connectivity():
    return StaticConnectivity(online=True)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def transport():
    return SwitchableTransport()
