"""Pytest configuration and fixtures."""

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from psycopg2 import sql

from table_monitor.config import MonitorConfig
from table_monitor.errors import SourceUnavailable, WatermarkCommitFailed
from table_monitor.utils.timestamps import EPOCH_FLOOR

PASSWORD = "s3cr3t-monitor-pw"


def utc(hour: int, minute: int = 0, second: int = 0, day: int = 19) -> datetime:
    return datetime(2026, 10, day, hour, minute, second, tzinfo=timezone.utc)


def render(query) -> str:
    """Flatten a psycopg2.sql composition into text without a live connection."""
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Composed):
        return "".join(render(part) for part in query.seq)
    if isinstance(query, sql.Identifier):
        return ".".join(f'"{s}"' for s in query.strings)
    if isinstance(query, sql.SQL):
        return query.string
    raise TypeError(f"Unexpected query part: {query!r}")


class FakeCursor:
    def __init__(self, connection, cursor_factory=None):
        self.connection = connection
        self.cursor_factory = cursor_factory
        self.result: List[Any] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=None):
        self.connection.executed.append((query, params, self.cursor_factory))
        if self.connection.error is not None:
            raise self.connection.error
        self.result = self.connection.results.pop(0) if self.connection.results else []

    def fetchone(self):
        return self.result[0] if self.result else None

    def fetchall(self):
        return list(self.result)


class FakeConnection:
    """Records statements; each execute consumes the next scripted result set."""

    def __init__(self, results: Optional[List[List[Any]]] = None, error: Optional[Exception] = None):
        self.results = list(results or [])
        self.error = error
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.autocommit = True

    def cursor(self, cursor_factory=None):
        return FakeCursor(self, cursor_factory)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


class MemoryDatabase:
    """Shared state behind the in-memory store and reader."""

    def __init__(self):
        self.rows = []
        self.watermarks: Dict[str, datetime] = {}
        self.locked = set()
        self.server_time = utc(12)
        self.fail_query = False
        self.fail_get = False
        self.fail_set = False
        self.queries = []
        self.lock_attempts = 0
        self.unlocks = 0


class MemoryStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    def get(self, source_name):
        if self.db.fail_get:
            raise SourceUnavailable("state table unreachable")
        return self.db.watermarks.get(source_name, EPOCH_FLOOR)

    def set(self, source_name, timestamp):
        if self.db.fail_set:
            raise WatermarkCommitFailed("commit failed", {"source": source_name})
        self.db.watermarks[source_name] = timestamp

    def try_lock(self, source_name):
        self.db.lock_attempts += 1
        if source_name in self.db.locked:
            return False
        self.db.locked.add(source_name)
        return True

    def unlock(self, source_name):
        self.db.unlocks += 1
        self.db.locked.discard(source_name)


class MemoryReader:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    def query_newer_than(self, cutoff):
        self.db.queries.append(cutoff)
        if self.db.fail_query:
            raise SourceUnavailable("query timed out")
        return [row for row in self.db.rows if row.timestamp_utc > cutoff]

    def server_now(self):
        return self.db.server_time


class StaticSecretProvider:
    def __init__(self, password: str = PASSWORD):
        self.value = base64.b64encode(password.encode('utf-8'))
        self.fetched = []

    def fetch(self, secret_id):
        self.fetched.append(secret_id)
        return self.value


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def monitor_config(tmp_path):
    return MonitorConfig(
        db_host="db.internal",
        db_name="monitored_db",
        db_user="monitor_user",
        data_table="monitored_data",
        source_name="MonitorScript",
        secret_id="MONITOR_DB_PASSWORD_B64",
        audit_log_dir=tmp_path / "audit",
        audit_fsync=False,
        log_file=str(tmp_path / "logs" / "table_monitor.log"),
    )


@pytest.fixture
def memory_db():
    return MemoryDatabase()
