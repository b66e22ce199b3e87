"""
Record stores: row-oriented collection access with equality filters.

Every backend exposes the same four primitives plus a connectivity probe:

- ``select(table, filters, order_by=None, descending=False, limit=None)``
- ``insert(table, row)``
- ``update(table, filters, changes)``
- ``delete(table, filters)``
- ``ping()``

Each primitive returns the list of affected rows. An empty list is the
"zero rows" signal; query failures raise StoreError instead. Inserted rows
get their ``id`` and ``created_at`` from the store.
"""

import contextlib
import copy
import itertools
import logging
import sqlite3
import threading
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .domain import StoreError
from .utils import new_record_id, timestamp_now

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

TABLE_COLUMNS = {
    "tasks": ("id", "user_id", "title", "completed", "due_date", "priority", "created_at"),
    "notes": ("id", "user_id", "content", "created_at"),
}

def _columns(table: str):
    try:
        return TABLE_COLUMNS[table]
    except KeyError:
        raise StoreError(f"Unknown table: {table}")

def _check_columns(table: str, names) -> None:
    allowed = _columns(table)
    unknown = [n for n in names if n not in allowed]
    if unknown:
        raise StoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

class RecordStore:
    """Interface implemented by every backend."""

    def select(self, table: str, filters: Mapping[str, Any], order_by: Optional[str] = None,
               descending: bool = False, limit: Optional[int] = None) -> List[Row]:
        raise NotImplementedError

    def insert(self, table: str, row: Mapping[str, Any]) -> List[Row]:
        raise NotImplementedError

    def update(self, table: str, filters: Mapping[str, Any], changes: Mapping[str, Any]) -> List[Row]:
        raise NotImplementedError

    def delete(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        raise NotImplementedError

    def ping(self) -> None:
        self.select("tasks", {}, limit=1)

    def close(self) -> None:
        pass

# -------------------------------
# In-memory backend
# -------------------------------

class MemoryStore(RecordStore):
    """Keeps rows in per-table dicts. Used by the test suite and local demos."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Row]] = {name: {} for name in TABLE_COLUMNS}
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()
        self.lock = threading.Lock()

    def _matching(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        _check_columns(table, filters)
        return [row for row in self.tables[table].values()
                if all(row.get(k) == v for k, v in filters.items())]

    def select(self, table, filters, order_by=None, descending=False, limit=None):
        with self.lock:
            rows = self._matching(table, filters)
            if order_by:
                _check_columns(table, [order_by])
                rows.sort(key=lambda r: (r.get(order_by) or "", self._order[r["id"]]), reverse=descending)
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def insert(self, table, row):
        _check_columns(table, row)
        record = {name: None for name in _columns(table)}
        record.update(row)
        record["id"] = new_record_id()
        record["created_at"] = timestamp_now()
        with self.lock:
            self.tables[table][record["id"]] = record
            self._order[record["id"]] = next(self._seq)
            return [copy.deepcopy(record)]

    def update(self, table, filters, changes):
        _check_columns(table, changes)
        with self.lock:
            rows = self._matching(table, filters)
            for row in rows:
                row.update(changes)
            return copy.deepcopy(rows)

    def delete(self, table, filters):
        with self.lock:
            rows = self._matching(table, filters)
            for row in rows:
                del self.tables[table][row["id"]]
                self._order.pop(row["id"], None)
            return copy.deepcopy(rows)

# -------------------------------
# SQLite backend
# -------------------------------

class SqliteStore(RecordStore):
    """
    Stores tasks and notes in a local SQLite file.

    Each call opens its own connection; writes are serialized with a lock.
    Booleans are kept as INTEGER and converted back on read.
    """

    BOOLEAN_COLUMNS = {"completed"}

    def __init__(self, db_path: str = "taskdesk.db"):
        self.db_path = db_path
        self.lock = threading.Lock()
        self._create_tables()

    @contextlib.contextmanager
    def _get_db_connection(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        try:
            yield conn
        finally:
            conn.close()

    def _create_tables(self):
        with self._get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                completed INTEGER NOT NULL DEFAULT 0,
                due_date TEXT,
                priority TEXT NOT NULL DEFAULT 'medium',
                created_at TEXT NOT NULL
            )
            """)
            cursor.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """)
            for table in TABLE_COLUMNS:
                cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_user_id ON {table}(user_id)")
                cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at DESC)")
            conn.commit()

    def _to_row(self, row: sqlite3.Row) -> Row:
        record = dict(row)
        for name in self.BOOLEAN_COLUMNS & record.keys():
            record[name] = bool(record[name])
        return record

    def _to_db(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: int(v) if k in self.BOOLEAN_COLUMNS and v is not None else v for k, v in values.items()}

    @staticmethod
    def _where(filters: Mapping[str, Any]):
        if not filters:
            return "", []
        clause = " AND ".join(f"{name}=?" for name in filters)
        return f" WHERE {clause}", list(filters.values())

    def _run_select(self, conn, table, filters, order_by=None, descending=False, limit=None) -> List[Row]:
        where, params = self._where(self._to_db(filters))
        sql = f"SELECT {', '.join(_columns(table))} FROM {table}{where}"
        if order_by:
            _check_columns(table, [order_by])
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}, rowid {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [self._to_row(r) for r in conn.execute(sql, params).fetchall()]

    def select(self, table, filters, order_by=None, descending=False, limit=None):
        _check_columns(table, filters)
        try:
            with self._get_db_connection() as conn:
                return self._run_select(conn, table, filters, order_by, descending, limit)
        except sqlite3.Error as e:
            logger.error("select on %s failed: %s", table, e)
            raise StoreError(f"Failed to read {table}: {e}")

    def insert(self, table, row):
        _check_columns(table, row)
        record = dict(row)
        record["id"] = new_record_id()
        record["created_at"] = timestamp_now()
        values = self._to_db(record)
        names = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        with self.lock:
            with self._get_db_connection() as conn:
                try:
                    conn.execute(f"INSERT INTO {table} ({names}) VALUES ({marks})", list(values.values()))
                    conn.commit()
                    return self._run_select(conn, table, {"id": record["id"]})
                except sqlite3.Error as e:
                    conn.rollback()
                    logger.error("insert into %s failed: %s", table, e)
                    raise StoreError(f"Failed to save {table} row: {e}")

    def update(self, table, filters, changes):
        _check_columns(table, filters)
        _check_columns(table, changes)
        where, params = self._where(self._to_db(filters))
        values = self._to_db(changes)
        assignments = ", ".join(f"{name}=?" for name in values)
        with self.lock:
            with self._get_db_connection() as conn:
                try:
                    ids = [r["id"] for r in self._run_select(conn, table, filters)]
                    if not ids:
                        return []
                    conn.execute(f"UPDATE {table} SET {assignments}{where}", list(values.values()) + params)
                    conn.commit()
                    return [self._run_select(conn, table, {"id": i})[0] for i in ids]
                except sqlite3.Error as e:
                    conn.rollback()
                    logger.error("update on %s failed: %s", table, e)
                    raise StoreError(f"Failed to update {table}: {e}")

    def delete(self, table, filters):
        _check_columns(table, filters)
        where, params = self._where(self._to_db(filters))
        with self.lock:
            with self._get_db_connection() as conn:
                try:
                    rows = self._run_select(conn, table, filters)
                    if rows:
                        conn.execute(f"DELETE FROM {table}{where}", params)
                        conn.commit()
                    return rows
                except sqlite3.Error as e:
                    conn.rollback()
                    logger.error("delete on %s failed: %s", table, e)
                    raise StoreError(f"Failed to delete from {table}: {e}")

# -------------------------------
# Supabase (PostgREST) backend
# -------------------------------

class SupabaseStore(RecordStore):
    """
    Talks to a Supabase project's PostgREST endpoint with the service-role key.

    The service key bypasses row level security, so every call made through
    the gateway carries its own ``user_id`` filter.
    """

    def __init__(self, url: str, service_key: str, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
                "Prefer": "return=representation",
            },
        )

    @staticmethod
    def _encode(value: Any) -> str:
        if value is None:
            return "is.null"
        if isinstance(value, bool):
            return f"eq.{str(value).lower()}"
        return f"eq.{value}"

    def _params(self, table: str, filters: Mapping[str, Any]) -> Dict[str, str]:
        _check_columns(table, filters)
        return {name: self._encode(value) for name, value in filters.items()}

    def _send(self, method: str, table: str, params: Dict[str, str], json: Any = None) -> List[Row]:
        try:
            response = self.client.request(method, f"/{table}", params=params, json=json)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, table, e)
            raise StoreError(f"Store request failed: {e}")
        if response.status_code >= 400:
            logger.error("%s %s returned %s: %s", method, table, response.status_code, response.text)
            raise StoreError(f"Store returned {response.status_code}")
        if not response.content:
            return []
        try:
            rows = response.json()
        except ValueError:
            logger.error("%s %s returned a non-JSON body: %.200s", method, table, response.text)
            raise StoreError(f"Store returned an unreadable reply for {table}")
        return rows if isinstance(rows, list) else [rows]

    def select(self, table, filters, order_by=None, descending=False, limit=None):
        params = {"select": "*", **self._params(table, filters)}
        if order_by:
            _check_columns(table, [order_by])
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return self._send("GET", table, params)

    def insert(self, table, row):
        _check_columns(table, row)
        return self._send("POST", table, {"select": "*"}, json=dict(row))

    def update(self, table, filters, changes):
        _check_columns(table, changes)
        return self._send("PATCH", table, {"select": "*", **self._params(table, filters)}, json=dict(changes))

    def delete(self, table, filters):
        return self._send("DELETE", table, {"select": "*", **self._params(table, filters)})

    def close(self) -> None:
        self.client.close()
