"""
Table storage and query builder for the in-memory remote data service.

Rows are plain dicts, seeded lazily from JSON fixture files
(``<data_dir>/<table>.json``) the first time a table is touched. Queries are
built fluently and run with ``await query.execute()``:

    result = await service.table("products").select("*").order("created_at", desc=True).execute()
    row = (await service.table("profiles").select().eq("id", uid).single().execute()).data

Design decisions:
- Every execute() is a suspension point, like a network round trip
- Callers always get deep copies; nothing they mutate leaks back
- Successful writes publish one change event per affected row
- update() and delete() refuse to run without a filter
- Failures can be injected per table/operation for tests (``fail_next``)
"""

import asyncio
import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union
from uuid import uuid4

from backend.errors import NO_ROWS, RemoteError
from backend.realtime import ChangeEvent, ChangeEventTypes, ChangeFeed

logger = logging.getLogger("remote_tables")

Row = dict[str, Any]


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


def _sort_key(value: Any) -> tuple:
    # Nulls sort after values in ascending order.
    if value is None:
        return (1, "")
    return (0, value)


@dataclass
class QueryResult:
    """Result of an executed query. ``data`` is a list, or a dict for single()."""
    data: Union[list[Row], Row, None]
    count: int = 0


class InMemoryDatabase:
    """
    Holds every remote table as a list of rows.

    In the hosted platform this is a managed Postgres behind a REST API; here
    it is a dict of lists so tests and demos run without a network.
    """

    def __init__(self, feed: ChangeFeed, data_dir: Optional[Path] = None):
        """
        Args:
            feed: Change feed that receives write events
            data_dir: Directory holding ``<table>.json`` fixtures. None means
                      every table starts empty.
        """
        self.feed = feed
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self._tables: dict[str, list[Row]] = {}
        self._failures: dict[tuple[str, str], list[str]] = {}

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, table: str) -> list[Row]:
        if self.data_dir is None:
            return []
        filepath = self.data_dir / f"{table}.json"
        if not filepath.exists():
            return []
        with open(filepath, "r") as f:
            return json.load(f)

    def _ensure_loaded(self, table: str) -> list[Row]:
        if table not in self._tables:
            self._tables[table] = self._load_json(table)
        return self._tables[table]

    def reload(self) -> None:
        """Drop all in-memory changes; tables reseed from fixtures on next use."""
        self._tables.clear()

    # =========================================================================
    # Direct access (seeding and assertions)
    # =========================================================================

    def rows(self, table: str) -> list[Row]:
        """Snapshot of a table's rows."""
        return copy.deepcopy(self._ensure_loaded(table))

    def seed(self, table: str, rows: list[Row]) -> None:
        """Replace a table's contents without publishing change events."""
        self._tables[table] = copy.deepcopy(rows)

    # =========================================================================
    # Failure injection
    # =========================================================================

    def fail_next(self, table: str, operation: str, message: str = "Simulated remote failure") -> None:
        """Make the next ``operation`` (select/insert/update/delete/upsert) on ``table`` fail."""
        self._failures.setdefault((table, operation), []).append(message)

    def _check_failure(self, table: str, operation: str) -> None:
        pending = self._failures.get((table, operation))
        if pending:
            message = pending.pop(0)
            logger.warning(f"Injected failure on {operation} {table}: {message}")
            raise RemoteError(message)

    # =========================================================================
    # Operations
    # =========================================================================

    def _publish(self, event_type: str, table: str, new: Row, old: Row) -> None:
        self.feed.publish(ChangeEvent(
            event_type=event_type,
            table=table,
            new=copy.deepcopy(new),
            old=copy.deepcopy(old),
        ))

    def select(
        self,
        table: str,
        filters: list[tuple[str, Any]],
        any_of: Optional[list[list[tuple[str, Any]]]] = None,
    ) -> list[Row]:
        self._check_failure(table, "select")
        rows = [r for r in self._ensure_loaded(table) if _matches(r, filters)]
        for group in any_of or []:
            rows = [r for r in rows if any(r.get(column) == value for column, value in group)]
        return rows

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        self._check_failure(table, "insert")
        stored = self._ensure_loaded(table)
        inserted = []
        taken = {r.get("id") for r in stored}
        for row in rows:
            new_row = copy.deepcopy(row)
            new_row.setdefault("id", str(uuid4()))
            new_row.setdefault("created_at", _now_iso())
            if new_row["id"] in taken:
                raise RemoteError(
                    f"duplicate key value violates unique constraint \"{table}_pkey\"",
                    code="23505",
                )
            taken.add(new_row["id"])
            inserted.append(new_row)
        stored.extend(inserted)
        for new_row in inserted:
            self._publish(ChangeEventTypes.INSERT, table, new_row, {})
        return inserted

    def update(self, table: str, patch: Row, filters: list[tuple[str, Any]]) -> list[Row]:
        self._check_failure(table, "update")
        if not filters:
            raise RemoteError("UPDATE requires a WHERE clause", code="21000")
        updated = []
        for row in self._ensure_loaded(table):
            if _matches(row, filters):
                old = copy.deepcopy(row)
                row.update(copy.deepcopy(patch))
                row["updated_at"] = _now_iso()
                updated.append((row, old))
        for row, old in updated:
            self._publish(ChangeEventTypes.UPDATE, table, row, old)
        return [row for row, _ in updated]

    def delete(self, table: str, filters: list[tuple[str, Any]]) -> list[Row]:
        self._check_failure(table, "delete")
        if not filters:
            raise RemoteError("DELETE requires a WHERE clause", code="21000")
        stored = self._ensure_loaded(table)
        removed = [r for r in stored if _matches(r, filters)]
        self._tables[table] = [r for r in stored if not _matches(r, filters)]
        for row in removed:
            self._publish(ChangeEventTypes.DELETE, table, {}, row)
        return removed

    def upsert(self, table: str, rows: list[Row], on_conflict: str) -> list[Row]:
        self._check_failure(table, "upsert")
        stored = self._ensure_loaded(table)
        written = []
        for row in rows:
            if on_conflict not in row:
                raise RemoteError(f"upsert row is missing conflict column '{on_conflict}'")
            existing = next((r for r in stored if r.get(on_conflict) == row[on_conflict]), None)
            if existing is None:
                new_row = copy.deepcopy(row)
                new_row.setdefault("id", str(uuid4()))
                new_row.setdefault("created_at", _now_iso())
                stored.append(new_row)
                self._publish(ChangeEventTypes.INSERT, table, new_row, {})
                written.append(new_row)
            else:
                old = copy.deepcopy(existing)
                existing.update(copy.deepcopy(row))
                existing["updated_at"] = _now_iso()
                self._publish(ChangeEventTypes.UPDATE, table, existing, old)
                written.append(existing)
        return written


def _matches(row: Row, filters: list[tuple[str, Any]]) -> bool:
    return all(row.get(column) == value for column, value in filters)


def _project(row: Row, columns: str) -> Row:
    if columns.strip() in ("", "*"):
        return row
    wanted = [c.strip() for c in columns.split(",") if c.strip()]
    return {c: row.get(c) for c in wanted}


class TableQuery:
    """
    Fluent query against one table.

    Build with ``select``/``insert``/``update``/``delete``/``upsert`` plus
    modifiers, then ``await execute()``. Writes return the affected rows.
    """

    def __init__(self, db: InMemoryDatabase, table: str):
        self._db = db
        self.table = table
        self._operation: Optional[str] = None
        self._columns = "*"
        self._payload: Any = None
        self._on_conflict = "id"
        self._filters: list[tuple[str, Any]] = []
        self._any_of: list[list[tuple[str, Any]]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None
        self._single = False

    def select(self, columns: str = "*") -> "TableQuery":
        # After a write, select() only shapes the returned rows.
        if self._operation is None:
            self._operation = "select"
        self._columns = columns
        return self

    def insert(self, rows: Union[Row, list[Row]]) -> "TableQuery":
        self._operation = "insert"
        self._payload = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, patch: Row) -> "TableQuery":
        self._operation = "update"
        self._payload = patch
        return self

    def delete(self) -> "TableQuery":
        self._operation = "delete"
        return self

    def upsert(self, rows: Union[Row, list[Row]], on_conflict: str = "id") -> "TableQuery":
        self._operation = "upsert"
        self._payload = rows if isinstance(rows, list) else [rows]
        self._on_conflict = on_conflict
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append((column, value))
        return self

    def or_(self, *conditions: tuple[str, Any]) -> "TableQuery":
        """Keep rows matching at least one (column, value) condition. Selects only."""
        self._any_of.append(list(conditions))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = count
        return self

    def single(self) -> "TableQuery":
        """Expect exactly one row; the result's ``data`` is that row."""
        self._single = True
        return self

    async def execute(self) -> QueryResult:
        if self._operation is None:
            raise RemoteError("No operation specified; call select/insert/update/delete/upsert first")

        # Network round trip
        await asyncio.sleep(0)

        if self._operation == "select":
            rows = self._db.select(self.table, self._filters, self._any_of)
        elif self._operation == "insert":
            rows = self._db.insert(self.table, self._payload)
        elif self._operation == "update":
            rows = self._db.update(self.table, self._payload, self._filters)
        elif self._operation == "delete":
            rows = self._db.delete(self.table, self._filters)
        else:
            rows = self._db.upsert(self.table, self._payload, self._on_conflict)

        if self._order is not None:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: _sort_key(r.get(column)), reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]

        data = [_project(copy.deepcopy(r), self._columns) for r in rows]

        if self._single:
            if len(data) != 1:
                raise RemoteError(
                    f"JSON object requested, multiple (or no) rows returned ({len(data)} rows)",
                    code=NO_ROWS,
                )
            return QueryResult(data=data[0], count=1)
        return QueryResult(data=data, count=len(data))
