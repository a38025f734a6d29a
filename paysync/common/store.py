"""Generic record CRUD/filter port over the relational store.

Services read and write plain dict rows by table name; all SQL stays in
`SqlRecordStore`. Filters are a mapping of column lookups:

    {"id": "pt_1"}                      equality
    {"status__ne": "FAILED"}            inequality
    {"status__in": ["PENDING", "X"]}    membership
    {"gateway_name__isnull": False}     null check
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from sqlalchemy import MetaData, Table, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from paysync.common.errors import StoreError


Row = dict[str, Any]
Filters = Mapping[str, Any]

LOOKUPS = ("ne", "in", "isnull")
# Never rewritten by an upsert conflict update.
IMMUTABLE_COLUMNS = {"id", "created_at"}


def split_lookup(key: str) -> tuple[str, str]:
    """Split `column__lookup` into its parts; plain keys are equality."""

    column, sep, lookup = key.rpartition("__")
    if sep and lookup in LOOKUPS:
        return column, lookup
    return key, "eq"


class RecordStore(Protocol):
    def find(
        self, table: str, filters: Filters | None = None, limit: int | None = None, order_by: str | None = None
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Iterable[Row]) -> list[Row]: ...

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]: ...

    def upsert(
        self, table: str, rows: Iterable[Row], conflict_keys: list[str], ignore_duplicates: bool = False
    ) -> list[Row]: ...


class SqlRecordStore:
    """`RecordStore` backed by SQLAlchemy Core over declared tables.

    Each call runs in its own session and commits before returning, so every
    returned row is durable.
    """

    def __init__(self, session_factory, metadata: MetaData) -> None:
        self.session_factory = session_factory
        self.metadata = metadata

    def _table(self, name: str) -> Table:
        table = self.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"unknown table: {name}")
        return table

    def _column(self, table: Table, column_name: str):
        if column_name not in table.c:
            raise StoreError(f"unknown column {table.name}.{column_name}")
        return table.c[column_name]

    def _where(self, table: Table, filters: Filters | None) -> list:
        clauses = []
        for key, value in (filters or {}).items():
            column_name, lookup = split_lookup(key)
            column = self._column(table, column_name)
            if lookup == "eq":
                clauses.append(column.is_(None) if value is None else column == value)
            elif lookup == "ne":
                clauses.append(column.is_not(None) if value is None else column != value)
            elif lookup == "in":
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column.is_(None) if value else column.is_not(None))
        return clauses

    def _insert_for(self, db, table: Table):
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise StoreError(f"upsert not supported on dialect {dialect}")

    def find(
        self, table: str, filters: Filters | None = None, limit: int | None = None, order_by: str | None = None
    ) -> list[Row]:
        t = self._table(table)
        stmt = select(t).where(*self._where(t, filters))
        if order_by:
            descending = order_by.startswith("-")
            column = self._column(t, order_by.lstrip("-"))
            stmt = stmt.order_by(column.desc() if descending else column)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.session_factory() as db:
                return [dict(row) for row in db.execute(stmt).mappings().all()]
        except SQLAlchemyError as exc:
            raise StoreError(f"find on {table} failed: {exc}") from exc

    def insert(self, table: str, rows: Iterable[Row]) -> list[Row]:
        t = self._table(table)
        try:
            with self.session_factory() as db:
                out = [
                    dict(db.execute(t.insert().values(**row).returning(*t.c)).mappings().one())
                    for row in rows
                ]
                db.commit()
                return out
        except SQLAlchemyError as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        if not filters:
            raise StoreError(f"refusing unfiltered update on {table}")
        t = self._table(table)
        stmt = update(t).where(*self._where(t, filters)).values(**values).returning(*t.c)
        try:
            with self.session_factory() as db:
                out = [dict(row) for row in db.execute(stmt).mappings().all()]
                db.commit()
                return out
        except SQLAlchemyError as exc:
            raise StoreError(f"update on {table} failed: {exc}") from exc

    def upsert(
        self, table: str, rows: Iterable[Row], conflict_keys: list[str], ignore_duplicates: bool = False
    ) -> list[Row]:
        """Atomic INSERT .. ON CONFLICT keyed by `conflict_keys`.

        With `ignore_duplicates` an existing row is left untouched and is not
        returned, which callers use as the "already processed" signal.
        """

        t = self._table(table)
        try:
            with self.session_factory() as db:
                out = []
                for row in rows:
                    stmt = self._insert_for(db, t).values(**row)
                    changed = {
                        name: stmt.excluded[name]
                        for name in row
                        if name not in conflict_keys and name not in IMMUTABLE_COLUMNS
                    }
                    if ignore_duplicates or not changed:
                        stmt = stmt.on_conflict_do_nothing(index_elements=conflict_keys)
                    else:
                        stmt = stmt.on_conflict_do_update(index_elements=conflict_keys, set_=changed)
                    out.extend(dict(r) for r in db.execute(stmt.returning(*t.c)).mappings().all())
                db.commit()
                return out
        except SQLAlchemyError as exc:
            raise StoreError(f"upsert into {table} failed: {exc}") from exc
