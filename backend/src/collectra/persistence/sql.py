"""SQLAlchemy Core persistence adapter (SQLite and PostgreSQL).

One ``Table`` is built per collection at boot. Field names are used as
column keys, so a field with a ``map`` override is stored under the
mapped column name but addressed (and returned) by its field name.

Operator objects accepted in ``where``::

    {"views": {"gte": 10}, "title": {"contains": "news"}}
    {"OR": [{"status": "draft"}, {"status": "review"}]}
"""

import logging
import operator
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    delete,
    insert,
    not_,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import ColumnElement

from collectra.core.types import get_storage_type
from collectra.errors import PersistenceError
from collectra.metadata.loader import Collection, CollectionRegistry, FieldDefinition
from collectra.persistence.ids import generate_id

logger = logging.getLogger(__name__)

OPERATORS: dict[str, Callable[[Any, Any], ColumnElement]] = {
    "equals": lambda col, v: col.is_(None) if v is None else col == v,
    "not": lambda col, v: col.is_not(None) if v is None else col != v,
    "in": lambda col, v: col.in_(v),
    "notIn": lambda col, v: col.not_in(v),
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
    "contains": lambda col, v: col.contains(v, autoescape=True),
    "startsWith": lambda col, v: col.startswith(v, autoescape=True),
    "endsWith": lambda col, v: col.endswith(v, autoescape=True),
}

LOGICAL_KEYS = ("AND", "OR", "NOT")


def make_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///") or url.endswith(":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


def _table_name(collection_name: str) -> str:
    """Convert a collection name to a snake_case table name."""
    result = []
    for i, char in enumerate(collection_name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]


class SQLAlchemyAdapter:
    """Persistence adapter over SQLAlchemy Core."""

    def __init__(self, url: str):
        self.url = url
        self.engine: Engine | None = None
        self.metadata = MetaData()
        self._handles: dict[str, SQLAlchemyCollection] = {}

    def connect(self) -> None:
        """Create the engine."""
        self.engine = make_engine(self.url)

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine:
            self.engine.dispose()
            self.engine = None

    def initialize(self, registry: CollectionRegistry) -> None:
        """Build tables for every collection and create missing ones."""
        if not self.engine:
            raise RuntimeError("Database not connected")

        for collection in registry.values():
            table = self._build_table(collection, registry)
            self._handles[collection.name] = SQLAlchemyCollection(
                self.engine, collection, table
            )
        self.metadata.create_all(self.engine, checkfirst=True)
        logger.info("Initialized %d collection table(s)", len(self._handles))

    def collection(self, name: str) -> "SQLAlchemyCollection":
        """Get the CRUD handle for a collection.

        Raises:
            KeyError: If the collection was not initialized
        """
        return self._handles[name]

    def _build_table(self, collection: Collection, registry: CollectionRegistry) -> Table:
        columns: list[Column] = []

        if collection.id_strategy == "autoincrement":
            columns.append(
                Column(collection.id_field, Integer, primary_key=True, autoincrement=True)
            )
        else:
            columns.append(Column(collection.id_field, String(36), primary_key=True))

        for f in collection.columns:
            if f.is_relation:
                target = registry[f.ref]
                col_type: Any = Integer if target.id_strategy == "autoincrement" else String(36)
            elif f.type == "DateTime":
                col_type = DateTime(timezone=True)
            else:
                col_type = get_storage_type(f.type, f.subtype)()

            columns.append(
                Column(
                    f.column_name,
                    col_type,
                    key=f.name,
                    nullable=not f.required,
                    unique=f.unique,
                    index=f.index,
                )
            )

        return Table(_table_name(collection.name), self.metadata, *columns)


class SQLAlchemyCollection:
    """CRUD handle for one collection's table."""

    def __init__(self, engine: Engine, collection: Collection, table: Table):
        self._engine = engine
        self.collection = collection
        self.table = table

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_many(
        self,
        where: dict[str, Any] | None = None,
        orderBy: dict[str, str] | list[dict[str, str]] | None = None,
        take: int | None = None,
        skip: int | None = None,
        distinct: list[str] | str | None = None,
        select: dict[str, Any] | None = None,
        **extra: Any,
    ) -> list[dict[str, Any]]:
        """Return records matching ``where``, sorted and paginated."""
        if extra:
            raise PersistenceError(
                f"Unknown argument(s) for findMany: {', '.join(sorted(extra))}"
            )

        stmt = self._select(select)
        clause = self._where_clause(where)
        if clause is not None:
            stmt = stmt.where(clause)
        for field_name, direction in self._order_items(orderBy):
            column = self._column(field_name)
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())

        take = self._as_count("take", take)
        skip = self._as_count("skip", skip)
        distinct_fields = [distinct] if isinstance(distinct, str) else list(distinct or [])
        for field_name in distinct_fields:
            self._column(field_name)

        if not distinct_fields:
            if skip:
                stmt = stmt.offset(skip)
            if take is not None:
                stmt = stmt.limit(take)

        with self._storage_errors(), self._engine.connect() as conn:
            records = [dict(row._mapping) for row in conn.execute(stmt)]

        if distinct_fields:
            seen: set[tuple] = set()
            unique_records = []
            for record in records:
                marker = tuple(repr(record.get(f)) for f in distinct_fields)
                if marker in seen:
                    continue
                seen.add(marker)
                unique_records.append(record)
            end = None if take is None else (skip or 0) + take
            records = unique_records[skip or 0:end]

        return records

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self, data: dict[str, Any], select: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Insert one record and return it."""
        row = self._prepare_row(data, creating=True)
        with self._storage_errors(), self._engine.begin() as conn:
            result = conn.execute(insert(self.table).values(**row))
            record_id = row.get(self.collection.id_field)
            if record_id is None:
                record_id = result.inserted_primary_key[0]
            return self._fetch(conn, record_id, select)

    def create_many(
        self, data: list[dict[str, Any]], skip_duplicates: bool = False
    ) -> dict[str, int]:
        """Insert many records; with skip_duplicates, conflicting rows are ignored."""
        rows = [self._prepare_row(item, creating=True) for item in data]
        stmt = self._insert_statement(skip_duplicates)
        count = 0
        with self._storage_errors(), self._engine.begin() as conn:
            for row in rows:
                result = conn.execute(stmt.values(**row))
                count += max(result.rowcount, 0)
        return {"count": count}

    def update(self, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        """Update the first record matching ``where`` and return it.

        Raises:
            PersistenceError: If no record matches
        """
        clause = self._require_where(where, "update")
        row = self._prepare_row(data, creating=False)
        id_column = self.table.c[self.collection.id_field]
        with self._storage_errors(), self._engine.begin() as conn:
            record_id = conn.execute(
                select(id_column).where(clause).order_by(id_column).limit(1)
            ).scalar_one_or_none()
            if record_id is None:
                raise PersistenceError("Record to update not found.")
            if row:
                conn.execute(update(self.table).where(id_column == record_id).values(**row))
            return self._fetch(conn, record_id)

    def update_many(
        self,
        where: dict[str, Any] | None,
        data: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, int]:
        """Apply one patch, or a list of patches in order, to all matching rows."""
        patches = [self._prepare_row(p, creating=False) for p in _as_list(data)]
        clause = self._where_clause(where)
        id_column = self.table.c[self.collection.id_field]
        with self._storage_errors(), self._engine.begin() as conn:
            stmt = select(id_column)
            if clause is not None:
                stmt = stmt.where(clause)
            ids = list(conn.execute(stmt).scalars())
            if ids:
                for patch in patches:
                    if patch:
                        conn.execute(
                            update(self.table).where(id_column.in_(ids)).values(**patch)
                        )
        return {"count": len(ids)}

    def delete(self, where: dict[str, Any]) -> dict[str, Any]:
        """Delete the first record matching ``where`` and return it.

        Raises:
            PersistenceError: If no record matches
        """
        clause = self._require_where(where, "delete")
        id_column = self.table.c[self.collection.id_field]
        with self._storage_errors(), self._engine.begin() as conn:
            found = conn.execute(
                self._select(None).where(clause).order_by(id_column).limit(1)
            ).first()
            if found is None:
                raise PersistenceError("Record to delete does not exist.")
            record = dict(found._mapping)
            conn.execute(
                delete(self.table).where(id_column == record[self.collection.id_field])
            )
            return record

    def delete_many(self, where: dict[str, Any] | None = None) -> dict[str, int]:
        """Delete every record matching ``where`` (all records when omitted)."""
        stmt = delete(self.table)
        clause = self._where_clause(where)
        if clause is not None:
            stmt = stmt.where(clause)
        with self._storage_errors(), self._engine.begin() as conn:
            result = conn.execute(stmt)
        return {"count": max(result.rowcount, 0)}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _storage_errors(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            message = str(getattr(e, "orig", None) or e)
            raise PersistenceError(message) from e

    def _insert_statement(self, skip_duplicates: bool) -> Any:
        dialect = self._engine.dialect.name
        if skip_duplicates and dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as sqlite_insert

            return sqlite_insert(self.table).on_conflict_do_nothing()
        if skip_duplicates and dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as pg_insert

            return pg_insert(self.table).on_conflict_do_nothing()
        return insert(self.table)

    def _fetch(
        self, conn: Connection, record_id: Any, select_fields: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        id_column = self.table.c[self.collection.id_field]
        row = conn.execute(self._select(select_fields).where(id_column == record_id)).first()
        if row is None:
            raise PersistenceError(f"Record '{record_id}' vanished after write.")
        return dict(row._mapping)

    def _select(self, select_fields: dict[str, Any] | None) -> Any:
        if select_fields:
            keys = [k for k, wanted in select_fields.items() if wanted]
        else:
            keys = [c.key for c in self.table.columns]
        return select(*[self._column(k).label(k) for k in keys])

    def _column(self, field_name: str) -> Any:
        try:
            return self.table.c[field_name]
        except KeyError:
            raise PersistenceError(
                f"Unknown field '{field_name}' on collection '{self.collection.name}'"
            ) from None

    def _require_where(self, where: dict[str, Any] | None, action: str) -> ColumnElement:
        clause = self._where_clause(where)
        if clause is None:
            raise PersistenceError(f"Argument `where` is required to {action} a record.")
        return clause

    def _where_clause(self, where: Any) -> ColumnElement | None:
        if where is None or where == {}:
            return None
        if not isinstance(where, dict):
            raise PersistenceError("Argument `where` must be an object.")

        clauses: list[ColumnElement] = []
        for key, value in where.items():
            if key in LOGICAL_KEYS:
                nested = [c for c in map(self._where_clause, _as_list(value)) if c is not None]
                if not nested:
                    continue
                if key == "AND":
                    clauses.append(and_(*nested))
                elif key == "OR":
                    clauses.append(or_(*nested))
                else:
                    clauses.append(not_(and_(*nested)))
                continue

            column = self._column(key)
            field_def = self.collection.fields.get(key)
            if self._is_operator_object(value, field_def):
                for op_name, operand in value.items():
                    operand = (
                        [self._coerce(field_def, v) for v in operand]
                        if op_name in ("in", "notIn")
                        else self._coerce(field_def, operand)
                    )
                    clauses.append(OPERATORS[op_name](column, operand))
            else:
                clauses.append(OPERATORS["equals"](column, self._coerce(field_def, value)))

        if not clauses:
            return None
        return and_(*clauses)

    @staticmethod
    def _is_operator_object(value: Any, field_def: FieldDefinition | None) -> bool:
        if not isinstance(value, dict) or not value:
            return False
        if field_def is not None and field_def.type == "Json":
            return set(value) <= {"equals", "not"}
        unknown = set(value) - set(OPERATORS)
        if unknown:
            raise PersistenceError(f"Unknown filter operator(s): {', '.join(sorted(unknown))}")
        return True

    @staticmethod
    def _order_items(order_by: Any) -> list[tuple[str, str]]:
        if not order_by:
            return []
        items: list[tuple[str, str]] = []
        for entry in _as_list(order_by):
            if not isinstance(entry, dict):
                raise PersistenceError("Argument `orderBy` must map fields to asc|desc.")
            for field_name, direction in entry.items():
                direction = str(direction).lower()
                if direction not in ("asc", "desc"):
                    raise PersistenceError(
                        f"Invalid sort direction '{direction}' for '{field_name}'"
                    )
                items.append((field_name, direction))
        return items

    @staticmethod
    def _as_count(name: str, value: Any) -> int | None:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise PersistenceError(f"Argument `{name}` must be a non-negative integer.")
        return value

    def _prepare_row(self, data: Any, creating: bool) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise PersistenceError("Argument `data` must be an object.")

        id_field = self.collection.id_field
        row: dict[str, Any] = {}
        for key, value in data.items():
            if key == id_field:
                if creating:
                    row[key] = value
                continue
            field_def = self.collection.fields.get(key)
            if field_def is None or not field_def.has_column:
                raise PersistenceError(
                    f"Unknown field '{key}' on collection '{self.collection.name}'"
                )
            row[key] = self._coerce(field_def, value)

        now = datetime.now(UTC)
        for f in self.collection.columns:
            if f.type != "DateTime":
                continue
            if f.default == "updatedAt":
                if creating:
                    row.setdefault(f.name, now)
                else:
                    row[f.name] = now
            elif f.default == "now" and creating:
                row.setdefault(f.name, now)

        if creating and row.get(id_field) is None:
            row.pop(id_field, None)
            generated = generate_id(self.collection.id_strategy)
            if generated is not None:
                row[id_field] = generated

        return row

    @staticmethod
    def _coerce(field_def: FieldDefinition | None, value: Any) -> Any:
        """Convert ISO strings for DateTime fields; pass other values through."""
        if field_def is None or field_def.type != "DateTime" or not isinstance(value, str):
            return value
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise PersistenceError(
                f"Invalid DateTime for '{field_def.name}': {value!r}"
            ) from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
