"""Storage connection: typed positional execution and nested transaction scopes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from common.datetime import to_sql
from feed_store.exceptions import TransactionError, ValidationError
from feed_store.models import metadata

logger = logging.getLogger(__name__)


def create_sqlite_engine(database_url: str = "sqlite://", echo: bool = False) -> Engine:
    """Create an engine whose SQLite connections honour SAVEPOINT properly.

    pysqlite issues its own BEGIN lazily, which breaks nested transactions;
    take over transaction control and enforce foreign keys.
    """
    engine = create_engine(database_url, echo=echo)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def bind_value(value: Any, param_type: str) -> Any:
    """Coerce a parameter to the representation its declared type expects."""
    strict = param_type.startswith("strict ")
    base = param_type[len("strict "):] if strict else param_type
    if value is None:
        if not strict:
            return None
        return {"int": 0, "bool": 0, "str": "", "datetime": None}[base]
    if base == "int":
        if isinstance(value, bool):
            return int(value)
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError("typeViolation", field="parameter", type="int") from exc
    if base == "bool":
        return 1 if value else 0
    if base == "str":
        return str(value)
    if base == "datetime":
        return to_sql(value)
    raise ValueError(f"Unknown parameter type: {param_type}")


@dataclass
class StatementResult:
    """Materialized outcome of one statement."""
    rows: list[dict]
    changes: int = 0
    last_id: Optional[int] = None

    def first(self) -> Optional[dict]:
        return self.rows[0] if self.rows else None

    def value(self) -> Any:
        """First column of the first row, or None."""
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()))


class Transaction:
    """One transaction scope: a real transaction at the outermost level, a savepoint inside.

    Committing an inner scope only releases its savepoint; the work becomes
    durable when the outermost scope commits. Rolling back an inner scope
    leaves the enclosing scope free to commit its own changes.
    """

    def __init__(self, storage: "Storage"):
        conn = storage.connection
        self.nested = conn.in_transaction()
        self._trans = conn.begin_nested() if self.nested else conn.begin()
        self.pending = True

    def commit(self) -> None:
        if not self.pending:
            raise TransactionError("stale", action="commit")
        self.pending = False
        if self._trans.is_active:
            self._trans.commit()

    def rollback(self) -> None:
        if not self.pending:
            raise TransactionError("stale", action="rollback")
        self.pending = False
        if self._trans.is_active:
            self._trans.rollback()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.pending:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class Storage:
    """A single connection to the feed store database."""

    def __init__(self, engine: Engine, initialize: bool = True):
        self.engine = engine
        self.connection: Connection = engine.connect()
        if initialize:
            self.ensure_schema()

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "Storage":
        return cls(create_sqlite_engine(database_url, echo=echo))

    def ensure_schema(self) -> None:
        with self.begin():
            metadata.create_all(self.connection)

    def begin(self) -> Transaction:
        return Transaction(self)

    def execute(
        self,
        sql: str,
        types: Sequence[str] = (),
        values: Sequence[Any] = (),
    ) -> StatementResult:
        """Run a statement with positional `?` parameters bound by declared type."""
        if len(types) != len(values):
            raise ValueError(f"{len(types)} parameter types given for {len(values)} values")
        params = tuple(bind_value(v, t) for t, v in zip(types, values))
        if self.connection.in_transaction():
            return self._run(sql, params)
        with self.connection.begin():
            return self._run(sql, params)

    def _run(self, sql: str, params: tuple) -> StatementResult:
        result = self.connection.exec_driver_sql(sql, params)
        if result.returns_rows:
            return StatementResult(rows=[dict(row) for row in result.mappings().all()])
        # pysqlite leaves rowcount at -1 for UPDATE/INSERT prefixed by WITH
        changes = self.connection.exec_driver_sql("SELECT changes()").scalar()
        return StatementResult(rows=[], changes=changes or 0, last_id=result.lastrowid)

    def close(self) -> None:
        self.connection.close()
        self.engine.dispose()
