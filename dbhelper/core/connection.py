"""
Connection handle exposing the structured data-access operations.

A Database wraps one SQLAlchemy connection owned by the registry. Every
operation builds a statement with the QueryBuilder, runs it on the held
connection and normalizes the result. Outside an explicit transaction each
statement is committed on its own; begin/commit/rollback route through the
shared TransactionLedger so nested calls only touch the real transaction
boundary at the outermost level.
"""

import math
import re
import threading
import time
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Dict, Hashable, Iterator, List, Mapping, Optional, Sequence, Union

from sqlalchemy.engine import Connection, CursorResult, Engine, RootTransaction

from ..config.logging_config import DatabaseLoggerAdapter
from ..expression import Expression
from .query_builder import ParsedStatement, QueryBuilder, QueryType
from .transactions import TransactionLedger

Row = Dict[str, Any]
Conditions = Optional[Mapping[str, Any]]

NUMERIC_STRING = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def counter_increment(value: Any) -> Union[int, float, Decimal, str]:
    """
    Normalize a counter increment; anything non-numeric becomes 0.

    Numeric strings are kept as written so large or exact values survive.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        return value if value.is_finite() else 0
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        return text if NUMERIC_STRING.fullmatch(text) else 0
    return 0


class Database:
    """
    Handle for one registry-owned connection.

    Usage:
        db = registry.get_connection('default')
        admins = db.select_all('users', {'role': 'admin'}, order='name')
        with db.transaction():
            db.update('users', {'role': 'manager'}, {'id': 7})
    """

    def __init__(self, key: Hashable, engine: Engine, connection: Connection,
                 ledger: Optional[TransactionLedger] = None,
                 identifier_quote: str = '`'):
        """
        Args:
            key: Registry key identifying this connection
            engine: Engine the connection was opened from
            connection: Open SQLAlchemy connection
            ledger: Shared transaction ledger (a private one when omitted)
            identifier_quote: Identifier quote style for built statements
        """
        self.key = key
        self.engine = engine
        self._connection = connection
        self._ledger = ledger if ledger is not None else TransactionLedger()
        self._transaction: Optional[RootTransaction] = None
        self._lock = threading.RLock()
        self._closed = False

        self.builder = QueryBuilder(identifier_quote)
        self.paramstyle = connection.dialect.paramstyle
        self.logger = DatabaseLoggerAdapter(
            logging.getLogger(__name__),
            {'database': str(key)}
        )

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f"<Database {self.key} ({state})>"

    # --- statement execution ---

    def execute(self, statement: ParsedStatement) -> Union[List[Row], int]:
        """
        Execute a built statement.

        Returns:
            List of row dictionaries for row-returning statements,
            otherwise the affected row count
        """
        return self._run(statement, _rows_or_count)

    def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> Union[List[Row], int]:
        """
        Execute raw SQL with '?' placeholders.

        Example:
            db.execute_sql('CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)')
        """
        parts = tuple(sql.split('?'))
        return self.execute(ParsedStatement(parts=parts, params=tuple(params)))

    def _build(self, kind: QueryType, table: str, params: Any = None,
               conditions: Conditions = None, order: Optional[str] = None,
               limit: Optional[Union[int, str]] = None) -> ParsedStatement:
        return self.builder.build(kind, table, params, conditions, order, limit)

    def _run(self, statement: ParsedStatement, handler: Callable[[CursorResult], Any]) -> Any:
        sql = statement.render(self.paramstyle)

        with self._lock:
            self._ledger.check_owner(self.key)
            explicit = self._ledger.in_transaction(self.key)
            start_time = time.time()

            try:
                result = self._connection.exec_driver_sql(sql, statement.params or None)
                value = handler(result)
            except Exception as e:
                duration = time.time() - start_time
                self.logger.error(f"Query failed after {duration:.3f}s: {e}")
                if not explicit:
                    # release the implicit transaction so the connection stays usable
                    self._connection.rollback()
                raise

            if not explicit:
                self._connection.commit()

            self.logger.query(statement.sql, statement.params, time.time() - start_time)
            return value

    # --- select family ---

    def select_all(self, table: str, conditions: Conditions = None,
                   order: Optional[str] = None,
                   limit: Optional[Union[int, str]] = None) -> Optional[List[Row]]:
        """
        Select all matching rows of a table.

        Example:
            db.select_all('users', {'role': 'manager'})

        Returns:
            List of row dictionaries, or None when nothing matched
        """
        statement = self._build(QueryType.SELECT, table, None, conditions, order, limit)
        rows = self._run(statement, _all_rows)
        return rows or None

    def select_row(self, table: str, conditions: Conditions,
                   order: Optional[str] = None) -> Optional[Row]:
        """
        Select the first matching row of a table.

        Returns:
            Row dictionary, or None when nothing matched
        """
        statement = self._build(QueryType.SELECT, table, None, conditions, order)
        return self._run(statement, _first_row)

    def select_row_by_id(self, table: str, id_value: Any) -> Optional[Row]:
        return self.select_row(table, {'id': id_value})

    def select_column(self, table: str, column: str, conditions: Conditions = None,
                      order: Optional[str] = None) -> Optional[List[Any]]:
        """
        Select one column of all matching rows.

        Example:
            db.select_column('users', 'name', {'role': 'user'})

        Returns:
            List of values, or None when nothing matched
        """
        statement = self._build(QueryType.SELECT_COLUMN, table, [column], conditions, order)
        values = self._run(statement, _first_column)
        return values or None

    def select_cell(self, table: str, column: str, conditions: Conditions = None,
                    order: Optional[str] = None) -> Optional[Any]:
        """
        Select one cell of the first matching row.

        Example:
            db.select_cell('users', 'email', {'id': 2})
        """
        statement = self._build(QueryType.SELECT_CELL, table, [column], conditions, order)
        return self._run(statement, _first_cell)

    def select_count(self, table: str, conditions: Conditions = None) -> int:
        """
        Count matching rows.

        Example:
            db.select_count('users', {'role': 'manager'})
        """
        statement = self._build(QueryType.COUNT, table, None, conditions)
        return int(self._run(statement, _first_cell) or 0)

    def exists(self, table: str, conditions: Conditions = None) -> bool:
        """
        Check whether at least one row matches.

        Example:
            db.exists('users', {'role': 'admin'})
        """
        statement = self._build(QueryType.COUNT, table, None, conditions, None, 1)
        return int(self._run(statement, _first_cell) or 0) > 0

    # --- data modification ---

    def insert(self, table: str, params: Mapping[str, Any]) -> Optional[int]:
        """
        Insert a row.

        Example:
            db.insert('users', {'role': 'admin', 'name': 'John Smith'})

        Returns:
            Id of the inserted row (0 for tables without an auto-increment
            column), or None if the driver reports none
        """
        statement = self._build(QueryType.INSERT, table, params)
        last_id = self._run(statement, _last_insert_id)
        return int(last_id) if last_id is not None else None

    def update(self, table: str, params: Mapping[str, Any], conditions: Conditions = None) -> int:
        """
        Update matching rows.

        Example:
            db.update('users', {'role': 'admin'}, {'id': 1})

        Returns:
            Number of affected rows
        """
        statement = self._build(QueryType.UPDATE, table, params, conditions)
        return self._run(statement, _row_count)

    def update_counters(self, table: str, counters: Mapping[str, Any],
                        conditions: Conditions = None) -> int:
        """
        Increment counter columns in place.

        Example:
            db.update_counters('visits', {'visit': 1}, {'user_id': 2})

        Returns:
            Number of affected rows
        """
        params = {
            column: Expression(f"{self.builder.quote(column)} + {counter_increment(increment)}")
            for column, increment in counters.items()
        }
        return self.update(table, params, conditions)

    def delete(self, table: str, conditions: Conditions = None) -> int:
        """
        Delete matching rows.

        Example:
            db.delete('sessions', {'expired_at': 'IS NOT NULL'})

        Returns:
            Number of affected rows
        """
        statement = self._build(QueryType.DELETE, table, None, conditions)
        return self._run(statement, _row_count)

    # --- transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._ledger.in_transaction(self.key)

    @property
    def transaction_depth(self) -> int:
        return self._ledger.depth(self.key)

    def begin_transaction(self) -> Optional[bool]:
        """
        Begin a transaction, or join the one already open.

        Returns:
            True when a driver transaction was opened, None when joined
        """
        with self._lock:
            result = self._ledger.begin(self.key, self._open_transaction)
            self.logger.transaction('begin', self.transaction_depth)
            return result

    def commit(self) -> Optional[bool]:
        """
        Commit the transaction if this is the outermost level.

        Returns:
            True when the driver transaction was committed, otherwise None
        """
        with self._lock:
            result = self._ledger.commit(self.key, self._commit_transaction)
            self.logger.transaction('commit', self.transaction_depth)
            return result

    def rollback(self) -> Optional[bool]:
        """
        Roll back the whole transaction regardless of nesting depth.

        Returns:
            True when the driver transaction was rolled back, otherwise None
        """
        with self._lock:
            result = self._ledger.rollback(self.key, self._rollback_transaction)
            self.logger.transaction('rollback', self.transaction_depth)
            return result

    @contextmanager
    def transaction(self) -> Iterator['Database']:
        """
        Run a block inside a (possibly nested) transaction.

        Commits on success and rolls everything back on error.
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def _open_transaction(self) -> bool:
        self._transaction = self._connection.begin()
        return True

    def _commit_transaction(self) -> bool:
        transaction, self._transaction = self._transaction, None
        transaction.commit()
        return True

    def _rollback_transaction(self) -> bool:
        transaction, self._transaction = self._transaction, None
        transaction.rollback()
        return True

    # --- lifecycle ---

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the connection and dispose of its engine."""
        with self._lock:
            if self._closed:
                return
            self._ledger.clear(self.key)
            self._transaction = None
            try:
                self._connection.close()
            finally:
                self.engine.dispose()
                self._closed = True
            self.logger.connection_event('closed', str(self.key))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _all_rows(result: CursorResult) -> List[Row]:
    return [dict(row) for row in result.mappings()]


def _first_row(result: CursorResult) -> Optional[Row]:
    row = result.mappings().first()
    return dict(row) if row is not None else None


def _first_column(result: CursorResult) -> List[Any]:
    return list(result.scalars().all())


def _first_cell(result: CursorResult) -> Any:
    return result.scalar()


def _last_insert_id(result: CursorResult) -> Optional[int]:
    return result.lastrowid


def _row_count(result: CursorResult) -> int:
    return result.rowcount


def _rows_or_count(result: CursorResult) -> Union[List[Row], int]:
    if result.returns_rows:
        return _all_rows(result)
    return result.rowcount
