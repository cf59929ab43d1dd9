"""
Query construction for the structured data-access operations.

Turns a query type, a table name, a parameter mapping, a condition mapping
and ordering/limit options into a parameterized statement. Values are bound
as parameters; Expression values, NULL comparisons and the ORDER BY / LIMIT
options are emitted into the statement text.

Table and column names are trusted input. They are quoted, never bound or
validated, so they must not come from untrusted sources.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from ..expression import Expression
from ..security import quote_identifier

logger = logging.getLogger(__name__)

QUERY_IS_NULL = 'IS NULL'
QUERY_IS_NOT_NULL = 'IS NOT NULL'

PLACEHOLDER = '?'

# DB-API paramstyles that take positional parameters
POSITIONAL_PARAMSTYLES = ('qmark', 'numeric', 'format', 'pyformat')


class QueryType(str, Enum):
    """Kinds of statements the builder produces."""
    SELECT = 'select'
    SELECT_CELL = 'cell'
    SELECT_COLUMN = 'column'
    COUNT = 'count'
    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'


@dataclass(frozen=True)
class ParsedStatement:
    """
    A statement ready for execution.

    `parts` holds the literal statement text split at the placeholders, so
    there is always exactly one more part than there are bind values.
    """

    parts: Tuple[str, ...]
    params: Tuple[Any, ...]

    def __post_init__(self):
        if len(self.parts) != len(self.params) + 1:
            raise ValueError(
                f"Statement has {len(self.parts) - 1} placeholders for {len(self.params)} values"
            )

    @property
    def sql(self) -> str:
        """Statement text with '?' placeholders."""
        return PLACEHOLDER.join(self.parts)

    def render(self, paramstyle: str = 'qmark') -> str:
        """
        Render the statement for a DB-API paramstyle.

        Args:
            paramstyle: 'qmark', 'numeric', 'format' or 'pyformat'

        Returns:
            Statement text using the driver's placeholders

        Raises:
            ValueError: For paramstyles that need named parameters
        """
        if paramstyle == 'qmark':
            return self.sql
        if paramstyle == 'numeric':
            rendered = [self.parts[0]]
            for position, part in enumerate(self.parts[1:], start=1):
                rendered.append(f":{position}{part}")
            return ''.join(rendered)
        if paramstyle in ('format', 'pyformat'):
            # the driver interpolates even when no parameters are bound
            return '%s'.join(part.replace('%', '%%') for part in self.parts)
        raise ValueError(
            f"Unsupported paramstyle '{paramstyle}', expected one of {POSITIONAL_PARAMSTYLES}"
        )

    def __str__(self) -> str:
        return self.sql


class _StatementWriter:
    """Accumulates statement text and bind values in emission order."""

    def __init__(self, text: str = ''):
        self._parts: List[str] = []
        self._current: List[str] = [text]
        self._params: List[Any] = []

    def text(self, fragment: str) -> None:
        self._current.append(fragment)

    def bind(self, value: Any) -> None:
        self._parts.append(''.join(self._current))
        self._current = []
        self._params.append(value)

    def finish(self) -> ParsedStatement:
        return ParsedStatement(
            parts=tuple(self._parts) + (''.join(self._current),),
            params=tuple(self._params),
        )


def _is_sentinel(value: Any, sentinel: str) -> bool:
    return isinstance(value, str) and value.upper() == sentinel


class QueryBuilder:
    """Builds parameterized statements from structured arguments."""

    def __init__(self, identifier_quote: str = '`'):
        """
        Args:
            identifier_quote: Opening quote for identifiers ('`', '"' or '[')
        """
        # fail early on unknown quote styles
        quote_identifier('', identifier_quote)
        self.identifier_quote = identifier_quote

    def quote(self, identifier: str) -> str:
        """Quote a table or column name."""
        return quote_identifier(identifier, self.identifier_quote)

    def build(self, kind: Union[QueryType, str], table: str,
              params: Optional[Union[Mapping[str, Any], Sequence[str], str]] = None,
              conditions: Optional[Mapping[str, Any]] = None,
              order: Optional[str] = None,
              limit: Optional[Union[int, str]] = None) -> ParsedStatement:
        """
        Build a statement.

        Args:
            kind: Query type, its value ('cell') or its name ('SELECT_CELL')
            table: Table name
            params: Column -> value mapping for INSERT/UPDATE, or the single
                column name for SELECT_CELL/SELECT_COLUMN
            conditions: Column -> value mapping for the WHERE clause
            order: ORDER BY clause body, emitted verbatim
            limit: LIMIT value, emitted verbatim

        Returns:
            ParsedStatement with '?' placeholders

        Example:
            >>> build_statement(QueryType.UPDATE, 'users', {'role': 'admin'}, {'id': 1}).sql
            'UPDATE `users` SET `role` = ? WHERE `id` = ?'
        """
        query_type = self._resolve_type(kind)
        quoted_table = self.quote(table)

        if query_type == QueryType.INSERT:
            query = f"INSERT INTO {quoted_table}"
        elif query_type == QueryType.UPDATE:
            query = f"UPDATE {quoted_table}"
        elif query_type == QueryType.DELETE:
            query = f"DELETE FROM {quoted_table}"
        elif query_type == QueryType.COUNT:
            query = f"SELECT COUNT(*) FROM {quoted_table}"
        elif query_type == QueryType.SELECT_CELL:
            query = f"SELECT {self._single_column(params)} FROM {quoted_table}"
            limit = 1
        elif query_type == QueryType.SELECT_COLUMN:
            query = f"SELECT {self._single_column(params)} FROM {quoted_table}"
        else:
            query = f"SELECT * FROM {quoted_table}"

        writer = _StatementWriter(query)

        if query_type in (QueryType.INSERT, QueryType.UPDATE) and params:
            writer.text(' SET ')
            self._write_set_params(writer, params)

        if conditions:
            writer.text(' WHERE ')
            self._write_conditions(writer, conditions)

        if order:
            writer.text(f" ORDER BY {order}")
        if limit is not None:
            writer.text(f" LIMIT {limit}")

        return writer.finish()

    def _resolve_type(self, kind: Union[QueryType, str]) -> QueryType:
        try:
            return QueryType(kind)
        except ValueError:
            pass
        if isinstance(kind, str) and kind.upper() in QueryType.__members__:
            return QueryType[kind.upper()]
        logger.warning(f"Unknown query type {kind!r}, falling back to SELECT *")
        return QueryType.SELECT

    @staticmethod
    def _single_column(params: Any) -> str:
        if isinstance(params, str):
            return params
        if isinstance(params, Sequence) and len(params) == 1 and isinstance(params[0], str):
            return params[0]
        raise ValueError(f"Cell and column queries need exactly one column name, got {params!r}")

    def _write_set_params(self, writer: _StatementWriter, params: Mapping[str, Any]) -> None:
        for index, (column, value) in enumerate(params.items()):
            if index:
                writer.text(', ')
            quoted = self.quote(column)

            if isinstance(value, Expression):
                writer.text(f"{quoted} = {value.value}")
            elif value is None:
                # NULL is written literally, not bound
                writer.text(f"{quoted} = NULL")
            else:
                writer.text(f"{quoted} = ")
                writer.bind(value)

    def _write_conditions(self, writer: _StatementWriter, conditions: Mapping[str, Any]) -> None:
        for index, (column, value) in enumerate(conditions.items()):
            if index:
                writer.text(' AND ')
            quoted = self.quote(column)

            if isinstance(value, Expression):
                writer.text(f"{quoted} = {value.value}")
            elif value is None or _is_sentinel(value, QUERY_IS_NULL):
                writer.text(f"{quoted} {QUERY_IS_NULL}")
            elif _is_sentinel(value, QUERY_IS_NOT_NULL):
                writer.text(f"{quoted} {QUERY_IS_NOT_NULL}")
            else:
                writer.text(f"{quoted} = ")
                writer.bind(value)


_default_builder = QueryBuilder()


def build_statement(kind: Union[QueryType, str], table: str,
                    params: Optional[Union[Mapping[str, Any], Sequence[str], str]] = None,
                    conditions: Optional[Mapping[str, Any]] = None,
                    order: Optional[str] = None,
                    limit: Optional[Union[int, str]] = None) -> ParsedStatement:
    """Build a statement with backtick-quoted identifiers."""
    return _default_builder.build(kind, table, params, conditions, order, limit)
