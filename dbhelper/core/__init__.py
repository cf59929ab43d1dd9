"""
Core data-access components.

This module contains:
- QueryBuilder: structured arguments -> parameterized statements
- TransactionLedger: nested transaction depth tracking
- Database: connection handle with the select/insert/update/delete operations
- ConnectionRegistry: keyed cache of live connections with test mode
"""

from .query_builder import (
    QUERY_IS_NULL,
    QUERY_IS_NOT_NULL,
    ParsedStatement,
    QueryBuilder,
    QueryType,
    build_statement,
)
from .transactions import TransactionError, TransactionLedger
from .connection import Database, counter_increment
from .registry import (
    ConnectionKey,
    ConnectionRegistry,
    close_all,
    default_registry,
    get_connection,
    set_test_mode,
)

__all__ = [
    'QUERY_IS_NULL',
    'QUERY_IS_NOT_NULL',
    'ParsedStatement',
    'QueryBuilder',
    'QueryType',
    'build_statement',
    'TransactionError',
    'TransactionLedger',
    'Database',
    'counter_increment',
    'ConnectionKey',
    'ConnectionRegistry',
    'close_all',
    'default_registry',
    'get_connection',
    'set_test_mode',
]
