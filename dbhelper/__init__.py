"""
dbhelper - structured data access over SQLAlchemy connections.

Main components:
- ConnectionRegistry / get_connection: cached connections per database and server
- Database: select, insert, update and delete helpers with nested transactions
- QueryBuilder: parameterized statement construction
- Expression: trusted raw SQL fragments

Usage:
    from dbhelper import Expression, get_connection

    db = get_connection('default')
    db.insert('users', {'name': 'John Smith', 'created_at': Expression('NOW()')})
    admins = db.select_all('users', {'role': 'admin'})
"""

from .expression import Expression
from .config import ConfigurationError, RegistryConfig, load_database_config
from .core import (
    QUERY_IS_NULL,
    QUERY_IS_NOT_NULL,
    ConnectionKey,
    ConnectionRegistry,
    Database,
    ParsedStatement,
    QueryBuilder,
    QueryType,
    TransactionError,
    build_statement,
    close_all,
    get_connection,
    set_test_mode,
)

__version__ = "1.0.0"

__all__ = [
    'Expression',
    'ConfigurationError',
    'RegistryConfig',
    'load_database_config',
    'QUERY_IS_NULL',
    'QUERY_IS_NOT_NULL',
    'ConnectionKey',
    'ConnectionRegistry',
    'Database',
    'ParsedStatement',
    'QueryBuilder',
    'QueryType',
    'TransactionError',
    'build_statement',
    'close_all',
    'get_connection',
    'set_test_mode',
]
