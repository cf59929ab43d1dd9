"""
Database logging configuration.

This module sets up dbhelper's logging: the level comes from the registry
configuration, while database-specific formatting, context and redaction
are configured here.
"""

import logging
import sys
from typing import Dict, Any, Optional, Sequence
from pathlib import Path

from ..security import setup_secure_logging

LOGGER_NAME = 'dbhelper'


class SafeFormatter(logging.Formatter):
    """Custom formatter that provides default values for missing fields."""

    def format(self, record):
        if not hasattr(record, 'database_context'):
            record.database_context = 'db'

        return super().format(record)


def setup_db_logging(main_config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Setup dbhelper logging based on configuration.

    Args:
        main_config: Configuration dictionary with an optional 'logging'
            section holding 'level' and 'log_file'

    Returns:
        Configured package logger
    """
    logging_config = (main_config or {}).get('logging') or {}
    log_level = str(logging_config.get('level', 'INFO')).upper()
    log_file = logging_config.get('log_file')

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = SafeFormatter(
        '%(asctime)s.%(msecs)03d - [%(database_context)s] - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return setup_secure_logging(LOGGER_NAME)


def log_query(logger: logging.Logger, query: str, params: Optional[Sequence[Any]] = None,
              duration: Optional[float] = None) -> None:
    """
    Log a statement with its bind values.

    Statement text and bind values are only emitted at DEBUG level.

    Args:
        logger: Database logger instance
        query: SQL statement
        params: Bind values
        duration: Execution time in seconds
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return

    message = f"Query: {query}"
    if params:
        message += f" | Params: {tuple(params)!r}"
    if duration is not None:
        message += f" | Duration: {duration:.3f}s"
    logger.debug(message)


def log_transaction(logger: logging.Logger, operation: str, depth: int) -> None:
    """
    Log a transaction boundary call.

    Args:
        logger: Database logger instance
        operation: 'begin', 'commit' or 'rollback'
        depth: Nesting depth after the call
    """
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Transaction {operation} (depth {depth})")


def log_connection_event(logger: logging.Logger, event: str, details: Optional[str] = None) -> None:
    """
    Log connection lifecycle events.

    Args:
        logger: Database logger instance
        event: Event type ('opened', 'closed', 'error')
        details: Additional event details
    """
    message = f"Connection {event}"
    if details:
        message += f": {details}"

    if event == 'error':
        logger.error(message)
    else:
        logger.info(message)


class DatabaseLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds connection context to log messages.

    The context is the connection key the records belong to, rendered into
    the 'database_context' field used by SafeFormatter.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        """Add database context to log records."""
        extra = kwargs.setdefault('extra', {})
        extra['database_context'] = self.extra.get('database', 'unknown')
        return msg, kwargs

    def query(self, query: str, params: Optional[Sequence[Any]] = None,
              duration: Optional[float] = None) -> None:
        """Log a statement."""
        log_query(self, query, params, duration)

    def transaction(self, operation: str, depth: int) -> None:
        """Log a transaction boundary call."""
        log_transaction(self, operation, depth)

    def connection_event(self, event: str, details: Optional[str] = None) -> None:
        """Log a connection lifecycle event."""
        log_connection_event(self, event, details)
