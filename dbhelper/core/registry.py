"""
Connection registry.

Keeps one live connection per (database name, server) key, loads the
database configuration lazily, redirects production database names to their
test counterparts while test mode is enabled, and releases its cache on
request.
"""

import threading
import logging
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

from sqlalchemy import create_engine

from ..config.db_config import CONFIG_DEFAULT, RegistryConfig, load_database_config
from ..config.logging_config import log_connection_event, setup_db_logging
from ..security import mask_url
from .connection import Database
from .transactions import TransactionLedger

logger = logging.getLogger(__name__)


class ConnectionKey(NamedTuple):
    """Identity of a cached connection."""
    database: str
    server: Optional[str] = None

    def __str__(self) -> str:
        if self.server is None:
            return self.database
        return f"{self.database}@{self.server}"


class ConnectionRegistry:
    """
    Process-wide cache of database connections.

    Repeated lookups with an equal key return the same Database handle until
    close_all() releases it.

    Usage:
        registry = ConnectionRegistry(config_path='config/database.yaml')
        db = registry.get_connection('default')
        replica = registry.get_connection('default', server='replica2')
    """

    def __init__(self, config: Optional[RegistryConfig] = None,
                 config_path: Optional[Union[str, Path]] = None,
                 test_mode: bool = False):
        """
        Args:
            config: Preloaded configuration; loaded from config_path on
                first use when omitted
            config_path: Configuration file path
            test_mode: Start with test-mode redirection enabled
        """
        self._config = config
        self._config_path = config_path
        self._test_mode = test_mode
        self._connections: Dict[ConnectionKey, Database] = {}
        self._lock = threading.RLock()
        self.ledger = TransactionLedger()

    @property
    def config(self) -> RegistryConfig:
        """Database configuration, loaded once on first access."""
        with self._lock:
            if self._config is None:
                self._config = load_database_config(self._config_path)
                if self._config.logging is not None:
                    setup_db_logging({'logging': self._config.logging.model_dump()})
            return self._config

    @property
    def test_mode(self) -> bool:
        return self._test_mode

    def set_test_mode(self, enabled: bool) -> None:
        """
        Enable or disable test-mode name redirection.

        Only later lookups are affected; cached connections keep their target.
        """
        self._test_mode = bool(enabled)
        logger.info(f"Test mode {'enabled' if self._test_mode else 'disabled'}")

    def resolve_name(self, db_name: str) -> str:
        """Database name a lookup for db_name resolves to."""
        if self._test_mode:
            return self.config.test_databases.get(db_name, db_name)
        return db_name

    def get_connection(self, db_name: str = CONFIG_DEFAULT, server: Optional[str] = None) -> Database:
        """
        Get the cached connection for a database, opening it on first use.

        Args:
            db_name: Configured database name
            server: Server substituted into the host pattern

        Returns:
            Database handle

        Raises:
            ConfigurationError: If the database is not configured
            sqlalchemy.exc.SQLAlchemyError: If the connection cannot be opened
        """
        with self._lock:
            key = ConnectionKey(self.resolve_name(db_name), server)

            database = self._connections.get(key)
            if database is not None:
                return database

            database = self._open(key)
            self._connections[key] = database
            return database

    def _open(self, key: ConnectionKey) -> Database:
        settings = self.config.get_database(key.database)
        url = settings.connection_url(key.server)
        safe_url = mask_url(url)

        engine = None
        try:
            engine = create_engine(url, **settings.engine_args)
            connection = engine.connect()
        except Exception as e:
            if engine is not None:
                engine.dispose()
            logger.error(f"Connection to '{key}' failed: {e} (url: {safe_url})")
            raise

        log_connection_event(logger, 'opened', f"{key} -> {safe_url}")
        return Database(key, engine, connection, self.ledger, settings.identifier_quote)

    def cached_keys(self) -> List[ConnectionKey]:
        with self._lock:
            return list(self._connections)

    def close_all(self) -> None:
        """
        Release every cached connection and clear the cache.

        Handles obtained earlier are not closed: callers still holding one
        keep a working, orphaned connection (with its own transaction state)
        that is closed by Database.close() or when it is garbage collected.
        Later lookups open fresh connections.
        """
        with self._lock:
            released = len(self._connections)
            self._connections.clear()
            self.ledger = TransactionLedger()

        if released:
            logger.info(f"Released {released} cached database connection(s)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()


_default_registry: Optional[ConnectionRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> ConnectionRegistry:
    """Process default registry, created on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = ConnectionRegistry()
        return _default_registry


def get_connection(db_name: str = CONFIG_DEFAULT, server: Optional[str] = None) -> Database:
    return default_registry().get_connection(db_name, server)


def set_test_mode(enabled: bool) -> None:
    default_registry().set_test_mode(enabled)


def close_all() -> None:
    default_registry().close_all()
