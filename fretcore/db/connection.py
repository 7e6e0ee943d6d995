"""
Connection lifecycle for a learner database.

A writable handle creates its file (and parent directories) on first use.
A read-only handle never touches the filesystem: the stats and
recommendation views open an existing learner file read-only, and a missing
file is an error rather than a freshly created empty database.
"""

import duckdb
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def resolve_db_path(db_path: Union[str, Path]) -> Path:
    """Absolute path of a database file; ':memory:' (any case) is kept as-is."""
    if isinstance(db_path, str) and db_path.lower() == MEMORY_PATH:
        return Path(MEMORY_PATH)
    return Path(db_path).resolve()


class ConnectionHandler:
    """Opens one DuckDB connection on demand and reopens it after a close."""

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        self.db_path_resolved = resolve_db_path(db_path)
        self.read_only = read_only
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_PATH

    @property
    def mode(self) -> str:
        return "read-only" if self.read_only else "read-write"

    def _prepare_path(self) -> None:
        if self.is_memory:
            if self.read_only:
                raise DatabaseConnectionError(
                    "An in-memory database cannot be opened read-only."
                )
            return
        if self.read_only:
            if not self.db_path_resolved.is_file():
                raise DatabaseConnectionError(
                    f"Database file not found: {self.db_path_resolved}"
                )
            return
        self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, opening it first if needed.

        Raises:
            DatabaseConnectionError: If the path cannot be opened in this
                handle's mode or DuckDB refuses the connection.
        """
        if self._connection is not None:
            return self._connection

        self._prepare_path()
        try:
            self._connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
        except duckdb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}", original_exception=e
            ) from e
        logger.info(f"Opened {self.mode} connection to {self.db_path_resolved}")
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if one is open. Close errors are only logged."""
        conn, self._connection = self._connection, None
        if conn is None:
            return
        try:
            conn.close()
        except duckdb.Error as e:
            logger.error(f"Error closing connection to {self.db_path_resolved}: {e}")
        else:
            logger.info(f"Closed connection to {self.db_path_resolved}")
