import duckdb
import logging
from typing import List, Set

from . import schema
from .connection import ConnectionHandler
from ..exceptions import DatabaseConnectionError, SchemaInitializationError

logger = logging.getLogger(__name__)


class SchemaManager:
    """Creates missing learner tables and, on request, rebuilds them all."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def missing_tables(self) -> List[str]:
        """Learner tables absent from the database, in creation order."""
        conn = self._handler.get_connection()
        try:
            rows = conn.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'main';"
            ).fetchall()
        except duckdb.Error as e:
            raise SchemaInitializationError(
                f"Failed to inspect schema: {e}", original_exception=e
            ) from e
        present: Set[str] = {row[0] for row in rows}
        return [name for name in schema.TABLE_NAMES if name not in present]

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create the learner tables in one transaction.

        ``force_recreate_tables`` drops every table first, losing all stored
        progress. Read-only databases are left untouched.
        """
        if self._handler.read_only:
            if force_recreate_tables:
                raise DatabaseConnectionError(
                    "Cannot recreate tables on a read-only database."
                )
            logger.warning(
                f"Skipping schema initialization for read-only {self._handler.db_path_resolved}"
            )
            return

        statements = list(schema.TABLE_DDL.values())
        if force_recreate_tables:
            logger.warning(
                f"Recreating all tables in {self._handler.db_path_resolved}. ALL STORED PROGRESS WILL BE LOST."
            )
            statements = [
                f"DROP TABLE IF EXISTS {table} CASCADE;"
                for table in reversed(schema.TABLE_NAMES)
            ] + statements

        conn = self._handler.get_connection()
        try:
            self._run_in_transaction(conn, statements)
        except duckdb.Error as e:
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e
        logger.info(f"Learner schema ready at {self._handler.db_path_resolved}")

    def _run_in_transaction(
        self, conn: duckdb.DuckDBPyConnection, statements: List[str]
    ) -> None:
        conn.begin()
        try:
            for sql in statements:
                conn.execute(sql)
        except duckdb.Error as e:
            logger.error(f"Schema statement failed on {self._handler.db_path_resolved}: {e}")
            try:
                conn.rollback()
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")
            raise
        conn.commit()
