"""
DuckDB database interactions for fretcore.

LearnerDatabase stores per-item statistics and deadlines keyed by namespace
(one namespace per quiz mode) plus motor baselines keyed by calibration
provider. Writes are last-write-wins; there is no cross-process locking.
"""

import duckdb
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..exceptions import (
    BaselineOperationError,
    DeadlineOperationError,
    MarshallingError,
    StatsOperationError,
)
from ..models import ItemStats
from . import db_utils
from .adapter import DuckDBStorage
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

logger = logging.getLogger(__name__)


class LearnerDatabase:
    """
    Facade over the database subsystem: coordinates the ConnectionHandler,
    SchemaManager and marshalling helpers. Intended for use as a context
    manager.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Create a LearnerDatabase backed by the given DuckDB path.

        Args:
            db_path: Database file path, or ':memory:' for an in-memory database.
            read_only: If True, open the database read-only.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        logger.info(
            f"LearnerDatabase initialized for DB at: {self._handler.db_path_resolved}"
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "LearnerDatabase":
        """
        Open the connection. A writable database gets any missing learner
        tables, so a fresh or partially initialized file is ready to use.
        """
        self.get_connection()
        if not self.read_only:
            missing = self._schema_manager.missing_tables()
            if missing:
                logger.info(f"Creating missing tables: {', '.join(missing)}")
                self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    def storage(self, namespace: str) -> DuckDBStorage:
        """StorageAdapter view of one namespace."""
        return DuckDBStorage(self, namespace)

    # --- Item stats ---

    _UPSERT_STATS_SQL = """
        INSERT INTO item_stats (namespace, item_id, ewma, response_count,
                                stability, last_correct_at, last_seen_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (namespace, item_id) DO UPDATE SET
            ewma = EXCLUDED.ewma,
            response_count = EXCLUDED.response_count,
            stability = EXCLUDED.stability,
            last_correct_at = EXCLUDED.last_correct_at,
            last_seen_at = EXCLUDED.last_seen_at;
        """

    def save_item_stats(
        self, namespace: str, item_id: str, stats: ItemStats
    ) -> None:
        """
        Insert or replace the record for one item.

        Raises:
            StatsOperationError: If the write fails.
        """
        params = db_utils.item_stats_to_db_params(namespace, item_id, stats)
        conn = self.get_connection()
        try:
            conn.execute(self._UPSERT_STATS_SQL, params)
        except duckdb.Error as e:
            logger.error(f"Failed to save stats for {namespace}/{item_id}: {e}")
            raise StatsOperationError(
                f"Failed to save stats for {namespace}/{item_id}: {e}",
                original_exception=e,
            ) from e

    def get_item_stats(
        self, namespace: str, item_id: str
    ) -> Optional[ItemStats]:
        """
        Fetch one item's record.

        Returns:
            The ItemStats, or None if the item has no row.

        Raises:
            StatsOperationError: If the query fails.
            MarshallingError: If the stored row is invalid.
        """
        sql = "SELECT * FROM item_stats WHERE namespace = $1 AND item_id = $2;"
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, (namespace, item_id))
            rows = db_utils.rows_to_dicts(cursor)
        except duckdb.Error as e:
            raise StatsOperationError(
                f"Failed to fetch stats for {namespace}/{item_id}: {e}",
                original_exception=e,
            ) from e
        if not rows:
            return None
        return db_utils.db_row_to_item_stats(rows[0])

    def get_item_stats_batch(
        self, namespace: str, item_ids: Sequence[str]
    ) -> Dict[str, Optional[ItemStats]]:
        """
        Fetch several records in one query.

        Every requested id appears in the result; ids without a row map to
        None, and so do rows that cannot be marshalled (logged as warnings).
        """
        result: Dict[str, Optional[ItemStats]] = {i: None for i in item_ids}
        if not item_ids:
            return result
        placeholders = db_utils.item_ids_placeholders(item_ids, offset=2)
        sql = (
            "SELECT * FROM item_stats WHERE namespace = $1 "
            f"AND item_id IN ({placeholders});"
        )
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, (namespace, *item_ids))
            rows = db_utils.rows_to_dicts(cursor)
        except duckdb.Error as e:
            raise StatsOperationError(
                f"Failed to fetch stats batch for namespace '{namespace}': {e}",
                original_exception=e,
            ) from e
        for row in rows:
            try:
                result[row["item_id"]] = db_utils.db_row_to_item_stats(row)
            except MarshallingError as e:
                logger.warning(f"Skipping corrupted stats row: {e}")
        return result

    def get_item_ids(self, namespace: str) -> List[str]:
        """All item ids with stored stats in a namespace, sorted."""
        sql = "SELECT item_id FROM item_stats WHERE namespace = $1 ORDER BY item_id;"
        conn = self.get_connection()
        try:
            return [row[0] for row in conn.execute(sql, (namespace,)).fetchall()]
        except duckdb.Error as e:
            raise StatsOperationError(
                f"Failed to list items for namespace '{namespace}': {e}",
                original_exception=e,
            ) from e

    def get_namespace_counts(self) -> List[Tuple[str, int]]:
        """(namespace, item count) pairs for every namespace with stats."""
        sql = """
            SELECT namespace, COUNT(*) AS item_count
            FROM item_stats GROUP BY namespace ORDER BY namespace;
        """
        conn = self.get_connection()
        try:
            return [(row[0], row[1]) for row in conn.execute(sql).fetchall()]
        except duckdb.Error as e:
            raise StatsOperationError(
                f"Failed to count namespaces: {e}", original_exception=e
            ) from e

    # --- Deadlines ---

    def save_deadline(
        self, namespace: str, item_id: str, deadline_ms: float
    ) -> None:
        sql = """
            INSERT INTO item_deadlines (namespace, item_id, deadline_ms)
            VALUES ($1, $2, $3)
            ON CONFLICT (namespace, item_id) DO UPDATE SET
                deadline_ms = EXCLUDED.deadline_ms;
        """
        conn = self.get_connection()
        try:
            conn.execute(sql, (namespace, item_id, deadline_ms))
        except duckdb.Error as e:
            raise DeadlineOperationError(
                f"Failed to save deadline for {namespace}/{item_id}: {e}",
                original_exception=e,
            ) from e

    def get_deadline(self, namespace: str, item_id: str) -> Optional[float]:
        sql = """
            SELECT deadline_ms FROM item_deadlines
            WHERE namespace = $1 AND item_id = $2;
        """
        conn = self.get_connection()
        try:
            row = conn.execute(sql, (namespace, item_id)).fetchone()
        except duckdb.Error as e:
            raise DeadlineOperationError(
                f"Failed to fetch deadline for {namespace}/{item_id}: {e}",
                original_exception=e,
            ) from e
        return row[0] if row else None

    # --- Motor baselines ---

    def save_motor_baseline(
        self,
        provider: str,
        baseline_ms: float,
        measured_at: Optional[datetime] = None,
    ) -> None:
        """
        Store the calibrated baseline for a calibration provider (e.g. the
        on-screen button grid), replacing any earlier measurement.
        """
        if baseline_ms <= 0:
            raise ValueError(f"Invalid motor baseline: {baseline_ms}")
        # Stored as naive UTC.
        ts = (measured_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
        ts = ts.replace(tzinfo=None)
        sql = """
            INSERT INTO motor_baselines (provider, baseline_ms, measured_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (provider) DO UPDATE SET
                baseline_ms = EXCLUDED.baseline_ms,
                measured_at = EXCLUDED.measured_at;
        """
        conn = self.get_connection()
        try:
            conn.execute(sql, (provider, baseline_ms, ts))
            logger.info(f"Saved motor baseline {baseline_ms}ms for '{provider}'")
        except duckdb.Error as e:
            raise BaselineOperationError(
                f"Failed to save motor baseline for '{provider}': {e}",
                original_exception=e,
            ) from e

    def get_motor_baseline(self, provider: str) -> Optional[float]:
        sql = "SELECT baseline_ms FROM motor_baselines WHERE provider = $1;"
        conn = self.get_connection()
        try:
            row = conn.execute(sql, (provider,)).fetchone()
        except duckdb.Error as e:
            raise BaselineOperationError(
                f"Failed to fetch motor baseline for '{provider}': {e}",
                original_exception=e,
            ) from e
        return row[0] if row else None
