import logging
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from ..exceptions import MarshallingError
from ..models import ItemStats
from ..storage import StorageAdapter

if TYPE_CHECKING:
    from .database import LearnerDatabase

logger = logging.getLogger(__name__)


class DuckDBStorage(StorageAdapter):
    """
    StorageAdapter over one namespace of a LearnerDatabase.

    Reads go through a cache so a preloaded drill does no queries. Rows that
    cannot be marshalled read as "no stats". Other database failures are
    raised as StorageError subclasses for the selector to absorb.
    """

    def __init__(self, db: "LearnerDatabase", namespace: str):
        if not namespace:
            raise ValueError("namespace cannot be empty")
        self.db = db
        self.namespace = namespace
        self._stats_cache: Dict[str, Optional[ItemStats]] = {}
        self._deadline_cache: Dict[str, Optional[float]] = {}

    def get_stats(self, item_id: str) -> Optional[ItemStats]:
        if item_id not in self._stats_cache:
            try:
                stats = self.db.get_item_stats(self.namespace, item_id)
            except MarshallingError as e:
                logger.warning(
                    f"Corrupted stats for {self.namespace}/{item_id}, treating as unseen: {e}"
                )
                stats = None
            self._stats_cache[item_id] = stats
        return self._stats_cache[item_id]

    def save_stats(self, item_id: str, stats: ItemStats) -> None:
        self._stats_cache[item_id] = stats
        self.db.save_item_stats(self.namespace, item_id, stats)

    def get_deadline(self, item_id: str) -> Optional[float]:
        if item_id not in self._deadline_cache:
            self._deadline_cache[item_id] = self.db.get_deadline(
                self.namespace, item_id
            )
        return self._deadline_cache[item_id]

    def save_deadline(self, item_id: str, deadline_ms: float) -> None:
        self._deadline_cache[item_id] = deadline_ms
        self.db.save_deadline(self.namespace, item_id, deadline_ms)

    def preload(self, item_ids: Iterable[str]) -> None:
        """Load every uncached id in one batched query."""
        missing = [i for i in dict.fromkeys(item_ids) if i not in self._stats_cache]
        if not missing:
            return
        self._stats_cache.update(
            self.db.get_item_stats_batch(self.namespace, missing)
        )
        logger.debug(
            f"Preloaded {len(missing)} items for namespace '{self.namespace}'"
        )
