"""
Storage Adapter contract consumed by the adaptive engine.

The engine only ever calls these methods synchronously. Adapters backed by
slow or asynchronous stores must be preloaded by the caller before a drill.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from .models import ItemStats

logger = logging.getLogger(__name__)


class StorageAdapter(ABC):
    """
    Abstract key-value store for per-item statistics and deadlines.

    One adapter instance serves one namespace (one quiz mode). The engine
    assumes it is the only writer to that namespace within a process.
    """

    @abstractmethod
    def get_stats(self, item_id: str) -> Optional[ItemStats]:
        """
        Return the stored record for an item, or None if it has none.

        Adapters should return None for records they cannot decode rather
        than raising.
        """
        pass

    @abstractmethod
    def save_stats(self, item_id: str, stats: ItemStats) -> None:
        """Persist the record for an item, replacing any previous one."""
        pass

    @abstractmethod
    def get_deadline(self, item_id: str) -> Optional[float]:
        pass

    @abstractmethod
    def save_deadline(self, item_id: str, deadline_ms: float) -> None:
        pass

    def preload(self, item_ids: Iterable[str]) -> None:
        """Warm any cache so later reads need no I/O. No-op by default."""
        return None


class MemoryStorage(StorageAdapter):
    """Dictionary-backed adapter for tests and non-persistent sessions."""

    def __init__(self) -> None:
        self._stats: Dict[str, ItemStats] = {}
        self._deadlines: Dict[str, float] = {}

    def get_stats(self, item_id: str) -> Optional[ItemStats]:
        return self._stats.get(item_id)

    def save_stats(self, item_id: str, stats: ItemStats) -> None:
        self._stats[item_id] = stats

    def get_deadline(self, item_id: str) -> Optional[float]:
        return self._deadlines.get(item_id)

    def save_deadline(self, item_id: str, deadline_ms: float) -> None:
        self._deadlines[item_id] = deadline_ms

    def __len__(self) -> int:
        return len(self._stats)
