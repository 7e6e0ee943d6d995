"""Database package for fretcore.

DuckDB-backed persistence for learner statistics. LearnerDatabase is the
facade; DuckDBStorage adapts one namespace of it to the StorageAdapter
contract.
"""

from .database import LearnerDatabase
from .adapter import DuckDBStorage

__all__ = ["LearnerDatabase", "DuckDBStorage"]
