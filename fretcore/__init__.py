"""Fretcore - An adaptive drill engine for music-theory fundamentals."""

from .models import ItemStats, GroupDef, GroupSummary, CalibrationThreshold
from .config import (
    AdaptiveConfig,
    DeadlineConfig,
    DEFAULT_CONFIG,
    DEFAULT_DEADLINE_CONFIG,
    derive_scaled_config,
)
from .storage import StorageAdapter, MemoryStorage
from .selector import AdaptiveSelector
from .recommendations import RecommendationResult, compute_recommendations
from .deadline import DeadlineTracker
from .calibration import apply_baseline, calibration_thresholds, compute_baseline
from .db import LearnerDatabase, DuckDBStorage

__all__ = [
    "ItemStats",
    "GroupDef",
    "GroupSummary",
    "CalibrationThreshold",
    "AdaptiveConfig",
    "DeadlineConfig",
    "DEFAULT_CONFIG",
    "DEFAULT_DEADLINE_CONFIG",
    "derive_scaled_config",
    "StorageAdapter",
    "MemoryStorage",
    "AdaptiveSelector",
    "RecommendationResult",
    "compute_recommendations",
    "DeadlineTracker",
    "apply_baseline",
    "calibration_thresholds",
    "compute_baseline",
    "LearnerDatabase",
    "DuckDBStorage",
]
