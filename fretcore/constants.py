"""
Adaptive engine constants.

Static default tuning values for the learner model, calibrated for a motor
baseline of 1000 ms. No runtime configuration lives here - pure constants only.
"""
from typing import Optional, Tuple

MS_PER_HOUR: float = 3_600_000.0

# The default timing fields assume this baseline; scaled configs are derived
# as multiples of it.
REFERENCE_BASELINE_MS: float = 1000.0

# Timing thresholds as ratios of the motor baseline.
MIN_TIME_RATIO: float = 1.0
AUTOMATICITY_TARGET_RATIO: float = 3.0
SELF_CORRECTION_RATIO: float = 1.5
MAX_RESPONSE_TIME_RATIO: float = 9.0

# Selection
DEFAULT_UNSEEN_BOOST: float = 3.0
DEFAULT_EWMA_ALPHA: float = 0.3

# Forgetting model (stability values are half-lives in hours)
DEFAULT_INITIAL_STABILITY: float = 4.0
DEFAULT_MAX_STABILITY: float = 336.0  # 14 days
DEFAULT_STABILITY_GROWTH_BASE: float = 2.0
DEFAULT_STABILITY_DECAY_ON_WRONG: float = 0.7
DEFAULT_SPEED_BONUS_MAX: float = 1.5
DEFAULT_SELF_CORRECTION_GAP_FACTOR: float = 1.0

# A self-corrected item is assumed to hold for at least this multiple of the
# gap it just survived.
SELF_CORRECTION_STABILITY_MULTIPLIER: float = 1.5

# Mastery gates
DEFAULT_RECALL_THRESHOLD: float = 0.5
DEFAULT_EXPANSION_THRESHOLD: float = 0.7
DEFAULT_AUTOMATICITY_THRESHOLD: float = 0.8

# Motor-baseline calibration
CALIBRATION_TRIAL_COUNT: int = 10
CALIBRATION_WARMUP_TRIALS: int = 2

# (label, multiple of baseline, meaning); None marks the open-ended band.
CALIBRATION_BANDS: Tuple[Tuple[str, Optional[float], str], ...] = (
    ("Automatic", 1.5, "Fully memorized - instant recall"),
    ("Good", 3.0, "Solid recall, minor hesitation"),
    ("Developing", 4.5, "Working on it - needs practice"),
    ("Slow", 6.0, "Significant hesitation"),
    ("Very slow", None, "Not yet learned"),
)

# Deadline staircase
DEFAULT_DEADLINE_DECREASE_FACTOR: float = 0.85
DEFAULT_DEADLINE_INCREASE_FACTOR: float = 1.4
DEFAULT_MIN_DEADLINE_MARGIN: float = 1.3
DEFAULT_DEADLINE_EWMA_MULTIPLIER: float = 2.0
DEFAULT_DEADLINE_HEADROOM_MULTIPLIER: float = 1.5
DEFAULT_DEADLINE_MAX_DROP_FACTOR: float = 0.5
