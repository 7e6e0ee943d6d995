"""
Record types shared by the selector, the forgetting model and the
recommendation engine.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ItemStats(BaseModel):
    """
    Learning statistics for one drillable item.

    Every field is always present; "unset" is expressed as None rather than a
    missing key. Records are immutable: updates produce a new instance via
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ewma: float = Field(
        ...,
        ge=0,
        description="Smoothed response time in ms (clamped before averaging).",
    )
    count: int = Field(
        default=0,
        ge=0,
        description="Number of recorded responses, correct and incorrect.",
    )
    stability: Optional[float] = Field(
        default=None,
        gt=0,
        description="Forgetting half-life in hours; None until first correct.",
    )
    last_correct_at: Optional[float] = Field(
        default=None,
        description="Epoch ms of the most recent correct answer.",
    )
    last_seen_at: Optional[float] = Field(
        default=None,
        description="Epoch ms of the most recent response of any kind.",
    )

    @property
    def is_seen(self) -> bool:
        return self.count > 0

    @property
    def has_memory(self) -> bool:
        """True once the item has been answered correctly at least once."""
        return self.stability is not None and self.last_correct_at is not None


class GroupDef(BaseModel):
    """
    A caller-supplied subset of the item universe (a string on the
    fretboard, a distance bucket, ...).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    index: int = Field(..., ge=0, description="Stable group identifier.")
    item_ids: List[str] = Field(
        default_factory=list,
        description="Opaque item identifiers belonging to the group.",
    )
    label: Optional[str] = Field(
        default=None, description="Human-readable name for displays."
    )

    @field_validator("item_ids")
    @classmethod
    def check_no_duplicate_items(cls, item_ids: List[str]) -> List[str]:
        """Reject groups that list the same item twice."""
        seen = set()
        for item_id in item_ids:
            if item_id in seen:
                raise ValueError(f"Duplicate item id '{item_id}' in group.")
            seen.add(item_id)
        return item_ids


class GroupSummary(BaseModel):
    """Per-group progress counts at a single point in time."""

    model_config = ConfigDict(frozen=True)

    index: int
    due_count: int = Field(..., ge=0)
    unseen_count: int = Field(..., ge=0)
    mastered_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)
    label: Optional[str] = None

    @property
    def seen_count(self) -> int:
        return self.due_count + self.mastered_count

    @property
    def work_remaining(self) -> int:
        """Items still needing attention: due for review plus never seen."""
        return self.due_count + self.unseen_count

    @property
    def is_started(self) -> bool:
        return self.unseen_count < self.total_count


class CalibrationThreshold(BaseModel):
    """One labelled speed band derived from a motor baseline."""

    model_config = ConfigDict(frozen=True)

    label: str
    max_ms: Optional[int] = Field(
        default=None, description="Upper bound in ms; None if open-ended."
    )
    meaning: str
