"""
Data models for the EduRoom completion and incentive engine.

Catalog and completion rows are plain dataclasses; incentive schedules are
pydantic models so that tier JSON loaded from storage is validated once,
at load time, instead of being passed around as opaque dicts.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from eduroom_engine.errors import InvalidSchedule, InvalidWeights

_WEIGHT_TOLERANCE = 1e-9


# ─── Enumerations ────────────────────────────────────────────────────────────

class ScheduleKind(str, Enum):
    """Which side of a manager's schedule a tier list belongs to."""
    INCENTIVE = "incentive"
    DEDUCTION = "deduction"


# ─── Course catalog rows ─────────────────────────────────────────────────────

@dataclass
class MCQ:
    """One multiple-choice question of a course."""
    id:            int
    user_id:       int     # author
    course_id:     int
    question_text: str
    serial_no:     int     # display order only, never a scoring weight


@dataclass
class MCQAnswer:
    """A candidate answer option; exactly one per MCQ has is_correct=True."""
    id:          int
    user_id:     int
    course_id:   int
    mcq_id:      int
    answer_text: str
    is_correct:  bool = False


@dataclass
class CaseStudy:
    """A free-text case study scored by keyword coverage."""
    id:                int
    course_id:         int
    problem_statement: str
    answer_keywords:   list[str] = field(default_factory=list)

    @staticmethod
    def split_keywords(raw: Optional[str]) -> list[str]:
        """Stored keywords are a comma separated string."""
        if not raw:
            return []
        return [k.strip() for k in raw.split(",") if k.strip()]


@dataclass
class Learner:
    id:    int
    name:  str
    email: str


@dataclass
class Course:
    id:    int
    title: str


# ─── Completion record ───────────────────────────────────────────────────────

@dataclass
class UserCourseCompletion:
    """
    Aggregate assessment outcome for one (user, course) pair.

    `percentage` is only ever derived by CompletionAggregator and
    `certificate_sent` only moves False → True.
    """
    user_id:             int
    course_id:           int
    mcq_score:           Optional[float] = None
    case_study_score:    Optional[float] = None
    percentage:          Optional[float] = None
    certificate_sent:    bool = False
    completion_date:     Optional[datetime] = None
    certificate_sent_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.user_id, self.course_id)


@dataclass(frozen=True)
class CompletionWeights:
    """Blend of MCQ and case-study scores; must sum to 1.0."""
    mcq_weight:        float
    case_study_weight: float

    def __post_init__(self) -> None:
        if any(math.isnan(w) for w in (self.mcq_weight, self.case_study_weight)):
            raise InvalidWeights("Weights must be numbers, got NaN.")
        if self.mcq_weight < 0 or self.case_study_weight < 0:
            raise InvalidWeights(
                f"Weights must be non-negative, got "
                f"({self.mcq_weight}, {self.case_study_weight})."
            )
        total = self.mcq_weight + self.case_study_weight
        if not math.isclose(total, 1.0, rel_tol=0.0, abs_tol=_WEIGHT_TOLERANCE):
            raise InvalidWeights(f"Weights must sum to 1.0, got {total}.")


# ─── Incentive / deduction tiers ─────────────────────────────────────────────

_SLAB_RANGE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*$")
_SLAB_OPEN  = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*\+\s*$")


class RangeTier(BaseModel):
    """A closed metric interval [min, max] mapped to a fixed amount."""
    min:    float
    max:    float
    amount: float
    label:  Optional[str] = Field(default=None, description="Original slab key, e.g. '11-20'")

    @model_validator(mode="after")
    def _bounds_ordered(self) -> "RangeTier":
        if math.isnan(self.min) or math.isnan(self.max) or math.isnan(self.amount):
            raise ValueError("Tier bounds and amount must be numbers.")
        if self.min > self.max:
            raise ValueError(f"Tier min {self.min} is greater than max {self.max}.")
        return self

    def contains(self, metric: float) -> bool:
        return self.min <= metric <= self.max

    @classmethod
    def from_slab_key(cls, key: str, amount: float) -> "RangeTier":
        """Parse a keyed slab such as ``"11-20"`` or the open-ended ``"46+"``."""
        m = _SLAB_RANGE.match(key)
        if m:
            return cls(min=float(m.group(1)), max=float(m.group(2)), amount=amount, label=key)
        m = _SLAB_OPEN.match(key)
        if m:
            return cls(min=float(m.group(1)), max=math.inf, amount=amount, label=key)
        raise InvalidSchedule(f"Unrecognised slab key {key!r}; expected 'A-B' or 'A+'.")


def validate_schedule(tiers: list[RangeTier]) -> list[RangeTier]:
    """
    Check a tier list is ascending by `min` and non-overlapping.

    Two adjacent tiers may share a boundary value (prev.max == next.min);
    resolution then gives the boundary to the lower tier.
    """
    for prev, nxt in zip(tiers, tiers[1:]):
        if nxt.min < prev.min:
            raise InvalidSchedule(
                f"Tiers must be ascending by min: {nxt.min} follows {prev.min}."
            )
        if nxt.min < prev.max:
            raise InvalidSchedule(
                f"Tiers overlap: [{prev.min}, {prev.max}] and [{nxt.min}, {nxt.max}]."
            )
    return tiers


class ManagerRanges(BaseModel):
    """Incentive and deduction schedule owned by one team manager."""
    team_manager_id:   int
    incentive_amounts: list[RangeTier] = Field(default_factory=list)
    deduction_amounts: list[RangeTier] = Field(default_factory=list)

    @field_validator("incentive_amounts", "deduction_amounts")
    @classmethod
    def _ordered_non_overlapping(cls, tiers: list[RangeTier]) -> list[RangeTier]:
        return validate_schedule(tiers)

    def schedule(self, kind: ScheduleKind) -> list[RangeTier]:
        if kind is ScheduleKind.INCENTIVE:
            return self.incentive_amounts
        return self.deduction_amounts

    @classmethod
    def load(cls, payload: dict[str, Any]) -> "ManagerRanges":
        """Validate a stored/decoded payload, raising InvalidSchedule on any problem."""
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise InvalidSchedule(
                f"Invalid schedule for manager {payload.get('team_manager_id')}: {exc}"
            ) from exc

    @classmethod
    def from_slab_map(
        cls,
        team_manager_id: int,
        incentive_slabs: Optional[dict[str, float]] = None,
        deduction_slabs: Optional[dict[str, float]] = None,
    ) -> "ManagerRanges":
        """Build from the keyed slab JSON format (``{"1-10": 500, "46+": 900}``)."""
        def _tiers(slabs: Optional[dict[str, float]]) -> list[dict]:
            parsed = [RangeTier.from_slab_key(k, float(v)) for k, v in (slabs or {}).items()]
            return [t.model_dump() for t in sorted(parsed, key=lambda t: t.min)]

        return cls.load({
            "team_manager_id":   team_manager_id,
            "incentive_amounts": _tiers(incentive_slabs),
            "deduction_amounts": _tiers(deduction_slabs),
        })
