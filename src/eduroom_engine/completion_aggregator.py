"""
completion_aggregator.py — Completion Aggregator (Stage 2)
==========================================================
Combines the MCQ score and the case-study score of one (user, course) into
the stored completion percentage and decides whether a certificate is due.

  percentage = clamp(mcq_score × mcq_weight + case_study_score × case_study_weight, 0, 100)
  eligible   = percentage ≥ pass_threshold

Record rules
------------
  • The aggregator is the only writer of `percentage`.
  • `completion_date` is stamped the first time the record is eligible and
    is never moved afterwards.
  • A record whose certificate was already sent still receives the new
    scores, but `certificate_sent` stays True and no dispatch is requested.
  • Invalid weights or scores abort before anything is written.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Union

from eduroom_engine.errors import InvalidScore, InvalidWeights
from eduroom_engine.models import CompletionWeights, UserCourseCompletion

logger = logging.getLogger(__name__)


class CompletionStore(Protocol):
    def upsert_completion(
        self, user_id: int, course_id: int, mcq_score: float, case_study_score: float,
        percentage: float, completion_date: Optional[datetime],
    ) -> UserCourseCompletion: ...


@dataclass
class CompletionResult:
    """Outcome of one aggregation, mirroring the stored record."""
    user_id:           int
    course_id:         int
    mcq_score:         float
    case_study_score:  float
    percentage:        float
    pass_threshold:    float
    eligible:          bool
    certificate_sent:  bool
    completion_date:   Optional[datetime]

    @property
    def dispatch_required(self) -> bool:
        """True when a certificate is due and has not been sent yet."""
        return self.eligible and not self.certificate_sent

    @property
    def key(self) -> tuple[int, int]:
        return (self.user_id, self.course_id)

    @classmethod
    def from_record(cls, record: UserCourseCompletion, pass_threshold: float) -> "CompletionResult":
        percentage = record.percentage or 0.0
        return cls(
            user_id          = record.user_id,
            course_id        = record.course_id,
            mcq_score        = record.mcq_score or 0.0,
            case_study_score = record.case_study_score or 0.0,
            percentage       = percentage,
            pass_threshold   = pass_threshold,
            eligible         = percentage >= pass_threshold,
            certificate_sent = record.certificate_sent,
            completion_date  = record.completion_date,
        )


def _check_score(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidScore(f"{name} must be a number, got {value!r}.") from exc
    if not math.isfinite(value):
        raise InvalidScore(f"{name} must be finite, got {value}.")
    return value


def _coerce_weights(weights) -> CompletionWeights:
    """Accept an (mcq_weight, case_study_weight) pair."""
    try:
        pair = tuple(weights)
    except TypeError:
        raise InvalidWeights(f"Weights must be a pair of numbers, got {weights!r}.") from None
    if len(pair) != 2:
        raise InvalidWeights(f"Expected 2 weights, got {len(pair)}.")
    return CompletionWeights(*pair)


def blend(mcq_score: float, case_study_score: float, weights: CompletionWeights) -> float:
    """Weighted percentage clamped to [0, 100]."""
    raw = mcq_score * weights.mcq_weight + case_study_score * weights.case_study_weight
    return max(0.0, min(100.0, raw))


class CompletionAggregator:
    """
    Writes the derived completion record for one (user, course).

    Usage::

        agg    = CompletionAggregator(db, pass_threshold=60.0)
        result = agg.aggregate(user_id, course_id, 75.0, 90.0, CompletionWeights(0.5, 0.5))
        if result.dispatch_required:
            dispatcher.dispatch(result)
    """

    DEFAULT_PASS_THRESHOLD: float = 60.0

    def __init__(
        self,
        store: CompletionStore,
        pass_threshold: float = DEFAULT_PASS_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.pass_threshold = pass_threshold
        self.clock = clock

    def aggregate(
        self,
        user_id: int,
        course_id: int,
        mcq_score: float,
        case_study_score: float,
        weights: Union[CompletionWeights, tuple[float, float]],
    ) -> CompletionResult:
        if not isinstance(weights, CompletionWeights):
            weights = _coerce_weights(weights)
        mcq_score = _check_score("mcq_score", mcq_score)
        case_study_score = _check_score("case_study_score", case_study_score)

        percentage = blend(mcq_score, case_study_score, weights)
        eligible = percentage >= self.pass_threshold

        record = self.store.upsert_completion(
            user_id=user_id,
            course_id=course_id,
            mcq_score=mcq_score,
            case_study_score=case_study_score,
            percentage=percentage,
            completion_date=self.clock() if eligible else None,
        )
        result = CompletionResult.from_record(record, self.pass_threshold)

        if result.certificate_sent:
            logger.info(
                "Re-graded certified record user=%s course=%s → %.2f%% (certificate not re-sent)",
                user_id, course_id, percentage,
            )
        else:
            logger.debug(
                "Aggregated user=%s course=%s → %.2f%% eligible=%s",
                user_id, course_id, percentage, eligible,
            )
        return result
