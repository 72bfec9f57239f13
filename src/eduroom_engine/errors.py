"""
errors.py — Exceptions raised by the completion and incentive engine.

Non-fatal conditions (foreign questions, schedule gaps, duplicate
certificates, transport failures) are returned as values, not raised;
see GradingWarning, TierResolution and DispatchOutcome.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for every error raised by eduroom_engine."""


class EmptyAssessment(EngineError, ValueError):
    """The course has no MCQs (or no case studies) to grade against."""

    def __init__(self, course_id: int, kind: str = "MCQs"):
        self.course_id = course_id
        self.kind = kind
        super().__init__(f"Course {course_id} has no {kind}; nothing to grade.")


class InvalidWeights(EngineError, ValueError):
    """Aggregation weights are negative or do not sum to 1.0."""


class InvalidScore(EngineError, ValueError):
    """A score passed to the aggregator is not a finite number."""


class InvalidSchedule(EngineError, ValueError):
    """An incentive/deduction tier list is unordered, overlapping or malformed."""


class RecordNotFound(EngineError, LookupError):
    """A learner, course or completion row referenced by the caller is missing."""
