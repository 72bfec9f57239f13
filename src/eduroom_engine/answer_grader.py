"""
answer_grader.py — MCQ Answer Grader (Stage 1)
==============================================
Grades one learner's MCQ answer set for one course against the canonical
answer key and returns a scored GradeResult.

---------------------------------------------------------------------------
Grading rules
---------------------------------------------------------------------------
  mcq_score = 100 × matched / total_mcqs_in_course

  • A submission matches when its text equals the canonical answer
    (the option flagged is_correct) exactly.  No trimming, no case folding.
  • Duplicate submissions for one mcq_id: the last one wins.
  • Unanswered MCQs count as not matched.
  • A submission for an mcq_id outside the course (or one that no longer
    exists) is excluded and reported as a ForeignQuestion warning.
  • An MCQ of the course with no answer key cannot be matched and is
    reported as a MissingAnswerKey warning.
  • A course with zero MCQs raises EmptyAssessment.

---------------------------------------------------------------------------
Catalog contract
---------------------------------------------------------------------------
  get_mcq(mcq_id)            → MCQ | None
  get_correct_answer(mcq_id) → str | None
  get_mcq_count(course_id)   → int

  Database implements all three.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from eduroom_engine.errors import EmptyAssessment
from eduroom_engine.models import MCQ

logger = logging.getLogger(__name__)

FOREIGN_QUESTION   = "ForeignQuestion"
MISSING_ANSWER_KEY = "MissingAnswerKey"


class AnswerCatalog(Protocol):
    def get_mcq(self, mcq_id: int) -> Optional[MCQ]: ...
    def get_correct_answer(self, mcq_id: int) -> Optional[str]: ...
    def get_mcq_count(self, course_id: int) -> int: ...


# ─── Result models ───────────────────────────────────────────────────────────

@dataclass
class GradingWarning:
    """A non-fatal problem found while grading."""
    code:    str     # FOREIGN_QUESTION | MISSING_ANSWER_KEY
    mcq_id:  int
    message: str


@dataclass
class AnswerFeedback:
    """Per-question result for one accepted submission."""
    mcq_id:       int
    submitted:    str
    correct:      bool


@dataclass
class GradeResult:
    """Scored outcome of one grading call."""
    user_id:       int
    course_id:     int
    mcq_score:     float
    matched_count: int
    total_count:   int
    feedback:      list[AnswerFeedback] = field(default_factory=list)
    warnings:      list[GradingWarning] = field(default_factory=list)

    @property
    def foreign_mcq_ids(self) -> list[int]:
        return [w.mcq_id for w in self.warnings if w.code == FOREIGN_QUESTION]


# ─── Grader ──────────────────────────────────────────────────────────────────

class AnswerGrader:
    """
    Stateless grader over an injected answer catalog.

    Usage::

        grader = AnswerGrader(db)
        result = grader.grade(course_id, user_id, [(mcq_id, "answer"), ...])
    """

    def __init__(self, catalog: AnswerCatalog):
        self.catalog = catalog

    def grade(
        self,
        course_id: int,
        user_id: int,
        submitted_answers: Iterable[tuple[int, str]],
    ) -> GradeResult:
        total = self.catalog.get_mcq_count(course_id)
        if total <= 0:
            raise EmptyAssessment(course_id)

        # Last occurrence wins; dict keeps first-seen order for feedback
        latest: dict[int, str] = {}
        for mcq_id, answer_text in submitted_answers:
            latest[mcq_id] = answer_text

        warnings: list[GradingWarning] = []
        feedback: list[AnswerFeedback] = []
        matched = 0

        for mcq_id, answer_text in latest.items():
            mcq = self.catalog.get_mcq(mcq_id)
            if mcq is None or mcq.course_id != course_id:
                logger.warning(
                    "User %s submitted mcq %s which is not part of course %s",
                    user_id, mcq_id, course_id,
                )
                warnings.append(GradingWarning(
                    code=FOREIGN_QUESTION,
                    mcq_id=mcq_id,
                    message=f"MCQ {mcq_id} does not belong to course {course_id}; excluded.",
                ))
                continue

            canonical = self.catalog.get_correct_answer(mcq_id)
            if canonical is None:
                warnings.append(GradingWarning(
                    code=MISSING_ANSWER_KEY,
                    mcq_id=mcq_id,
                    message=f"MCQ {mcq_id} has no correct answer configured; scored as wrong.",
                ))

            is_correct = canonical is not None and answer_text == canonical
            matched += int(is_correct)
            feedback.append(AnswerFeedback(mcq_id=mcq_id, submitted=answer_text, correct=is_correct))

        # Guard against a catalog whose count disagrees with its rows
        matched = min(matched, total)
        score = 100.0 * matched / total

        logger.debug(
            "Graded user %s course %s: %d/%d correct (%.2f%%), %d warning(s)",
            user_id, course_id, matched, total, score, len(warnings),
        )
        return GradeResult(
            user_id=user_id,
            course_id=course_id,
            mcq_score=score,
            matched_count=matched,
            total_count=total,
            feedback=feedback,
            warnings=warnings,
        )
