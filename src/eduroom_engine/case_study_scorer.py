"""
case_study_scorer.py — Keyword-based case study scoring (Stage 1b)
==================================================================
Each case study carries a list of answer keywords.  A learner's written
response passes when enough distinct keywords appear in it
(case-insensitive substring match):

    required = min(min_keyword_hits, len(keywords))
    passed   = hits >= required           (no keywords → never passes)

    case_study_score = 100 × passed_count / total_case_studies

The score feeds CompletionAggregator alongside the MCQ score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from eduroom_engine.errors import EmptyAssessment
from eduroom_engine.models import CaseStudy

logger = logging.getLogger(__name__)


@dataclass
class CaseStudyFeedback:
    case_study_id:    int
    matched_keywords: list[str]
    required_hits:    int
    passed:           bool


@dataclass
class CaseStudyResult:
    course_id:        int
    case_study_score: float
    passed_count:     int
    total_count:      int
    feedback:         list[CaseStudyFeedback] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return self.passed_count == self.total_count


class CaseStudyScorer:
    """Scores free-text case study responses by keyword coverage."""

    DEFAULT_MIN_KEYWORD_HITS: int = 3

    def __init__(self, min_keyword_hits: int = DEFAULT_MIN_KEYWORD_HITS):
        if min_keyword_hits < 1:
            raise ValueError("min_keyword_hits must be at least 1")
        self.min_keyword_hits = min_keyword_hits

    def score(
        self,
        course_id: int,
        case_studies: Sequence[CaseStudy],
        responses: Mapping[int, str],
    ) -> CaseStudyResult:
        """
        Parameters
        ----------
        case_studies : the course's case studies
        responses    : case_study_id → learner's written answer;
                       missing entries count as not passed
        """
        if not case_studies:
            raise EmptyAssessment(course_id, kind="case studies")

        feedback: list[CaseStudyFeedback] = []
        for cs in case_studies:
            text = (responses.get(cs.id) or "").lower()
            keywords = list(dict.fromkeys(k.lower() for k in cs.answer_keywords))
            matched = [k for k in keywords if k in text]
            required = min(self.min_keyword_hits, len(keywords))
            passed = bool(keywords) and bool(text) and len(matched) >= required
            feedback.append(CaseStudyFeedback(
                case_study_id=cs.id,
                matched_keywords=matched,
                required_hits=required,
                passed=passed,
            ))

        passed_count = sum(1 for f in feedback if f.passed)
        score = 100.0 * passed_count / len(case_studies)
        logger.debug(
            "Case studies for course %s: %d/%d passed (%.2f%%)",
            course_id, passed_count, len(case_studies), score,
        )
        return CaseStudyResult(
            course_id=course_id,
            case_study_score=score,
            passed_count=passed_count,
            total_count=len(case_studies),
            feedback=feedback,
        )
