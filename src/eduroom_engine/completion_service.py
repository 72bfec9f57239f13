"""
completion_service.py — Course completion pipeline
==================================================
Runs the one-way pipeline for a single (user, course):

  AnswerGrader.grade  →  CompletionAggregator.aggregate
                      →  CertificationDispatcher.dispatch   (only when due)

EmptyAssessment / InvalidWeights / InvalidScore propagate to the caller and
leave the stored record untouched.  `build_service()` wires the production
collaborators from Settings once at process start; close the returned
service (or use it as a context manager) at shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol

from eduroom_engine.answer_grader import AnswerGrader, GradeResult
from eduroom_engine.case_study_scorer import CaseStudyResult, CaseStudyScorer
from eduroom_engine.certification_dispatcher import CertificationDispatcher, DispatchOutcome
from eduroom_engine.completion_aggregator import CompletionAggregator, CompletionResult
from eduroom_engine.config import Settings
from eduroom_engine.database import Database
from eduroom_engine.models import CaseStudy, CompletionWeights
from eduroom_engine.notifier import SmtpNotifier

logger = logging.getLogger(__name__)


class CaseStudyCatalog(Protocol):
    def list_case_studies(self, course_id: int) -> list[CaseStudy]: ...


@dataclass
class CompletionReport:
    grade:      GradeResult
    completion: CompletionResult
    dispatch:   Optional[DispatchOutcome] = None   # None when no certificate was due
    case_study: Optional[CaseStudyResult] = None


class CourseCompletionService:

    def __init__(
        self,
        grader: AnswerGrader,
        aggregator: CompletionAggregator,
        dispatcher: CertificationDispatcher,
        weights: CompletionWeights,
        case_studies: Optional[CaseStudyCatalog] = None,
        case_study_scorer: Optional[CaseStudyScorer] = None,
    ):
        self.grader = grader
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.weights = weights
        self.case_studies = case_studies
        self.case_study_scorer = case_study_scorer or CaseStudyScorer()

    def close(self) -> None:
        """Release the dispatcher's notify pool."""
        self.dispatcher.close()

    def __enter__(self) -> "CourseCompletionService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def complete(
        self,
        user_id: int,
        course_id: int,
        submitted_answers: Iterable[tuple[int, str]],
        case_study_score: float,
    ) -> CompletionReport:
        grade = self.grader.grade(course_id, user_id, submitted_answers)
        completion = self.aggregator.aggregate(
            user_id, course_id, grade.mcq_score, case_study_score, self.weights,
        )
        outcome = self.dispatcher.dispatch(completion) if completion.dispatch_required else None
        if outcome is not None and outcome.retryable:
            logger.warning("Certificate for user=%s course=%s queued for retry", user_id, course_id)
        return CompletionReport(grade=grade, completion=completion, dispatch=outcome)

    def complete_with_responses(
        self,
        user_id: int,
        course_id: int,
        submitted_answers: Iterable[tuple[int, str]],
        case_study_responses: Mapping[int, str],
    ) -> CompletionReport:
        """Score the written case study responses first, then run complete()."""
        if self.case_studies is None:
            raise RuntimeError("No case study catalog configured for this service.")
        cs = self.case_study_scorer.score(
            course_id, self.case_studies.list_case_studies(course_id), case_study_responses,
        )
        report = self.complete(user_id, course_id, submitted_answers, cs.case_study_score)
        report.case_study = cs
        return report


def build_service(settings: Settings) -> CourseCompletionService:
    """Construct the production pipeline; registers the schema as a side effect."""
    db = Database(settings.database.path)
    db.init_db()
    notifier = SmtpNotifier(settings.smtp, timeout=settings.dispatch.notify_timeout_s)
    dispatcher = CertificationDispatcher(
        notifier, db, db,
        pass_threshold   = settings.grading.pass_threshold,
        notify_timeout_s = settings.dispatch.notify_timeout_s,
        max_concurrency  = settings.dispatch.max_concurrency,
        attach_pdf       = settings.dispatch.attach_pdf,
    )
    return CourseCompletionService(
        grader     = AnswerGrader(db),
        aggregator = CompletionAggregator(db, pass_threshold=settings.grading.pass_threshold),
        dispatcher = dispatcher,
        weights    = CompletionWeights(settings.grading.mcq_weight,
                                       settings.grading.case_study_weight),
        case_studies      = db,
        case_study_scorer = CaseStudyScorer(settings.grading.case_study_min_keywords),
    )
