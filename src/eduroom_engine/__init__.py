"""
eduroom_engine — Assessment Completion & Incentive Engine
=========================================================
Grading, completion aggregation, certificate dispatch and manager incentive
resolution for the EduRoom internship platform.

Module map
----------
  models.py                    Dataclasses and pydantic models for MCQs,
                               completions, case studies and incentive tiers.
  errors.py                    Engine exception hierarchy.
  config.py                    Settings loaded from .env / environment.
  database.py                  SQLite persistence + schema registration.
  certificate.py               Certificate e-mail body and PDF rendering.
  notifier.py                  SMTP implementation of the notify contract.

  answer_grader.py             Stage 1: MCQ answer set → mcq_score.
  case_study_scorer.py         Stage 1b: keyword-matched case study score.
  completion_aggregator.py     Stage 2: weighted percentage + eligibility.
  certification_dispatcher.py  Stage 3: at-most-once certificate delivery.
  completion_service.py        Stages 1 → 2 → 3 for one (user, course).
  incentive_resolver.py        Manager incentive / deduction tiers.

Pipeline order
--------------
  AnswerGrader (+ CaseStudyScorer) → CompletionAggregator
  → CertificationDispatcher   (one-way, per user/course)

  IncentiveCalculator / resolve()  (independent, on demand per manager)
"""
__version__ = "0.1.0"
