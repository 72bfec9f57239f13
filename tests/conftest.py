"""
Shared pytest fixtures for the eduroom_engine test suite.
Every fixture uses a throwaway SQLite file and a recording notifier;
no SMTP server is ever contacted.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Never pick up real SMTP credentials during tests
os.environ["SMTP_USER"] = "<placeholder>"
os.environ["SMTP_PASS"] = "<placeholder>"


import pytest

from factories import make_db, make_catalog, seed_mcqs, RecordingNotifier

from eduroom_engine.answer_grader import AnswerGrader
from eduroom_engine.certification_dispatcher import CertificationDispatcher
from eduroom_engine.completion_aggregator import CompletionAggregator


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def db(tmp_path):
    return make_db(tmp_path)


@pytest.fixture
def answer_key(db):
    return seed_mcqs(db, n_questions=4)


@pytest.fixture
def catalog():
    return make_catalog(n_questions=4)


@pytest.fixture
def grader(catalog):
    return AnswerGrader(catalog)


@pytest.fixture
def aggregator(db):
    return CompletionAggregator(db, pass_threshold=60.0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier, db):
    d = CertificationDispatcher(notifier, db, db, pass_threshold=60.0,
                                notify_timeout_s=5.0, max_concurrency=4)
    yield d
    d.close()
