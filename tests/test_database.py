"""
Tests for the SQLite persistence layer (database.py).
Schema constraints, completion upserts, certificate compare-and-set and
manager schedule storage.
"""
import json
import math
import sqlite3
from datetime import datetime

import pytest
from factories import AUTHOR_ID, COURSE_ID, LEARNER_ID, OTHER_COURSE_ID, tiers

from eduroom_engine.errors import InvalidSchedule
from eduroom_engine.models import ManagerRanges

WHEN = datetime(2025, 9, 14, 10, 0, 0)


def _tables(db):
    conn = db._get_conn()
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    conn.close()
    return {r["name"] for r in rows}


class TestSchema:
    def test_tables_created(self, db):
        assert {
            "learners", "courses", "team_managers", "mcqs", "mcq_answers",
            "case_studies", "user_course_completions", "manager_ranges",
        } <= _tables(db)

    def test_init_db_idempotent(self, db):
        db.init_db()
        assert db.get_learner(LEARNER_ID).name == "Asha Verma"

    def test_one_correct_answer_per_mcq(self, db):
        mcq_id = db.add_mcq(AUTHOR_ID, COURSE_ID, "Pick one", 1)
        db.add_mcq_answer(AUTHOR_ID, COURSE_ID, mcq_id, "Yes", is_correct=True)
        db.add_mcq_answer(AUTHOR_ID, COURSE_ID, mcq_id, "No")
        with pytest.raises(sqlite3.IntegrityError):
            db.add_mcq_answer(AUTHOR_ID, COURSE_ID, mcq_id, "Also yes", is_correct=True)

    def test_foreign_key_enforced(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.add_mcq(AUTHOR_ID, 12345, "Orphan", 1)

    def test_unknown_lookups_return_none(self, db):
        assert db.get_learner(404) is None
        assert db.get_course(404) is None
        assert db.get_mcq(404) is None
        assert db.get_correct_answer(404) is None
        assert db.get_completion(LEARNER_ID, COURSE_ID) is None


class TestCatalog:
    def test_seeded_answer_key(self, db, answer_key):
        for mcq_id, correct in answer_key.items():
            assert db.get_correct_answer(mcq_id) == correct
        assert db.get_mcq_count(COURSE_ID) == 4
        assert db.get_mcq_count(OTHER_COURSE_ID) == 0

    def test_mcq_without_key(self, db):
        mcq_id = db.add_mcq(AUTHOR_ID, COURSE_ID, "No key", 1)
        db.add_mcq_answer(AUTHOR_ID, COURSE_ID, mcq_id, "Maybe")
        assert db.get_correct_answer(mcq_id) is None


class TestCompletionUpsert:
    def test_insert_then_update_single_row(self, db):
        db.upsert_completion(LEARNER_ID, COURSE_ID, 50, 50, 50, None)
        db.upsert_completion(LEARNER_ID, COURSE_ID, 80, 70, 75, WHEN)
        conn = db._get_conn()
        (count,) = conn.execute("SELECT COUNT(*) FROM user_course_completions").fetchone()
        conn.close()
        assert count == 1
        rec = db.get_completion(LEARNER_ID, COURSE_ID)
        assert (rec.mcq_score, rec.case_study_score, rec.percentage) == (80, 70, 75)
        assert rec.completion_date == WHEN

    def test_completion_date_kept(self, db):
        db.upsert_completion(LEARNER_ID, COURSE_ID, 90, 90, 90, WHEN)
        rec = db.upsert_completion(LEARNER_ID, COURSE_ID, 95, 95, 95, datetime(2026, 1, 1))
        assert rec.completion_date == WHEN

    def test_completion_date_not_cleared(self, db):
        db.upsert_completion(LEARNER_ID, COURSE_ID, 90, 90, 90, WHEN)
        rec = db.upsert_completion(LEARNER_ID, COURSE_ID, 10, 10, 10, None)
        assert rec.completion_date == WHEN

    def test_upsert_keeps_certificate_flag(self, db):
        db.upsert_completion(LEARNER_ID, COURSE_ID, 90, 90, 90, WHEN)
        db.mark_certificate_sent(LEARNER_ID, COURSE_ID, WHEN)
        rec = db.upsert_completion(LEARNER_ID, COURSE_ID, 40, 40, 40, None)
        assert rec.certificate_sent is True
        assert rec.certificate_sent_at == WHEN


class TestCertificateCompareAndSet:
    def test_first_wins_second_loses(self, db):
        db.upsert_completion(LEARNER_ID, COURSE_ID, 90, 90, 90, WHEN)
        assert db.mark_certificate_sent(LEARNER_ID, COURSE_ID, WHEN) is True
        assert db.mark_certificate_sent(LEARNER_ID, COURSE_ID, datetime.now()) is False
        assert db.get_completion(LEARNER_ID, COURSE_ID).certificate_sent_at == WHEN

    def test_missing_record(self, db):
        assert db.mark_certificate_sent(LEARNER_ID, COURSE_ID, WHEN) is False

    def test_pending_respects_threshold_and_limit(self, db):
        db.add_learner(2, "B", "b@example.com")
        db.add_learner(3, "C", "c@example.com")
        db.upsert_completion(LEARNER_ID, COURSE_ID, 90, 90, 90, WHEN)
        db.upsert_completion(2, COURSE_ID, 70, 70, 70, datetime(2025, 9, 15))
        db.upsert_completion(3, COURSE_ID, 30, 30, 30, None)
        pending = db.list_pending_certificates(60.0)
        assert [r.user_id for r in pending] == [LEARNER_ID, 2]
        assert len(db.list_pending_certificates(60.0, limit=1)) == 1
        assert [r.user_id for r in db.list_pending_certificates(80.0)] == [LEARNER_ID]


class TestManagerRanges:
    @pytest.fixture
    def manager(self, db):
        db.add_team_manager(7, "Ravi", "ravi@example.com")
        return 7

    def test_round_trip(self, db, manager):
        ranges = ManagerRanges(
            team_manager_id=manager,
            incentive_amounts=tiers((0, 999, 100), (1000, 1999, 250)),
            deduction_amounts=tiers((0, 0, 50)),
        )
        db.save_manager_ranges(ranges)
        loaded = db.load_manager_ranges(manager)
        assert loaded == ranges

    def test_open_slab_round_trip(self, db, manager):
        db.save_manager_ranges(ManagerRanges.from_slab_map(manager, {"1-10": 5, "46+": 9}))
        loaded = db.load_manager_ranges(manager)
        assert math.isinf(loaded.incentive_amounts[-1].max)

    def test_save_replaces(self, db, manager):
        db.save_manager_ranges(ManagerRanges(team_manager_id=manager,
                                             incentive_amounts=tiers((0, 10, 1))))
        db.save_manager_ranges(ManagerRanges(team_manager_id=manager,
                                             incentive_amounts=tiers((0, 10, 2))))
        assert db.load_manager_ranges(manager).incentive_amounts[0].amount == 2

    def test_missing_schedule(self, db):
        assert db.load_manager_ranges(404) is None

    def test_corrupt_schedule_rejected_on_load(self, db, manager):
        overlapping = [{"min": 0, "max": 50, "amount": 1}, {"min": 20, "max": 80, "amount": 2}]
        conn = db._get_conn()
        conn.execute(
            "INSERT INTO manager_ranges (team_manager_id, incentive_amounts) VALUES (?, ?)",
            (manager, json.dumps(overlapping)),
        )
        conn.commit()
        conn.close()
        with pytest.raises(InvalidSchedule):
            db.load_manager_ranges(manager)
