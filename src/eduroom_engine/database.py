"""
eduroom_engine/database.py — SQLite persistence layer
=====================================================
Stores the course catalog slice the engine reads (MCQs, answer keys, case
studies), the per-(user, course) completion records it owns, and the
incentive schedules of team managers.

Design decisions
----------------
- **Explicit schema registration** — `init_db()` creates every table,
  foreign key and unique index once at startup.  Nothing is wired lazily;
  the engine never relies on cascading deletes and treats a dangling
  reference as a failed lookup.
- **WAL journal mode** — concurrent dispatch workers read while one writer
  commits.
- **Connection per call** — each public method opens, commits and closes
  its own connection, so a `Database` instance is safe to share between
  worker threads.
- **Compare-and-set on certificate_sent** — `mark_certificate_sent()` is a
  conditional UPDATE; exactly one caller ever sees it succeed.

Tables (see init_db for the full CREATE TABLE)
----------------------------------------------
  learners, courses, team_managers         lookup rows (owned elsewhere)
  mcqs, mcq_answers, case_studies          course assessment catalog
  user_course_completions                  UNIQUE (user_id, course_id)
  manager_ranges                           UNIQUE team_manager_id, JSON tiers
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

from eduroom_engine.models import (
    MCQ,
    CaseStudy,
    Course,
    Learner,
    ManagerRanges,
    UserCourseCompletion,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS learners (
    id      INTEGER PRIMARY KEY,
    name    TEXT NOT NULL,
    email   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS courses (
    id      INTEGER PRIMARY KEY,
    title   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS team_managers (
    id      INTEGER PRIMARY KEY,
    name    TEXT NOT NULL,
    email   TEXT
);
CREATE TABLE IF NOT EXISTS mcqs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id       INTEGER NOT NULL REFERENCES learners(id) ON DELETE RESTRICT,
    course_id     INTEGER NOT NULL REFERENCES courses(id)  ON DELETE RESTRICT,
    question_text TEXT    NOT NULL,
    serial_no     INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS mcq_answers (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL REFERENCES learners(id) ON DELETE RESTRICT,
    course_id   INTEGER NOT NULL REFERENCES courses(id)  ON DELETE RESTRICT,
    mcq_id      INTEGER NOT NULL REFERENCES mcqs(id)     ON DELETE RESTRICT,
    answer_text TEXT    NOT NULL,
    is_correct  INTEGER NOT NULL DEFAULT 0
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_mcq_answers_one_correct
    ON mcq_answers (mcq_id) WHERE is_correct = 1;
CREATE TABLE IF NOT EXISTS case_studies (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    course_id         INTEGER NOT NULL REFERENCES courses(id) ON DELETE RESTRICT,
    problem_statement TEXT    NOT NULL,
    answer_keywords   TEXT
);
CREATE TABLE IF NOT EXISTS user_course_completions (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id             INTEGER NOT NULL REFERENCES learners(id) ON DELETE RESTRICT,
    course_id           INTEGER NOT NULL REFERENCES courses(id)  ON DELETE RESTRICT,
    mcq_score           REAL,
    case_study_score    REAL,
    percentage          REAL,
    certificate_sent    INTEGER NOT NULL DEFAULT 0,
    completion_date     TEXT,
    certificate_sent_at TEXT,
    created_at          TEXT DEFAULT (datetime('now')),
    updated_at          TEXT DEFAULT (datetime('now')),
    UNIQUE (user_id, course_id)
);
CREATE TABLE IF NOT EXISTS manager_ranges (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    team_manager_id   INTEGER NOT NULL UNIQUE
                      REFERENCES team_managers(id) ON DELETE RESTRICT,
    incentive_amounts TEXT,
    deduction_amounts TEXT,
    created_at        TEXT DEFAULT (datetime('now')),
    updated_at        TEXT DEFAULT (datetime('now'))
);
"""


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_completion(row: sqlite3.Row) -> UserCourseCompletion:
    return UserCourseCompletion(
        user_id             = row["user_id"],
        course_id           = row["course_id"],
        mcq_score           = row["mcq_score"],
        case_study_score    = row["case_study_score"],
        percentage          = row["percentage"],
        certificate_sent    = bool(row["certificate_sent"]),
        completion_date     = _parse_ts(row["completion_date"]),
        certificate_sent_at = _parse_ts(row["certificate_sent_at"]),
    )


class Database:
    """SQLite-backed catalog, completion store and schedule store."""

    def __init__(self, path: str):
        self.path = str(path)

    def _get_conn(self) -> sqlite3.Connection:
        """Return a connection with row_factory and foreign keys enabled."""
        conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self) -> None:
        """Create tables, foreign keys and unique indexes if they don't exist."""
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        conn.commit()
        conn.close()
        logger.debug("Schema registered at %s", self.path)

    # ─── Lookup rows ──────────────────────────────────────────────────────────

    def add_learner(self, learner_id: int, name: str, email: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT INTO learners (id, name, email) VALUES (?, ?, ?)",
            (learner_id, name, email),
        )
        conn.commit()
        conn.close()

    def add_course(self, course_id: int, title: str) -> None:
        conn = self._get_conn()
        conn.execute("INSERT INTO courses (id, title) VALUES (?, ?)", (course_id, title))
        conn.commit()
        conn.close()

    def add_team_manager(self, manager_id: int, name: str, email: str = "") -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT INTO team_managers (id, name, email) VALUES (?, ?, ?)",
            (manager_id, name, email),
        )
        conn.commit()
        conn.close()

    def get_learner(self, user_id: int) -> Optional[Learner]:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM learners WHERE id = ?", (user_id,)).fetchone()
        conn.close()
        if row is None:
            return None
        return Learner(id=row["id"], name=row["name"], email=row["email"])

    def get_course(self, course_id: int) -> Optional[Course]:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM courses WHERE id = ?", (course_id,)).fetchone()
        conn.close()
        if row is None:
            return None
        return Course(id=row["id"], title=row["title"])

    # ─── Assessment catalog ───────────────────────────────────────────────────

    def add_mcq(self, user_id: int, course_id: int, question_text: str, serial_no: int) -> int:
        """Insert an MCQ and return its id."""
        conn = self._get_conn()
        cur = conn.execute(
            "INSERT INTO mcqs (user_id, course_id, question_text, serial_no) VALUES (?, ?, ?, ?)",
            (user_id, course_id, question_text, serial_no),
        )
        conn.commit()
        mcq_id = cur.lastrowid
        conn.close()
        return mcq_id

    def add_mcq_answer(self, user_id: int, course_id: int, mcq_id: int,
                       answer_text: str, is_correct: bool = False) -> int:
        """Insert an answer option; a second correct option for the same MCQ is rejected."""
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                INSERT INTO mcq_answers (user_id, course_id, mcq_id, answer_text, is_correct)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, course_id, mcq_id, answer_text, int(is_correct)),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def add_case_study(self, course_id: int, problem_statement: str,
                       answer_keywords: list[str]) -> int:
        conn = self._get_conn()
        cur = conn.execute(
            "INSERT INTO case_studies (course_id, problem_statement, answer_keywords) VALUES (?, ?, ?)",
            (course_id, problem_statement, ",".join(answer_keywords)),
        )
        conn.commit()
        cs_id = cur.lastrowid
        conn.close()
        return cs_id

    def get_mcq(self, mcq_id: int) -> Optional[MCQ]:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM mcqs WHERE id = ?", (mcq_id,)).fetchone()
        conn.close()
        if row is None:
            return None
        return MCQ(
            id            = row["id"],
            user_id       = row["user_id"],
            course_id     = row["course_id"],
            question_text = row["question_text"],
            serial_no     = row["serial_no"],
        )

    def get_correct_answer(self, mcq_id: int) -> Optional[str]:
        """Return the canonical answer text for an MCQ, or None if it has no key."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT answer_text FROM mcq_answers WHERE mcq_id = ? AND is_correct = 1",
            (mcq_id,),
        ).fetchone()
        conn.close()
        return row["answer_text"] if row else None

    def get_mcq_count(self, course_id: int) -> int:
        conn = self._get_conn()
        (count,) = conn.execute(
            "SELECT COUNT(*) FROM mcqs WHERE course_id = ?", (course_id,)
        ).fetchone()
        conn.close()
        return count

    def list_case_studies(self, course_id: int) -> list[CaseStudy]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM case_studies WHERE course_id = ? ORDER BY id", (course_id,)
        ).fetchall()
        conn.close()
        return [
            CaseStudy(
                id                = r["id"],
                course_id         = r["course_id"],
                problem_statement = r["problem_statement"],
                answer_keywords   = CaseStudy.split_keywords(r["answer_keywords"]),
            )
            for r in rows
        ]

    # ─── Completion records ───────────────────────────────────────────────────

    def get_completion(self, user_id: int, course_id: int) -> Optional[UserCourseCompletion]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM user_course_completions WHERE user_id = ? AND course_id = ?",
            (user_id, course_id),
        ).fetchone()
        conn.close()
        return _row_to_completion(row) if row else None

    def upsert_completion(
        self,
        user_id: int,
        course_id: int,
        mcq_score: float,
        case_study_score: float,
        percentage: float,
        completion_date: Optional[datetime],
    ) -> UserCourseCompletion:
        """
        Create or overwrite the scores of a completion record in one statement.

        `completion_date` is only written when the row has none yet, and
        `certificate_sent` is never touched here.
        """
        conn = self._get_conn()
        conn.execute(
            """
            INSERT INTO user_course_completions
                (user_id, course_id, mcq_score, case_study_score, percentage, completion_date)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, course_id) DO UPDATE SET
                mcq_score        = excluded.mcq_score,
                case_study_score = excluded.case_study_score,
                percentage       = excluded.percentage,
                completion_date  = COALESCE(user_course_completions.completion_date,
                                            excluded.completion_date),
                updated_at       = datetime('now')
            """,
            (user_id, course_id, mcq_score, case_study_score, percentage, _ts(completion_date)),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM user_course_completions WHERE user_id = ? AND course_id = ?",
            (user_id, course_id),
        ).fetchone()
        conn.close()
        return _row_to_completion(row)

    def mark_certificate_sent(self, user_id: int, course_id: int, sent_at: datetime) -> bool:
        """
        Compare-and-set certificate_sent False → True.

        Returns True only for the single caller whose UPDATE changed the row.
        """
        conn = self._get_conn()
        cur = conn.execute(
            """
            UPDATE user_course_completions SET
                certificate_sent    = 1,
                certificate_sent_at = ?,
                updated_at          = datetime('now')
            WHERE user_id = ? AND course_id = ? AND certificate_sent = 0
            """,
            (_ts(sent_at), user_id, course_id),
        )
        conn.commit()
        won = cur.rowcount == 1
        conn.close()
        return won

    def list_pending_certificates(self, threshold: float,
                                  limit: Optional[int] = None) -> list[UserCourseCompletion]:
        """Eligible-but-unsent records, oldest completion first."""
        sql = """
            SELECT * FROM user_course_completions
            WHERE certificate_sent = 0 AND percentage >= ?
            ORDER BY completion_date, id
        """
        params: tuple = (threshold,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (threshold, limit)
        conn = self._get_conn()
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [_row_to_completion(r) for r in rows]

    # ─── Manager schedules ────────────────────────────────────────────────────

    def save_manager_ranges(self, ranges: ManagerRanges) -> None:
        """Save or replace the single schedule of a team manager."""
        dump = ranges.model_dump()
        conn = self._get_conn()
        conn.execute(
            """
            INSERT INTO manager_ranges (team_manager_id, incentive_amounts, deduction_amounts)
            VALUES (?, ?, ?)
            ON CONFLICT (team_manager_id) DO UPDATE SET
                incentive_amounts = excluded.incentive_amounts,
                deduction_amounts = excluded.deduction_amounts,
                updated_at        = datetime('now')
            """,
            (
                ranges.team_manager_id,
                json.dumps(dump["incentive_amounts"]),
                json.dumps(dump["deduction_amounts"]),
            ),
        )
        conn.commit()
        conn.close()

    def load_manager_ranges(self, team_manager_id: int) -> Optional[ManagerRanges]:
        """Load and validate a manager's schedule; raises InvalidSchedule on bad JSON tiers."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM manager_ranges WHERE team_manager_id = ?", (team_manager_id,)
        ).fetchone()
        conn.close()
        if row is None:
            return None
        return ManagerRanges.load({
            "team_manager_id":   row["team_manager_id"],
            "incentive_amounts": json.loads(row["incentive_amounts"] or "[]"),
            "deduction_amounts": json.loads(row["deduction_amounts"] or "[]"),
        })
