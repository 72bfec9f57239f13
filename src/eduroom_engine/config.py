"""
config.py — Central settings for the EduRoom completion engine
==============================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and fill in your values.

The SMTP transport is only considered configured when SMTP_USER and
SMTP_PASS contain real (non-placeholder) values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "eduroom_engine.db"


# ─── Helpers ────────────────────────────────────────────────────────────────

def _is_placeholder(value: str) -> bool:
    """Return True if the value looks like an unfilled template placeholder."""
    return not value or "<" in value or value.startswith("your-") or value == "PLACEHOLDER"


# ─── Grading ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GradingConfig:
    mcq_weight:              float
    case_study_weight:       float
    pass_threshold:          float   # percentage ≥ threshold → certificate
    case_study_min_keywords: int     # keyword hits for a case study to pass


# ─── Certificate dispatch ────────────────────────────────────────────────────

@dataclass(frozen=True)
class DispatchConfig:
    max_concurrency:  int     # worker pool size for batch dispatch
    notify_timeout_s: float   # upper bound on one notify() call
    attach_pdf:       bool


# ─── SMTP transport ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SmtpConfig:
    host:        str
    port:        int
    user:        str
    password:    str
    sender:      str
    sender_name: str

    @property
    def is_configured(self) -> bool:
        """True when both user and password are real (non-placeholder) values."""
        return (
            bool(self.host)
            and not _is_placeholder(self.user)
            and not _is_placeholder(self.password)
        )


# ─── Persistence ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DatabaseConfig:
    path: str


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    grading:  GradingConfig
    dispatch: DispatchConfig
    smtp:     SmtpConfig
    database: DatabaseConfig

    def status_summary(self) -> dict[str, str]:
        """Return a dict of integration → status badge for operators."""
        def badge(ok: bool) -> str:
            return "🟢 Live" if ok else "⚪ Not configured"

        return {
            "SMTP transport":  badge(self.smtp.is_configured),
            "SQLite database": badge(bool(self.database.path)),
            "PDF attachment":  badge(self.dispatch.attach_pdf),
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    _str   = lambda k, d="": os.getenv(k, d).strip()
    _int   = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _float = lambda k, d=0.0: float(os.getenv(k, str(d)) or d)
    _bool  = lambda k, d=False: os.getenv(k, str(d)).lower() in ("1", "true", "yes")

    user = _str("SMTP_USER")
    return Settings(
        grading=GradingConfig(
            mcq_weight              = _float("MCQ_WEIGHT", 0.5),
            case_study_weight       = _float("CASE_STUDY_WEIGHT", 0.5),
            pass_threshold          = _float("PASS_THRESHOLD", 60.0),
            case_study_min_keywords = _int("CASE_STUDY_MIN_KEYWORDS", 3),
        ),
        dispatch=DispatchConfig(
            max_concurrency  = max(1, _int("DISPATCH_MAX_CONCURRENCY", 4)),
            notify_timeout_s = _float("NOTIFY_TIMEOUT_SECONDS", 15.0),
            attach_pdf       = _bool("DISPATCH_ATTACH_PDF", False),
        ),
        smtp=SmtpConfig(
            host        = _str("SMTP_HOST", "smtpout.secureserver.net"),
            port        = _int("SMTP_PORT", 465),
            user        = user,
            password    = _str("SMTP_PASS"),
            sender      = _str("SMTP_FROM", user),
            sender_name = _str("SMTP_SENDER_NAME", "EduRoom"),
        ),
        database=DatabaseConfig(
            path = _str("EDUROOM_DB_PATH") or str(_DEFAULT_DB_PATH),
        ),
    )
