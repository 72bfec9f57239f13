"""
Smoke tests for config / settings loading.
Run: python -m pytest tests/ -v
"""
import pytest
from factories import LEARNER_ID  # noqa: F401  (puts src/ on sys.path)

from eduroom_engine.config import SmtpConfig, _is_placeholder, get_settings


class TestIsPlaceholder:
    def test_empty_string_is_placeholder(self):
        assert _is_placeholder("")

    def test_angle_bracket_is_placeholder(self):
        assert _is_placeholder("<your-password>")

    def test_your_prefix_is_placeholder(self):
        assert _is_placeholder("your-mailbox@example.com")

    def test_literal_PLACEHOLDER_is_placeholder(self):
        assert _is_placeholder("PLACEHOLDER")

    def test_real_value_not_placeholder(self):
        assert not _is_placeholder("certificates@eduroom.example")


class TestSettingsLoading:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for key in ("MCQ_WEIGHT", "CASE_STUDY_WEIGHT", "PASS_THRESHOLD",
                    "CASE_STUDY_MIN_KEYWORDS", "DISPATCH_MAX_CONCURRENCY",
                    "NOTIFY_TIMEOUT_SECONDS", "DISPATCH_ATTACH_PDF",
                    "SMTP_HOST", "SMTP_PORT", "SMTP_FROM", "SMTP_SENDER_NAME",
                    "EDUROOM_DB_PATH"):
            monkeypatch.delenv(key, raising=False)

    def test_defaults(self):
        s = get_settings()
        assert (s.grading.mcq_weight, s.grading.case_study_weight) == (0.5, 0.5)
        assert s.grading.pass_threshold == 60.0
        assert s.grading.case_study_min_keywords == 3
        assert s.dispatch.max_concurrency == 4
        assert s.dispatch.notify_timeout_s == 15.0
        assert s.dispatch.attach_pdf is False
        assert s.smtp.port == 465
        assert s.database.path.endswith("eduroom_engine.db")

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("PASS_THRESHOLD", "75")
        monkeypatch.setenv("MCQ_WEIGHT", "0.7")
        monkeypatch.setenv("CASE_STUDY_WEIGHT", "0.3")
        monkeypatch.setenv("DISPATCH_ATTACH_PDF", "true")
        monkeypatch.setenv("EDUROOM_DB_PATH", "/tmp/other.db")
        s = get_settings()
        assert s.grading.pass_threshold == 75.0
        assert s.grading.mcq_weight == 0.7
        assert s.dispatch.attach_pdf is True
        assert s.database.path == "/tmp/other.db"

    def test_concurrency_floor(self, monkeypatch):
        monkeypatch.setenv("DISPATCH_MAX_CONCURRENCY", "0")
        assert get_settings().dispatch.max_concurrency == 1

    def test_smtp_not_configured_with_placeholders(self):
        assert not get_settings().smtp.is_configured

    def test_sender_defaults_to_user(self, monkeypatch):
        monkeypatch.setenv("SMTP_USER", "mailer@eduroom.example")
        assert get_settings().smtp.sender == "mailer@eduroom.example"

    def test_status_summary_keys(self):
        summary = get_settings().status_summary()
        assert set(summary) == {"SMTP transport", "SQLite database", "PDF attachment"}
        assert "Not configured" in summary["SMTP transport"]


class TestSmtpConfig:
    def test_configured_with_real_values(self):
        cfg = SmtpConfig("smtp.example.com", 587, "u@example.com", "s3cret", "u@example.com", "")
        assert cfg.is_configured

    def test_missing_host(self):
        cfg = SmtpConfig("", 587, "u@example.com", "s3cret", "u@example.com", "")
        assert not cfg.is_configured
