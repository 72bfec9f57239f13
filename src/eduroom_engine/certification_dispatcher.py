"""
certification_dispatcher.py — Certification Dispatcher (Stage 3)
================================================================
Delivers the completion certificate for an eligible (user, course) and
flips `certificate_sent` exactly once.

---------------------------------------------------------------------------
dispatch(result) → DispatchOutcome
---------------------------------------------------------------------------
  1. percentage < threshold                     → NOT_ELIGIBLE (no notify)
  2. take the in-process lock for (user, course) and re-read the record
  3. stored certificate_sent already True       → ALREADY_SENT (no notify)
  4. notify(recipient, subject, body) with a timeout
       failure / exception / timeout            → RETRYABLE, flag untouched
  5. compare-and-set certificate_sent False → True
       won                                      → SENT
       lost (another process committed first)   → ALREADY_SENT

  The per-key lock keeps concurrent attempts in this process from calling
  notify twice; the conditional UPDATE is the commit point across processes.
  Retry scheduling (backoff) belongs to the caller.

---------------------------------------------------------------------------
dispatch_pending(limit, cancel_event) → BatchReport
---------------------------------------------------------------------------
  Pulls eligible-but-unsent records and dispatches them on a
  ThreadPoolExecutor bounded by max_concurrency.  Once cancel_event is set,
  records that have not started are reported CANCELLED; a record already
  in flight runs to its commit point.  An unexpected error on one record
  (locked database, PDF rendering) is reported RETRYABLE for that record
  only; the rest of the batch is unaffected.

  The dispatcher owns a notify thread pool: call close() (or use it as a
  context manager) at shutdown.  Attempts made after close() are RETRYABLE.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol

from eduroom_engine.certificate import (
    PDF_FILENAME,
    generate_certificate_pdf,
    render_certificate_message,
)
from eduroom_engine.completion_aggregator import CompletionResult
from eduroom_engine.errors import RecordNotFound
from eduroom_engine.models import Course, Learner, UserCourseCompletion

logger = logging.getLogger(__name__)


class CertificateStore(Protocol):
    def get_completion(self, user_id: int, course_id: int) -> Optional[UserCourseCompletion]: ...
    def mark_certificate_sent(self, user_id: int, course_id: int, sent_at: datetime) -> bool: ...
    def list_pending_certificates(self, threshold: float,
                                  limit: Optional[int] = None) -> list[UserCourseCompletion]: ...


class Directory(Protocol):
    def get_learner(self, user_id: int) -> Optional[Learner]: ...
    def get_course(self, course_id: int) -> Optional[Course]: ...


# ─── Outcomes ────────────────────────────────────────────────────────────────

class DispatchStatus(str, Enum):
    SENT         = "sent"
    ALREADY_SENT = "already_sent"   # duplicate suppressed; success no-op
    RETRYABLE    = "retryable"      # transport failure or timeout
    NOT_ELIGIBLE = "not_eligible"
    CANCELLED    = "cancelled"      # batch cancelled before this record started


@dataclass
class DispatchOutcome:
    user_id:       int
    course_id:     int
    status:        DispatchStatus
    detail:        str = ""
    dispatched_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        """True when the certificate is (now or already) delivered."""
        return self.status in (DispatchStatus.SENT, DispatchStatus.ALREADY_SENT)

    @property
    def retryable(self) -> bool:
        return self.status is DispatchStatus.RETRYABLE


@dataclass
class BatchReport:
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def counts(self) -> dict[DispatchStatus, int]:
        c = Counter(o.status for o in self.outcomes)
        return {s: c.get(s, 0) for s in DispatchStatus}

    @property
    def retry_keys(self) -> list[tuple[int, int]]:
        return [(o.user_id, o.course_id) for o in self.outcomes if o.retryable]

    def summary(self) -> str:
        return ", ".join(f"{s.value}={n}" for s, n in self.counts().items() if n)


# ─── Dispatcher ──────────────────────────────────────────────────────────────

class CertificationDispatcher:
    """
    Usage::

        notifier   = SmtpNotifier(settings.smtp)
        dispatcher = CertificationDispatcher(notifier, db, db, pass_threshold=60.0)
        outcome    = dispatcher.dispatch(result)
        if outcome.retryable:
            schedule_retry(outcome)
    """

    def __init__(
        self,
        notify: Callable[..., Any],
        store: CertificateStore,
        directory: Directory,
        pass_threshold: float = 60.0,
        notify_timeout_s: float = 15.0,
        max_concurrency: int = 4,
        attach_pdf: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.notify = notify
        self.store = store
        self.directory = directory
        self.pass_threshold = pass_threshold
        self.notify_timeout_s = notify_timeout_s
        self.max_concurrency = max(1, max_concurrency)
        self.attach_pdf = attach_pdf
        self.clock = clock

        # key → [lock, holders]; an entry lives only while someone holds or waits on it
        self._locks_guard = threading.Lock()
        self._locks: dict[tuple[int, int], list] = {}
        self._notify_pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="notify",
        )

    def close(self) -> None:
        """Stop the notify pool; later dispatch attempts report RETRYABLE."""
        self._notify_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "CertificationDispatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── helpers ──────────────────────────────────────────────────────────────

    @contextmanager
    def _key_lock(self, key: tuple[int, int]) -> Iterator[None]:
        """Serialize work on one (user, course); the entry is dropped by its last holder."""
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _call_notify(self, recipient: str, subject: str, body: str,
                     **extras: Any) -> tuple[bool, str]:
        """Run notify bounded by the timeout; any failure becomes (False, detail)."""
        future = None
        try:
            future = self._notify_pool.submit(self.notify, recipient, subject, body, **extras)
            outcome = future.result(timeout=self.notify_timeout_s)
            if isinstance(outcome, Mapping):
                return bool(outcome.get("success")), str(outcome.get("detail", ""))
            success, detail = outcome
            return bool(success), str(detail)
        except concurrent.futures.TimeoutError:
            future.cancel()
            return False, f"notify timed out after {self.notify_timeout_s}s"
        except Exception as exc:
            return False, f"notify raised {type(exc).__name__}: {exc}"

    def _resolve_recipient(self, record: UserCourseCompletion) -> tuple[Learner, Course]:
        learner = self.directory.get_learner(record.user_id)
        if learner is None:
            raise RecordNotFound(f"Learner {record.user_id} not found.")
        course = self.directory.get_course(record.course_id)
        if course is None:
            raise RecordNotFound(f"Course {record.course_id} not found.")
        return learner, course

    # ── public API ───────────────────────────────────────────────────────────

    def dispatch(self, result: CompletionResult) -> DispatchOutcome:
        user_id, course_id = result.key

        if result.percentage < self.pass_threshold:
            return DispatchOutcome(
                user_id, course_id, DispatchStatus.NOT_ELIGIBLE,
                detail=f"{result.percentage:.2f}% is below {self.pass_threshold:.2f}%",
            )

        with self._key_lock(result.key):
            record = self.store.get_completion(user_id, course_id)
            if record is None or record.percentage is None:
                return DispatchOutcome(user_id, course_id, DispatchStatus.NOT_ELIGIBLE,
                                       detail="no stored completion record")
            if record.certificate_sent:
                return DispatchOutcome(user_id, course_id, DispatchStatus.ALREADY_SENT,
                                       dispatched_at=record.certificate_sent_at)
            if record.percentage < self.pass_threshold:
                return DispatchOutcome(
                    user_id, course_id, DispatchStatus.NOT_ELIGIBLE,
                    detail=f"stored {record.percentage:.2f}% is below {self.pass_threshold:.2f}%",
                )

            learner, course = self._resolve_recipient(record)
            subject, body = render_certificate_message(
                learner.name, course.title, record.percentage, record.completion_date,
            )
            extras: dict[str, Any] = {}
            if self.attach_pdf:
                extras["pdf_bytes"] = generate_certificate_pdf(
                    learner.name, course.title, record.percentage, record.completion_date,
                )
                extras["pdf_filename"] = PDF_FILENAME

            ok, detail = self._call_notify(learner.email, subject, body, **extras)
            if not ok:
                logger.warning(
                    "Certificate for user=%s course=%s not delivered: %s",
                    user_id, course_id, detail,
                )
                return DispatchOutcome(user_id, course_id, DispatchStatus.RETRYABLE, detail=detail)

            sent_at = self.clock()
            if not self.store.mark_certificate_sent(user_id, course_id, sent_at):
                logger.info(
                    "Certificate for user=%s course=%s already committed by another worker",
                    user_id, course_id,
                )
                return DispatchOutcome(user_id, course_id, DispatchStatus.ALREADY_SENT,
                                       detail="lost compare-and-set")

        logger.info("Certificate sent to %s for user=%s course=%s", learner.email, user_id, course_id)
        return DispatchOutcome(user_id, course_id, DispatchStatus.SENT,
                               detail=detail, dispatched_at=sent_at)

    def dispatch_pending(
        self,
        limit: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReport:
        """Dispatch every eligible-but-unsent record with bounded concurrency."""
        cancel_event = cancel_event or threading.Event()
        records = self.store.list_pending_certificates(self.pass_threshold, limit)
        report = BatchReport()
        if not records:
            return report

        def _run(record: UserCourseCompletion) -> DispatchOutcome:
            if cancel_event.is_set():
                return DispatchOutcome(record.user_id, record.course_id, DispatchStatus.CANCELLED)
            try:
                return self.dispatch(CompletionResult.from_record(record, self.pass_threshold))
            except RecordNotFound as exc:
                return DispatchOutcome(record.user_id, record.course_id,
                                       DispatchStatus.RETRYABLE, detail=str(exc))
            except Exception as exc:
                logger.exception(
                    "Certificate dispatch for user=%s course=%s failed",
                    record.user_id, record.course_id,
                )
                return DispatchOutcome(record.user_id, record.course_id, DispatchStatus.RETRYABLE,
                                       detail=f"{type(exc).__name__}: {exc}")

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="dispatch",
        ) as pool:
            futures = [pool.submit(_run, r) for r in records]
            for fut in concurrent.futures.as_completed(futures):
                report.outcomes.append(fut.result())

        logger.info("Certificate batch of %d finished: %s", len(records), report.summary())
        return report
