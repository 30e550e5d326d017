"""
Bulk Pass Processor.

Applies the approval workflow's ``approve`` to many progress records in one
admin action. Items are processed one at a time in request order; an item's
failure is recorded and the batch moves on, so the batch always finishes with
a summary even when every item failed.

Guarantees:
    - ``success_count + failure_count == total``
    - duplicate ids are collapsed (first occurrence wins, ``7`` and ``"7"``
      count as one) so one record is never mutated twice in a batch
    - ``on_progress(current, total)`` is monotonic and reports ``total``
      exactly once, at the end
    - approve is idempotent, so re-running a batch never re-notifies

Cancellation only stops items that have not started. Approvals already made
are kept; the unstarted items are reported as ``Cancelled`` failures.

``BulkPassJob`` runs a batch on a background thread with its own app context
and exposes polling and cancel. Jobs live in an in-process registry.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone

from curriculum.core.exceptions import ENGINE_ERRORS, StoreError, ValidationError, error_code
from curriculum.services.approval_service import ApprovalResult, approve
from curriculum.stores import ProgressStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 500
CANCELLED = "Cancelled"


@dataclass
class BulkPassFailure:
    progress_id: object
    reason: str
    message: str = ""
    student_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "progress_id": self.progress_id,
            "student_id": self.student_id,
            "reason": self.reason,
            "message": self.message,
        }


@dataclass
class BulkPassResult:
    total: int
    success_count: int = 0
    failure_count: int = 0
    failures: list[BulkPassFailure] = field(default_factory=list)
    results: list[dict] = field(default_factory=list)
    cancelled: bool = False

    def add_success(self, entry: dict) -> None:
        self.success_count += 1
        self.results.append(entry)

    def add_failure(self, failure: BulkPassFailure) -> None:
        self.failure_count += 1
        self.failures.append(failure)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "failures": [f.to_dict() for f in self.failures],
            "results": list(self.results),
            "cancelled": self.cancelled,
        }


def aggregate_bulk_pass_results(outcomes) -> BulkPassResult:
    """Fold ``(progress_id, ApprovalResult | Exception)`` pairs into a result."""
    outcomes = list(outcomes)
    result = BulkPassResult(total=len(outcomes))
    for progress_id, outcome in outcomes:
        if isinstance(outcome, Exception):
            result.add_failure(BulkPassFailure(progress_id, error_code(outcome), str(outcome)))
        else:
            result.add_success(_success_entry(progress_id, outcome))
    return result


def _success_entry(progress_id, outcome) -> dict:
    if isinstance(outcome, ApprovalResult):
        return {
            "progress_id": outcome.progress.id,
            "student_id": outcome.progress.student_id,
            "already_completed": outcome.already_completed,
            "unlock_result": outcome.unlock_result.to_dict(),
            "unlock_error": outcome.unlock_error,
        }
    return {"progress_id": progress_id}


def _student_of(progress_id):
    try:
        record = ProgressStore.get(progress_id)
    except StoreError:
        return None
    return record.student_id if record is not None else None


def canonical_progress_id(value):
    """``7`` and ``" 7 "`` name the same record; ids that are not numbers pass through."""
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return text
    return value


def _mark_cancelled(result: BulkPassResult, ids) -> None:
    for skipped in ids:
        result.add_failure(BulkPassFailure(skipped, CANCELLED, "Bulk pass cancelled before this item"))
    result.cancelled = True


def prepare_progress_ids(progress_ids, admin_id, max_items: int = DEFAULT_MAX_ITEMS) -> list:
    """Validate a bulk request and return its ids, canonical and de-duplicated.

    Raises:
        ValidationError: empty list, missing admin or too many ids.
    """
    if not isinstance(progress_ids, (list, tuple)) or not progress_ids:
        raise ValidationError("progress_ids must be a non-empty list", details={"progress_ids": "required"})
    if admin_id is None or not str(admin_id).strip():
        raise ValidationError("admin_id is required", details={"admin_id": "required"})
    if not all(isinstance(i, (int, str)) and not isinstance(i, bool) for i in progress_ids):
        raise ValidationError("progress_ids must be integers or strings", details={"progress_ids": "invalid"})

    ids = list(dict.fromkeys(canonical_progress_id(i) for i in progress_ids))
    if len(ids) > max_items:
        raise ValidationError(
            f"At most {max_items} progress records per bulk pass",
            details={"progress_ids": f"{len(ids)} given"},
        )
    return ids


# ═════════════════════════════════════════════════════════════════════════════
# Synchronous batch
# ═════════════════════════════════════════════════════════════════════════════


def bulk_pass(
    progress_ids,
    admin_id,
    *,
    on_progress=None,
    should_cancel=None,
    approve_fn=None,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> BulkPassResult:
    """Approve every record in *progress_ids*, collecting per-item outcomes.

    Args:
        on_progress: ``callable(current, total)`` called after each item.
        should_cancel: ``callable() -> bool`` polled before each item.
        approve_fn: replaces ``approve`` (same signature).

    Raises:
        ValidationError: only for an invalid request; item errors never escape.
    """
    ids = prepare_progress_ids(progress_ids, admin_id, max_items)
    lookup_student = approve_fn is None
    approve_fn = approve_fn or approve
    total = len(ids)
    result = BulkPassResult(total=total)

    logger.info("Bulk pass started: %d records", total, extra={"admin_id": str(admin_id)})

    for index, progress_id in enumerate(ids, start=1):
        if should_cancel is not None and should_cancel():
            _mark_cancelled(result, ids[index - 1:])
            logger.info("Bulk pass cancelled after %d of %d", index - 1, total)
            if on_progress is not None:
                on_progress(total, total)
            break

        try:
            outcome = approve_fn(progress_id, admin_id)
        except ENGINE_ERRORS as exc:
            student_id = _student_of(progress_id) if lookup_student else None
            result.add_failure(BulkPassFailure(progress_id, error_code(exc), str(exc), student_id))
            logger.warning(
                "Bulk pass item %s failed: %s", progress_id, exc,
                extra={"progress_id": progress_id, "admin_id": str(admin_id)},
            )
        except Exception as exc:
            result.add_failure(BulkPassFailure(progress_id, error_code(exc), str(exc)))
            logger.exception("Bulk pass item %s failed unexpectedly", progress_id,
                             extra={"progress_id": progress_id})
        else:
            result.add_success(_success_entry(progress_id, outcome))

        if on_progress is not None:
            on_progress(index, total)

    logger.info(
        "Bulk pass finished: %d ok, %d failed of %d",
        result.success_count, result.failure_count, total,
        extra={"admin_id": str(admin_id)},
    )
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Background jobs
# ═════════════════════════════════════════════════════════════════════════════

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_CANCELLED = "cancelled"
JOB_FAILED = "failed"
JOB_FINISHED = {JOB_COMPLETED, JOB_CANCELLED, JOB_FAILED}

MAX_FINISHED_JOBS = 100

# In-memory registry of jobs (job_id → BulkPassJob)
_jobs: dict[str, "BulkPassJob"] = {}
_jobs_lock = threading.Lock()


class BulkPassJob:
    """A bulk pass running on a background thread with cancel and polling."""

    def __init__(self, progress_ids, admin_id, *, approve_fn=None, max_items: int = DEFAULT_MAX_ITEMS):
        self.progress_ids = prepare_progress_ids(progress_ids, admin_id, max_items)
        self.admin_id = str(admin_id)
        self.max_items = max_items
        self.id = uuid.uuid4().hex
        self.status = JOB_PENDING
        self.current = 0
        self.total = len(self.progress_ids)
        self.result: BulkPassResult | None = None
        self.error: str | None = None
        self.created_at = datetime.now(timezone.utc)
        self.finished_at = None
        self._approve_fn = approve_fn
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self, app=None, *, inline: bool = False) -> "BulkPassJob":
        """Run the batch. With ``inline`` the caller's thread runs it to the end."""
        if inline:
            self._run(app)
            return self
        self._thread = threading.Thread(
            target=self._run, args=(app,), name=f"bulk-pass-{self.id[:8]}", daemon=True,
        )
        self._thread.start()
        return self

    def cancel(self) -> dict:
        """Stop unstarted items. A job that never started finishes here, every
        item reported as Cancelled."""
        self._cancel.set()
        with self._lock:
            if self.status == JOB_PENDING:
                result = BulkPassResult(total=self.total)
                _mark_cancelled(result, self.progress_ids)
                self.result = result
                self.current = self.total
                self.status = JOB_CANCELLED
                self.finished_at = datetime.now(timezone.utc)
        return self.to_dict()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Join the worker thread. Returns True once the job is finished."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.is_finished

    @property
    def is_finished(self) -> bool:
        return self.status in JOB_FINISHED

    def _on_progress(self, current: int, total: int) -> None:
        with self._lock:
            self.current = max(self.current, current)

    def _run(self, app) -> None:
        with self._lock:
            if self.status != JOB_PENDING:
                return
            self.status = JOB_RUNNING

        ctx = app.app_context() if app is not None else nullcontext()
        with ctx:
            try:
                result = bulk_pass(
                    self.progress_ids,
                    self.admin_id,
                    on_progress=self._on_progress,
                    should_cancel=self._cancel.is_set,
                    approve_fn=self._approve_fn,
                    max_items=self.max_items,
                )
            except Exception as exc:
                logger.exception("Bulk pass job %s failed", self.id)
                with self._lock:
                    self.status = JOB_FAILED
                    self.error = str(exc)
                    self.finished_at = datetime.now(timezone.utc)
                return

        with self._lock:
            self.result = result
            self.status = JOB_CANCELLED if result.cancelled else JOB_COMPLETED
            self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "job_id": self.id,
                "status": self.status,
                "current": self.current,
                "total": self.total,
                "admin_id": self.admin_id,
                "cancel_requested": self._cancel.is_set(),
                "error": self.error,
                "result": self.result.to_dict() if self.result else None,
                "created_at": self.created_at.isoformat(),
                "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            }


def _prune_finished_jobs() -> None:
    finished = [j for j in _jobs.values() if j.is_finished]
    excess = len(finished) - MAX_FINISHED_JOBS
    if excess > 0:
        for job in sorted(finished, key=lambda j: j.created_at)[:excess]:
            _jobs.pop(job.id, None)


def submit_bulk_pass_job(progress_ids, admin_id, *, app=None, inline=False,
                         approve_fn=None, max_items: int = DEFAULT_MAX_ITEMS) -> BulkPassJob:
    """Register and start a job. Invalid requests raise before anything starts."""
    job = BulkPassJob(progress_ids, admin_id, approve_fn=approve_fn, max_items=max_items)
    with _jobs_lock:
        _prune_finished_jobs()
        _jobs[job.id] = job
    logger.info("Bulk pass job %s submitted (%d records)", job.id, job.total,
                extra={"admin_id": job.admin_id})
    return job.start(app, inline=inline)


def get_job(job_id) -> BulkPassJob | None:
    with _jobs_lock:
        return _jobs.get(job_id)


def cancel_job(job_id) -> BulkPassJob | None:
    job = get_job(job_id)
    if job is not None:
        job.cancel()
        logger.info("Bulk pass job %s cancel requested", job_id)
    return job


def clear_jobs() -> None:
    with _jobs_lock:
        _jobs.clear()
