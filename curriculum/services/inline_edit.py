"""
Inline Edit / Autosave Controller.

Holds one speculative edit of a progress record's raw counters
(``completed_sessions``, ``projects_submitted`` or ``project_links``) before it
is persisted.

Rules:
    - one field in edit at a time; starting another edit first saves or
      discards the current one
    - the injected validator runs on every value change; an invalid value
      blocks saving, not further editing
    - ``auto_save`` (re)starts a debounce timer; a superseding change, an
      explicit save, a discard or a new edit cancels the pending timer and bumps
      ``generation`` so a timer that already fired cannot write a stale value
    - saving a value equal to the value at edit start is a no-op success
    - a failed save leaves the session open with ``error`` set
    - saves never overlap; a save requested while one is in flight is queued
      and written after it, so an older value cannot land last

Timers come from a scheduler with ``schedule(delay_s, callback) -> handle``
where ``handle.cancel()`` stops it. ``ThreadingScheduler`` is the default;
tests pass a manual one.

Usage:
    controller = InlineEditController.for_app(app, admin_id="admin-1", course=course)
    controller.start_edit(record.id, "completed_sessions", record.completed_sessions)
    controller.auto_save(4)      # saved ~500 ms later unless superseded
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass

from curriculum.core.exceptions import ENGINE_ERRORS, ValidationError
from curriculum.models.progress import COUNTER_FIELDS
from curriculum.services.progress_status import (
    project_count_error,
    project_links_error,
    session_count_error,
)
from curriculum.services.tracking_service import update_progress

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 500

RESOLVE_SAVE = "save"
RESOLVE_DISCARD = "discard"

_UNSET = object()


# ═════════════════════════════════════════════════════════════════════════════
# Validators
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None

    @classmethod
    def from_error(cls, error: str | None) -> "ValidationResult":
        return cls(is_valid=error is None, error=error)


def sessions_validator(required_sessions: int):
    return lambda value: ValidationResult.from_error(session_count_error(value, required_sessions))


def projects_validator(required_projects: int):
    return lambda value: ValidationResult.from_error(project_count_error(value, required_projects))


def project_links_validator():
    return lambda value: ValidationResult.from_error(project_links_error(value))


def validators_for_course(course) -> dict:
    return {
        "completed_sessions": sessions_validator(course.required_sessions),
        "projects_submitted": projects_validator(course.required_projects),
        "project_links": project_links_validator(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Scheduling
# ═════════════════════════════════════════════════════════════════════════════


class ThreadingScheduler:
    """Runs each callback once on a daemon ``threading.Timer``."""

    def schedule(self, delay_s: float, callback):
        timer = threading.Timer(delay_s, callback)
        timer.daemon = True
        timer.start()
        return timer


# ═════════════════════════════════════════════════════════════════════════════
# Controller
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class EditState:
    progress_id: object
    field: str
    original_value: object
    value: object
    validation: ValidationResult
    error: str | None = None
    is_saving: bool = False
    # a save was requested while one was in flight
    resave: bool = False

    @property
    def is_dirty(self) -> bool:
        return self.value != self.original_value

    def to_dict(self) -> dict:
        return {
            "progress_id": self.progress_id,
            "field": self.field,
            "original_value": self.original_value,
            "value": self.value,
            "is_valid": self.validation.is_valid,
            "validation_error": self.validation.error,
            "error": self.error,
            "is_saving": self.is_saving,
            "is_dirty": self.is_dirty,
        }


class InlineEditController:
    """One inline edit session surface. Thread-safe; timers fire on other threads."""

    def __init__(self, saver, *, validators=None, scheduler=None,
                 debounce_ms: int = DEFAULT_DEBOUNCE_MS, on_saved=None, on_error=None):
        """
        Args:
            saver: ``callable(progress_id, field, value)``; raises on failure.
            validators: ``{field: callable(value) -> ValidationResult}``.
            scheduler: object with ``schedule(delay_s, callback) -> handle``.
            on_saved / on_error: optional callbacks ``(state, outcome)``.
        """
        self._saver = saver
        self._validators = dict(validators or {})
        self._scheduler = scheduler or ThreadingScheduler()
        self.debounce_ms = debounce_ms
        self._on_saved = on_saved
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state: EditState | None = None
        self._timer = None
        self._generation = 0

    @classmethod
    def for_app(cls, app, *, admin_id, course, **kwargs) -> "InlineEditController":
        kwargs.setdefault("debounce_ms", app.config.get("AUTOSAVE_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS))
        return cls(progress_saver(app, admin_id), validators=validators_for_course(course), **kwargs)

    # ── Introspection ─────────────────────────────────────────────────────

    @property
    def state(self) -> EditState | None:
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def has_pending_save(self) -> bool:
        with self._lock:
            return self._timer is not None

    def is_editing_field(self, progress_id, field: str) -> bool:
        with self._lock:
            st = self._state
            return st is not None and st.progress_id == progress_id and st.field == field

    # ── Internals ─────────────────────────────────────────────────────────

    def _validate(self, field: str, value) -> ValidationResult:
        validator = self._validators.get(field)
        return validator(value) if validator else ValidationResult(True)

    def _invalidate_timer(self) -> None:
        """Cancel any pending timer and bump the generation. Caller holds the lock."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _require_state(self) -> EditState:
        if self._state is None:
            raise ValidationError("No edit in progress")
        return self._state

    # ── Session API ───────────────────────────────────────────────────────

    def start_edit(self, progress_id, field: str, value, *, resolve: str = RESOLVE_SAVE) -> EditState:
        """Open an edit on *field*; any active edit is saved or discarded first.

        Raises:
            ValidationError: unknown field, or the active edit could not be
                saved (it stays open).
        """
        if field not in COUNTER_FIELDS:
            raise ValidationError(f"Field cannot be edited inline: {field}", details={"field": field})

        if self.state is not None:
            if resolve == RESOLVE_DISCARD:
                self.cancel_edit()
            elif not self.save():
                st = self.state
                raise ValidationError(
                    "Current edit could not be saved",
                    details={"field": st.field if st else None, "error": st.error if st else None},
                )

        with self._lock:
            self._invalidate_timer()
            self._state = EditState(
                progress_id=progress_id,
                field=field,
                original_value=copy.deepcopy(value),
                value=copy.deepcopy(value),
                validation=self._validate(field, value),
            )
            return self._state

    def update_value(self, value) -> ValidationResult:
        """Change the pending value locally and re-run validation."""
        with self._lock:
            st = self._require_state()
            st.value = copy.deepcopy(value)
            st.validation = self._validate(st.field, st.value)
            st.error = None
            return st.validation

    def auto_save(self, value=_UNSET, debounce_ms: int | None = None) -> int:
        """Optionally update the value, then (re)start the debounce timer.

        Returns the generation the scheduled save belongs to.
        """
        with self._lock:
            if value is not _UNSET:
                self.update_value(value)
            else:
                self._require_state()
            self._invalidate_timer()
            generation = self._generation
            delay_ms = self.debounce_ms if debounce_ms is None else debounce_ms
            self._timer = self._scheduler.schedule(
                delay_ms / 1000.0, lambda: self._on_timer(generation),
            )
            return generation

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is None:
                logger.debug("Dropping stale autosave (generation %s)", generation)
                return
            self._timer = None
        self.save()

    def save(self) -> bool:
        """Persist the pending value now.

        Returns True when saved (or nothing to save), False when blocked by
        validation or the saver failed. On failure the session stays open.

        Saves never overlap. A save requested while another is in flight is
        queued and returns True; the in-flight save writes the newer value as
        soon as the older write returns, so the older value never lands last.
        """
        with self._lock:
            st = self._state
            if st is None:
                return True
            self._invalidate_timer()
            if not st.validation.is_valid:
                st.error = st.validation.error
                return False
            if st.is_saving:
                st.resave = True
                return True
            if not st.is_dirty:
                self._state = None
                return True
            st.is_saving = True
            st.error = None
            value = copy.deepcopy(st.value)
        return self._write(st, value)

    def _write(self, st: EditState, value) -> bool:
        while True:
            try:
                outcome = self._saver(st.progress_id, st.field, value)
            except ENGINE_ERRORS as exc:
                with self._lock:
                    st.is_saving = False
                    st.resave = False
                    st.error = str(exc)
                logger.warning("Inline save failed for progress %s %s: %s", st.progress_id, st.field, exc,
                               extra={"progress_id": st.progress_id})
                if self._on_error:
                    self._on_error(st, exc)
                return False
            except Exception:
                with self._lock:
                    st.is_saving = False
                    st.resave = False
                raise

            with self._lock:
                st.original_value = value
                again = st.resave and st.value != value and st.validation.is_valid
                st.resave = False
                if again:
                    value = copy.deepcopy(st.value)
                else:
                    st.is_saving = False
                    if self._state is st and st.value == value:
                        self._state = None
            if self._on_saved:
                self._on_saved(st, outcome)
            if not again:
                return True

    def cancel_edit(self) -> None:
        """Discard the pending value and stop any scheduled or queued save."""
        with self._lock:
            self._invalidate_timer()
            if self._state is not None:
                self._state.resave = False
            self._state = None


def progress_saver(app, admin_id):
    """Saver persisting one counter through the tracking service."""

    def save(progress_id, field, value):
        with app.app_context():
            return update_progress(progress_id, {field: value}, performed_by=str(admin_id))

    return save
