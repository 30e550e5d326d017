"""
Inline Edit / Autosave Controller tests.

Timers are driven by a manual scheduler so debounce behaviour is deterministic.
"""

import threading
from types import SimpleNamespace

import pytest

from curriculum.core.exceptions import StoreError, ValidationError
from curriculum.models import db
from curriculum.models.audit import TrackingLog
from curriculum.models.progress import ProgressRecord
from curriculum.services.inline_edit import (
    InlineEditController,
    ThreadingScheduler,
    validators_for_course,
)

COURSE = SimpleNamespace(required_sessions=5, required_projects=1)


class _Handle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    def __init__(self):
        self.handles = []

    def schedule(self, delay_s, callback):
        handle = _Handle(delay_s, callback)
        self.handles.append(handle)
        return handle

    def fire_all(self):
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.callback()


class RecordingSaver:
    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    def __call__(self, progress_id, field, value):
        self.calls.append((progress_id, field, value))
        if self.fail_with is not None:
            raise self.fail_with
        return {"progress_id": progress_id, field: value}


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def saver():
    return RecordingSaver()


@pytest.fixture()
def controller(saver, scheduler):
    return InlineEditController(saver, validators=validators_for_course(COURSE), scheduler=scheduler)


# ═════════════════════════════════════════════════════════════════════════════
# Debounce
# ═════════════════════════════════════════════════════════════════════════════


class TestAutosave:
    def test_superseded_change_saves_latest_value_once(self, controller, saver, scheduler):
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        controller.auto_save(4)
        assert controller.has_pending_save is True
        scheduler.fire_all()

        assert saver.calls == [(1, "completed_sessions", 4)]
        assert controller.state is None
        assert controller.has_pending_save is False

    def test_debounce_delay(self, controller, scheduler):
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        controller.auto_save(4, debounce_ms=50)
        assert [h.delay for h in scheduler.handles] == [0.5, 0.05]

    def test_stale_timer_is_dropped(self, controller, saver, scheduler):
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        stale = scheduler.handles[0]
        generation = controller.auto_save(4)
        assert generation == controller.generation

        # a timer that fired before it could be cancelled must not write
        stale.callback()
        assert saver.calls == []

        scheduler.fire_all()
        assert saver.calls == [(1, "completed_sessions", 4)]

    def test_explicit_save_cancels_timer(self, controller, saver, scheduler):
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        assert controller.save() is True
        scheduler.fire_all()
        assert saver.calls == [(1, "completed_sessions", 3)]

    def test_cancel_edit_stops_pending_save(self, controller, saver, scheduler):
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        controller.cancel_edit()
        scheduler.fire_all()
        assert saver.calls == []
        assert controller.state is None
        assert controller.has_pending_save is False

    def test_auto_save_without_edit(self, controller):
        with pytest.raises(ValidationError):
            controller.auto_save(3)


# ═════════════════════════════════════════════════════════════════════════════
# Save semantics
# ═════════════════════════════════════════════════════════════════════════════


class TestSave:
    def test_invalid_value_blocks_save_not_editing(self, controller, saver):
        controller.start_edit(1, "completed_sessions", 2)
        validation = controller.update_value(9)
        assert validation.is_valid is False

        assert controller.save() is False
        assert controller.state.error == "Session count cannot exceed 5"
        assert saver.calls == []

        assert controller.update_value(4).is_valid is True
        assert controller.save() is True
        assert saver.calls == [(1, "completed_sessions", 4)]

    def test_unchanged_value_is_noop_success(self, controller, saver):
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(2)
        assert controller.save() is True
        assert saver.calls == []
        assert controller.state is None

    def test_save_without_session(self, controller):
        assert controller.save() is True

    def test_failed_save_keeps_session_open(self, scheduler):
        errors = []
        saver = RecordingSaver(fail_with=StoreError("progress.update"))
        controller = InlineEditController(
            saver, scheduler=scheduler, on_error=lambda st, exc: errors.append(exc),
        )
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(3)

        assert controller.save() is False
        assert controller.state is not None
        assert controller.state.value == 3
        assert "progress.update" in controller.state.error
        assert controller.state.is_saving is False
        assert len(errors) == 1

        saver.fail_with = None
        assert controller.save() is True
        assert controller.state is None

    def test_edit_during_save_stays_open(self, scheduler):
        controller = None

        def _saver(progress_id, field, value):
            controller.update_value(5)
            return {}

        controller = InlineEditController(_saver, scheduler=scheduler)
        controller.start_edit(1, "completed_sessions", 3)
        controller.update_value(4)
        assert controller.save() is True
        assert controller.state.original_value == 4
        assert controller.state.value == 5
        assert controller.state.is_dirty is True

    def _blocking_controller(self, persisted, entered, release):
        def _saver(progress_id, field, value):
            if value == 3:
                entered.set()
                assert release.wait(5)
            persisted.append(value)
            return {"progress_id": progress_id, field: value}

        scheduler = ManualScheduler()
        controller = InlineEditController(_saver, scheduler=scheduler)
        controller.start_edit(1, "completed_sessions", 2)
        controller.auto_save(3)
        timer_thread = threading.Thread(target=scheduler.fire_all)
        timer_thread.start()
        assert entered.wait(5)
        return controller, timer_thread

    def test_save_during_inflight_autosave_writes_newer_value_last(self):
        persisted, entered, release = [], threading.Event(), threading.Event()
        controller, timer_thread = self._blocking_controller(persisted, entered, release)

        controller.update_value(4)
        assert controller.save() is True
        assert persisted == []

        release.set()
        timer_thread.join(5)
        assert persisted == [3, 4]
        assert controller.state is None

    def test_cancel_drops_queued_save(self):
        persisted, entered, release = [], threading.Event(), threading.Event()
        controller, timer_thread = self._blocking_controller(persisted, entered, release)

        controller.update_value(4)
        controller.save()
        controller.cancel_edit()

        release.set()
        timer_thread.join(5)
        assert persisted == [3]
        assert controller.state is None

    def test_on_saved_callback(self, saver, scheduler):
        saved = []
        controller = InlineEditController(saver, scheduler=scheduler, on_saved=lambda st, out: saved.append(out))
        controller.start_edit(1, "projects_submitted", 0)
        controller.update_value(1)
        controller.save()
        assert saved == [{"progress_id": 1, "projects_submitted": 1}]

    def test_link_list_is_copied(self, controller):
        links = ["https://x.io/a"]
        controller.start_edit(1, "project_links", links)
        links.append("https://x.io/b")
        assert controller.state.value == ["https://x.io/a"]
        assert controller.state.is_dirty is False


# ═════════════════════════════════════════════════════════════════════════════
# One field at a time
# ═════════════════════════════════════════════════════════════════════════════


class TestSingleActiveEdit:
    def test_new_edit_saves_previous(self, controller, saver):
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(3)
        controller.start_edit(1, "projects_submitted", 0)

        assert saver.calls == [(1, "completed_sessions", 3)]
        assert controller.is_editing_field(1, "projects_submitted")
        assert not controller.is_editing_field(1, "completed_sessions")

    def test_new_edit_can_discard_previous(self, controller, saver):
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(3)
        controller.start_edit(2, "completed_sessions", 0, resolve="discard")
        assert saver.calls == []
        assert controller.is_editing_field(2, "completed_sessions")

    def test_new_edit_refused_while_previous_invalid(self, controller):
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(-1)
        with pytest.raises(ValidationError):
            controller.start_edit(1, "projects_submitted", 0)
        assert controller.is_editing_field(1, "completed_sessions")

    def test_unknown_field(self, controller):
        with pytest.raises(ValidationError):
            controller.start_edit(1, "status", "completed")

    def test_state_serializes(self, controller):
        controller.start_edit(1, "completed_sessions", 2)
        controller.update_value(7)
        body = controller.state.to_dict()
        assert body["is_valid"] is False
        assert body["is_dirty"] is True
        assert body["validation_error"] == "Session count cannot exceed 5"


# ═════════════════════════════════════════════════════════════════════════════
# Wiring
# ═════════════════════════════════════════════════════════════════════════════


class TestWiring:
    def test_threading_scheduler_fires(self):
        fired = threading.Event()
        ThreadingScheduler().schedule(0.01, fired.set)
        assert fired.wait(2)

    def test_for_app_persists_through_tracking_service(self, app, program, make_progress, scheduler):
        rec = make_progress(program.student, program.c11)
        progress_id = rec.id
        saved = []

        controller = InlineEditController.for_app(
            app, admin_id="admin-1", course=program.c11,
            scheduler=scheduler, on_saved=lambda st, out: saved.append(out),
        )
        assert controller.debounce_ms == app.config["AUTOSAVE_DEBOUNCE_MS"]

        controller.start_edit(progress_id, "completed_sessions", 0)
        controller.auto_save(3)
        scheduler.fire_all()

        assert saved[0]["progress"]["completed_sessions"] == 3
        assert saved[0]["progress"]["status"] == "in_progress"

        db.session.expire_all()
        assert db.session.get(ProgressRecord, progress_id).completed_sessions == 3
        assert TrackingLog.query.one().performed_by == "admin-1"

    def test_for_app_validates_against_course(self, app, program, scheduler):
        controller = InlineEditController.for_app(app, admin_id="admin-1", course=program.c11, scheduler=scheduler)
        controller.start_edit(1, "completed_sessions", 0)
        assert controller.update_value(6).is_valid is False
