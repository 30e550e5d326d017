"""
HTTP API tests (Flask test client).

Covers the tracking, student and notification blueprints end to end:
status codes, error bodies and the JSON shapes the UI relies on.
"""

import io

from openpyxl import load_workbook

from curriculum.models import db
from curriculum.models.notification import Notification

ADMIN = {"X-User": "admin-1"}
LINK = "https://github.com/ada/project"


# ═════════════════════════════════════════════════════════════════════════════
# App
# ═════════════════════════════════════════════════════════════════════════════


class TestApp:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/tracking/pending", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"


# ═════════════════════════════════════════════════════════════════════════════
# Tracking
# ═════════════════════════════════════════════════════════════════════════════


class TestTrackingApi:
    def test_pending_queue(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.get("/api/v1/tracking/pending")
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == rec.id

    def test_get_progress_and_404(self, client, program, make_progress):
        rec = make_progress(program.student, program.c11, status="in_progress", sessions=2)
        assert client.get(f"/api/v1/progress/{rec.id}").get_json()["completed_sessions"] == 2
        res = client.get("/api/v1/progress/99999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_pass_condition(self, client, program, make_progress):
        rec = make_progress(program.student, program.c11, status="in_progress", sessions=3)
        body = client.get(f"/api/v1/progress/{rec.id}/pass-condition").get_json()
        assert body["can_pass"] is False
        assert body["missing_conditions"][0] == "2 more sessions needed"

    def test_patch_counters(self, client, program, make_progress):
        rec = make_progress(program.student, program.c11)
        res = client.patch(f"/api/v1/progress/{rec.id}", json={"completed_sessions": 4}, headers=ADMIN)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status_changed"] is True
        assert body["progress"]["status"] == "in_progress"

        logs = client.get(f"/api/v1/progress/{rec.id}/logs").get_json()
        assert logs["items"][0]["performed_by"] == "admin-1"

    def test_patch_validation(self, client, program, make_progress):
        rec = make_progress(program.student, program.c11)
        assert client.patch(f"/api/v1/progress/{rec.id}", json={}).status_code == 400
        res = client.patch(f"/api/v1/progress/{rec.id}", json={"completed_sessions": 50})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"completed_sessions": "Session count cannot exceed 5"}

    def test_approve(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.post(f"/api/v1/progress/{rec.id}/approve", headers=ADMIN)
        assert res.status_code == 200
        body = res.get_json()
        assert body["progress"]["status"] == "completed"
        assert body["progress"]["approved_by"] == "admin-1"
        assert body["unlock_result"]["unlocked_courses"] == [program.c12.id]

    def test_approve_requires_user(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        assert client.post(f"/api/v1/progress/{rec.id}/approve").status_code == 422

    def test_approve_wrong_status(self, client, program, make_progress):
        rec = make_progress(program.student, program.c11, status="in_progress")
        res = client.post(f"/api/v1/progress/{rec.id}/approve", headers=ADMIN)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_TRANSITION"

    def test_reject(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.post(f"/api/v1/progress/{rec.id}/reject", json={"reason": "broken link"}, headers=ADMIN)
        assert res.status_code == 200
        assert res.get_json()["status"] == "rejected"

    def test_reject_empty_reason(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.post(f"/api/v1/progress/{rec.id}/reject", json={"reason": "  "}, headers=ADMIN)
        assert res.status_code == 422

    def test_reject_completed(self, client, program, make_completed):
        rec = make_completed(program.student, program.c11)
        res = client.post(f"/api/v1/progress/{rec.id}/reject", json={"reason": "x"}, headers=ADMIN)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"


class TestBulkPassApi:
    def test_sync_bulk_pass(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.post("/api/v1/tracking/bulk-pass", json={"progress_ids": [rec.id, 99999]}, headers=ADMIN)
        assert res.status_code == 200
        body = res.get_json()
        assert body["success_count"] == 1
        assert body["failure_count"] == 1
        assert body["failures"][0]["reason"] == "NotFound"

    def test_sync_bulk_pass_validation(self, client):
        assert client.post("/api/v1/tracking/bulk-pass", json={}, headers=ADMIN).status_code == 400
        assert client.post("/api/v1/tracking/bulk-pass", json={"progress_ids": []}, headers=ADMIN).status_code == 422
        assert client.post("/api/v1/tracking/bulk-pass", json={"progress_ids": [1]}).status_code == 422

    def test_job_lifecycle_and_exports(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        res = client.post("/api/v1/tracking/bulk-pass/jobs", json={"progress_ids": [rec.id, 99999]}, headers=ADMIN)
        assert res.status_code == 202
        job = res.get_json()
        assert job["status"] == "completed"

        polled = client.get(f"/api/v1/tracking/bulk-pass/jobs/{job['job_id']}").get_json()
        assert polled["current"] == polled["total"] == 2
        assert polled["result"]["failure_count"] == 1

        csv_res = client.get(f"/api/v1/tracking/bulk-pass/jobs/{job['job_id']}/failures.csv")
        assert csv_res.status_code == 200
        assert csv_res.mimetype == "text/csv"
        lines = csv_res.data.decode("utf-8").splitlines()
        assert lines[0] == "progress_id,student_id,reason,message"
        assert lines[1].startswith("99999,,NotFound,")

        xlsx_res = client.get(f"/api/v1/tracking/bulk-pass/jobs/{job['job_id']}/failures.xlsx")
        assert xlsx_res.status_code == 200
        wb = load_workbook(io.BytesIO(xlsx_res.data))
        assert wb["Failures"]["A2"].value == 99999

        db.session.expire_all()
        assert client.get(f"/api/v1/progress/{rec.id}").get_json()["status"] == "completed"

    def test_cancel_finished_job(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        job = client.post("/api/v1/tracking/bulk-pass/jobs", json={"progress_ids": [rec.id]}, headers=ADMIN).get_json()
        res = client.post(f"/api/v1/tracking/bulk-pass/jobs/{job['job_id']}/cancel")
        assert res.status_code == 200
        assert res.get_json()["status"] == "completed"

    def test_unknown_job(self, client):
        assert client.get("/api/v1/tracking/bulk-pass/jobs/nope").status_code == 404
        assert client.post("/api/v1/tracking/bulk-pass/jobs/nope/cancel").status_code == 404
        assert client.get("/api/v1/tracking/bulk-pass/jobs/nope/failures.csv").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Student
# ═════════════════════════════════════════════════════════════════════════════


class TestStudentApi:
    def test_program_view(self, client, program):
        res = client.get(f"/api/v1/students/{program.student.id}/semesters")
        assert res.status_code == 200
        semesters = res.get_json()["semesters"]
        assert [s["status"] for s in semesters] == ["in_progress", "locked"]

    def test_semester_courses(self, client, program):
        res = client.get(f"/api/v1/students/{program.student.id}/semesters/{program.s1.id}/courses")
        body = res.get_json()
        assert [c["status"] for c in body["courses"]] == ["in_progress", "locked", "locked"]

    def test_unknown_student(self, client, program):
        assert client.get("/api/v1/students/99999/semesters").status_code == 404

    def test_major_view(self, client, program):
        body = client.get(f"/api/v1/students/{program.student.id}/major").get_json()
        assert body["total_count"] == 3
        assert body["progress_percentage"] == 0

    def test_major_view_without_major(self, client, program):
        program.student.selected_major_id = None
        db.session.commit()
        assert client.get(f"/api/v1/students/{program.student.id}/major").status_code == 422
        res = client.get(f"/api/v1/students/{program.student.id}/major?major_id={program.major.id}")
        assert res.status_code == 200

    def test_record_session(self, client, program):
        res = client.post(f"/api/v1/students/{program.student.id}/courses/{program.c11.id}/sessions")
        assert res.status_code == 201
        assert res.get_json()["progress"]["completed_sessions"] == 1

    def test_record_session_locked(self, client, program):
        res = client.post(f"/api/v1/students/{program.student.id}/courses/{program.c12.id}/sessions")
        assert res.status_code == 422

    def test_submit_project(self, client, program):
        url = f"/api/v1/students/{program.student.id}/courses/{program.c11.id}/projects"
        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={"link": "not-a-url"}).status_code == 422
        res = client.post(url, json={"link": LINK})
        assert res.status_code == 201
        assert res.get_json()["progress"]["project_links"] == [LINK]


# ═════════════════════════════════════════════════════════════════════════════
# Notifications
# ═════════════════════════════════════════════════════════════════════════════


class TestNotificationApi:
    def _approve_first_course(self, client, program, make_pending):
        rec = make_pending(program.student, program.c11)
        client.post(f"/api/v1/progress/{rec.id}/approve", headers=ADMIN)

    def test_list_and_read(self, client, program, make_pending):
        self._approve_first_course(client, program, make_pending)
        url = f"/api/v1/students/{program.student.id}/notifications"

        body = client.get(url).get_json()
        assert body["total"] == 2
        assert body["unread_count"] == 2

        notif_id = body["items"][0]["id"]
        res = client.post(f"/api/v1/notifications/{notif_id}/read")
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        assert client.get(url).get_json()["unread_count"] == 1
        assert client.get(f"{url}?unread_only=true").get_json()["total"] == 1

    def test_read_all(self, client, program, make_pending):
        self._approve_first_course(client, program, make_pending)
        res = client.post(f"/api/v1/students/{program.student.id}/notifications/read-all")
        assert res.get_json() == {"marked_read": 2}
        assert Notification.query.filter_by(is_read=False).count() == 0

    def test_pagination(self, client, program, make_pending):
        self._approve_first_course(client, program, make_pending)
        body = client.get(f"/api/v1/students/{program.student.id}/notifications?limit=1").get_json()
        assert len(body["items"]) == 1
        assert body["total"] == 2

    def test_missing_notification(self, client, program):
        assert client.post("/api/v1/notifications/99999/read").status_code == 404
