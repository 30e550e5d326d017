"""
Curriculum Progress Engine
Admin Tracking Blueprint.

Provides:
    - Approval queue (pending_approval records)
    - Progress record detail, pass-condition status, tracking log
    - Counter edits (inline edit persistence)
    - Approve / reject
    - Bulk pass: synchronous, or as a background job with polling, cancel
      and failure report export (CSV / XLSX)

The acting admin is read from the X-User header.
"""

from __future__ import annotations

import io
import logging

from flask import Blueprint, current_app, jsonify, request, send_file

from curriculum.blueprints import current_user, register_error_handlers
from curriculum.services import approval_service, bulk_pass_service, tracking_service
from curriculum.services.export_service import generate_failures_csv, generate_failures_xlsx
from curriculum.stores import ProgressStore
from curriculum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

tracking_bp = Blueprint("tracking", __name__, url_prefix="/api/v1")
register_error_handlers(tracking_bp)


def _bulk_ids_from_body(data: dict):
    ids = data.get("progress_ids")
    if ids is None:
        return None, api_error(E.VALIDATION_REQUIRED, "progress_ids is required")
    return ids, None


# ═════════════════════════════════════════════════════════════════════════
#  APPROVAL QUEUE & RECORDS
# ═════════════════════════════════════════════════════════════════════════

@tracking_bp.route("/tracking/pending", methods=["GET"])
def list_pending():
    """Records awaiting approval, optionally for one course."""
    course_id = request.args.get("course_id", type=int)
    items = tracking_service.list_pending_approval(course_id=course_id)
    return jsonify({"items": items, "total": len(items)})


@tracking_bp.route("/progress/<int:progress_id>", methods=["GET"])
def get_progress(progress_id):
    record = ProgressStore.require(progress_id)
    return jsonify(record.to_dict())


@tracking_bp.route("/progress/<int:progress_id>/pass-condition", methods=["GET"])
def get_pass_condition(progress_id):
    return jsonify(tracking_service.get_pass_condition_status(progress_id))


@tracking_bp.route("/progress/<int:progress_id>/logs", methods=["GET"])
def list_logs(progress_id):
    logs = tracking_service.list_tracking_logs(progress_id)
    return jsonify({"items": logs, "total": len(logs)})


@tracking_bp.route("/progress/<int:progress_id>", methods=["PATCH"])
def update_progress(progress_id):
    """Persist counter edits (completed_sessions, projects_submitted, project_links)."""
    data = request.get_json(silent=True) or {}
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body is required")
    result = tracking_service.update_progress(progress_id, data, performed_by=current_user())
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
#  APPROVE / REJECT
# ═════════════════════════════════════════════════════════════════════════

@tracking_bp.route("/progress/<int:progress_id>/approve", methods=["POST"])
def approve(progress_id):
    result = approval_service.approve(progress_id, current_user(default=""))
    return jsonify(result.to_dict())


@tracking_bp.route("/progress/<int:progress_id>/reject", methods=["POST"])
def reject(progress_id):
    data = request.get_json(silent=True) or {}
    progress = approval_service.reject(progress_id, data.get("reason"), current_user(default=""))
    return jsonify(progress)


# ═════════════════════════════════════════════════════════════════════════
#  BULK PASS
# ═════════════════════════════════════════════════════════════════════════

@tracking_bp.route("/tracking/bulk-pass", methods=["POST"])
def bulk_pass():
    """Approve many records now; always 200 with a per-item summary."""
    data = request.get_json(silent=True) or {}
    ids, err = _bulk_ids_from_body(data)
    if err:
        return err
    result = bulk_pass_service.bulk_pass(
        ids, current_user(default=""),
        max_items=current_app.config["BULK_PASS_MAX_ITEMS"],
    )
    return jsonify(result.to_dict())


@tracking_bp.route("/tracking/bulk-pass/jobs", methods=["POST"])
def submit_bulk_pass_job():
    data = request.get_json(silent=True) or {}
    ids, err = _bulk_ids_from_body(data)
    if err:
        return err
    job = bulk_pass_service.submit_bulk_pass_job(
        ids, current_user(default=""),
        app=current_app._get_current_object(),
        inline=current_app.config.get("BULK_PASS_RUN_INLINE", False),
        max_items=current_app.config["BULK_PASS_MAX_ITEMS"],
    )
    return jsonify(job.to_dict()), 202


def _job_or_404(job_id):
    job = bulk_pass_service.get_job(job_id)
    if job is None:
        return None, api_error(E.NOT_FOUND, f"Bulk pass job {job_id} not found")
    return job, None


@tracking_bp.route("/tracking/bulk-pass/jobs/<job_id>", methods=["GET"])
def get_bulk_pass_job(job_id):
    job, err = _job_or_404(job_id)
    if err:
        return err
    return jsonify(job.to_dict())


@tracking_bp.route("/tracking/bulk-pass/jobs/<job_id>/cancel", methods=["POST"])
def cancel_bulk_pass_job(job_id):
    job, err = _job_or_404(job_id)
    if err:
        return err
    bulk_pass_service.cancel_job(job_id)
    return jsonify(job.to_dict())


def _finished_result(job_id):
    job, err = _job_or_404(job_id)
    if err:
        return None, err
    if job.result is None:
        return None, api_error(
            E.CONFLICT_STATE, "Bulk pass job has no result yet",
            details={"status": job.status},
        )
    return job, None


@tracking_bp.route("/tracking/bulk-pass/jobs/<job_id>/failures.csv", methods=["GET"])
def export_failures_csv(job_id):
    job, err = _finished_result(job_id)
    if err:
        return err
    content = generate_failures_csv(job.result)
    return send_file(
        io.BytesIO(content.encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"bulk_pass_{job.id[:8]}_failures.csv",
    )


@tracking_bp.route("/tracking/bulk-pass/jobs/<job_id>/failures.xlsx", methods=["GET"])
def export_failures_xlsx(job_id):
    job, err = _finished_result(job_id)
    if err:
        return err
    content = generate_failures_xlsx(job.result)
    return send_file(
        io.BytesIO(content),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"bulk_pass_{job.id[:8]}_failures.xlsx",
    )
