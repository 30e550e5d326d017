"""
Curriculum Progress Engine
Notification Blueprint.

Provides:
    - Student inbox listing with unread count
    - Mark one / all notifications read
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from curriculum.blueprints import pagination_params, register_error_handlers
from curriculum.services.notification import NotificationService
from curriculum.stores import StudentStore

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/students/<int:student_id>/notifications", methods=["GET"])
def list_notifications(student_id):
    StudentStore.require(student_id)
    limit, offset = pagination_params()
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    items, total = NotificationService.list_for_recipient(
        student_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(student_id),
    })


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/students/<int:student_id>/notifications/read-all", methods=["POST"])
def mark_all_read(student_id):
    StudentStore.require(student_id)
    count = NotificationService.mark_all_read(student_id)
    return jsonify({"marked_read": count})
