"""
Curriculum Progress Engine
Student Blueprint.

Provides:
    - Program view (semesters with their courses and unlock status)
    - Single semester course view
    - Major curriculum view with progress percentage
    - Student actions: record a session, submit a project link
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from curriculum.blueprints import register_error_handlers
from curriculum.services import curriculum_views, tracking_service
from curriculum.utils.errors import E, api_error

logger = logging.getLogger(__name__)

student_bp = Blueprint("student", __name__, url_prefix="/api/v1/students")
register_error_handlers(student_bp)


@student_bp.route("/<int:student_id>/semesters", methods=["GET"])
def program_view(student_id):
    return jsonify(curriculum_views.program_view(student_id))


@student_bp.route("/<int:student_id>/semesters/<int:semester_id>/courses", methods=["GET"])
def semester_courses(student_id, semester_id):
    return jsonify(curriculum_views.semester_course_view(student_id, semester_id))


@student_bp.route("/<int:student_id>/major", methods=["GET"])
def major_view(student_id):
    major_id = request.args.get("major_id", type=int)
    return jsonify(curriculum_views.major_view(student_id, major_id=major_id))


@student_bp.route("/<int:student_id>/courses/<int:course_id>/sessions", methods=["POST"])
def record_session(student_id, course_id):
    result = tracking_service.record_session(student_id, course_id)
    return jsonify(result), 201


@student_bp.route("/<int:student_id>/courses/<int:course_id>/projects", methods=["POST"])
def submit_project(student_id, course_id):
    data = request.get_json(silent=True) or {}
    link = (data.get("link") or "").strip()
    if not link:
        return api_error(E.VALIDATION_REQUIRED, "link is required")
    result = tracking_service.submit_project(student_id, course_id, link)
    return jsonify(result), 201
