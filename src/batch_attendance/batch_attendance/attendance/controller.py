from __future__ import annotations

import csv
import io
import logging
from datetime import date
from functools import wraps
from typing import Any, Optional

from flask import Flask, jsonify, request, session

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.validators import require_positive_int
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.exceptions import AuthorizationError, DomainError, ValidationError
from ..reports.service import REPORT_FIELDS
from ..users.model import AttendanceStats
from ..users.service import require_admin
from .model import AttendanceRecord, AttendanceReportRow, CheckPoint, Location

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def checkpoint_to_dict(cp: Optional[CheckPoint]) -> Optional[dict]:
    if cp is None:
        return None
    return {
        "time": _iso(cp.time),
        "photo": {"url": cp.photo.url, "storage_id": cp.photo.storage_id},
        "location": {"lat": cp.location.lat, "long": cp.location.long} if cp.location else None,
        "device_info": cp.device_info,
        "face_match_confidence": cp.face_match_confidence,
    }


def record_to_dict(record: AttendanceRecord) -> dict:
    return {
        "attendance_id": record.attendance_id,
        "user_id": record.user_id,
        "batch_id": record.batch_id,
        "date": _iso(record.work_date),
        "status": record.status,
        "remarks": record.remarks,
        "check_in": checkpoint_to_dict(record.check_in),
        "check_out": checkpoint_to_dict(record.check_out),
        "activities": [{"description": a.description, "timestamp": _iso(a.timestamp)} for a in record.activities],
    }


def report_row_to_dict(row: AttendanceReportRow) -> dict:
    return {
        "attendance_id": row.attendance_id,
        "user": {"user_id": row.user_id, "full_name": row.full_name, "username": row.username},
        "batch_id": row.batch_id,
        "date": _iso(row.work_date),
        "status": row.status,
        "check_in_time": _iso(row.check_in_time),
        "check_out_time": _iso(row.check_out_time),
        "remarks": row.remarks,
    }


def stats_to_dict(stats: AttendanceStats) -> dict:
    return {
        "present": stats.present,
        "absent": stats.absent,
        "late": stats.late,
        "half_day": stats.half_day,
        "percentage": stats.percentage,
        "total": stats.total,
    }


def parse_location(value: Any) -> Optional[Location]:
    if value in (None, ""):
        return None
    if not isinstance(value, dict):
        raise ValidationError("location must be an object with lat and long")
    try:
        return Location(lat=float(value["lat"]), long=float(value["long"]))
    except (KeyError, TypeError, ValueError):
        raise ValidationError("location must be an object with numeric lat and long")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in _TRUE_VALUES


def _parse_date(value: str, field_name: str = "date") -> date:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a date in YYYY-MM-DD format")


def register(app: Flask, container: Container) -> None:
    def ok(data: Any = None, *, message: Optional[str] = None, status: int = 200, **extra):
        body: dict = {"success": True}
        if message:
            body["message"] = message
        body["data"] = data
        body.update(extra)
        return jsonify(body), status

    def fail(message: str, status: int):
        return jsonify({"success": False, "message": message}), status

    def api_errors(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except DomainError as e:
                return fail(str(e), e.http_status)
            except Exception as e:
                logger.exception("Unhandled error in %s", request.path)
                if bool(app.config.get("DEBUG", False)):
                    return fail(f"Internal server error: {e}", 500)
                return fail("Internal server error", 500)

        return wrapper

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return fail("Authentication required", 401)
            return view(*args, **kwargs)

        return wrapper

    def admin_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return fail("Authentication required", 401)

            try:
                require_admin(session.get("role"))
            except AuthorizationError as e:
                return fail(str(e), e.http_status)

            return view(*args, **kwargs)

        return wrapper

    def _today() -> date:
        return now_local(app.config.get("ATTENDANCE_TIMEZONE")).date()

    def _json_body() -> dict:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}

    @app.route("/api/attendance/check-in", methods=["POST"], endpoint="attendance_check_in")
    @login_required
    @api_errors
    def check_in():
        body = _json_body()
        result = container.attendance_service.check_in(
            int(session["user_id"]),
            photo=body.get("photo"),
            location=parse_location(body.get("location")),
            device_info=body.get("device_info"),
        )
        data = record_to_dict(result.record)
        data["face_match_confidence"] = result.face_match.confidence
        return ok(data, message=f"Checked in successfully ({result.record.status})", status=201)

    @app.route("/api/attendance/check-out", methods=["POST"], endpoint="attendance_check_out")
    @login_required
    @api_errors
    def check_out():
        body = _json_body()
        result = container.attendance_service.check_out(
            int(session["user_id"]),
            photo=body.get("photo"),
            location=parse_location(body.get("location")),
            device_info=body.get("device_info"),
        )
        data = record_to_dict(result.record)
        data["face_match_confidence"] = result.face_match.confidence
        data["duration_minutes"] = round(result.duration_minutes, 2)
        return ok(data, message=f"Checked out successfully ({result.record.status})")

    @app.route("/api/attendance/me", methods=["GET"], endpoint="attendance_me")
    @login_required
    @api_errors
    def my_history():
        limit = request.args.get("limit")
        limit = require_positive_int(limit, "limit") if limit else DEFAULT_HISTORY_LIMIT
        records = container.attendance_service.get_history(int(session["user_id"]), limit=limit)
        return ok([record_to_dict(r) for r in records], count=len(records))

    @app.route("/api/attendance/me/today", methods=["GET"], endpoint="attendance_me_today")
    @login_required
    @api_errors
    def my_today():
        record = container.attendance_service.get_today_record(int(session["user_id"]))
        return ok(record_to_dict(record) if record else None)

    @app.route("/api/attendance/stats", methods=["GET"], endpoint="attendance_stats")
    @login_required
    @api_errors
    def my_stats():
        report = container.stats_service.stats_report(
            int(session["user_id"]),
            recalculate=_flag("recalculate"),
            force=_flag("force"),
        )
        return ok(
            {
                "stats": stats_to_dict(report.stored),
                "calculated": stats_to_dict(report.calculated),
                "stats_match": report.stats_match,
                "total_records": report.total_records,
                "ignored_records": report.ignored_records,
                "recent": [record_to_dict(r) for r in report.recent],
            }
        )

    @app.route("/api/attendance/check-stats", methods=["GET"], endpoint="attendance_check_stats")
    @login_required
    @api_errors
    def check_stats():
        report = container.stats_service.stats_report(int(session["user_id"]))
        return ok(
            {
                "stored": stats_to_dict(report.stored),
                "calculated": stats_to_dict(report.calculated),
                "stats_match": report.stats_match,
                "total_records": report.total_records,
                "ignored_records": report.ignored_records,
            }
        )

    @app.route("/api/attendance/mark", methods=["POST"], endpoint="attendance_mark")
    @admin_required
    @api_errors
    def mark():
        body = _json_body()
        result = container.attendance_service.mark_attendance(
            user_id=require_positive_int(body.get("user_id"), "user_id"),
            batch_id=require_positive_int(body.get("batch_id"), "batch_id"),
            work_date=_parse_date(body["date"]) if body.get("date") else _today(),
            status=body.get("status"),
            remarks=body.get("remarks"),
        )
        if result.created:
            return ok(record_to_dict(result.record), message="Attendance marked", status=201)
        return ok(record_to_dict(result.record), message="Attendance updated")

    @app.route("/api/attendance/recalculate-stats", methods=["POST"], endpoint="attendance_recalculate_stats")
    @admin_required
    @api_errors
    def recalculate_stats():
        summary = container.stats_service.recompute_all_users()
        return ok(
            {
                "attempted": summary.attempted,
                "updated": summary.updated,
                "failed_user_ids": list(summary.failed_user_ids),
            },
            message=f"Recalculated stats for {summary.updated} of {summary.attempted} users",
        )

    @app.route("/api/attendance/cleanup", methods=["POST"], endpoint="attendance_cleanup")
    @admin_required
    @api_errors
    def cleanup():
        summary = container.stats_service.cleanup_invalid_records()
        return ok(
            {
                "invalid_records_found": summary.found,
                "records_updated": summary.updated,
                "users_recalculated": summary.recalculation.updated,
                "failed_user_ids": list(summary.recalculation.failed_user_ids),
            },
            message="Cleanup completed",
        )

    @app.route("/api/attendance/batch/<int:batch_id>", methods=["GET"], endpoint="attendance_batch")
    @admin_required
    @api_errors
    def batch_attendance(batch_id: int):
        date_s = request.args.get("date")
        rows = container.attendance_service.get_batch_attendance(
            batch_id,
            work_date=_parse_date(date_s) if date_s else None,
            status=request.args.get("status"),
        )
        batch = container.attendance_service.get_batch(batch_id)
        batch_info = (
            {"batch_id": batch.batch_id, "batch_code": batch.batch_code, "program_name": batch.program_name}
            if batch
            else None
        )
        return ok({"batch": batch_info, "records": [report_row_to_dict(r) for r in rows]}, count=len(rows))

    @app.route("/api/attendance/export/<int:batch_id>", methods=["GET"], endpoint="attendance_export")
    @admin_required
    @api_errors
    def export_batch(batch_id: int):
        today = _today()
        month = request.args.get("month")
        year = request.args.get("year")
        data = container.report_service.build_batch_month_report(
            batch_id,
            require_positive_int(year, "year") if year else today.year,
            require_positive_int(month, "month") if month else today.month,
        )

        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=REPORT_FIELDS)
        writer.writeheader()
        for row in data.rows:
            writer.writerow(row)

        csv_bytes = out.getvalue().encode("utf-8-sig")
        return app.response_class(
            csv_bytes,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={data.filename}"},
        )

    @app.route("/api/attendance/<int:attendance_id>", methods=["GET"], endpoint="attendance_get")
    @admin_required
    @api_errors
    def get_record(attendance_id: int):
        return ok(record_to_dict(container.attendance_service.get_record(attendance_id)))

    @app.route("/api/attendance/<int:attendance_id>", methods=["PUT"], endpoint="attendance_update")
    @admin_required
    @api_errors
    def update_record(attendance_id: int):
        body = _json_body()
        record = container.attendance_service.update_attendance(
            attendance_id,
            status=body.get("status"),
            remarks=body.get("remarks"),
        )
        return ok(record_to_dict(record), message="Attendance updated")

    @app.route("/api/attendance/<int:attendance_id>", methods=["DELETE"], endpoint="attendance_delete")
    @admin_required
    @api_errors
    def delete_record(attendance_id: int):
        container.attendance_service.delete_attendance(attendance_id)
        return ok(None, message="Attendance record deleted")
