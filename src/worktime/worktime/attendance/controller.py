from __future__ import annotations

from dataclasses import asdict

from flask import Flask, request

from ..common.http import api_view, current_employee_id, json_body, ok, optional_date
from ..container import Container
from .model import AttendanceRecord, Session


def session_to_json(s: Session) -> dict:
    return {
        "session_id": s.session_id,
        "check_in": s.check_in,
        "check_out": s.check_out,
        "work_location": s.work_location,
        "location_details": s.location_details,
        "status": s.status,
        "worked_minutes": s.worked_minutes,
        "break_minutes": s.break_minutes,
        "breaks": [
            {"break_id": b.break_id, "start_time": b.start_time, "end_time": b.end_time, "duration_minutes": b.duration_minutes}
            for b in s.breaks
        ],
    }


def record_to_json(r: AttendanceRecord) -> dict:
    return {
        "record_id": r.record_id,
        "employee_id": r.employee_id,
        "date": r.work_date,
        "status": r.status,
        "status_reason": r.status_reason,
        "half_day_type": r.half_day_type,
        "finalized": r.finalized,
        "finalized_at": r.finalized_at,
        "clock_in": r.clock_in,
        "clock_out": r.clock_out,
        "worked_minutes": r.worked_minutes,
        "break_minutes": r.break_minutes,
        "late_minutes": r.late_minutes,
        "is_late": r.is_late,
        "early_departure_minutes": r.early_departure_minutes,
        "overtime_minutes": r.overtime_minutes,
        "sessions": [session_to_json(s) for s in r.effective_sessions()],
    }


def register(app: Flask, container: Container) -> None:
    tracker = container.session_tracker

    @app.route("/api/attendance/sessions/start", methods=["POST"], endpoint="attendance_start_session")
    @api_view
    def start_session():
        data = json_body()
        record = tracker.start_session(
            current_employee_id(),
            data.get("work_location") or data.get("workLocation") or "office",
            data.get("location_details") or data.get("locationDetails"),
        )
        return ok(record_to_json(record), "Session started", 201)

    @app.route("/api/attendance/sessions/end", methods=["POST"], endpoint="attendance_end_session")
    @api_view
    def end_session():
        record = tracker.end_session(current_employee_id())
        return ok(record_to_json(record), "Session ended")

    @app.route("/api/attendance/breaks/start", methods=["POST"], endpoint="attendance_start_break")
    @api_view
    def start_break():
        record = tracker.start_break(current_employee_id())
        return ok(record_to_json(record), "Break started")

    @app.route("/api/attendance/breaks/end", methods=["POST"], endpoint="attendance_end_break")
    @api_view
    def end_break():
        record = tracker.end_break(current_employee_id())
        return ok(record_to_json(record), "Break ended")

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    @api_view
    def today():
        record = tracker.get_day(current_employee_id())
        return ok(record_to_json(record))

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    @api_view
    def history():
        start = optional_date(request.args.get("start"), "start")
        end = optional_date(request.args.get("end"), "end")
        records = tracker.history(current_employee_id(), start, end)
        return ok([record_to_json(r) for r in records])

    @app.route("/api/attendance/finalization-status", methods=["GET"], endpoint="attendance_finalization_status")
    @api_view
    def finalization_status():
        work_date = optional_date(request.args.get("date"), "date")
        status = tracker.finalization_status(current_employee_id(), work_date)
        return ok(asdict(status))
