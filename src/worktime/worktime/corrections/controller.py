from __future__ import annotations

from dataclasses import asdict

from flask import Flask, request

from ..common.http import api_view, current_approver_id, current_employee_id, json_body, ok, required_date
from ..container import Container


def register(app: Flask, container: Container) -> None:
    corrections = container.correction_service

    @app.route("/api/corrections", methods=["POST"], endpoint="corrections_submit")
    @api_view
    def submit():
        data = json_body()
        created = corrections.submit(
            current_employee_id(),
            required_date(data.get("date"), "date"),
            data.get("requested_clock_in"),
            data.get("requested_clock_out"),
            data.get("reason") or "",
            data.get("issue_type") or "other",
        )
        return ok(asdict(created), "Correction request submitted", 201)

    @app.route("/api/corrections", methods=["GET"], endpoint="corrections_mine")
    @api_view
    def my_requests():
        return ok([asdict(r) for r in corrections.list_for_employee(current_employee_id())])

    @app.route("/api/corrections/<int:request_id>/cancel", methods=["POST"], endpoint="corrections_cancel")
    @api_view
    def cancel(request_id: int):
        cancelled = corrections.cancel(request_id, current_employee_id())
        return ok(asdict(cancelled), "Correction request cancelled")

    @app.route("/api/admin/corrections", methods=["GET"], endpoint="corrections_admin_list")
    @api_view
    def admin_list():
        current_approver_id()
        status = request.args.get("status") or "pending"
        return ok([asdict(r) for r in corrections.list_by_status(status)])

    @app.route("/api/admin/corrections/<int:request_id>/approve", methods=["POST"], endpoint="corrections_approve")
    @api_view
    def approve(request_id: int):
        approver_id = current_approver_id()
        data = json_body()
        decided = corrections.decide(
            request_id,
            approver_id,
            True,
            data.get("remarks") or "",
            corrected_clock_in=data.get("corrected_clock_in"),
            corrected_clock_out=data.get("corrected_clock_out"),
        )
        return ok(asdict(decided), "Correction approved")

    @app.route("/api/admin/corrections/<int:request_id>/reject", methods=["POST"], endpoint="corrections_reject")
    @api_view
    def reject(request_id: int):
        approver_id = current_approver_id()
        data = json_body()
        decided = corrections.decide(request_id, approver_id, False, data.get("remarks") or "")
        return ok(asdict(decided), "Correction rejected")
