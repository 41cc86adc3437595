from __future__ import annotations

from flask import Flask

from ..common.http import api_view, current_approver_id, fail, json_body, ok, optional_date
from ..container import Container
from ..core.exceptions import ValidationError


def register(app: Flask, container: Container) -> None:
    finalization = container.finalization_service

    @app.route("/api/admin/finalization/run", methods=["POST"], endpoint="finalization_run")
    @api_view
    def run():
        current_approver_id()
        data = json_body()
        start = optional_date(data.get("start"), "start")
        end = optional_date(data.get("end"), "end")
        if (start is None) != (end is None):
            raise ValidationError("start and end must be given together")

        result = finalization.backfill(start, end) if start else finalization.sweep()
        if result.skipped:
            return fail("Another finalization run is in progress", 409)
        return ok(result.as_dict(), "Finalization run completed")
