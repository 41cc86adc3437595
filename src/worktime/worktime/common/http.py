"""JSON envelope, caller identity and error mapping shared by the controllers.

Authentication happens upstream; the gateway forwards the caller as
``X-Employee-Id`` / ``X-Approver-Id`` and ``X-Role`` headers.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from functools import wraps
from typing import Any, Optional

from flask import jsonify, request

from ..core.enums import Role
from ..core.exceptions import (
    AuthorizationError,
    CollaboratorTimeout,
    CollaboratorUnavailable,
    ConflictError,
    DomainError,
    NotFoundError,
    SequencingError,
    ValidationError,
)
from .datetime_utils import parse_iso_date

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def ok(data: Any = None, message: str = "OK", status: int = 200):
    return jsonify({"success": True, "message": message, "data": to_jsonable(data)}), status


def fail(message: str, status: int):
    return jsonify({"success": False, "message": message, "data": None}), status


def error_status(exc: Exception) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (SequencingError, ConflictError)):
        return 409
    if isinstance(exc, (CollaboratorTimeout, CollaboratorUnavailable)):
        return 503
    return 500


def api_view(view):
    """Turn domain errors raised by a view into JSON error responses."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except DomainError as e:
            status = error_status(e)
            if status >= 500:
                logger.exception("Request failed: %s %s", request.method, request.path)
            return fail(str(e), status)
        except Exception:
            logger.exception("Unhandled error: %s %s", request.method, request.path)
            return fail("Internal server error", 500)

    return wrapper


def _header_int(name: str) -> Optional[int]:
    raw = (request.headers.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def current_employee_id() -> int:
    employee_id = _header_int("X-Employee-Id")
    if employee_id is None:
        raise AuthorizationError("Missing caller identity")
    return employee_id


def current_approver_id() -> int:
    if (request.headers.get("X-Role") or "").strip().lower() != Role.APPROVER.value:
        raise AuthorizationError("Approver role required")
    approver_id = _header_int("X-Approver-Id") or _header_int("X-Employee-Id")
    if approver_id is None:
        raise AuthorizationError("Missing approver identity")
    return approver_id


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def optional_date(value: Optional[str], field_name: str) -> Optional[date]:
    v = (value or "").strip()
    if not v:
        return None
    try:
        return parse_iso_date(v)
    except ValueError:
        raise ValidationError(f"{field_name} must be YYYY-MM-DD")


def required_date(value: Optional[str], field_name: str) -> date:
    parsed = optional_date(value, field_name)
    if parsed is None:
        raise ValidationError(f"{field_name} is required")
    return parsed
