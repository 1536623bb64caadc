from __future__ import annotations

# =========================================
# errors.py
# Print Shop - API error types + JSON responses
# =========================================
# Every AppError raised inside a view is turned into
#   {"ok": false, "error": "<message>"}
# with the error's status code. Success bodies use ok_response().
# =========================================

from flask import jsonify, request
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    status_code = 400

    def __init__(self, message: str = "Bad request", status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class UnauthorizedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed"):
        super().__init__(message)


class PriceNotFoundError(NotFoundError):
    """No price-table entry for the requested attribute combination."""

    def __init__(self, category: str, keys: tuple):
        label = " / ".join(str(k) for k in keys)
        super().__init__(f"No price for {category}: {label}")
        self.category = category
        self.keys = keys


# ---- Coupon failures (deterministic, never retried)
class CouponError(AppError):
    reason = "invalid"

    def __init__(self, message: str):
        super().__init__(message)


class InactiveCouponError(CouponError):
    reason = "inactive"

    def __init__(self, message: str = "Coupon is not active"):
        super().__init__(message)


class ExpiredCouponError(CouponError):
    reason = "expired"

    def __init__(self, message: str = "Coupon has expired or is not yet valid"):
        super().__init__(message)


class UsageExhaustedError(CouponError):
    reason = "exhausted"

    def __init__(self, message: str = "Coupon usage limit reached"):
        super().__init__(message)


class CouponNotApplicableError(CouponError):
    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class CouponNotFoundError(NotFoundError):
    reason = "not_found"

    def __init__(self, message: str = "Invalid coupon code"):
        super().__init__(message)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def json_text(data: dict, name: str) -> str:
    """Stripped string value of data[name]; "" when missing or null."""
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value.strip()


def ok_response(data=None, message: str | None = None, status_code: int = 200):
    body = {"ok": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status_code


def error_response(error: str, status_code: int = 400, **extra):
    body = {"ok": False, "error": error}
    body.update(extra)
    return jsonify(body), status_code


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def _handle_app_error(err: AppError):
        extra = {}
        reason = getattr(err, "reason", None)
        if reason:
            extra["reason"] = reason
        return error_response(err.message, err.status_code, **extra)

    @app.errorhandler(HTTPException)
    def _handle_http_error(err: HTTPException):
        return error_response(err.description or err.name, err.code or 500)

    @app.errorhandler(Exception)
    def _handle_unexpected(err: Exception):
        app.logger.exception("Unhandled error")
        return error_response("Internal server error", 500)
