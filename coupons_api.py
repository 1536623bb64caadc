from __future__ import annotations

# =========================================
# coupons_api.py
# Print Shop - customer coupon endpoints
# =========================================

from datetime import datetime, timezone

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from coupons import evaluate_coupon, normalize_code, rejection_error, status_clause
from db_retry import retry_query
from errors import ValidationError, json_body, ok_response
from pricing import to_money

coupons_api = Blueprint("coupons_api", __name__, url_prefix="/api/coupons")


@coupons_api.get("/available")
def available_coupons():
    from app import db, Coupon

    now = datetime.now(timezone.utc)
    query = (
        Coupon.query.filter(status_clause(Coupon, "active", now))
        .order_by(Coupon.created_at.desc())
    )
    coupons = retry_query(query.all, retries=current_app.config["DB_RETRY_ATTEMPTS"],
                          delay=current_app.config["DB_RETRY_DELAY"], session=db.session)

    fields = ("id", "code", "name", "description", "discount_type", "discount_value",
              "min_purchase_amount", "max_discount_amount", "valid_until")
    return ok_response([{k: c.to_dict()[k] for k in fields} for c in coupons])


@coupons_api.post("/validate")
@login_required
def validate_coupon():
    """
    POST /api/coupons/validate  {"code": "...", "order_amount": 1000}
    Returns the discount and final amount, or a typed coupon error.
    """
    from app import Coupon, CouponUsage

    data = json_body()
    code = normalize_code(data.get("code"))
    if not code:
        raise ValidationError("Coupon code is required")

    order_amount = data.get("order_amount")
    if order_amount is None or isinstance(order_amount, bool):
        raise ValidationError("Order amount is required")
    amount = to_money(order_amount)
    if amount <= 0:
        raise ValidationError("Order amount is required")

    coupon = Coupon.query.filter_by(code=code).first()
    used = 0
    if coupon:
        used = CouponUsage.query.filter_by(coupon_id=coupon.id, user_id=current_user.id).count()

    verdict = evaluate_coupon(code, amount, coupon, user_usage_count=used)
    if not verdict.valid:
        raise rejection_error(verdict)

    return ok_response({
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "name": coupon.name,
            "description": coupon.description,
            "discount_type": coupon.discount_type,
            "discount_value": float(coupon.discount_value),
        },
        "discount_amount": float(verdict.discount),
        "final_amount": float(amount - verdict.discount),
    })


@coupons_api.get("/my-coupons")
@login_required
def my_coupons():
    from app import CouponUsage

    usages = (
        CouponUsage.query.filter_by(user_id=current_user.id)
        .order_by(CouponUsage.used_at.desc())
        .all()
    )
    return ok_response([u.to_dict() for u in usages])
