from __future__ import annotations

# =========================================
# coupons.py
# Print Shop - coupon rules
# =========================================
# - evaluate_coupon(): pure verdict for (code, subtotal, coupon record)
# - redeem_coupon(): guarded usage increment, one UPDATE statement
# - code helpers used by the admin coupon screens
# =========================================

import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import and_, not_, or_, update

from errors import (
    CouponNotApplicableError,
    CouponNotFoundError,
    ExpiredCouponError,
    InactiveCouponError,
    UsageExhaustedError,
    ValidationError,
)
from pricing import ZERO, to_money

PERCENTAGE = "PERCENTAGE"
FIXED = "FIXED"
DISCOUNT_TYPES = (PERCENTAGE, FIXED)

CODE_PATTERN = re.compile(r"^[A-Z0-9-]{3,20}$")
_CODE_CHARS = string.ascii_uppercase + string.digits


class CouponRejection(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MINIMUM_NOT_MET = "minimum_not_met"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class CouponVerdict:
    valid: bool
    discount: Decimal
    reason: CouponRejection | None = None
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "discount": float(self.discount),
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
        }


def _reject(reason: CouponRejection, message: str) -> CouponVerdict:
    return CouponVerdict(valid=False, discount=to_money(ZERO), reason=reason, message=message)


def normalize_code(code) -> str:
    if code is None:
        return ""
    if not isinstance(code, str):
        raise ValidationError("Coupon code must be a string")
    return code.strip().upper()


def is_valid_coupon_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(code or ""))


def generate_coupon_code(prefix: str = "SAVE", length: int = 6) -> str:
    """PREFIX-XXXXXX, e.g. SAVE-AB12CD."""
    random_part = "".join(secrets.choice(_CODE_CHARS) for _ in range(length))
    return f"{prefix.upper()}-{random_part}"


def format_discount(discount_type: str, value, currency: str = "Rs.") -> str:
    amount = to_money(value).normalize()
    if discount_type == PERCENTAGE:
        return f"{amount:f}% OFF"
    return f"{currency}{amount:f} OFF"


def calculate_discount(discount_type: str, value, subtotal, max_discount=None) -> Decimal:
    """min(raw discount, max_discount, subtotal), never below zero."""
    sub = to_money(subtotal)
    if sub <= 0:
        return to_money(ZERO)

    if discount_type == PERCENTAGE:
        discount = Decimal(str(value)) * sub / 100
    elif discount_type == FIXED:
        discount = Decimal(str(value))
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    if max_discount is not None and discount > Decimal(str(max_discount)):
        discount = Decimal(str(max_discount))

    discount = min(discount, sub)
    return to_money(max(discount, ZERO))


def _aware(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; they are stored as UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def evaluate_coupon(code, subtotal, coupon, now: datetime | None = None,
                    user_usage_count: int = 0) -> CouponVerdict:
    """
    Verdict for applying `coupon` (a Coupon row or anything with the same
    attributes, or None) to an order of `subtotal`.

    Checks run in order: exists + active, validity window, global usage cap,
    minimum purchase, per-user cap. The first failure wins and no discount
    is applied.
    """
    if coupon is None or normalize_code(code) != normalize_code(coupon.code):
        return _reject(CouponRejection.NOT_FOUND, "Invalid coupon code")

    if not coupon.is_active:
        return _reject(CouponRejection.INACTIVE, "Coupon is not active")

    now = _aware(now) or datetime.now(timezone.utc)
    valid_from = _aware(coupon.valid_from)
    valid_until = _aware(coupon.valid_until)
    if (valid_from and now < valid_from) or (valid_until and now >= valid_until):
        return _reject(CouponRejection.EXPIRED, "Coupon has expired or is not yet valid")

    if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
        return _reject(CouponRejection.EXHAUSTED, "Coupon usage limit reached")

    sub = to_money(subtotal)
    if coupon.min_purchase_amount is not None and sub < to_money(coupon.min_purchase_amount):
        return _reject(
            CouponRejection.MINIMUM_NOT_MET,
            f"Minimum purchase amount of {to_money(coupon.min_purchase_amount)} required",
        )

    per_user = coupon.usage_limit_per_user
    if per_user is not None and user_usage_count >= per_user:
        return _reject(CouponRejection.ALREADY_USED, "You have already used this coupon")

    discount = calculate_discount(
        coupon.discount_type, coupon.discount_value, sub, coupon.max_discount_amount
    )
    return CouponVerdict(valid=True, discount=discount)


_ERRORS = {
    CouponRejection.NOT_FOUND: CouponNotFoundError,
    CouponRejection.INACTIVE: InactiveCouponError,
    CouponRejection.EXPIRED: ExpiredCouponError,
    CouponRejection.EXHAUSTED: UsageExhaustedError,
}


def rejection_error(verdict: CouponVerdict):
    """The AppError to raise for a failed verdict."""
    if verdict.valid:
        raise ValueError("verdict is valid")
    error_cls = _ERRORS.get(verdict.reason)
    if error_cls is not None:
        return error_cls(verdict.message) if verdict.message else error_cls()
    return CouponNotApplicableError(verdict.message or "Coupon cannot be applied", verdict.reason.value)


COUPON_STATUSES = ("active", "inactive", "expired", "exhausted")


def status_clause(coupon_model, status: str, now: datetime):
    """
    SQL predicate matching Coupon.status(): inactive, then outside the
    validity window (expired), then used up (exhausted), else active.
    """
    if status not in COUPON_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(COUPON_STATUSES)}")

    if status == "inactive":
        return coupon_model.is_active.is_(False)

    live = coupon_model.is_active.is_(True)
    out_of_window = or_(
        and_(coupon_model.valid_from.isnot(None), coupon_model.valid_from > now),
        and_(coupon_model.valid_until.isnot(None), coupon_model.valid_until <= now),
    )
    if status == "expired":
        return and_(live, out_of_window)

    used_up = and_(
        coupon_model.usage_limit.isnot(None),
        coupon_model.usage_count >= coupon_model.usage_limit,
    )
    if status == "exhausted":
        return and_(live, not_(out_of_window), used_up)
    return and_(live, not_(out_of_window), not_(used_up))


def redeem_coupon(session, coupon_model, coupon_id) -> bool:
    """
    Count one use of a coupon, guarded by its usage limit.

    The increment and the limit check are a single conditional UPDATE, so
    concurrent redemptions can never push usage_count past usage_limit.
    Returns False when the guard rejected the update.
    """
    stmt = (
        update(coupon_model)
        .where(coupon_model.id == coupon_id)
        .where(
            or_(
                coupon_model.usage_limit.is_(None),
                coupon_model.usage_count < coupon_model.usage_limit,
            )
        )
        .values(usage_count=coupon_model.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def release_coupon(session, coupon_model, coupon_id) -> None:
    stmt = (
        update(coupon_model)
        .where(coupon_model.id == coupon_id)
        .where(coupon_model.usage_count > 0)
        .values(usage_count=coupon_model.usage_count - 1)
        .execution_options(synchronize_session=False)
    )
    session.execute(stmt)
