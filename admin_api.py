from __future__ import annotations

# =========================================
# admin_api.py
# Print Shop - admin back office API
# =========================================
# Orders: list / detail / status changes / statistics / invoice PDF
# Coupons: CRUD, stats, usage history
# Products: create / update
# Users: list / detail / update / delete
# Every route requires an authenticated admin.
# =========================================

from datetime import datetime, timezone
from decimal import Decimal

from flask import Blueprint, Response, current_app, request
from flask_login import current_user
from sqlalchemy import func

from coupons import DISCOUNT_TYPES, PERCENTAGE, is_valid_coupon_code, normalize_code, status_clause
from errors import AppError, NotFoundError, ValidationError, json_body, json_text, ok_response
from orders_api import apply_status_change
from pdf_utils import build_invoice_pdf_bytes
from pricing import to_money

admin_api = Blueprint("admin_api", __name__, url_prefix="/api/admin")

# statuses that do not count towards revenue
NON_REVENUE_STATUSES = ("rejected", "cancelled")


@admin_api.before_request
def _require_admin():
    from app import admin_required

    admin_required()


def _get_or_404(model, object_id, label: str):
    from app import db

    obj = db.session.get(model, object_id)
    if not obj:
        raise NotFoundError(f"{label} not found")
    return obj


# -------------------- Orders --------------------
@admin_api.get("/orders")
def list_orders():
    from app import Order, ORDER_STATUSES, page_args, pagination_dict

    page, limit = page_args()
    query = Order.query

    status = request.args.get("status")
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ORDER_STATUSES)}")
        query = query.filter_by(status=status)

    pagination = query.order_by(Order.created_at.desc(), Order.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )

    orders = []
    for o in pagination.items:
        row = o.to_dict()
        row["customer"] = {"id": o.user.id, "email": o.user.email, "name": o.user.name}
        orders.append(row)

    return ok_response({"orders": orders, "pagination": pagination_dict(pagination)})


@admin_api.get("/orders/statistics")
def order_statistics():
    from app import db, Order, ORDER_STATUSES

    counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total), 0))
        .filter(Order.status.notin_(NON_REVENUE_STATUSES))
        .scalar()
    )
    discounts = (
        db.session.query(func.coalesce(func.sum(Order.discount_amount), 0))
        .filter(Order.status.notin_(NON_REVENUE_STATUSES))
        .scalar()
    )

    return ok_response({
        "total_orders": sum(counts.values()),
        "by_status": {s: counts.get(s, 0) for s in ORDER_STATUSES},
        "revenue": float(to_money(revenue)),
        "discounts_given": float(to_money(discounts)),
    })


@admin_api.get("/orders/<int:order_id>")
def get_order(order_id):
    from app import Order

    order = _get_or_404(Order, order_id, "Order")
    data = order.to_dict(detail=True)
    data["customer"] = order.user.to_dict()
    return ok_response(data)


@admin_api.patch("/orders/<int:order_id>/status")
def update_order_status(order_id):
    from app import Order

    data = json_body()
    status = json_text(data, "status").lower()
    if not status:
        raise ValidationError("Status is required")

    order = _get_or_404(Order, order_id, "Order")
    apply_status_change(order, status, json_text(data, "comment") or None)
    return ok_response(order.to_dict(detail=True), "Order status updated successfully")


@admin_api.get("/orders/<int:order_id>/invoice")
def order_invoice(order_id):
    from app import Order

    order = _get_or_404(Order, order_id, "Order")
    pdf_bytes = build_invoice_pdf_bytes(
        order.to_dict(detail=True),
        order.user.to_dict(),
        shop_name=current_app.config["SHOP_NAME"],
        currency=current_app.config["CURRENCY_SYMBOL"],
    )
    return Response(
        pdf_bytes,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"inline; filename=invoice_{order.order_number}.pdf"},
    )


# -------------------- Coupons --------------------
def _parse_datetime(value, name: str):
    """ISO-8601 string -> aware UTC datetime. Empty -> None."""
    if value in (None, ""):
        return None
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date/time")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_money(value, name: str):
    if value in (None, ""):
        return None
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative")
    return amount


def _optional_count(value, name: str):
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{name} must be an integer")
    if count < 1:
        raise ValidationError(f"{name} must be at least 1")
    return count


def _apply_coupon_fields(coupon, data: dict, creating: bool):
    """Validate the admin payload and copy it onto the coupon row."""
    if creating or "code" in data:
        code = normalize_code(data.get("code"))
        if not is_valid_coupon_code(code):
            raise ValidationError("Code must be 3-20 characters: A-Z, 0-9 or '-'")
        coupon.code = code

    if creating or "name" in data:
        name = json_text(data, "name")
        if not name:
            raise ValidationError("Name is required")
        coupon.name = name

    if "description" in data:
        coupon.description = json_text(data, "description") or None

    if creating or "discount_type" in data:
        discount_type = json_text(data, "discount_type").upper()
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError("Discount type must be PERCENTAGE or FIXED")
        coupon.discount_type = discount_type

    if creating or "discount_value" in data:
        value = _optional_money(data.get("discount_value"), "discount_value")
        if value is None or value <= 0:
            raise ValidationError("Discount value must be greater than 0")
        coupon.discount_value = value

    if coupon.discount_type == PERCENTAGE and Decimal(coupon.discount_value) > 100:
        raise ValidationError("Percentage discount cannot exceed 100")

    if "min_purchase_amount" in data:
        coupon.min_purchase_amount = _optional_money(data.get("min_purchase_amount"), "min_purchase_amount")
    if "max_discount_amount" in data:
        coupon.max_discount_amount = _optional_money(data.get("max_discount_amount"), "max_discount_amount")
    if "usage_limit" in data:
        coupon.usage_limit = _optional_count(data.get("usage_limit"), "usage_limit")
    if "usage_limit_per_user" in data:
        coupon.usage_limit_per_user = _optional_count(data.get("usage_limit_per_user"), "usage_limit_per_user")
    if "valid_from" in data:
        coupon.valid_from = _parse_datetime(data.get("valid_from"), "valid_from")
    if "valid_until" in data:
        coupon.valid_until = _parse_datetime(data.get("valid_until"), "valid_until")
    if "is_active" in data:
        coupon.is_active = bool(data.get("is_active"))

    valid_from = coupon.valid_from
    valid_until = coupon.valid_until
    if valid_from and valid_until:
        if valid_from.tzinfo is None:
            valid_from = valid_from.replace(tzinfo=timezone.utc)
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        if valid_until <= valid_from:
            raise ValidationError("valid_until must be after valid_from")


def _code_taken(code: str, exclude_id=None) -> bool:
    from app import Coupon

    query = Coupon.query.filter_by(code=code)
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    return query.first() is not None


@admin_api.get("/coupons")
def list_coupons():
    from app import Coupon, page_args, pagination_dict

    page, limit = page_args()
    query = Coupon.query
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(Coupon.code.ilike(like) | Coupon.name.ilike(like))
    status = (request.args.get("status") or "").strip().lower()
    if status:
        query = query.filter(status_clause(Coupon, status, datetime.now(timezone.utc)))

    pagination = query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    coupons = [c.to_dict() for c in pagination.items]

    return ok_response({"coupons": coupons, "pagination": pagination_dict(pagination)})


@admin_api.get("/coupons/stats")
def coupon_stats():
    from app import db, Coupon, CouponUsage

    coupons = Coupon.query.all()
    statuses = [c.status() for c in coupons]
    total_discount = db.session.query(func.coalesce(func.sum(CouponUsage.discount_amount), 0)).scalar()

    top = (
        db.session.query(Coupon.code, func.count(CouponUsage.id).label("uses"))
        .join(CouponUsage, CouponUsage.coupon_id == Coupon.id)
        .group_by(Coupon.code)
        .order_by(func.count(CouponUsage.id).desc())
        .limit(5)
        .all()
    )

    return ok_response({
        "total": len(coupons),
        "active": statuses.count("active"),
        "inactive": statuses.count("inactive"),
        "expired": statuses.count("expired"),
        "exhausted": statuses.count("exhausted"),
        "total_usages": CouponUsage.query.count(),
        "total_discount": float(to_money(total_discount)),
        "top_coupons": [{"code": code, "uses": uses} for code, uses in top],
    })


@admin_api.post("/coupons")
def create_coupon():
    from app import db, Coupon

    data = json_body()
    coupon = Coupon(usage_count=0)
    _apply_coupon_fields(coupon, data, creating=True)
    if _code_taken(coupon.code):
        raise AppError("Coupon code already exists", 409)

    db.session.add(coupon)
    db.session.commit()
    current_app.logger.info("Coupon %s created", coupon.code)
    return ok_response(coupon.to_dict(), "Coupon created", 201)


@admin_api.get("/coupons/<int:coupon_id>")
def get_coupon(coupon_id):
    from app import Coupon

    coupon = _get_or_404(Coupon, coupon_id, "Coupon")
    data = coupon.to_dict()
    data["usage_total"] = len(coupon.usages)
    return ok_response(data)


@admin_api.put("/coupons/<int:coupon_id>")
def update_coupon(coupon_id):
    from app import db, Coupon

    coupon = _get_or_404(Coupon, coupon_id, "Coupon")
    data = json_body()

    with db.session.no_autoflush:
        _apply_coupon_fields(coupon, data, creating=False)
        if "code" in data and _code_taken(coupon.code, exclude_id=coupon.id):
            db.session.rollback()
            raise AppError("Coupon code already exists", 409)

    db.session.commit()
    current_app.logger.info("Coupon %s updated", coupon.code)
    return ok_response(coupon.to_dict(), "Coupon updated")


@admin_api.delete("/coupons/<int:coupon_id>")
def delete_coupon(coupon_id):
    from app import db, Coupon

    coupon = _get_or_404(Coupon, coupon_id, "Coupon")
    if coupon.usages:
        # keep history for orders that used it
        coupon.is_active = False
        db.session.commit()
        return ok_response(coupon.to_dict(), "Coupon has been used; deactivated instead of deleted")

    code = coupon.code
    db.session.delete(coupon)
    db.session.commit()
    current_app.logger.info("Coupon %s deleted", code)
    return ok_response(None, "Coupon deleted")


@admin_api.get("/coupons/<int:coupon_id>/usages")
def coupon_usages(coupon_id):
    from app import CouponUsage, Coupon

    coupon = _get_or_404(Coupon, coupon_id, "Coupon")
    usages = (
        CouponUsage.query.filter_by(coupon_id=coupon.id)
        .order_by(CouponUsage.used_at.desc())
        .all()
    )
    rows = []
    for u in usages:
        row = u.to_dict()
        row["user_email"] = u.user.email if u.user else None
        rows.append(row)
    return ok_response(rows)


# -------------------- Users --------------------
USER_ROLES = ("customer", "admin")


def _order_counts(user_ids) -> dict:
    from app import db, Order

    if not user_ids:
        return {}
    return dict(
        db.session.query(Order.user_id, func.count(Order.id))
        .filter(Order.user_id.in_(user_ids))
        .group_by(Order.user_id)
        .all()
    )


@admin_api.get("/users")
def list_users():
    from app import User, page_args, pagination_dict

    page, limit = page_args()
    query = User.query

    role = (request.args.get("role") or "").strip().lower()
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
        query = query.filter_by(role=role)

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(User.email.ilike(like) | User.name.ilike(like) | User.phone.ilike(like))

    pagination = query.order_by(User.created_at.desc(), User.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    counts = _order_counts([u.id for u in pagination.items])

    users = []
    for u in pagination.items:
        row = u.to_dict()
        row["order_count"] = counts.get(u.id, 0)
        users.append(row)

    return ok_response({"users": users, "pagination": pagination_dict(pagination)})


@admin_api.get("/users/<int:user_id>")
def get_user(user_id):
    from app import db, Address, Order, User

    user = _get_or_404(User, user_id, "User")
    spent = (
        db.session.query(func.coalesce(func.sum(Order.total), 0))
        .filter(Order.user_id == user.id, Order.status.notin_(NON_REVENUE_STATUSES))
        .scalar()
    )
    recent = (
        Order.query.filter_by(user_id=user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(5)
        .all()
    )

    data = user.to_dict()
    data["addresses"] = [a.to_dict() for a in Address.query.filter_by(user_id=user.id).all()]
    data["order_count"] = _order_counts([user.id]).get(user.id, 0)
    data["total_spent"] = float(to_money(spent))
    data["recent_orders"] = [o.to_dict() for o in recent]
    return ok_response(data)


@admin_api.put("/users/<int:user_id>")
def update_user(user_id):
    """Name, phone and role. Admins cannot change their own role."""
    from app import db, User

    data = json_body()
    user = _get_or_404(User, user_id, "User")

    if "name" in data:
        user.name = json_text(data, "name") or None
    if "phone" in data:
        user.phone = json_text(data, "phone") or None
    if "role" in data:
        role = json_text(data, "role").lower()
        if role not in USER_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
        if user.id == current_user.id and role != user.role:
            raise ValidationError("You cannot change your own role")
        if role != user.role:
            current_app.logger.info("User %s role %s -> %s by %s", user.email, user.role, role, current_user.email)
        user.role = role

    db.session.commit()
    return ok_response(user.to_dict(), "User updated successfully")


@admin_api.delete("/users/<int:user_id>")
def delete_user(user_id):
    """Users with orders are kept for order history; everything else goes with the user."""
    from app import db, Address, Cart, Order, User

    user = _get_or_404(User, user_id, "User")
    if user.id == current_user.id:
        raise ValidationError("You cannot delete your own account")
    if Order.query.filter_by(user_id=user.id).count():
        raise ValidationError("User has orders and cannot be deleted")

    email = user.email
    cart = Cart.query.filter_by(user_id=user.id).first()
    if cart:
        db.session.delete(cart)
    Address.query.filter_by(user_id=user.id).delete()
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("User %s deleted by %s", email, current_user.email)
    return ok_response(None, "User deleted")


# -------------------- Products --------------------
def _apply_product_fields(product, data: dict, creating: bool):
    if creating or "name" in data:
        name = json_text(data, "name")
        if not name:
            raise ValidationError("Name is required")
        product.name = name
        if creating and not data.get("slug"):
            product.slug = "-".join(name.lower().split())
    if "slug" in data and data.get("slug"):
        product.slug = json_text(data, "slug").lower()
    if creating or "category" in data:
        category = json_text(data, "category").lower()
        if not category:
            raise ValidationError("Category is required")
        product.category = category
    if "description" in data:
        product.description = json_text(data, "description") or None
    if creating or "base_price" in data:
        price = _optional_money(data.get("base_price", 0), "base_price")
        product.base_price = price if price is not None else to_money(0)
    if "selling_price" in data:
        product.selling_price = _optional_money(data.get("selling_price"), "selling_price")
    if "is_active" in data:
        product.is_active = bool(data.get("is_active"))


@admin_api.post("/products")
def create_product():
    from app import db, Product, ProductVariant

    data = json_body()
    product = Product()
    _apply_product_fields(product, data, creating=True)
    if Product.query.filter_by(slug=product.slug).first():
        raise AppError("Product slug already exists", 409)

    variants = data.get("variants") or []
    if not isinstance(variants, list):
        raise ValidationError("variants must be a list")
    for v in variants:
        name = json_text(v, "name") if isinstance(v, dict) else ""
        if not name:
            raise ValidationError("Variant name is required")
        product.variants.append(ProductVariant(
            name=name,
            price_modifier=to_money(v.get("price_modifier", 0)),
            available=bool(v.get("available", True)),
        ))

    db.session.add(product)
    db.session.commit()
    return ok_response(product.to_dict(), "Product created", 201)


@admin_api.put("/products/<int:product_id>")
def update_product(product_id):
    from app import db, Product

    product = _get_or_404(Product, product_id, "Product")
    data = json_body()
    with db.session.no_autoflush:
        _apply_product_fields(product, data, creating=False)
        clash = Product.query.filter(Product.slug == product.slug, Product.id != product.id).first()
    if clash:
        db.session.rollback()
        raise AppError("Product slug already exists", 409)
    db.session.commit()
    return ok_response(product.to_dict(), "Product updated")
