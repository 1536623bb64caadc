from __future__ import annotations

# =========================================
# orders_api.py
# Print Shop - Quotes, catalog + customer orders API
# =========================================
# - POST /api/quote prices a print configuration (no DB)
# - POST /api/orders prices every line, applies an optional coupon,
#   redeems it with a guarded UPDATE and stores the order in one commit
# - Confirmation email is best effort and never fails the request
# =========================================

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from coupons import evaluate_coupon, normalize_code, redeem_coupon, rejection_error, release_coupon
from db_retry import retry_query
from email_utils import is_configured as email_configured, send_order_confirmation
from errors import (
    NotFoundError,
    UnauthorizedError,
    UsageExhaustedError,
    ValidationError,
    json_body,
    json_text,
    ok_response,
)
from pdf_utils import build_invoice_pdf_bytes
from pricing import (
    CATEGORIES,
    ProductConfiguration,
    assemble_total,
    binding_options,
    calculate_quote,
    lamination_options,
    paper_options,
    to_money,
)
from price_tables import PRICE_TABLES

orders_api = Blueprint("orders_api", __name__, url_prefix="/api")

CUSTOMER_CANCELLABLE = {"pending_review", "accepted"}


def db_retry_call(fn):
    from app import db

    return retry_query(
        fn,
        retries=current_app.config.get("DB_RETRY_ATTEMPTS", 3),
        delay=current_app.config.get("DB_RETRY_DELAY", 1.0),
        session=db.session,
    )


def _new_order_number() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]


def as_positive_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{name} must be an integer")
    if number < 1:
        raise ValidationError(f"{name} must be at least 1")
    return number


# -------------------- Quotes + catalog --------------------
@orders_api.post("/quote")
def quote():
    """
    POST /api/quote
    Body: a configuration object (or {"configuration": {...}}):
      category, size, paper_type, color_type, sides, binding, binding_pages,
      lamination, pricing_type, quantity, pages
    """
    data = json_body()
    raw = data.get("configuration", data)
    config = ProductConfiguration.from_dict(raw, max_quantity=current_app.config["MAX_PRINT_QUANTITY"])
    result = calculate_quote(config)
    return ok_response({"configuration": config.to_dict(), "quote": result.to_dict()})


@orders_api.get("/catalog/<category>/options")
def catalog_options(category):
    if category not in CATEGORIES:
        raise NotFoundError(f"Unknown category: {category}")

    table = PRICE_TABLES[category]
    if category == "photos":
        sizes = sorted({size for by_size in table.values() for size in by_size})
    else:
        sizes = list(table)

    size = request.args.get("size") or (sizes[0] if sizes else "")
    return ok_response({
        "category": category,
        "sizes": sizes,
        "size": size,
        "paper_types": paper_options(size, category),
        "bindings": binding_options(size, category),
        "laminations": lamination_options(size, category),
    })


@orders_api.get("/products")
def list_products():
    from app import Product

    query = Product.query.filter_by(is_active=True)
    category = request.args.get("category")
    if category:
        query = query.filter_by(category=category)
    products = db_retry_call(lambda: query.order_by(Product.name.asc()).all())
    return ok_response([p.to_dict() for p in products])


@orders_api.get("/products/<int:product_id>")
def get_product(product_id):
    from app import db, Product

    product = db_retry_call(lambda: db.session.get(Product, product_id))
    if not product or not product.is_active:
        raise NotFoundError("Product not found")
    return ok_response(product.to_dict())


# -------------------- Pricing order lines --------------------
def price_line(row: dict) -> dict:
    """Resolve one requested item into the values stored on OrderItem."""
    from app import db, Product, ProductVariant

    if not isinstance(row, dict):
        raise ValidationError("Invalid order item")

    product_id = row.get("product_id")
    if not product_id:
        raise ValidationError("Invalid order item")
    product = db_retry_call(lambda: db.session.get(Product, as_positive_int(product_id, "product_id")))
    if not product or not product.is_active:
        raise NotFoundError(f"Product {product_id} not found")

    extras = {
        "custom_design_url": json_text(row, "custom_design_url") or None,
        "custom_text": json_text(row, "custom_text") or None,
    }
    if extras["custom_design_url"] and len(extras["custom_design_url"]) > 500:
        raise ValidationError("custom_design_url is too long")

    max_qty = current_app.config["MAX_PRINT_QUANTITY"]
    config_data = row.get("configuration")

    if config_data is not None:
        if product.category not in CATEGORIES:
            raise ValidationError(f"Product {product_id} is not configurable")
        if not isinstance(config_data, dict):
            raise ValidationError("Configuration must be an object")
        config_data = dict(config_data)
        config_data.setdefault("category", product.category)
        config_data.setdefault("quantity", row.get("quantity", 1))
        if config_data["category"] != product.category:
            raise ValidationError("Configuration category does not match the product")

        config = ProductConfiguration.from_dict(config_data, max_quantity=max_qty)
        priced = calculate_quote(config)
        return {
            "product": product,
            "variant": None,
            "quantity": config.quantity,
            "unit_price": priced.price_per_unit,
            "line_total": priced.total_price,
            "configuration_json": json.dumps(config.to_dict()),
            **extras,
        }

    quantity = as_positive_int(row.get("quantity"), "quantity")
    if quantity > max_qty:
        raise ValidationError(f"Quantity must be between 1 and {max_qty}")

    unit = to_money(product.list_price())
    variant = None
    variant_id = row.get("variant_id")
    if variant_id:
        variant_id = as_positive_int(variant_id, "variant_id")
        variant = ProductVariant.query.filter_by(id=variant_id, product_id=product.id).first()
        if not variant or not variant.available:
            raise ValidationError(f"Variant {variant_id} not available")
        unit = to_money(unit + Decimal(variant.price_modifier))

    return {
        "product": product,
        "variant": variant,
        "quantity": quantity,
        "unit_price": unit,
        "line_total": to_money(unit * quantity),
        "configuration_json": None,
        **extras,
    }


def _send_confirmation(order) -> bool:
    if not email_configured():
        current_app.logger.info("SMTP not configured; skipping confirmation for %s", order.order_number)
        return False

    order_data = order.to_dict(detail=True)
    customer = order.user.to_dict()
    try:
        pdf_bytes = build_invoice_pdf_bytes(
            order_data,
            customer,
            shop_name=current_app.config["SHOP_NAME"],
            currency=current_app.config["CURRENCY_SYMBOL"],
        )
        send_order_confirmation(order_data, customer, pdf_bytes=pdf_bytes)
        return True
    except Exception:
        current_app.logger.exception("Order email failed for %s", order.order_number)
        return False


# -------------------- Orders --------------------
@orders_api.post("/orders")
@login_required
def create_order():
    """
    POST /api/orders
    Body:
      - items: [{product_id, variant_id?, quantity, configuration?,
                 custom_design_url?, custom_text?}, ...]
      - address_id, payment_method ("ONLINE" / "OFFLINE")
      - coupon_code (optional), shipping_charges (optional)
      - from_cart: true orders the saved cart instead of "items" and empties it
    """
    from app import (
        db, Address, Cart, Coupon, CouponUsage, Order, OrderItem,
        ORDER_STATUSES, PAYMENT_METHODS, record_status,
    )

    data = json_body()

    cart = None
    if data.get("from_cart") is True:
        cart = db_retry_call(lambda: Cart.query.filter_by(user_id=current_user.id).first())
        items = [item.order_row() for item in cart.items] if cart else []
    else:
        items = data.get("items")
    if not items or not isinstance(items, list):
        raise ValidationError("Order items are required")

    address_id = data.get("address_id")
    if not address_id:
        raise ValidationError("Shipping address is required")
    address_id = as_positive_int(address_id, "address_id")

    payment_method = json_text(data, "payment_method").upper()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError("Payment method must be ONLINE or OFFLINE")

    address = db_retry_call(lambda: Address.query.filter_by(id=address_id, user_id=current_user.id).first())
    if not address:
        raise NotFoundError("Address not found")

    lines = [price_line(row) for row in items]
    subtotal = sum((line["line_total"] for line in lines), Decimal("0"))

    # -----------------------------
    # Coupon (optional)
    # -----------------------------
    coupon = None
    discount = Decimal("0")
    code = normalize_code(data.get("coupon_code"))
    if code:
        coupon = db_retry_call(lambda: Coupon.query.filter_by(code=code).first())
        used = 0
        if coupon:
            used = CouponUsage.query.filter_by(coupon_id=coupon.id, user_id=current_user.id).count()
        verdict = evaluate_coupon(code, subtotal, coupon, user_usage_count=used)
        if not verdict.valid:
            raise rejection_error(verdict)
        discount = verdict.discount

    totals = assemble_total(subtotal, discount, data.get("shipping_charges") or 0)

    # -----------------------------
    # Persist (single transaction)
    # -----------------------------
    order = Order(
        order_number=_new_order_number(),
        user_id=current_user.id,
        address_id=address.id,
        coupon_id=coupon.id if coupon else None,
        subtotal=totals.subtotal,
        discount_amount=totals.discount,
        shipping_charges=totals.fees,
        total=totals.total,
        payment_method=payment_method,
    )
    for line, row in zip(lines, items):
        order.items.append(OrderItem(
            product_id=line["product"].id,
            variant_id=line["variant"].id if line["variant"] else None,
            quantity=line["quantity"],
            unit_price=line["unit_price"],
            line_total=line["line_total"],
            configuration_json=line["configuration_json"],
            custom_design_url=line["custom_design_url"],
            custom_text=line["custom_text"],
        ))
    record_status(order, ORDER_STATUSES[0], "Order created")
    db.session.add(order)

    if coupon:
        if not redeem_coupon(db.session, Coupon, coupon.id):
            db.session.rollback()
            current_app.logger.warning("Coupon %s exhausted while placing order", coupon.code)
            raise UsageExhaustedError()
        db.session.flush()
        db.session.add(CouponUsage(
            coupon_id=coupon.id,
            user_id=current_user.id,
            order_id=order.id,
            discount_amount=totals.discount,
        ))

    if cart:
        cart.items.clear()

    db.session.commit()
    current_app.logger.info(
        "Order %s created: subtotal=%s discount=%s total=%s",
        order.order_number, totals.subtotal, totals.discount, totals.total,
    )

    _send_confirmation(order)

    return ok_response(order.to_dict(detail=True), "Order created successfully", 201)


@orders_api.get("/orders")
@login_required
def my_orders():
    from app import Order, page_args, pagination_dict

    page, limit = page_args()
    pagination = db_retry_call(lambda: (
        Order.query.filter_by(user_id=current_user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .paginate(page=page, per_page=limit, error_out=False)
    ))
    return ok_response({
        "orders": [o.to_dict() for o in pagination.items],
        "pagination": pagination_dict(pagination),
    })


@orders_api.get("/orders/<int:order_id>")
@login_required
def get_order(order_id):
    from app import Order

    order = db_retry_call(lambda: Order.query.filter_by(id=order_id, user_id=current_user.id).first())
    if not order:
        raise NotFoundError("Order not found")
    return ok_response(order.to_dict(detail=True))


@orders_api.post("/orders/<int:order_id>/cancel")
@login_required
def cancel_order(order_id):
    from app import Order

    order = Order.query.filter_by(id=order_id, user_id=current_user.id).first()
    if not order:
        raise NotFoundError("Order not found")
    if order.status not in CUSTOMER_CANCELLABLE:
        raise ValidationError(f"Order can no longer be cancelled (status: {order.status})")

    data = request.get_json(silent=True)
    comment = json_text(data, "comment") if isinstance(data, dict) else ""
    apply_status_change(order, "cancelled", comment or "Cancelled by customer")
    return ok_response(order.to_dict(detail=True), "Order cancelled")


@orders_api.get("/orders/<order_number>/track")
def track_order(order_number):
    """
    Public tracking. Logged-in owners see their own orders; everyone else
    must pass ?email= or ?phone= matching the account on the order.
    """
    from app import Order

    order = db_retry_call(lambda: Order.query.filter_by(order_number=order_number).first())
    if not order:
        raise NotFoundError("Order not found")

    email = (request.args.get("email") or "").strip().lower()
    phone = (request.args.get("phone") or "").strip()

    if current_user.is_authenticated and not current_user.is_admin():
        if current_user.id != order.user_id:
            raise UnauthorizedError("Not authorized to view this order")
    elif not current_user.is_authenticated:
        if not email and not phone:
            raise ValidationError("Email or phone required for public tracking")
        if email and order.user.email != email:
            raise UnauthorizedError("Email does not match")
        if phone and order.user.phone != phone:
            raise UnauthorizedError("Phone does not match")

    return ok_response({
        "order_number": order.order_number,
        "status": order.status,
        "timeline": [h.to_dict() for h in order.status_history],
    })


# -------------------- Lifecycle (shared with admin) --------------------
def apply_status_change(order, new_status: str, comment: str | None = None):
    """
    Move an order along the lifecycle and write the history row.
    Rejected / cancelled orders hand their coupon use back.
    """
    from app import db, Coupon, CouponUsage, ORDER_STATUSES, RELEASING_STATUSES, can_transition, record_status

    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(ORDER_STATUSES)}")
    if not can_transition(order.status, new_status):
        raise ValidationError(f"Cannot change status from {order.status} to {new_status}")

    old = order.status
    record_status(order, new_status, comment or f"Status updated to {new_status}")

    if new_status in RELEASING_STATUSES and order.coupon_id:
        release_coupon(db.session, Coupon, order.coupon_id)
        CouponUsage.query.filter_by(order_id=order.id).delete()

    db.session.commit()
    current_app.logger.info("Order %s: %s -> %s", order.order_number, old, new_status)
    return order
