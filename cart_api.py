from __future__ import annotations

# =========================================
# cart_api.py
# Print Shop - customer cart
# =========================================
# - one cart per user, created on first use
# - lines are validated and priced through the same path as orders,
#   and re-priced on every read so the cart follows catalog changes
# - POST /api/orders {"from_cart": true} turns the cart into an order
# =========================================

import json
from decimal import Decimal

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from errors import AppError, NotFoundError, json_body, json_text, ok_response
from orders_api import as_positive_int, db_retry_call, price_line

cart_api = Blueprint("cart_api", __name__, url_prefix="/api/cart")


def _get_cart(create: bool = False):
    from app import db, Cart

    cart = db_retry_call(lambda: Cart.query.filter_by(user_id=current_user.id).first())
    if cart is None and create:
        cart = Cart(user_id=current_user.id)
        db.session.add(cart)
        db.session.flush()
    return cart


def _own_item(item_id: int):
    from app import db, CartItem

    item = db.session.get(CartItem, item_id)
    if not item or item.cart.user_id != current_user.id:
        raise NotFoundError("Cart item not found")
    return item


def _stored_configuration(line: dict) -> str | None:
    if not line["configuration_json"]:
        return None
    config = json.loads(line["configuration_json"])
    config.pop("quantity", None)
    return json.dumps(config, sort_keys=True)


def _priced_item(item) -> dict:
    data = item.to_dict()
    try:
        line = price_line(item.order_row())
    except AppError as exc:
        # product withdrawn, variant gone or price removed since it was added
        data.update(available=False, problem=exc.message, unit_price=None, line_total=None)
        return data
    data.update(
        available=True,
        unit_price=float(line["unit_price"]),
        line_total=float(line["line_total"]),
    )
    return data


def _cart_payload(cart) -> dict:
    items = [_priced_item(i) for i in cart.items] if cart else []
    subtotal = sum((Decimal(str(i["line_total"])) for i in items if i["available"]), Decimal("0"))
    return {
        "cart_id": cart.id if cart else None,
        "items": items,
        "item_count": len(items),
        "subtotal": float(subtotal),
        "has_unavailable_items": any(not i["available"] for i in items),
    }


# -------------------- Routes --------------------
@cart_api.get("")
@login_required
def get_cart():
    return ok_response(_cart_payload(_get_cart()))


@cart_api.post("/items")
@login_required
def add_to_cart():
    """
    POST /api/cart/items
    Body: same shape as an order item:
      {product_id, variant_id?, quantity?, configuration?, custom_design_url?, custom_text?}
    Adding the same product/variant/configuration again increases its quantity.
    """
    from app import db, CartItem

    data = json_body()
    data.setdefault("quantity", 1)
    line = price_line(data)

    cart = _get_cart(create=True)
    configuration = _stored_configuration(line)
    variant_id = line["variant"].id if line["variant"] else None

    item = CartItem.query.filter_by(
        cart_id=cart.id,
        product_id=line["product"].id,
        variant_id=variant_id,
        configuration_json=configuration,
    ).first()

    if item:
        merged = dict(item.order_row(), quantity=item.quantity + line["quantity"])
        if "configuration" in merged:
            merged["configuration"]["quantity"] = merged["quantity"]
        price_line(merged)
        item.quantity = merged["quantity"]
        item.custom_design_url = line["custom_design_url"] or item.custom_design_url
        item.custom_text = line["custom_text"] or item.custom_text
        status = 200
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=line["product"].id,
            variant_id=variant_id,
            quantity=line["quantity"],
            configuration_json=configuration,
            custom_design_url=line["custom_design_url"],
            custom_text=line["custom_text"],
        )
        db.session.add(item)
        status = 201

    db.session.commit()
    current_app.logger.info("Cart %s: item %s now x%s", cart.id, item.id, item.quantity)
    return ok_response(_priced_item(item), "Item added to cart", status)


@cart_api.put("/items/<int:item_id>")
@login_required
def update_cart_item(item_id):
    from app import db

    data = json_body()
    item = _own_item(item_id)

    quantity = as_positive_int(data.get("quantity"), "quantity")
    row = dict(item.order_row(), quantity=quantity)
    if "configuration" in row:
        row["configuration"]["quantity"] = quantity
    if "custom_design_url" in data:
        row["custom_design_url"] = json_text(data, "custom_design_url")
    if "custom_text" in data:
        row["custom_text"] = json_text(data, "custom_text")

    line = price_line(row)
    item.quantity = line["quantity"]
    item.custom_design_url = line["custom_design_url"]
    item.custom_text = line["custom_text"]
    db.session.commit()
    return ok_response(_priced_item(item), "Cart item updated")


@cart_api.delete("/items/<int:item_id>")
@login_required
def remove_from_cart(item_id):
    from app import db

    item = _own_item(item_id)
    db.session.delete(item)
    db.session.commit()
    return ok_response(None, "Item removed from cart")


@cart_api.delete("")
@login_required
def clear_cart():
    from app import db

    cart = _get_cart()
    if cart is None:
        return ok_response(None, "Cart cleared")

    count = len(cart.items)
    cart.items.clear()
    db.session.commit()
    current_app.logger.info("Cart %s cleared (%d items)", cart.id, count)
    return ok_response(None, "Cart cleared")
