from __future__ import annotations

# =========================================
# auth_api.py
# Print Shop - accounts + addresses
# =========================================
# Session auth via Flask-Login. JSON in, JSON out.
# =========================================

import re

from flask import Blueprint, current_app
from flask_login import current_user, login_required, login_user, logout_user

from errors import AppError, NotFoundError, UnauthorizedError, ValidationError, json_body, json_text, ok_response

auth_api = Blueprint("auth_api", __name__, url_prefix="/api")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ADDRESS_REQUIRED = ("name", "line1", "city", "postal_code")


@auth_api.post("/auth/register")
def register():
    from app import db, User

    data = json_body()
    email = json_text(data, "email").lower()
    password = json_text(data, "password")

    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    if User.query.filter_by(email=email).first():
        raise AppError("That email is already registered", 409)

    user = User(
        email=email,
        name=json_text(data, "name") or None,
        phone=json_text(data, "phone") or None,
        role="customer",
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    login_user(user)
    current_app.logger.info("Registered user %s", email)
    return ok_response(user.to_dict(), "Account created", 201)


@auth_api.post("/auth/login")
def login():
    from app import User

    data = json_body()
    email = json_text(data, "email").lower()
    password = json_text(data, "password")

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        raise UnauthorizedError("Invalid login")

    login_user(user)
    return ok_response(user.to_dict())


@auth_api.post("/auth/logout")
@login_required
def logout():
    logout_user()
    return ok_response(None, "Logged out")


@auth_api.get("/auth/me")
@login_required
def me():
    return ok_response(current_user.to_dict())


# -------------------- Addresses --------------------
@auth_api.get("/addresses")
@login_required
def list_addresses():
    from app import Address

    rows = (
        Address.query.filter_by(user_id=current_user.id)
        .order_by(Address.is_default.desc(), Address.id.asc())
        .all()
    )
    return ok_response([a.to_dict() for a in rows])


@auth_api.post("/addresses")
@login_required
def create_address():
    from app import db, Address

    data = json_body()
    missing = [k for k in ADDRESS_REQUIRED if not json_text(data, k)]
    if missing:
        raise ValidationError(f"Missing address fields: {', '.join(missing)}")

    is_default = bool(data.get("is_default"))
    has_any = Address.query.filter_by(user_id=current_user.id).count() > 0
    if is_default or not has_any:
        Address.query.filter_by(user_id=current_user.id).update({"is_default": False})
        is_default = True

    address = Address(
        user_id=current_user.id,
        name=json_text(data, "name"),
        line1=json_text(data, "line1"),
        line2=json_text(data, "line2") or None,
        city=json_text(data, "city"),
        state=json_text(data, "state") or None,
        postal_code=json_text(data, "postal_code"),
        country=json_text(data, "country") or "India",
        phone=json_text(data, "phone") or None,
        is_default=is_default,
    )
    db.session.add(address)
    db.session.commit()
    return ok_response(address.to_dict(), "Address saved", 201)


@auth_api.delete("/addresses/<int:address_id>")
@login_required
def delete_address(address_id):
    from app import db, Address, Order

    address = Address.query.filter_by(id=address_id, user_id=current_user.id).first()
    if not address:
        raise NotFoundError("Address not found")

    # orders keep pointing at their shipping address
    if Order.query.filter_by(address_id=address.id).count():
        raise ValidationError("Address is used by an order and cannot be deleted")

    db.session.delete(address)
    db.session.commit()
    return ok_response(None, "Address deleted")
