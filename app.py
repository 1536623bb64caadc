import json
import os
from datetime import datetime, timezone

import click
from dotenv import load_dotenv

from flask import Flask, request
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager, UserMixin, current_user
from werkzeug.security import generate_password_hash, check_password_hash

from errors import ForbiddenError, UnauthorizedError, ValidationError, register_error_handlers
from logging_config import setup_logging

load_dotenv()
setup_logging()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")

from auth_api import auth_api  # noqa: E402
from orders_api import orders_api  # noqa: E402
from coupons_api import coupons_api  # noqa: E402
from admin_api import admin_api  # noqa: E402
from cart_api import cart_api  # noqa: E402

app.register_blueprint(auth_api)
app.register_blueprint(orders_api)
app.register_blueprint(coupons_api)
app.register_blueprint(admin_api)
app.register_blueprint(cart_api)

app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv(
    "DATABASE_URL", "sqlite:///" + os.path.join(BASE_DIR, "printshop.db")
)
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

app.config["SHOP_NAME"] = os.getenv("SHOP_NAME", "Print Shop")
app.config["CURRENCY_SYMBOL"] = os.getenv("CURRENCY_SYMBOL", "Rs.")
app.config["MAX_PRINT_QUANTITY"] = int(os.getenv("MAX_PRINT_QUANTITY", "10000"))
app.config["DB_RETRY_ATTEMPTS"] = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
app.config["DB_RETRY_DELAY"] = float(os.getenv("DB_RETRY_DELAY", "1.0"))

# Initialize extensions
db = SQLAlchemy(app)

login_manager = LoginManager()
login_manager.init_app(app)

register_error_handlers(app)

# ---- Order lifecycle ----
ORDER_STATUSES = [
    "pending_review",
    "accepted",
    "rejected",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
]

ALLOWED_TRANSITIONS = {
    "pending_review": {"accepted", "rejected", "cancelled"},
    "accepted": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "rejected": set(),
    "delivered": set(),
    "cancelled": set(),
}

# statuses whose coupon use is handed back
RELEASING_STATUSES = {"rejected", "cancelled"}

PAYMENT_METHODS = ("ONLINE", "OFFLINE")


def utcnow():
    return datetime.now(timezone.utc)


def _iso(dt):
    return dt.isoformat() if dt else None


def _num(value):
    return float(value) if value is not None else None


# -------------------- Models --------------------
class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(160), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(40), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default="customer", nullable=False)  # "admin" or "customer"
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)

    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "created_at": _iso(self.created_at),
        }


class Address(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    line1 = db.Column(db.String(200), nullable=False)
    line2 = db.Column(db.String(200), nullable=True)
    city = db.Column(db.String(80), nullable=False)
    state = db.Column(db.String(80), nullable=True)
    postal_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(60), default="India", nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    is_default = db.Column(db.Boolean, default=False, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "is_default": self.is_default,
        }

    def one_line(self) -> str:
        parts = [self.line1, self.line2, self.city, self.state, self.postal_code, self.country]
        return ", ".join(p for p in parts if p)


class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    slug = db.Column(db.String(160), unique=True, nullable=False)
    # printouts / books / maps / photos are priced from the price tables
    category = db.Column(db.String(40), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    base_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(10, 2), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    variants = db.relationship("ProductVariant", backref="product", lazy=True, cascade="all, delete-orphan")

    def list_price(self):
        return self.selling_price if self.selling_price is not None else self.base_price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "category": self.category,
            "description": self.description,
            "base_price": _num(self.base_price),
            "selling_price": _num(self.selling_price),
            "is_active": self.is_active,
            "variants": [v.to_dict() for v in self.variants],
        }


class ProductVariant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price_modifier = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    available = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_modifier": _num(self.price_modifier),
            "available": self.available,
        }


class Coupon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    discount_type = db.Column(db.String(12), nullable=False)  # PERCENTAGE / FIXED
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    min_purchase_amount = db.Column(db.Numeric(10, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(10, 2), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)  # None = unlimited
    usage_count = db.Column(db.Integer, default=0, nullable=False)
    usage_limit_per_user = db.Column(db.Integer, default=1, nullable=True)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    usages = db.relationship("CouponUsage", backref="coupon", lazy=True, cascade="all, delete-orphan")

    def status(self, now=None) -> str:
        from coupons import CouponRejection, evaluate_coupon

        if not self.is_active:
            return "inactive"
        verdict = evaluate_coupon(self.code, 0, self, now=now)
        if verdict.reason == CouponRejection.EXPIRED:
            return "expired"
        if verdict.reason == CouponRejection.EXHAUSTED:
            return "exhausted"
        return "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": _num(self.discount_value),
            "min_purchase_amount": _num(self.min_purchase_amount),
            "max_discount_amount": _num(self.max_discount_amount),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "usage_limit_per_user": self.usage_limit_per_user,
            "valid_from": _iso(self.valid_from),
            "valid_until": _iso(self.valid_until),
            "is_active": self.is_active,
            "status": self.status(),
        }


class CouponUsage(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=True, index=True)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    used_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "code": self.coupon.code if self.coupon else None,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "discount_amount": _num(self.discount_amount),
            "used_at": _iso(self.used_at),
        }


class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    # display number: YYYYMMDD-HHMMSS-xxxxxx
    order_number = db.Column(db.String(40), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("address.id"), nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id"), nullable=True)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    shipping_charges = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    payment_method = db.Column(db.String(10), nullable=False)
    status = db.Column(db.String(20), default=ORDER_STATUSES[0], nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    address = db.relationship("Address")
    coupon = db.relationship("Coupon")
    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    def to_dict(self, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal": _num(self.subtotal),
            "discount_amount": _num(self.discount_amount),
            "shipping_charges": _num(self.shipping_charges),
            "total": _num(self.total),
            "coupon_code": self.coupon.code if self.coupon else None,
            "created_at": _iso(self.created_at),
            "items": [i.to_dict() for i in self.items],
        }
        if detail:
            data["address"] = self.address.to_dict() if self.address else None
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variant.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(10, 2), nullable=False)
    configuration_json = db.Column(db.Text, nullable=True)  # priced configuration snapshot
    custom_design_url = db.Column(db.String(500), nullable=True)
    custom_text = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price": _num(self.unit_price),
            "line_total": _num(self.line_total),
            "configuration_json": self.configuration_json,
            "custom_design_url": self.custom_design_url,
            "custom_text": self.custom_text,
        }


class OrderStatusHistory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("order.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    actor_email = db.Column(db.String(160), nullable=True)  # who did it
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "comment": self.comment,
            "actor": self.actor_email,
            "created_at": _iso(self.created_at),
        }


class Cart(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = db.relationship(
        "CartItem", backref="cart", lazy=True, cascade="all, delete-orphan", order_by="CartItem.id"
    )


class CartItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variant.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    configuration_json = db.Column(db.Text, nullable=True)  # print configuration without quantity
    custom_design_url = db.Column(db.String(500), nullable=True)
    custom_text = db.Column(db.Text, nullable=True)
    added_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def order_row(self) -> dict:
        """The line as POST /api/orders would receive it."""
        row = {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "custom_design_url": self.custom_design_url,
            "custom_text": self.custom_text,
        }
        if self.configuration_json:
            row["configuration"] = dict(json.loads(self.configuration_json), quantity=self.quantity)
        return row

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "variant_id": self.variant_id,
            "variant_name": self.variant.name if self.variant else None,
            "quantity": self.quantity,
            "configuration": json.loads(self.configuration_json) if self.configuration_json else None,
            "custom_design_url": self.custom_design_url,
            "custom_text": self.custom_text,
            "added_at": _iso(self.added_at),
        }


# -------------------- Auth --------------------
@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    raise UnauthorizedError("User not authenticated")


def admin_required():
    if not current_user.is_authenticated:
        raise UnauthorizedError("User not authenticated")
    if not current_user.is_admin():
        raise ForbiddenError("Admin access required")


# -------------------- Helpers --------------------
def can_transition(old: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(old, set())


def record_status(order: Order, status: str, comment: str | None = None):
    """Set the order status and append a history row (caller commits)."""
    actor = current_user.email if current_user and current_user.is_authenticated else None
    order.status = status
    entry = OrderStatusHistory(status=status, comment=comment, actor_email=actor)
    order.status_history.append(entry)
    return entry


def page_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", default_limit))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    return max(page, 1), min(max(limit, 1), max_limit)


def pagination_dict(pagination) -> dict:
    return {
        "page": pagination.page,
        "limit": pagination.per_page,
        "total": pagination.total,
        "total_pages": pagination.pages,
    }


@app.get("/")
def index():
    return {"ok": True, "service": app.config["SHOP_NAME"]}


@app.get("/health")
def health_check():
    return {"status": "ok"}


# -------------------- One-time init --------------------
@app.cli.command("init-db")
@click.option("--sample", is_flag=True, help="Also create sample products and a welcome coupon.")
def init_db(sample):
    """Create tables and seed the admin user from ADMIN_EMAIL / ADMIN_PASS."""
    db.create_all()

    admin_email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    admin_pass = os.getenv("ADMIN_PASS", "admin123")

    existing = User.query.filter_by(email=admin_email).first()
    if not existing:
        u = User(email=admin_email, name="Admin", role="admin")
        u.set_password(admin_pass)
        db.session.add(u)
        db.session.commit()
        click.echo(f"DB initialized. Admin user created: {admin_email}")
    else:
        click.echo("DB initialized. Admin user already exists.")

    if sample:
        seed_sample_catalog()
        click.echo("Sample catalog seeded.")


def seed_sample_catalog():
    samples = [
        ("Document Printouts", "printouts", "0"),
        ("Book Printing", "books", "0"),
        ("Map Printing", "maps", "0"),
        ("Photo Prints", "photos", "0"),
        ("Business Cards (100)", "business_cards", "250"),
    ]
    for name, category, price in samples:
        slug = name.lower().replace(" ", "-").replace("(", "").replace(")", "")
        if Product.query.filter_by(slug=slug).first():
            continue
        db.session.add(Product(name=name, slug=slug, category=category, base_price=price))

    if not Coupon.query.filter_by(code="WELCOME10").first():
        db.session.add(Coupon(
            code="WELCOME10",
            name="Welcome offer",
            description="10% off your first order",
            discount_type="PERCENTAGE",
            discount_value=10,
            max_discount_amount=100,
        ))
    db.session.commit()


if __name__ == "__main__":
    app.run(debug=True)
