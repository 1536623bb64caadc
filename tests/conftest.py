import os
import tempfile
from decimal import Decimal

# point the app at a throwaway database before it is imported
_DB_DIR = tempfile.mkdtemp(prefix="printshop-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["DB_RETRY_DELAY"] = "0"
os.environ.pop("SMTP_HOST", None)

import pytest  # noqa: E402

from app import app as flask_app, db, Address, Coupon, Product, ProductVariant, User  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


def _save(app, obj):
    with app.app_context():
        db.session.add(obj)
        db.session.commit()
        return obj.id


@pytest.fixture
def make_user(app):
    def _make(email, role="customer", phone=None):
        name = email.split("@")[0].title()
        user = User(email=email, name=name, phone=phone, role=role)
        user.set_password(PASSWORD)
        user_id = _save(app, user)
        address_id = _save(app, Address(
            user_id=user_id, name=name, line1="12 MG Road", city="Pune",
            state="MH", postal_code="411001", is_default=True,
        ))
        return {"id": user_id, "email": email, "address_id": address_id}
    return _make


@pytest.fixture
def login(app):
    def _login(email):
        client = app.test_client()
        resp = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login


@pytest.fixture
def customer(make_user):
    return make_user("asha@example.com", phone="9800000001")


@pytest.fixture
def customer_client(customer, login):
    return login(customer["email"])


@pytest.fixture
def admin_client(make_user, login):
    admin = make_user("admin@example.com", role="admin")
    return login(admin["email"])


@pytest.fixture
def products(app):
    printouts = Product(name="Document Printouts", slug="document-printouts",
                        category="printouts", base_price=Decimal("0"))
    cards = Product(name="Business Cards", slug="business-cards", category="business_cards",
                    base_price=Decimal("250.00"), selling_price=Decimal("200.00"))
    cards.variants.append(ProductVariant(name="Matte finish", price_modifier=Decimal("50.00")))
    cards.variants.append(ProductVariant(name="Foil", price_modifier=Decimal("90.00"), available=False))
    with app.app_context():
        db.session.add_all([printouts, cards])
        db.session.commit()
        return {
            "printouts": printouts.id,
            "cards": cards.id,
            "matte": cards.variants[0].id,
            "foil": cards.variants[1].id,
        }


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE20", **fields):
        values = dict(
            name=code.title(),
            discount_type="PERCENTAGE",
            discount_value=Decimal("20"),
            usage_count=0,
        )
        values.update(fields)
        return _save(app, Coupon(code=code, **values))
    return _make
