from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest


def order_payload(customer, products, **extra):
    payload = {
        "address_id": customer["address_id"],
        "payment_method": "ONLINE",
        "items": [
            {"product_id": products["printouts"], "configuration": {
                "size": "A4", "paper_type": "70 Gsm", "color_type": "bw", "sides": "single", "quantity": 100,
            }},
            {"product_id": products["cards"], "variant_id": products["matte"], "quantity": 2},
        ],
    }
    payload.update(extra)
    return payload


def test_validate_coupon(app, customer_client, make_coupon):
    make_coupon("SAVE20", max_discount_amount=Decimal("150"))

    resp = customer_client.post("/api/coupons/validate", json={"code": "save20", "order_amount": 1000})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["coupon"]["code"] == "SAVE20"
    assert data["discount_amount"] == 150.0
    assert data["final_amount"] == 850.0


def test_validate_reports_typed_reasons(app, customer_client, make_coupon):
    now = datetime.now(timezone.utc)
    make_coupon("OLD10", valid_until=now - timedelta(days=1))
    make_coupon("OFF10", is_active=False)
    make_coupon("FULL10", usage_limit=2, usage_count=2)
    make_coupon("MIN500", min_purchase_amount=Decimal("500"))

    def reason(code, amount=100):
        resp = customer_client.post("/api/coupons/validate", json={"code": code, "order_amount": amount})
        return resp.status_code, resp.get_json().get("reason")

    assert reason("NOPE") == (404, "not_found")
    assert reason("OLD10") == (400, "expired")
    assert reason("OFF10") == (400, "inactive")
    assert reason("FULL10") == (400, "exhausted")
    assert reason("MIN500") == (400, "minimum_not_met")
    assert reason("MIN500", 500)[0] == 200


def test_validate_requires_code_and_amount(app, customer_client):
    post = customer_client.post
    assert post("/api/coupons/validate", json={"order_amount": 100}).status_code == 400
    assert post("/api/coupons/validate", json={"code": "SAVE20"}).status_code == 400
    assert post("/api/coupons/validate", json={"code": "SAVE20", "order_amount": 0}).status_code == 400


@pytest.mark.parametrize("payload", [
    {"code": 20, "order_amount": 100},
    {"code": ["SAVE20"], "order_amount": 100},
    {"code": {"value": "SAVE20"}, "order_amount": 100},
    {"code": "SAVE20", "order_amount": "Infinity"},
    {"code": "SAVE20", "order_amount": [100]},
])
def test_validate_rejects_malformed_values(app, customer_client, make_coupon, payload):
    make_coupon("SAVE20")
    resp = customer_client.post("/api/coupons/validate", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["ok"] is False


def test_validate_requires_login(app):
    resp = app.test_client().post("/api/coupons/validate", json={"code": "SAVE20", "order_amount": 100})
    assert resp.status_code == 401


def test_available_lists_only_redeemable_coupons(app, make_coupon):
    now = datetime.now(timezone.utc)
    make_coupon("SAVE20")
    make_coupon("OLD10", valid_until=now - timedelta(days=1))
    make_coupon("SOON10", valid_from=now + timedelta(days=1))
    make_coupon("OFF10", is_active=False)
    make_coupon("FULL10", usage_limit=1, usage_count=1)
    make_coupon("LATER", valid_until=now + timedelta(days=30))

    rows = app.test_client().get("/api/coupons/available").get_json()["data"]

    assert {r["code"] for r in rows} == {"SAVE20", "LATER"}
    assert "usage_count" not in rows[0]


def test_my_coupons(app, customer, customer_client, products, make_coupon):
    make_coupon("SAVE20")
    assert customer_client.get("/api/coupons/my-coupons").get_json()["data"] == []

    customer_client.post("/api/orders", json=order_payload(customer, products, coupon_code="SAVE20"))

    rows = customer_client.get("/api/coupons/my-coupons").get_json()["data"]
    assert len(rows) == 1
    assert rows[0]["code"] == "SAVE20"
    assert rows[0]["discount_amount"] == 118.0


def test_per_user_limit_blocks_second_use(app, customer, customer_client, products, make_coupon):
    make_coupon("SAVE20", usage_limit_per_user=1)
    customer_client.post("/api/orders", json=order_payload(customer, products, coupon_code="SAVE20"))

    resp = customer_client.post("/api/coupons/validate", json={"code": "SAVE20", "order_amount": 500})
    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "already_used"
