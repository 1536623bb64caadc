from __future__ import annotations

# =========================================
# email_utils.py
# Print Shop - Email helpers
# =========================================
# Sends the customer order confirmation (invoice PDF attached) and, when
# configured, a copy to the shop inbox.
#
# Configuration (Flask app.config or environment variables):
#   SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS
#   SMTP_USE_TLS (true/false), SMTP_USE_SSL (true/false)
#   FROM_EMAIL (default: SMTP_USER)
#   ORDER_NOTIFY_EMAIL (optional shop copy)
# =========================================

import os
import smtplib
from email.message import EmailMessage
from typing import Optional


def _cfg(app, key: str, default=None):
    # Prefer Flask app.config, fall back to environment
    if app and key in app.config:
        return app.config.get(key, default)
    return os.getenv(key, default)


def _as_bool(val) -> bool:
    if isinstance(val, bool):
        return val
    if val is None:
        return False
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _current_app():
    try:
        from flask import current_app
        return current_app._get_current_object()
    except RuntimeError:
        return None


def is_configured(app=None) -> bool:
    app = app or _current_app()
    return bool(_cfg(app, "SMTP_HOST")) and bool(_cfg(app, "FROM_EMAIL", _cfg(app, "SMTP_USER")))


def _money(value, currency: str) -> str:
    return f"{currency}{float(value or 0):,.2f}"


def build_confirmation_subject(order: dict, shop_name: str) -> str:
    return f"{shop_name} - Order {order.get('order_number', '')} received"


def build_confirmation_body(order: dict, customer: dict, shop_name: str, currency: str) -> str:
    lines = []
    lines.append(f"Hi {customer.get('name') or customer.get('email', '')},")
    lines.append("")
    lines.append("We received your order and will review it shortly.")
    lines.append("")
    lines.append(f"Order: {order.get('order_number', '')}")
    lines.append(f"Payment: {order.get('payment_method', '')}")
    lines.append("")
    lines.append("Items")
    items = order.get("items") or []
    if not items:
        lines.append("  (none)")
    for i, row in enumerate(items, start=1):
        lines.append(
            f"  {i}. {row.get('product_name', '')} x{row.get('quantity', '')}"
            f"  {_money(row.get('line_total'), currency)}"
        )
    lines.append("")
    lines.append(f"Subtotal: {_money(order.get('subtotal'), currency)}")
    if order.get("discount_amount"):
        code = order.get("coupon_code")
        label = f"Discount ({code})" if code else "Discount"
        lines.append(f"{label}: -{_money(order.get('discount_amount'), currency)}")
    if order.get("shipping_charges"):
        lines.append(f"Shipping: {_money(order.get('shipping_charges'), currency)}")
    lines.append(f"Total: {_money(order.get('total'), currency)}")
    lines.append("")
    lines.append("Thanks,")
    lines.append(shop_name)
    return "\n".join(lines) + "\n"


def _send_email(
    host: str,
    port: int,
    user: Optional[str],
    password: Optional[str],
    use_tls: bool,
    use_ssl: bool,
    msg: EmailMessage,
):
    if use_ssl:
        with smtplib.SMTP_SSL(host, port) as s:
            if user and password:
                s.login(user, password)
            s.send_message(msg)
        return

    with smtplib.SMTP(host, port) as s:
        s.ehlo()
        if use_tls:
            s.starttls()
            s.ehlo()
        if user and password:
            s.login(user, password)
        s.send_message(msg)


def send_order_confirmation(order: dict, customer: dict, pdf_bytes: bytes | None = None) -> bool:
    """
    Sends the confirmation to the customer (and a copy to ORDER_NOTIFY_EMAIL).
    Raises if SMTP is misconfigured or the send fails (caller can catch).
    """
    app = _current_app()

    smtp_host = _cfg(app, "SMTP_HOST")
    smtp_port = int(_cfg(app, "SMTP_PORT", 587))
    smtp_user = _cfg(app, "SMTP_USER")
    smtp_pass = _cfg(app, "SMTP_PASS")
    use_tls = _as_bool(_cfg(app, "SMTP_USE_TLS", True))
    use_ssl = _as_bool(_cfg(app, "SMTP_USE_SSL", False))

    from_email = _cfg(app, "FROM_EMAIL", smtp_user)
    notify_email = _cfg(app, "ORDER_NOTIFY_EMAIL")
    shop_name = _cfg(app, "SHOP_NAME", "Print Shop")
    currency = _cfg(app, "CURRENCY_SYMBOL", "Rs.")

    if not smtp_host:
        raise RuntimeError("SMTP_HOST is not configured")
    if not from_email:
        raise RuntimeError("FROM_EMAIL (or SMTP_USER) is not configured")

    to_email = (customer.get("email") or "").strip()
    if not to_email:
        raise ValueError("Customer has no email address")

    msg = EmailMessage()
    msg["Subject"] = build_confirmation_subject(order, shop_name)
    msg["From"] = from_email
    msg["To"] = to_email
    if notify_email:
        msg["Bcc"] = notify_email
    msg.set_content(build_confirmation_body(order, customer, shop_name, currency))

    if pdf_bytes:
        msg.add_attachment(
            pdf_bytes,
            maintype="application",
            subtype="pdf",
            filename=f"invoice_{order.get('order_number', '')}.pdf",
        )

    _send_email(
        host=smtp_host,
        port=smtp_port,
        user=smtp_user,
        password=smtp_pass,
        use_tls=use_tls,
        use_ssl=use_ssl,
        msg=msg,
    )
    return True
