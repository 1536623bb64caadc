from __future__ import annotations

# =========================================
# pdf_utils.py
# Print Shop - invoice PDF
# =========================================
# Produces a simple, printable invoice for an order using ReportLab.
# =========================================

import json
from io import BytesIO
from datetime import datetime, timezone

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas


def _safe(s) -> str:
    if s is None:
        return ""
    return str(s)


def _money(value, currency: str) -> str:
    return f"{currency}{float(value or 0):,.2f}"


def _wrap(text: str, max_chars: int) -> list[str]:
    if len(text) <= max_chars:
        return [text]
    words = text.split()
    lines, cur = [], ""
    for w in words:
        if len(cur) + len(w) + 1 <= max_chars:
            cur = (cur + " " + w).strip()
        else:
            if cur:
                lines.append(cur)
            cur = w
    if cur:
        lines.append(cur)
    return lines


def describe_item(row: dict) -> str:
    """Product name plus the priced configuration, e.g. 'Printouts (A4, 70 Gsm, bw/single)'."""
    name = _safe(row.get("product_name"))
    raw = row.get("configuration_json")
    if not raw:
        return name
    try:
        cfg = json.loads(raw)
    except ValueError:
        return name
    parts = [cfg.get("size"), cfg.get("paper_type")]
    if cfg.get("color_type"):
        parts.append(f"{cfg.get('color_type')}/{cfg.get('sides')}")
    for key in ("binding", "binding_pages", "lamination"):
        if cfg.get(key) and cfg.get(key) != "Not Required":
            parts.append(cfg[key])
    if cfg.get("category") == "books":
        parts.append(f"{cfg.get('pages')} pages")
    detail = ", ".join(_safe(p) for p in parts if p)
    return f"{name} ({detail})" if detail else name


def build_invoice_pdf_bytes(order: dict, customer: dict, shop_name: str = "Print Shop",
                            currency: str = "Rs.") -> bytes:
    """
    Returns PDF bytes.
    order: Order.to_dict(detail=True)
    customer: dict with name / email / phone
    """
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4

    # ---- Header
    margin = 0.6 * inch
    y = height - margin

    c.setFont("Helvetica-Bold", 16)
    c.drawString(margin, y, f"{shop_name} - Invoice")
    y -= 0.28 * inch

    c.setFont("Helvetica", 10)
    c.drawString(margin, y, f"Order: {_safe(order.get('order_number'))}")
    c.drawRightString(width - margin, y, f"Status: {_safe(order.get('status')).replace('_', ' ').title()}")
    y -= 0.18 * inch

    created_at = _safe(order.get("created_at")) or datetime.now(timezone.utc).isoformat()
    c.drawString(margin, y, f"Date: {created_at[:10]}")
    c.drawRightString(width - margin, y, f"Payment: {_safe(order.get('payment_method'))}")
    y -= 0.30 * inch

    # ---- Customer block
    c.setFont("Helvetica-Bold", 12)
    c.drawString(margin, y, "Bill To")
    y -= 0.18 * inch

    c.setFont("Helvetica", 10)
    c.drawString(margin, y, _safe(customer.get("name")) or _safe(customer.get("email")))
    y -= 0.16 * inch
    c.drawString(margin, y, f"Email: {_safe(customer.get('email'))}")
    y -= 0.16 * inch
    address = order.get("address") or {}
    if address:
        for line in _wrap(", ".join(_safe(address.get(k)) for k in ("line1", "line2", "city", "state", "postal_code") if address.get(k)), 90):
            c.drawString(margin, y, line)
            y -= 0.16 * inch
    y -= 0.12 * inch

    # ---- Items table
    col_item = margin
    col_qty = margin + 4.2 * inch
    col_unit = margin + 5.0 * inch
    col_total = width - margin

    def header(title):
        nonlocal y
        c.setFont("Helvetica-Bold", 12)
        c.drawString(margin, y, title)
        y -= 0.22 * inch
        c.setFont("Helvetica-Bold", 9)
        c.drawString(col_item, y, "Item")
        c.drawString(col_qty, y, "Qty")
        c.drawString(col_unit, y, "Unit")
        c.drawRightString(col_total, y, "Amount")
        y -= 0.12 * inch
        c.setLineWidth(0.5)
        c.line(margin, y, width - margin, y)
        y -= 0.14 * inch
        c.setFont("Helvetica", 9)

    header("Items")

    items = order.get("items") or []
    if not items:
        c.drawString(margin, y, "(No items)")
        y -= 0.18 * inch

    for row in items:
        desc_lines = _wrap(describe_item(row), 70)
        for i, text in enumerate(desc_lines):
            if y < margin + 1.5 * inch:
                c.showPage()
                y = height - margin
                header("Items (cont.)")
            c.drawString(col_item, y, text)
            if i == 0:
                c.drawString(col_qty, y, _safe(row.get("quantity")))
                c.drawString(col_unit, y, _money(row.get("unit_price"), currency))
                c.drawRightString(col_total, y, _money(row.get("line_total"), currency))
            y -= 0.14 * inch
        y -= 0.06 * inch

    # ---- Totals
    y -= 0.10 * inch
    c.line(col_unit, y, width - margin, y)
    y -= 0.18 * inch

    rows = [("Subtotal", _money(order.get("subtotal"), currency))]
    if order.get("discount_amount"):
        label = f"Discount ({order['coupon_code']})" if order.get("coupon_code") else "Discount"
        rows.append((label, "-" + _money(order.get("discount_amount"), currency)))
    if order.get("shipping_charges"):
        rows.append(("Shipping", _money(order.get("shipping_charges"), currency)))
    rows.append(("Total", _money(order.get("total"), currency)))

    for label, amount in rows:
        c.setFont("Helvetica-Bold" if label == "Total" else "Helvetica", 10)
        c.drawString(col_unit - 0.8 * inch, y, label)
        c.drawRightString(col_total, y, amount)
        y -= 0.18 * inch

    # ---- Footer note
    c.setFont("Helvetica-Oblique", 8)
    c.drawString(margin, margin * 0.8, f"Generated automatically by {shop_name}")

    c.showPage()
    c.save()

    buf.seek(0)
    return buf.read()
