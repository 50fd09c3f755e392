"""Test money formatting and the receipt renderer."""
from decimal import Decimal

from core.engine.template_engine import TemplateEngine, fmt_money, fmt_pct
import storefront.renderer  # noqa: F401


def test_fmt_money_symbols():
    assert fmt_money(Decimal("1234.5")) == "$1,234.50"
    assert fmt_money("99", "PKR") == "Rs 99.00"
    assert fmt_money(5, "eur") == "€5.00"
    assert fmt_money("-3.1", "USD") == "-$3.10"


def test_fmt_money_unknown_currency_and_none():
    assert fmt_money("1", "XYZ") == "XYZ 1.00"
    assert fmt_money(None) == "N/A"


def test_fmt_pct():
    assert fmt_pct(Decimal("5.0")) == "5%"
    assert fmt_pct("12.50") == "12.5%"


def test_receipt_registered():
    assert "receipt" in TemplateEngine.list_document_types()


def test_receipt_itemizes_taxes():
    order = {
        "id": "ord-1",
        "customer_name": "Ada Lovelace",
        "status": "pending",
        "currency": "USD",
        "items": [{"product_id": "p1", "name": "Boots", "unit_price": "100", "quantity": 2}],
        "subtotal": "200.00",
        "discount_total": "20.00",
        "coupon_code": "SAVE10",
        "shipping_cost": "5.00",
        "tax_breakdown": {
            "VAT": {"name": "VAT", "amount": "9.00", "rate": "5", "type": "percentage", "apply_per_item": True, "count": 2},
            "ECO": {"name": "Eco fee", "amount": "4.00", "rate": "2", "type": "fixed", "apply_per_item": True, "count": 2},
        },
        "total": "198.00",
    }
    markdown = TemplateEngine.render("receipt", order)
    assert "## Receipt for order ord-1" in markdown
    assert "| Boots | 2 | $100.00 | $200.00 |" in markdown
    assert "**Discount (SAVE10):** -$20.00" in markdown
    assert "**VAT (5%):** $9.00" in markdown
    assert "**Eco fee ($2.00 x 2):** $4.00" in markdown
    assert "**Total:** $198.00" in markdown


def test_unregistered_type_falls_back_to_generic():
    markdown = TemplateEngine.render("packing_slip", {"order": "ord-1", "items": [1, 2]})
    assert markdown.startswith("## Packing Slip")
    assert "**items:** 2 items" in markdown
