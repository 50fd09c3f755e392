"""Receipt renderer for placed orders.

Registers a "receipt" document renderer with the template engine. Taxes are
itemized one line per code, the way storefronts have to show them.
"""

from decimal import Decimal
from typing import Any, Dict

from core.engine.template_engine import (
    fmt_money,
    fmt_pct,
    register_renderer,
)


def _tax_label(code: str, line: Dict[str, Any], currency: str) -> str:
    name = line.get("name") or code
    if line.get("type") == "percentage":
        return f"{name} ({fmt_pct(line.get('rate'))})"
    if line.get("apply_per_item"):
        return f"{name} ({fmt_money(line.get('rate'), currency)} x {line.get('count', 0)})"
    return name


def render_receipt(order: Dict[str, Any]) -> str:
    """Render an order dict (OrderRepository.get) into markdown."""
    if "error" in order:
        return f"**Error:** {order['error']}"

    currency = order.get("currency", "USD")
    lines = [f"## Receipt for order {order.get('id', '')}\n"]
    if order.get("customer_name"):
        lines.append(f"**Customer:** {order['customer_name']}")
    lines.append(f"**Status:** {order.get('status', 'pending')}\n")

    lines.append("| Item | Qty | Unit | Line total |")
    lines.append("|------|-----|------|------------|")
    for item in order.get("items", []):
        qty = int(item.get("quantity", 1))
        unit = item.get("unit_price", 0)
        line_total = Decimal(str(unit)) * qty
        name = item.get("name") or item.get("product_id", "")
        lines.append(
            f"| {name[:40]} | {qty} | {fmt_money(unit, currency)} | "
            f"{fmt_money(line_total, currency)} |"
        )

    lines.append("")
    lines.append(f"- **Subtotal:** {fmt_money(order.get('subtotal'), currency)}")
    discount = order.get("discount_total")
    if discount and Decimal(str(discount)) > 0:
        label = f" ({order['coupon_code']})" if order.get("coupon_code") else ""
        lines.append(f"- **Discount{label}:** -{fmt_money(discount, currency)}")
    lines.append(f"- **Shipping:** {fmt_money(order.get('shipping_cost'), currency)}")

    for code, line in (order.get("tax_breakdown") or {}).items():
        lines.append(f"- **{_tax_label(code, line, currency)}:** {fmt_money(line.get('amount'), currency)}")

    lines.append(f"\n**Total:** {fmt_money(order.get('total'), currency)}")
    return "\n".join(lines)


# Auto-register on import
register_renderer("receipt", render_receipt)
