"""Template engine: formats order documents (receipts, quotes) as markdown.

Each document type registers its own renderer function; the engine
dispatches on the type name. A generic fallback handles anything
unregistered. Rendering is deterministic, which keeps receipts testable.

Currency is a display concern only: amounts are never converted, just
formatted with the store's currency symbol.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "PKR": "Rs ",
    "SAR": "SR ",
    "AED": "AED ",
}


def fmt_money(value: Decimal | float | int | str | None, currency: str = "USD") -> str:
    """Format an amount as currency, e.g. ``$1,234.50`` or ``Rs 99.00``.

    Unknown currency codes fall back to ``CODE 1.00``.
    """
    if value is None:
        return "N/A"
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return ""

    code = (currency or "USD").upper()
    sign = "-" if amount < 0 else ""
    body = f"{abs(amount):,.2f}"
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{sign}{code} {body}"
    return f"{sign}{symbol}{body}"


def fmt_pct(value: Decimal | float | None) -> str:
    """Format a whole-number percent, dropping a trailing .0."""
    if value is None:
        return "N/A"
    text = f"{Decimal(str(value)).normalize():f}"
    return f"{text}%"


# ---------------------------------------------------------------------------
# Generic fallback renderer
# ---------------------------------------------------------------------------

def render_generic(doc_type: str, data: Dict) -> str:
    """Readable markdown dump of any document dict."""
    if "error" in data:
        return f"**Error:** {data['error']}"

    lines = [f"## {doc_type.replace('_', ' ').title()}\n"]

    for key, value in data.items():
        if key.startswith("_"):
            continue
        if isinstance(value, list):
            lines.append(f"**{key}:** {len(value)} items")
            for item in value[:5]:
                if isinstance(item, dict):
                    summary = ", ".join(f"{k}={v}" for k, v in list(item.items())[:3])
                    lines.append(f"  - {summary}")
                else:
                    lines.append(f"  - {item}")
        elif isinstance(value, dict):
            summary = ", ".join(f"{k}={v}" for k, v in list(value.items())[:4])
            lines.append(f"**{key}:** {summary}")
        else:
            lines.append(f"**{key}:** {value}")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Renderer type and registry
# ---------------------------------------------------------------------------

DocumentRenderer = Callable[[Dict[str, Any]], str]

_DOCUMENT_RENDERERS: Dict[str, DocumentRenderer] = {}


def register_renderer(doc_type: str, renderer: DocumentRenderer) -> None:
    """Register a renderer for a document type.

    Example::

        def render_receipt(order):
            ...

        register_renderer("receipt", render_receipt)
    """
    _DOCUMENT_RENDERERS[doc_type] = renderer


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TemplateEngine:
    """Formats order documents into markdown.

    Usage::

        markdown = TemplateEngine.render("receipt", order_dict)
    """

    @staticmethod
    def render(doc_type: str, data: Dict[str, Any]) -> str:
        renderer = _DOCUMENT_RENDERERS.get(doc_type)
        if renderer is None:
            return render_generic(doc_type, data)
        return renderer(data)

    @staticmethod
    def list_document_types() -> list[str]:
        return list(_DOCUMENT_RENDERERS.keys())
