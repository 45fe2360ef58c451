"""Shared HTML building blocks for transactional emails."""

from html import escape
from typing import Optional
from urllib.parse import quote

BRAND_NAME = "Kado.io"

CARRIER_TRACKING_URLS = {
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={}",
    "ups": "https://www.ups.com/track?tracknum={}",
    "fedex": "https://www.fedex.com/fedextrack/?trknbr={}",
    "dhl_express": "https://www.dhl.com/us-en/home/tracking/tracking-express.html?tracking-id={}",
}

CARRIER_NAMES = {
    "usps": "USPS",
    "ups": "UPS",
    "fedex": "FedEx",
    "dhl_express": "DHL Express",
}


def tracking_url(carrier: Optional[str], tracking_number: Optional[str]) -> Optional[str]:
    if not carrier or not tracking_number:
        return None
    pattern = CARRIER_TRACKING_URLS.get(carrier.lower())
    return pattern.format(quote(tracking_number)) if pattern else None


def carrier_name(carrier: Optional[str]) -> str:
    if not carrier:
        return "the carrier"
    return CARRIER_NAMES.get(carrier.lower(), carrier.upper())


def layout(heading: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family:Helvetica,Arial,sans-serif;"
        "background:#f6f6f6;margin:0;padding:24px\">"
        "<div style=\"max-width:560px;margin:0 auto;background:#fff;border-radius:8px;padding:32px\">"
        f"<h1 style=\"font-size:22px;margin:0 0 16px\">{escape(heading)}</h1>"
        f"{body}"
        f"<p style=\"color:#888;font-size:12px;margin-top:32px\">{BRAND_NAME}</p>"
        "</div></body></html>"
    )


def paragraph(text: str) -> str:
    return f"<p style=\"font-size:15px;line-height:1.5\">{escape(text)}</p>"


def product_block(context: dict) -> str:
    image = context.get("product_image")
    image_html = (
        f"<img src=\"{escape(image)}\" alt=\"\" width=\"96\" style=\"border-radius:4px\"/>"
        if image else ""
    )
    return (
        "<table style=\"width:100%;margin:16px 0\"><tr>"
        f"<td style=\"width:104px\">{image_html}</td>"
        f"<td><strong>{escape(context.get('product_name') or 'Order')}</strong><br/>"
        f"Order #{escape(context.get('order_number', ''))}</td>"
        "</tr></table>"
    )


def totals_block(context: dict) -> str:
    rows = [("Subtotal", context.get("subtotal"))]
    if context.get("show_shipping"):
        rows.append(("Shipping", context.get("shipping")))
    if context.get("show_tax"):
        rows.append(("Tax", context.get("tax")))
    rows.append(("Total", context.get("total")))
    cells = "".join(
        f"<tr><td>{escape(label)}</td><td style=\"text-align:right\">{escape(value or '')}</td></tr>"
        for label, value in rows
    )
    return f"<table style=\"width:100%;border-top:1px solid #eee;padding-top:8px\">{cells}</table>"


def address_block(title: str, lines: Optional[list]) -> str:
    if not lines:
        return ""
    body = "<br/>".join(escape(line) for line in lines)
    return f"<h3 style=\"font-size:15px;margin:20px 0 4px\">{escape(title)}</h3><p>{body}</p>"


def tracking_block(context: dict) -> str:
    number = context.get("tracking_number")
    if not number:
        return ""
    url = tracking_url(context.get("carrier"), number)
    link = f"<a href=\"{escape(url)}\">{escape(number)}</a>" if url else escape(number)
    return paragraph_html(f"{escape(carrier_name(context.get('carrier')))} tracking: {link}")


def paragraph_html(html: str) -> str:
    return f"<p style=\"font-size:15px;line-height:1.5\">{html}</p>"
