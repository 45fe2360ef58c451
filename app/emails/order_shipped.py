"""Shipping notification - sent when the seller adds tracking."""

from app.emails.base import carrier_name, layout, paragraph, product_block, tracking_block


class OrderShippedTemplate:
    email_type = "order_shipped"
    sender = "shipping"

    @staticmethod
    def render(context: dict) -> dict:
        body = (
            paragraph(f"Your order is on its way with {carrier_name(context.get('carrier'))}.")
            + product_block(context)
            + tracking_block(context)
        )
        return {
            "subject": f"Your order has shipped - #{context['order_number']}",
            "html": layout("Your order has shipped", body),
        }
