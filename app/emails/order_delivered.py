"""Delivery confirmation."""

from app.emails.base import layout, paragraph, product_block


class OrderDeliveredTemplate:
    email_type = "order_delivered"
    sender = "shipping"

    @staticmethod
    def render(context: dict) -> dict:
        body = (
            paragraph("The carrier reports your package was delivered. Enjoy your card!")
            + product_block(context)
            + paragraph("If anything is wrong with your order, reply to this email and we'll help.")
        )
        return {
            "subject": f"Your order has been delivered - #{context['order_number']}",
            "html": layout("Your order has been delivered!", body),
        }
