"""Delivery exception - returned, failed or unknown carrier status."""

from app.emails.base import layout, paragraph, product_block, tracking_block


class DeliveryExceptionTemplate:
    email_type = "delivery_exception"
    sender = "shipping"

    @staticmethod
    def render(context: dict) -> dict:
        reason = context.get("reason") or "Delivery issue detected"
        body = (
            paragraph(f"The carrier reported a problem with your delivery: {reason}.")
            + product_block(context)
            + tracking_block(context)
            + paragraph("Our support team is looking into it. Reply to this email if you have questions.")
        )
        return {
            "subject": f"Delivery issue with your order - #{context['order_number']}",
            "html": layout("Delivery issue with your order", body),
        }
