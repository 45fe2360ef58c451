"""In-transit update from carrier tracking."""

from app.emails.base import layout, paragraph, product_block, tracking_block


class OrderInTransitTemplate:
    email_type = "order_in_transit"
    sender = "shipping"

    @staticmethod
    def render(context: dict) -> dict:
        body = (
            paragraph("Your package is moving through the carrier network.")
            + product_block(context)
            + tracking_block(context)
        )
        return {
            "subject": f"Your order is in transit - #{context['order_number']}",
            "html": layout("Your order is in transit", body),
        }
