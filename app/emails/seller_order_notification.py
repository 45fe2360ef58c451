"""New order notification - sent to the seller when their listing sells."""

from app.emails.base import address_block, layout, paragraph, product_block, totals_block


class SellerOrderNotificationTemplate:
    email_type = "seller_order_notification"
    sender = "orders"

    @staticmethod
    def render(context: dict) -> dict:
        body = (
            paragraph(f"Good news{', ' + context['seller_name'] if context.get('seller_name') else ''}! Your card sold.")
            + product_block(context)
            + totals_block(context)
            + address_block("Ship to", context.get("shipping_address_lines"))
            + paragraph("Please ship the card and add the tracking number from your orders page.")
        )
        return {
            "subject": f"New Order Received - #{context['order_number']}",
            "html": layout("You made a sale!", body),
        }
