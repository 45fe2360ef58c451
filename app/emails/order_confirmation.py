"""Order confirmation - sent to the buyer once payment clears."""

from app.emails.base import address_block, layout, paragraph, product_block, totals_block


class OrderConfirmationTemplate:
    email_type = "order_confirmation"
    sender = "orders"

    @staticmethod
    def render(context: dict) -> dict:
        body = (
            paragraph(f"Hi {context.get('customer_name') or 'there'}, thanks for your purchase!")
            + product_block(context)
            + totals_block(context)
            + address_block("Shipping to", context.get("shipping_address_lines"))
            + paragraph("We'll email you again as soon as the seller ships your card.")
        )
        return {
            "subject": f"Order Confirmation - #{context['order_number']}",
            "html": layout("Thanks for your order!", body),
        }
